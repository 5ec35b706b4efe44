"""Contract source and submission models."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union
from enum import Enum


class CodeFormat(str, Enum):
    """Source representation sent to the target explorer."""
    SINGLE_FILE = "single_file"  # Flattened source
    STANDARD_JSON_INPUT = "standard_json_input"  # Multi-file compiler input


@dataclass(frozen=True)
class SingleFile:
    """A flattened source file, kept verbatim."""
    text: str

    @property
    def code_format(self) -> CodeFormat:
        return CodeFormat.SINGLE_FILE


@dataclass(frozen=True)
class StandardJsonInput:
    """A parsed standard JSON input document (language, sources, settings)."""
    document: Dict[str, Any]

    @property
    def code_format(self) -> CodeFormat:
        return CodeFormat.STANDARD_JSON_INPUT

    @property
    def language(self) -> str:
        return self.document.get("language") or "Solidity"

    @property
    def sources(self) -> Dict[str, Any]:
        return self.document.get("sources") or {}

    @property
    def settings(self) -> Dict[str, Any]:
        return self.document.get("settings") or {}

    def source_content(self, path: str) -> Optional[str]:
        """Get the content of a source file by path."""
        entry = self.sources.get(path)
        if isinstance(entry, dict):
            return entry.get("content")
        return None


SourceCode = Union[SingleFile, StandardJsonInput]


@dataclass
class SourceMetadata:
    """Verification metadata read from the source explorer for one contract."""
    address: str
    contract_name: str
    compiler_version: str
    source_code: SourceCode
    optimization_used: bool = False
    runs: int = 200
    evm_version: str = ""
    license_type: str = ""
    constructor_arguments: str = ""  # Hex, as returned by the explorer
    libraries: Dict[str, str] = field(default_factory=dict)  # Name -> deployed address

    @property
    def code_format(self) -> CodeFormat:
        return self.source_code.code_format

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (source text omitted)."""
        return {
            "address": self.address,
            "contract_name": self.contract_name,
            "compiler_version": self.compiler_version,
            "code_format": self.code_format.value,
            "optimization_used": self.optimization_used,
            "runs": self.runs,
            "evm_version": self.evm_version,
            "license_type": self.license_type,
            "constructor_arguments": self.constructor_arguments,
            "libraries": dict(self.libraries),
        }


@dataclass(frozen=True)
class SubmissionRequest:
    """
    Normalized verification request for one contract.

    Field names are explorer-neutral; the explorer client renames them through
    its dialect table and adds the envelope fields (API key, module, action).
    """
    address: str
    contract_name: str
    compiler_version: str
    code_format: CodeFormat
    source_code: str
    optimization_used: bool = False
    runs: int = 200
    evm_version: str = ""
    license_type: str = ""
    constructor_arguments: str = ""
    libraries: Tuple[Tuple[str, str], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (source text omitted)."""
        return {
            "address": self.address,
            "contract_name": self.contract_name,
            "compiler_version": self.compiler_version,
            "code_format": self.code_format.value,
            "optimization_used": self.optimization_used,
            "runs": self.runs,
            "evm_version": self.evm_version,
            "license_type": self.license_type,
            "constructor_arguments": self.constructor_arguments,
            "libraries": [list(pair) for pair in self.libraries],
            "source_code_length": len(self.source_code),
        }


class PollState(str, Enum):
    """State of an in-flight verification job."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class PollResult:
    """Result of a single status check."""
    state: PollState
    reason: Optional[str] = None
    already_verified: bool = False

    @classmethod
    def pending(cls, reason: Optional[str] = None) -> "PollResult":
        return cls(PollState.PENDING, reason)

    @classmethod
    def success(cls, reason: Optional[str] = None, already_verified: bool = False) -> "PollResult":
        return cls(PollState.SUCCESS, reason, already_verified)

    @classmethod
    def failure(cls, reason: str) -> "PollResult":
        return cls(PollState.FAILURE, reason)


SubmissionGuid = str

