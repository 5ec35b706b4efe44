"""Normalization of fetched source metadata into submission requests."""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from ..errors import UnsupportedLibraryCountError
from ..explorer.dialects import ETHERSCAN, ExplorerDialect
from ..explorer.responses import build_standard_json
from ..models.contract import (
    CodeFormat,
    SingleFile,
    SourceMetadata,
    StandardJsonInput,
    SubmissionRequest,
)

logger = logging.getLogger(__name__)

DECLARATION_PATTERN = r"^\s*(?:abstract\s+)?(?:contract|library|interface)\s+{name}\b"


def serialize_standard_json(document: Dict[str, Any]) -> str:
    """
    Serialize a standard JSON input deterministically.

    Keys are sorted at every level and no whitespace is emitted, so the same
    parsed document always yields the same bytes. String values (file
    contents) are written unescaped beyond what JSON requires.
    """
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def normalize_compiler_version(version: str) -> str:
    """Ensure the compiler version carries its leading `v`."""
    version = version.strip()
    if version and not version.startswith("v"):
        return f"v{version}"
    return version


class SourceNormalizer:
    """
    Converts SourceMetadata into a SubmissionRequest for one target explorer.

    Handles:
    - Flattened sources (sent verbatim, or wrapped into a one-file standard
      JSON input when the target does not accept flattened sources)
    - Standard JSON inputs (re-serialized deterministically)
    - Fully qualified contract names for standard JSON submissions
    - Linked library slots
    """

    def __init__(self, dialect: Optional[ExplorerDialect] = None):
        """
        Initialize the normalizer.

        Args:
            dialect: Field table of the target explorer
        """
        self.dialect = dialect or ETHERSCAN

    def normalize(self, metadata: SourceMetadata) -> SubmissionRequest:
        """
        Build the submission request for a fetched contract.

        Args:
            metadata: Source metadata read from the source explorer

        Returns:
            Normalized submission request

        Raises:
            UnsupportedLibraryCountError: More libraries than the target has slots for
        """
        libraries = self._normalize_libraries(metadata.libraries)
        source = metadata.source_code

        if isinstance(source, SingleFile) and not self.dialect.accepts_single_file:
            source = self.wrap_single_file(source, metadata)
            logger.debug(
                f"Wrapped flattened source of {metadata.address} into standard JSON "
                f"for {self.dialect.name}"
            )

        if isinstance(source, SingleFile):
            code_format = CodeFormat.SINGLE_FILE
            source_code = source.text
            contract_name = metadata.contract_name
        else:
            code_format = CodeFormat.STANDARD_JSON_INPUT
            source_code = serialize_standard_json(source.document)
            contract_name = self.qualify_contract_name(metadata.contract_name, source)

        return SubmissionRequest(
            address=metadata.address,
            contract_name=contract_name,
            compiler_version=normalize_compiler_version(metadata.compiler_version),
            code_format=code_format,
            source_code=source_code,
            optimization_used=metadata.optimization_used,
            runs=metadata.runs,
            evm_version=metadata.evm_version,
            license_type=metadata.license_type,
            constructor_arguments=metadata.constructor_arguments,
            libraries=libraries,
        )

    def wrap_single_file(self, source: SingleFile, metadata: SourceMetadata) -> StandardJsonInput:
        """Wrap a flattened file, byte-for-byte, into a one-file standard JSON input."""
        path = f"{metadata.contract_name}.sol"
        document = build_standard_json({path: {"content": source.text}}, metadata, library_path=path)
        return StandardJsonInput(document)

    def qualify_contract_name(self, name: str, source: StandardJsonInput) -> str:
        """
        Resolve `<path>:<Name>` for a standard JSON submission.

        The path is the source file declaring the contract. Files named after
        the contract are preferred when several declare it.
        """
        if ":" in name:
            return name

        pattern = re.compile(DECLARATION_PATTERN.format(name=re.escape(name)), re.MULTILINE)
        matches = [
            path for path in sorted(source.sources)
            if pattern.search(source.source_content(path) or "")
        ]
        if matches:
            preferred = [p for p in matches if p.rsplit("/", 1)[-1] == f"{name}.sol"]
            return f"{(preferred or matches)[0]}:{name}"

        logger.warning(f"No source file declares {name}; assuming {name}.sol")
        return f"{name}.sol:{name}"

    def _normalize_libraries(self, libraries: Dict[str, str]) -> Tuple[Tuple[str, str], ...]:
        if len(libraries) > self.dialect.library_slots:
            raise UnsupportedLibraryCountError(
                f"{len(libraries)} libraries linked, {self.dialect.name} accepts "
                f"at most {self.dialect.library_slots}"
            )
        return tuple((name, address) for name, address in libraries.items())
