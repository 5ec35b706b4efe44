"""Parsing of Etherscan-style API responses."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import (
    AlreadyVerifiedError,
    RejectedRequestError,
    SourceNotFoundError,
    TransientError,
    UnrecognizedFormatError,
)
from ..models.contract import (
    PollResult,
    SingleFile,
    SourceCode,
    SourceMetadata,
    StandardJsonInput,
    SubmissionGuid,
)

logger = logging.getLogger(__name__)

UNVERIFIED_ABI = "contract source code not verified"
RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
INVALID_KEY_MARKERS = ("invalid api key", "missing/invalid api key")
PENDING_MARKERS = ("pending", "in progress", "queue")
FAILURE_MARKERS = ("unable to verify", "unknown uid")


@dataclass
class Envelope:
    """The `{status, message, result}` wrapper every action returns."""
    status: str
    message: str
    result: Any

    @property
    def ok(self) -> bool:
        return self.status == "1"

    @property
    def text(self) -> str:
        """Result as text, falling back to the message."""
        if isinstance(self.result, str) and self.result:
            return self.result
        return self.message or ""

    @classmethod
    def from_json(cls, data: Any) -> "Envelope":
        if not isinstance(data, dict):
            raise TransientError(f"Unexpected response body: {str(data)[:200]}")
        return cls(
            status=str(data.get("status", "")),
            message=str(data.get("message", "")),
            result=data.get("result"),
        )


def is_rate_limited(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def _raise_for_explorer_error(envelope: Envelope) -> None:
    """Raise for explorer-level errors shared by every action."""
    text = envelope.text
    if is_rate_limited(text):
        raise TransientError(text)
    if any(marker in text.lower() for marker in INVALID_KEY_MARKERS):
        raise RejectedRequestError(text)


# ---------------------------------------------------------------------------
# getsourcecode
# ---------------------------------------------------------------------------

def parse_source_response(address: str, envelope: Envelope) -> SourceMetadata:
    """
    Turn a `getsourcecode` response into SourceMetadata.

    Raises:
        SourceNotFoundError: The explorer has no verified source for the address
        TransientError: The explorer is rate limiting
        RejectedRequestError: The API key was refused
        UnrecognizedFormatError: The source field cannot be classified
    """
    if not envelope.ok:
        _raise_for_explorer_error(envelope)
        raise SourceNotFoundError(envelope.text or "Explorer returned NOTOK")

    items = envelope.result
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list) or not items:
        raise SourceNotFoundError("Explorer returned an empty result set")

    item = items[0]
    if not isinstance(item, dict):
        raise UnrecognizedFormatError(f"Result item is {type(item).__name__}, not an object")
    return parse_source_item(address, item)


def parse_source_item(address: str, item: Dict[str, Any]) -> SourceMetadata:
    """Build SourceMetadata from one `getsourcecode` result item."""
    raw_source = _text_field(item, "SourceCode")
    abi = str(item.get("ABI") or "")
    if not raw_source.strip() or abi.strip().lower() == UNVERIFIED_ABI:
        raise SourceNotFoundError("Contract source code not verified")

    contract_name = _text_field(item, "ContractName").strip()
    if not contract_name:
        raise UnrecognizedFormatError("Result has source code but no contract name")

    runs_value = item.get("Runs", item.get("OptimizationRuns"))
    evm_version = str(item.get("EVMVersion") or "").strip()
    if evm_version.lower() == "default":
        evm_version = ""

    metadata = SourceMetadata(
        address=address,
        contract_name=contract_name,
        compiler_version=str(item.get("CompilerVersion") or "").strip(),
        source_code=SingleFile(raw_source),  # Replaced below
        optimization_used=_parse_flag(item.get("OptimizationUsed")),
        runs=_parse_int(runs_value, default=200),
        evm_version=evm_version,
        license_type=str(item.get("LicenseType") or "").strip(),
        constructor_arguments=str(item.get("ConstructorArguments") or "").strip(),
        libraries=parse_libraries(item.get("Library")),
    )
    metadata.source_code = parse_source_code(
        raw_source,
        metadata,
        file_name=_text_field(item, "FileName") or None,
        additional_sources=item.get("AdditionalSources"),
    )
    logger.debug(
        f"Parsed {address}: {contract_name} as {metadata.code_format.value}, "
        f"{len(metadata.libraries)} linked libraries"
    )
    return metadata


def parse_source_code(
    raw: str,
    metadata: SourceMetadata,
    file_name: Optional[str] = None,
    additional_sources: Optional[List[Dict[str, Any]]] = None,
) -> SourceCode:
    """
    Classify the explorer's `SourceCode` field.

    - `{{...}}` or a JSON object with `sources`: standard JSON input
    - A JSON object of `{path: {"content": ...}}`: multi-part sources, wrapped
      into a standard JSON input
    - Plain text with additional sources (Blockscout): wrapped likewise
    - Any other text: a flattened single file, kept verbatim
    """
    stripped = raw.strip()

    if stripped.startswith("{{") and stripped.endswith("}}"):
        document = _load_json_object(stripped[1:-1])
        if "sources" not in document:
            raise UnrecognizedFormatError("Double-brace source has no 'sources' key")
        return StandardJsonInput(document)

    if stripped.startswith("{"):
        document = _load_json_object(stripped)
        if "sources" in document:
            return StandardJsonInput(document)
        if document and all(
            isinstance(entry, dict) and "content" in entry for entry in document.values()
        ):
            return StandardJsonInput(build_standard_json(document, metadata))
        raise UnrecognizedFormatError("JSON source is neither standard input nor a source map")

    if additional_sources:
        main_path = file_name or f"{metadata.contract_name}.sol"
        if not isinstance(additional_sources, list):
            raise UnrecognizedFormatError("AdditionalSources is not a list")
        sources = {main_path: {"content": raw}}
        for extra in additional_sources:
            if not isinstance(extra, dict):
                raise UnrecognizedFormatError("Additional source is not an object")
            path = _text_field(extra, "Filename") or _text_field(extra, "FileName")
            if not path:
                raise UnrecognizedFormatError("Additional source without a file name")
            sources[path] = {"content": _text_field(extra, "SourceCode")}
        return StandardJsonInput(build_standard_json(sources, metadata))

    return SingleFile(raw)


def build_standard_json(
    sources: Dict[str, Any],
    metadata: SourceMetadata,
    library_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a standard JSON input around a source map from the metadata."""
    settings: Dict[str, Any] = {
        "optimizer": {
            "enabled": metadata.optimization_used,
            "runs": metadata.runs,
        },
        "remappings": [],
        "outputSelection": {"*": {"*": ["*"]}},
    }
    if metadata.evm_version:
        settings["evmVersion"] = metadata.evm_version
    if metadata.libraries:
        path = library_path or next(iter(sources), "")
        settings["libraries"] = {path: dict(metadata.libraries)}
    return {
        "language": "Solidity",
        "sources": sources,
        "settings": settings,
    }


def parse_libraries(raw: Any) -> Dict[str, str]:
    """Parse `Name:0xaddr;Other:0xaddr` into an ordered mapping."""
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    if not raw or not isinstance(raw, str):
        return {}

    libraries: Dict[str, str] = {}
    for entry in raw.replace(",", ";").split(";"):
        entry = entry.strip()
        if not entry:
            continue
        if ":" not in entry:
            raise UnrecognizedFormatError(f"Malformed library entry: {entry!r}")
        name, address = entry.rsplit(":", 1)
        address = address.strip()
        if not address.lower().startswith("0x"):
            address = f"0x{address}"
        libraries[name.strip()] = address
    return libraries


def _text_field(item: Dict[str, Any], key: str) -> str:
    """Read a text field; missing or null is empty, any other non-string is malformed."""
    value = item.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise UnrecognizedFormatError(f"Field {key} is {type(value).__name__}, not a string")
    return value


def _load_json_object(text: str) -> Dict[str, Any]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise UnrecognizedFormatError(f"Source looks like JSON but does not parse: {e}")
    if not isinstance(document, dict):
        raise UnrecognizedFormatError("JSON source is not an object")
    return document


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes")


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# verifysourcecode / checkverifystatus
# ---------------------------------------------------------------------------

def parse_submit_response(envelope: Envelope) -> SubmissionGuid:
    """
    Extract the submission guid from a `verifysourcecode` response.

    Raises:
        AlreadyVerifiedError: The target already has this contract verified
        TransientError: The explorer is rate limiting
        RejectedRequestError: The explorer refused the payload
    """
    text = envelope.text
    if "already verified" in text.lower():
        raise AlreadyVerifiedError(text)
    if not envelope.ok:
        _raise_for_explorer_error(envelope)
        raise RejectedRequestError(text or "Verification request rejected")
    if not isinstance(envelope.result, str) or not envelope.result.strip():
        raise RejectedRequestError("Explorer accepted the request but returned no guid")
    return envelope.result.strip()


def parse_poll_response(envelope: Envelope) -> PollResult:
    """
    Map a `checkverifystatus` response to a PollResult.

    Only "Pass" and "Already Verified" count as success. Unrecognised text on an
    OK status keeps the job pending, so an unresolved job runs out of polls.
    """
    text = envelope.text.strip()
    lowered = text.lower()

    if is_rate_limited(lowered):
        raise TransientError(text)
    if "already verified" in lowered:
        return PollResult.success(text, already_verified=True)
    if lowered.startswith("pass"):
        return PollResult.success(text)
    if lowered.startswith("fail") or any(marker in lowered for marker in FAILURE_MARKERS):
        return PollResult.failure(text)
    if any(marker in lowered for marker in PENDING_MARKERS):
        return PollResult.pending(text)
    if envelope.ok:
        return PollResult.pending(text or None)
    return PollResult.failure(text or "Verification failed")
