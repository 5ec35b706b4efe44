"""Services for verification migration."""

from .normalizer import SourceNormalizer, serialize_standard_json, normalize_compiler_version
from .validator import RequestValidator, validate_address
from .reporter import ResultReporter, MigrationReport

__all__ = [
    "SourceNormalizer",
    "serialize_standard_json",
    "normalize_compiler_version",
    "RequestValidator",
    "validate_address",
    "ResultReporter",
    "MigrationReport",
]
