"""Error taxonomy for verification migration."""

from typing import Optional


class MigrationError(Exception):
    """Base class for every per-contract migration failure."""

    error_code = "migration_error"
    label = "MigrationError"

    def __init__(self, reason: str = ""):
        super().__init__(reason or self.label)
        self.reason = reason or self.label

    def describe(self) -> str:
        """Human-readable reason prefixed with the failure kind."""
        if self.reason == self.label:
            return self.label
        return f"{self.label}: {self.reason}"


class SourceNotFoundError(MigrationError):
    """The source explorer has no verified source for the address."""

    error_code = "source_not_found"
    label = "SourceNotFound"


class RejectedRequestError(MigrationError):
    """The explorer synchronously rejected the request. Not retried."""

    error_code = "rejected_request"
    label = "RejectedRequest"


class AlreadyVerifiedError(MigrationError):
    """The target explorer reports the address as already verified."""

    error_code = "already_verified"
    label = "AlreadyVerified"


class TransientError(MigrationError):
    """Network failure, rate limiting or a 5xx response."""

    error_code = "transient_error"
    label = "TransientError"

    def __init__(
        self,
        reason: str = "",
        retry_after: Optional[float] = None,
        retryable: bool = True,
    ):
        super().__init__(reason)
        self.retry_after = retry_after  # Seconds the explorer asked us to wait
        self.retryable = retryable


class UnsupportedLibraryCountError(MigrationError):
    """More linked libraries than the target submission format has slots for."""

    error_code = "unsupported_library_count"
    label = "UnsupportedLibraryCount"


class UnrecognizedFormatError(MigrationError):
    """The source explorer returned a source representation we cannot classify."""

    error_code = "unrecognized_format"
    label = "UnrecognizedFormat"


class InvalidRequestError(MigrationError):
    """Local validation rejected the address or submission fields."""

    error_code = "invalid_request"
    label = "InvalidRequest"


class CancelledError(MigrationError):
    """The batch was cancelled while this contract was in flight."""

    error_code = "cancelled"
    label = "Cancelled"
