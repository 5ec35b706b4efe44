"""Data models for verification migration."""

from .contract import (
    CodeFormat,
    SingleFile,
    StandardJsonInput,
    SourceCode,
    SourceMetadata,
    SubmissionRequest,
    SubmissionGuid,
    PollState,
    PollResult,
)
from .migration import (
    OutcomeStatus,
    MigrationStage,
    RetryPolicy,
    PollPolicy,
    ExplorerConfig,
    MigrationConfig,
    MigrationOutcome,
)

__all__ = [
    "CodeFormat",
    "SingleFile",
    "StandardJsonInput",
    "SourceCode",
    "SourceMetadata",
    "SubmissionRequest",
    "SubmissionGuid",
    "PollState",
    "PollResult",
    "OutcomeStatus",
    "MigrationStage",
    "RetryPolicy",
    "PollPolicy",
    "ExplorerConfig",
    "MigrationConfig",
    "MigrationOutcome",
]
