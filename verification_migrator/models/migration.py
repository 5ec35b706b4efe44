"""Migration configuration and outcome models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


class OutcomeStatus(str, Enum):
    """Terminal status of one contract's migration."""
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"
    FAILED = "failed"
    SOURCE_NOT_FOUND = "source_not_found"  # Reported as Failed(SourceNotFound); counts as a failure
    TRANSIENT_ERROR_EXHAUSTED = "transient_error_exhausted"

    @property
    def is_failure(self) -> bool:
        return self not in (OutcomeStatus.VERIFIED, OutcomeStatus.ALREADY_VERIFIED)

    @property
    def label(self) -> str:
        return {
            OutcomeStatus.VERIFIED: "Verified",
            OutcomeStatus.ALREADY_VERIFIED: "AlreadyVerified",
            OutcomeStatus.FAILED: "Failed",
            OutcomeStatus.SOURCE_NOT_FOUND: "SourceNotFound",
            OutcomeStatus.TRANSIENT_ERROR_EXHAUSTED: "TransientErrorExhausted",
        }[self]


class MigrationStage(str, Enum):
    """Per-contract workflow state."""
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    SUBMITTING = "submitting"
    POLLING = "polling"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class RetryPolicy:
    """Bounded retry schedule for transient explorer failures."""
    max_attempts: int = 3
    backoff_factor: float = 2.0
    initial_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")

    def delays(self) -> List[float]:
        """Delays to wait before each retry (one fewer than max_attempts)."""
        return [
            min(self.initial_delay * (self.backoff_factor ** n), self.max_delay)
            for n in range(self.max_attempts - 1)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "backoff_factor": self.backoff_factor,
            "initial_delay": self.initial_delay,
            "max_delay": self.max_delay,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        return cls(
            max_attempts=data.get("max_attempts", 3),
            backoff_factor=data.get("backoff_factor", 2.0),
            initial_delay=data.get("initial_delay", 1.0),
            max_delay=data.get("max_delay", 30.0),
        )


@dataclass
class PollPolicy:
    """Spacing and bound for verification status polling."""
    max_polls: int = 10
    interval: float = 10.0
    backoff: str = "fixed"  # fixed, exponential
    max_interval: float = 60.0

    def __post_init__(self):
        if self.max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        if self.backoff not in ("fixed", "exponential"):
            raise ValueError(f"Unknown poll backoff: {self.backoff!r}")

    def delay_before(self, poll_number: int) -> float:
        """Delay to wait before the given poll (1-based); the first poll waits too."""
        if self.backoff == "exponential":
            return min(self.interval * (2 ** (poll_number - 1)), self.max_interval)
        return self.interval

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_polls": self.max_polls,
            "interval": self.interval,
            "backoff": self.backoff,
            "max_interval": self.max_interval,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PollPolicy":
        return cls(
            max_polls=data.get("max_polls", 10),
            interval=data.get("interval", 10.0),
            backoff=data.get("backoff", "fixed"),
            max_interval=data.get("max_interval", 60.0),
        )


@dataclass
class ExplorerConfig:
    """Connection settings for one explorer endpoint."""
    base_url: str
    api_key: str = ""
    dialect: str = "etherscan"
    chain_id: Optional[str] = None  # Sent as `chainid` for multichain endpoints
    min_request_interval: float = 0.2  # Seconds between requests per URL + key
    timeout: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self):
        from ..explorer.dialects import get_dialect

        if not self.base_url:
            raise ValueError("Explorer base_url is required")
        get_dialect(self.dialect)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation with the API key masked."""
        return {
            "base_url": self.base_url,
            "api_key": "****" if self.api_key else "",
            "dialect": self.dialect,
            "chain_id": self.chain_id,
            "min_request_interval": self.min_request_interval,
            "timeout": self.timeout,
            "retry": self.retry.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExplorerConfig":
        chain_id = data.get("chain_id")
        return cls(
            base_url=data.get("base_url", ""),
            api_key=data.get("api_key", ""),
            dialect=data.get("dialect", "etherscan"),
            chain_id=str(chain_id) if chain_id is not None else None,
            min_request_interval=data.get("min_request_interval", 0.2),
            timeout=data.get("timeout", 30.0),
            retry=RetryPolicy.from_dict(data.get("retry", {})),
        )


@dataclass
class MigrationConfig:
    """Configuration for a verification migration batch."""
    source: ExplorerConfig
    target: ExplorerConfig
    continue_on_error: bool = True
    max_workers: int = 4
    poll: PollPolicy = field(default_factory=PollPolicy)

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "continue_on_error": self.continue_on_error,
            "max_workers": self.max_workers,
            "poll": self.poll.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        return cls(
            source=ExplorerConfig.from_dict(data.get("source", {})),
            target=ExplorerConfig.from_dict(data.get("target", {})),
            continue_on_error=data.get("continue_on_error", True),
            max_workers=data.get("max_workers", 4),
            poll=PollPolicy.from_dict(data.get("poll", {})),
        )


@dataclass(frozen=True)
class MigrationOutcome:
    """Terminal result for one contract address. Never mutated after creation."""
    address: str
    status: OutcomeStatus
    reason: Optional[str] = None
    error_code: Optional[str] = None
    elapsed_polls: int = 0
    stage: MigrationStage = MigrationStage.VERIFIED  # Last stage reached
    guid: Optional[str] = None
    completed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_failure(self) -> bool:
        return self.status.is_failure

    def describe(self) -> str:
        """One-line summary: `Status` or `Status: reason`."""
        if self.reason and self.is_failure:
            return f"{self.status.label}: {self.reason}"
        return self.status.label

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "address": self.address,
            "status": self.status.value,
            "reason": self.reason,
            "error_code": self.error_code,
            "elapsed_polls": self.elapsed_polls,
            "stage": self.stage.value,
            "guid": self.guid,
            "completed_at": self.completed_at.isoformat(),
        }
