"""Aggregation of per-contract outcomes into a batch report."""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..models.migration import MigrationOutcome, OutcomeStatus

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    """Final result of a verification migration batch."""
    outcomes: List[MigrationOutcome] = field(default_factory=list)  # Input order
    skipped: List[str] = field(default_factory=list)  # Never attempted
    cancelled: bool = False
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def verified(self) -> int:
        return self._count(OutcomeStatus.VERIFIED)

    @property
    def already_verified(self) -> int:
        return self._count(OutcomeStatus.ALREADY_VERIFIED)

    @property
    def failed(self) -> int:
        """Failed, SourceNotFound and TransientErrorExhausted outcomes."""
        return sum(1 for o in self.outcomes if o.is_failure)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def summary(self) -> str:
        """One-line summary of the counts."""
        text = (
            f"{len(self.outcomes)} processed: {self.verified} verified, "
            f"{self.already_verified} already verified, {self.failed} failed"
        )
        if self.skipped:
            text += f", {len(self.skipped)} skipped"
        return text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "verified": self.verified,
            "already_verified": self.already_verified,
            "failed": self.failed,
            "has_failures": self.has_failures,
            "cancelled": self.cancelled,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "skipped": list(self.skipped),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }

    def save(self, path: Union[str, Path]) -> Path:
        """Write the report as JSON and return the file path."""
        filepath = Path(path)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)
        logger.info(f"Saved migration report to {filepath}")
        return filepath


class ResultReporter:
    """
    Collects one outcome per input position while workers complete out of order.

    Outcomes are recorded against the index of their address in the input
    list, so the final report lists them in input order regardless of which
    worker finished first.
    """

    def __init__(self, addresses: List[str]):
        self.addresses = list(addresses)
        self._slots: List[Optional[MigrationOutcome]] = [None] * len(self.addresses)
        self._lock = threading.Lock()
        self.started_at = datetime.utcnow()

    def record(self, index: int, outcome: MigrationOutcome) -> None:
        """Store the outcome for the address at `index`. Each slot is written once."""
        with self._lock:
            if self._slots[index] is not None:
                raise ValueError(f"Outcome for position {index} already recorded")
            self._slots[index] = outcome

    def pending(self) -> List[int]:
        """Indices that have no outcome yet."""
        with self._lock:
            return [i for i, slot in enumerate(self._slots) if slot is None]

    def build(self, cancelled: bool = False) -> MigrationReport:
        """Assemble the final report; positions without an outcome are reported as skipped."""
        with self._lock:
            outcomes = [slot for slot in self._slots if slot is not None]
            skipped = [self.addresses[i] for i, slot in enumerate(self._slots) if slot is None]

        report = MigrationReport(
            outcomes=outcomes,
            skipped=skipped,
            cancelled=cancelled,
            started_at=self.started_at,
            completed_at=datetime.utcnow(),
        )
        logger.info(report.summary())
        return report
