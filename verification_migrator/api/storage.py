"""In-memory storage for migration jobs."""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..services.reporter import MigrationReport
from .models import (
    MigrationCreate,
    MigrationResponse,
    MigrationStatusEnum,
    ReportResponse,
)


@dataclass
class MigrationJob:
    """A submitted migration batch and its result."""
    request: MigrationCreate
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: MigrationStatusEnum = MigrationStatusEnum.PENDING
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    report: Optional[MigrationReport] = None
    error: Optional[str] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def to_response(self) -> MigrationResponse:
        return MigrationResponse(
            id=self.id,
            status=self.status,
            addresses=self.request.addresses,
            source_url=self.request.source.base_url,
            target_url=self.request.target.base_url,
            continue_on_error=self.request.continue_on_error,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            error=self.error,
            report=ReportResponse(**self.report.to_dict()) if self.report else None,
        )


class MigrationStorage:
    """Thread-safe job store. Jobs live for the lifetime of the process."""

    def __init__(self):
        self._jobs: Dict[str, MigrationJob] = {}
        self._lock = threading.Lock()

    def create(self, data: MigrationCreate) -> MigrationJob:
        job = MigrationJob(request=data)
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[MigrationJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_all(self) -> List[MigrationJob]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)

    def update_status(
        self,
        job_id: str,
        status: MigrationStatusEnum,
        error: Optional[str] = None,
    ) -> Optional[MigrationJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None
            job.status = status
            if status == MigrationStatusEnum.RUNNING:
                job.started_at = datetime.utcnow()
            elif status != MigrationStatusEnum.PENDING:
                job.completed_at = datetime.utcnow()
            if error:
                job.error = error
            return job

    def set_report(self, job_id: str, report: MigrationReport) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job:
                job.report = report

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()


migration_storage = MigrationStorage()
