"""Migration job endpoints."""

import logging
from fastapi import APIRouter, HTTPException, BackgroundTasks

from ...models.migration import (
    ExplorerConfig,
    MigrationConfig,
    PollPolicy,
)
from ...orchestrator import MigrationOrchestrator
from ..models import (
    ExplorerSettings,
    MigrationCreate,
    MigrationListResponse,
    MigrationResponse,
    MigrationStatusEnum,
)
from ..storage import migration_storage

logger = logging.getLogger(__name__)

router = APIRouter()

FINISHED_STATUSES = (
    MigrationStatusEnum.COMPLETED,
    MigrationStatusEnum.FAILED,
    MigrationStatusEnum.CANCELLED,
)


def _explorer_config(settings: ExplorerSettings) -> ExplorerConfig:
    return ExplorerConfig(
        base_url=settings.base_url,
        api_key=settings.api_key,
        dialect=settings.dialect,
        chain_id=settings.chain_id,
        min_request_interval=settings.min_request_interval,
    )


def build_config(data: MigrationCreate) -> MigrationConfig:
    """Convert the API request into the internal configuration."""
    return MigrationConfig(
        source=_explorer_config(data.source),
        target=_explorer_config(data.target),
        continue_on_error=data.continue_on_error,
        max_workers=data.max_workers,
        poll=PollPolicy(max_polls=data.max_polls, interval=data.poll_interval),
    )


@router.post("", response_model=MigrationResponse)
async def create_migration(data: MigrationCreate, background_tasks: BackgroundTasks):
    """Create a migration job and start it in the background."""
    try:
        config = build_config(data)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    job = migration_storage.create(data)
    background_tasks.add_task(run_migration_task, job.id, config)
    return job.to_response()


@router.get("", response_model=MigrationListResponse)
async def list_migrations():
    """List all migration jobs."""
    jobs = migration_storage.list_all()
    return MigrationListResponse(migrations=[j.to_response() for j in jobs], total=len(jobs))


@router.get("/{migration_id}", response_model=MigrationResponse)
async def get_migration(migration_id: str):
    """Get a specific migration job."""
    job = migration_storage.get(migration_id)
    if not job:
        raise HTTPException(status_code=404, detail="Migration not found")
    return job.to_response()


@router.post("/{migration_id}/cancel")
async def cancel_migration(migration_id: str):
    """Cancel a pending or running migration job."""
    job = migration_storage.get(migration_id)
    if not job:
        raise HTTPException(status_code=404, detail="Migration not found")

    if job.status in FINISHED_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel migration in status: {job.status.value}"
        )

    job.cancel_event.set()
    return {"status": "cancelling", "migration_id": migration_id}


def run_migration_task(migration_id: str, config: MigrationConfig) -> None:
    """Background task that runs the batch and stores the report."""
    job = migration_storage.get(migration_id)
    if not job:
        return

    migration_storage.update_status(migration_id, MigrationStatusEnum.RUNNING)
    try:
        orchestrator = MigrationOrchestrator(config, cancel_event=job.cancel_event)
        report = orchestrator.run(job.request.addresses)
    except Exception as e:
        logger.exception(f"Migration {migration_id} crashed")
        migration_storage.update_status(migration_id, MigrationStatusEnum.FAILED, error=str(e))
        return

    migration_storage.set_report(migration_id, report)
    status = MigrationStatusEnum.CANCELLED if report.cancelled else MigrationStatusEnum.COMPLETED
    migration_storage.update_status(migration_id, status)
    logger.info(f"Migration {migration_id} {status.value}: {report.summary()}")
