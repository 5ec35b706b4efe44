"""Pydantic models for API requests and responses."""

from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime


class MigrationStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Request Models
class ExplorerSettings(BaseModel):
    base_url: str
    api_key: str = ""
    dialect: str = "etherscan"
    chain_id: Optional[str] = None
    min_request_interval: float = Field(default=0.2, ge=0)


class MigrationCreate(BaseModel):
    addresses: List[str] = Field(default_factory=list)
    source: ExplorerSettings
    target: ExplorerSettings
    continue_on_error: bool = True
    max_workers: int = Field(default=4, ge=1)
    max_polls: int = Field(default=10, ge=1)
    poll_interval: float = Field(default=10.0, ge=0)


# Response Models
class OutcomeResponse(BaseModel):
    address: str
    status: str
    reason: Optional[str] = None
    error_code: Optional[str] = None
    elapsed_polls: int = 0
    stage: str
    guid: Optional[str] = None


class ReportResponse(BaseModel):
    verified: int = 0
    already_verified: int = 0
    failed: int = 0
    has_failures: bool = False
    cancelled: bool = False
    outcomes: List[OutcomeResponse] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None


class MigrationResponse(BaseModel):
    id: str
    status: MigrationStatusEnum
    addresses: List[str]
    source_url: str
    target_url: str
    continue_on_error: bool
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    report: Optional[ReportResponse] = None


class MigrationListResponse(BaseModel):
    migrations: List[MigrationResponse]
    total: int
