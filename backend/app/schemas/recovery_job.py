"""Recovery job orchestrator schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class JobResult(BaseModel):
    """Uniform outcome of one job invocation."""

    job_type: str
    success: bool
    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    skipped: bool = False
    metadata: dict[str, Any] | None = None


class JobRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_type: str
    start_time: datetime
    end_time: datetime
    duration_ms: int
    success: bool
    processed: int
    successful: int
    failed: int
    errors: list[str] = Field(default_factory=list)
    job_metadata: dict[str, Any] | None = None


class SchedulerConfigResponse(BaseModel):
    enabled: bool
    retry_job_interval_minutes: int
    dunning_job_interval_minutes: int
    grace_period_job_interval_minutes: int
    analytics_job_interval_minutes: int
    max_concurrent_jobs: int
    job_timeout_ms: int


class SchedulerStatus(BaseModel):
    is_running: bool
    active_jobs: list[str] = Field(default_factory=list)
    scheduled_jobs: list[str] = Field(default_factory=list)
    config: SchedulerConfigResponse


class SchedulerHealth(BaseModel):
    is_running: bool
    active_jobs: list[str] = Field(default_factory=list)
    last_successful_runs: dict[str, datetime | None] = Field(default_factory=dict)


class JobRunCounts(BaseModel):
    total_jobs_today: int
    successful_jobs_today: int
    failed_jobs_today: int


class SystemHealth(BaseModel):
    scheduler: SchedulerHealth
    metrics: JobRunCounts
