"""Recovery job orchestrator endpoints for operators."""

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.dependencies import get_recovery_scheduler
from app.schemas.recovery_job import JobResult, JobRunResponse, SchedulerStatus, SystemHealth
from app.services.recovery_scheduler import RecoveryJobScheduler

router = APIRouter()


@router.post(
    "/{job_type}/trigger",
    response_model=JobResult,
    summary="Trigger recovery job",
    responses={400: {"description": "Unknown job type"}},
)
async def trigger_job(
    job_type: str,
    scheduler: RecoveryJobScheduler = Depends(get_recovery_scheduler),
) -> JobResult:
    """Run a recovery job immediately, subject to the overlap and concurrency guards."""
    try:
        return await scheduler.trigger_job(job_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None


@router.get(
    "/history",
    response_model=list[JobRunResponse],
    summary="Get job history",
)
async def get_job_history(
    job_type: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    scheduler: RecoveryJobScheduler = Depends(get_recovery_scheduler),
) -> list[JobRunResponse]:
    return scheduler.get_job_history(job_type=job_type, limit=limit)


@router.get("/status", response_model=SchedulerStatus, summary="Get scheduler status")
async def get_status(
    scheduler: RecoveryJobScheduler = Depends(get_recovery_scheduler),
) -> SchedulerStatus:
    return scheduler.get_status()


@router.get("/health", response_model=SystemHealth, summary="Get recovery system health")
async def get_health(
    scheduler: RecoveryJobScheduler = Depends(get_recovery_scheduler),
) -> SystemHealth:
    return scheduler.get_system_health()
