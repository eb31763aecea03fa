"""Recovery job orchestrator.

Runs the four recovery batch entry points on fixed intervals with a hard
timeout, a cap on concurrently running job types, and no overlap between two
runs of the same job type. Every completed run is logged as a ``JobRun``.
Synchronous batch bodies run in a worker thread. When one overruns the
timeout its run is recorded as failed and the thread finishes in the
background.

The active-job set lives in memory, so only one scheduler instance per
deployment may drive the jobs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import Settings, settings
from app.core.database import session_scope
from app.repositories.job_run_repository import JobRunRepository
from app.schemas.recovery_job import (
    JobResult,
    JobRunCounts,
    JobRunResponse,
    SchedulerConfigResponse,
    SchedulerHealth,
    SchedulerStatus,
    SystemHealth,
)
from app.services.account_state_service import AccountStateService
from app.services.dunning_service import DunningService
from app.services.notification_gateway import NotificationGateway
from app.services.payment_failure_service import PaymentFailureService
from app.services.payment_gateway import PaymentGateway
from app.services.recovery_metrics_service import RecoveryMetricsService

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    PAYMENT_RETRY = "payment_retry"
    DUNNING_CAMPAIGNS = "dunning_campaigns"
    GRACE_PERIOD_MONITORING = "grace_period_monitoring"
    ANALYTICS_GENERATION = "analytics_generation"


@dataclass
class SchedulerConfig:
    enabled: bool = False
    retry_job_interval_minutes: int = 15
    dunning_job_interval_minutes: int = 30
    grace_period_job_interval_minutes: int = 60
    analytics_job_interval_minutes: int = 1440
    max_concurrent_jobs: int = 5
    job_timeout_ms: int = 300000

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> SchedulerConfig:
        source = source or settings
        return cls(
            enabled=source.RECOVERY_SCHEDULER_ENABLED,
            retry_job_interval_minutes=source.RETRY_JOB_INTERVAL_MINUTES,
            dunning_job_interval_minutes=source.DUNNING_JOB_INTERVAL_MINUTES,
            grace_period_job_interval_minutes=source.GRACE_PERIOD_JOB_INTERVAL_MINUTES,
            analytics_job_interval_minutes=source.ANALYTICS_JOB_INTERVAL_MINUTES,
            max_concurrent_jobs=source.MAX_CONCURRENT_JOBS,
            job_timeout_ms=source.JOB_TIMEOUT_MS,
        )

    def interval_minutes(self, job_type: JobType) -> int:
        return {
            JobType.PAYMENT_RETRY: self.retry_job_interval_minutes,
            JobType.DUNNING_CAMPAIGNS: self.dunning_job_interval_minutes,
            JobType.GRACE_PERIOD_MONITORING: self.grace_period_job_interval_minutes,
            JobType.ANALYTICS_GENERATION: self.analytics_job_interval_minutes,
        }[job_type]


JobBody = Callable[[], Awaitable[dict[str, Any]]]
SessionFactory = Callable[[], AbstractContextManager[Session]]


class RecoveryJobScheduler:
    def __init__(
        self,
        config: SchedulerConfig | None = None,
        session_factory: SessionFactory = session_scope,
        gateway: PaymentGateway | None = None,
        notifier_factory: Callable[[Session], NotificationGateway] = NotificationGateway,
    ):
        self.config = config or SchedulerConfig.from_settings()
        self.session_factory = session_factory
        self.gateway = gateway
        self.notifier_factory = notifier_factory
        self.active_jobs: set[str] = set()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._bodies: dict[JobType, JobBody] = {
            JobType.PAYMENT_RETRY: self._process_payment_retries,
            JobType.DUNNING_CAMPAIGNS: self._process_dunning_campaigns,
            JobType.GRACE_PERIOD_MONITORING: self._process_expired_grace_periods,
            JobType.ANALYTICS_GENERATION: self._generate_analytics,
        }

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Start one interval loop per job type on the running event loop."""
        if self._tasks:
            logger.warning("Recovery job scheduler already running")
            return
        for job_type in JobType:
            interval = self.config.interval_minutes(job_type) * 60
            self._tasks[job_type.value] = asyncio.create_task(
                self._run_periodically(job_type, interval)
            )
        logger.info("Recovery job scheduler started with %d jobs", len(self._tasks))

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Recovery job scheduler stopped")

    async def _run_periodically(self, job_type: JobType, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.trigger_job(job_type.value)
            except Exception:
                logger.exception("Scheduled %s job crashed", job_type.value)

    async def trigger_job(self, job_type: str) -> JobResult:
        """Run a job now, through the same guards as the scheduled runs."""
        try:
            resolved = JobType(job_type)
        except ValueError:
            raise ValueError(f"Unknown job type: {job_type}") from None
        return await self.execute_job(resolved.value, self._bodies[resolved])

    async def execute_job(self, job_type: str, body: JobBody) -> JobResult:
        start_time = datetime.now(UTC)

        if len(self.active_jobs) >= self.config.max_concurrent_jobs:
            logger.warning("Skipping %s job - max concurrent jobs reached", job_type)
            return JobResult(
                job_type=job_type,
                success=False,
                skipped=True,
                errors=["Max concurrent jobs reached"],
            )
        if job_type in self.active_jobs:
            logger.warning("Skipping %s job - already running", job_type)
            return JobResult(
                job_type=job_type,
                success=False,
                skipped=True,
                errors=["Job already running"],
            )

        self.active_jobs.add(job_type)
        try:
            logger.info("Starting %s job", job_type)
            counts = await asyncio.wait_for(body(), timeout=self.config.job_timeout_ms / 1000)
            result = JobResult(
                job_type=job_type,
                success=True,
                processed=int(counts.get("processed", 0)),
                successful=int(counts.get("successful", 0)),
                failed=int(counts.get("failed", 0)),
                errors=list(counts.get("errors", [])),
                metadata=counts.get("metadata"),
            )
        except asyncio.TimeoutError:
            logger.error("%s job timed out after %dms", job_type, self.config.job_timeout_ms)
            result = JobResult(
                job_type=job_type,
                success=False,
                errors=[f"Job timeout after {self.config.job_timeout_ms}ms"],
            )
        except Exception as e:
            logger.exception("%s job failed", job_type)
            result = JobResult(job_type=job_type, success=False, errors=[str(e) or type(e).__name__])
        finally:
            self.active_jobs.discard(job_type)

        end_time = datetime.now(UTC)
        result.duration_ms = int((end_time - start_time).total_seconds() * 1000)
        logger.info(
            "Completed %s job in %dms: processed=%d successful=%d failed=%d",
            job_type,
            result.duration_ms,
            result.processed,
            result.successful,
            result.failed,
        )
        self._log_job_result(result, start_time, end_time)
        return result

    def _log_job_result(self, result: JobResult, start_time: datetime, end_time: datetime) -> None:
        try:
            with self.session_factory() as db:
                JobRunRepository(db).create(
                    job_type=result.job_type,
                    start_time=start_time,
                    end_time=end_time,
                    duration_ms=result.duration_ms,
                    success=result.success,
                    processed=result.processed,
                    successful=result.successful,
                    failed=result.failed,
                    errors=result.errors,
                    job_metadata=result.metadata,
                )
        except Exception:
            logger.exception("Failed to record %s job run", result.job_type)

    def _record_health(self, db: Session, metric: str, value: int) -> None:
        try:
            RecoveryMetricsService(db).record_health_metric(metric, value)
        except Exception:
            logger.exception("Failed to update health metric %s", metric)
            db.rollback()

    async def _process_payment_retries(self) -> dict[str, Any]:
        with self.session_factory() as db:
            service = PaymentFailureService(
                db,
                gateway=self.gateway,
                dunning_service=DunningService(db, notifier=self.notifier_factory(db)),
            )
            result = await service.process_pending_retries()
            if result.successful > 0:
                self._record_health(db, "payment_retry_success", result.successful)
        return {
            "processed": result.processed,
            "successful": result.successful,
            "failed": result.failed,
            "metadata": {"abandoned": result.abandoned},
        }

    async def _process_dunning_campaigns(self) -> dict[str, Any]:
        with self.session_factory() as db:
            service = DunningService(db, notifier=self.notifier_factory(db))
            result = await service.process_pending_communications()
            if result.sent > 0:
                self._record_health(db, "dunning_communications_sent", result.sent)
        return {"processed": result.processed, "successful": result.sent, "failed": result.failed}

    async def _process_expired_grace_periods(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._expire_grace_periods)

    def _expire_grace_periods(self) -> dict[str, Any]:
        with self.session_factory() as db:
            result = AccountStateService(db).process_expired_grace_periods()
            if result.suspended > 0:
                self._record_health(db, "accounts_suspended", result.suspended)
        return {
            "processed": result.processed,
            "successful": result.suspended,
            "failed": result.errors,
        }

    async def _generate_analytics(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._generate_daily_metrics)

    def _generate_daily_metrics(self) -> dict[str, Any]:
        today = datetime.now(UTC).date()
        with self.session_factory() as db:
            service = RecoveryMetricsService(db)
            # yesterday is the completed day, today is partial for dashboards
            total = service.generate_daily_metrics(today - timedelta(days=1))
            total += service.generate_daily_metrics(today)
            self._record_health(db, "analytics_metrics_generated", total)
        return {"processed": 2, "successful": total, "failed": 0}

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self.is_running,
            active_jobs=sorted(self.active_jobs),
            scheduled_jobs=sorted(self._tasks),
            config=SchedulerConfigResponse(**asdict(self.config)),
        )

    def get_job_history(self, job_type: str | None = None, limit: int = 50) -> list[JobRunResponse]:
        with self.session_factory() as db:
            runs = JobRunRepository(db).get_recent(job_type=job_type, limit=limit)
            return [JobRunResponse.model_validate(run) for run in runs]

    def get_system_health(self, today: date | None = None) -> SystemHealth:
        since = datetime.combine(today or datetime.now(UTC).date(), time.min, tzinfo=UTC)
        last_runs: dict[str, datetime | None] = {job_type.value: None for job_type in JobType}
        counts = JobRunCounts(total_jobs_today=0, successful_jobs_today=0, failed_jobs_today=0)
        try:
            with self.session_factory() as db:
                repo = JobRunRepository(db)
                for job_type in JobType:
                    run = repo.get_last_successful_since(job_type.value, since)
                    last_runs[job_type.value] = run.end_time if run is not None else None  # type: ignore[assignment]
                total = repo.count_since(since)
                successful = repo.count_since(since, success=True)
                counts = JobRunCounts(
                    total_jobs_today=total,
                    successful_jobs_today=successful,
                    failed_jobs_today=total - successful,
                )
        except Exception:
            logger.exception("Failed to load job health")

        return SystemHealth(
            scheduler=SchedulerHealth(
                is_running=self.is_running,
                active_jobs=sorted(self.active_jobs),
                last_successful_runs=last_runs,
            ),
            metrics=counts,
        )
