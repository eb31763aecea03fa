import logging
from typing import Any

from arq import cron
from arq.cron import CronJob

from app.services.recovery_scheduler import JobType, RecoveryJobScheduler, SchedulerConfig
from app.tasks import redis_settings

logger = logging.getLogger(__name__)


async def on_startup(ctx: dict[str, Any]) -> None:
    ctx["scheduler"] = RecoveryJobScheduler(SchedulerConfig.from_settings())
    logger.info("Recovery worker started")


async def on_shutdown(ctx: dict[str, Any]) -> None:
    scheduler: RecoveryJobScheduler | None = ctx.get("scheduler")
    if scheduler is not None:
        await scheduler.stop()
    logger.info("Recovery worker stopped")


async def _run(ctx: dict[str, Any], job_type: JobType) -> dict[str, Any]:
    scheduler: RecoveryJobScheduler = ctx["scheduler"]
    result = await scheduler.trigger_job(job_type.value)
    return result.model_dump(mode="json")


async def process_payment_retries_task(ctx: dict[str, Any]) -> dict[str, Any]:
    """Background task: retry every pending payment failure whose retry time has come."""
    return await _run(ctx, JobType.PAYMENT_RETRY)


async def process_dunning_campaigns_task(ctx: dict[str, Any]) -> dict[str, Any]:
    """Background task: send the due step of every active dunning campaign."""
    return await _run(ctx, JobType.DUNNING_CAMPAIGNS)


async def process_expired_grace_periods_task(ctx: dict[str, Any]) -> dict[str, Any]:
    """Background task: suspend accounts whose grace period has run out."""
    return await _run(ctx, JobType.GRACE_PERIOD_MONITORING)


async def generate_recovery_analytics_task(ctx: dict[str, Any]) -> dict[str, Any]:
    """Background task: recompute the daily recovery metrics for yesterday and today."""
    return await _run(ctx, JobType.ANALYTICS_GENERATION)


def schedule_for(coroutine: Any, interval_minutes: int) -> CronJob:
    """Translate a run interval into an arq cron schedule.

    Sub-hourly intervals run on a minute set, sub-daily intervals on an hour
    set at minute 0, anything longer once a day at midnight.
    """
    interval_minutes = max(1, interval_minutes)
    if interval_minutes < 60:
        return cron(coroutine, minute=set(range(0, 60, interval_minutes)))
    if interval_minutes < 1440:
        return cron(coroutine, hour=set(range(0, 24, interval_minutes // 60)), minute=0)
    return cron(coroutine, hour=0, minute=0)


_config = SchedulerConfig.from_settings()
_TASKS = {
    JobType.PAYMENT_RETRY: process_payment_retries_task,
    JobType.DUNNING_CAMPAIGNS: process_dunning_campaigns_task,
    JobType.GRACE_PERIOD_MONITORING: process_expired_grace_periods_task,
    JobType.ANALYTICS_GENERATION: generate_recovery_analytics_task,
}


class WorkerSettings:
    functions = list(_TASKS.values())
    cron_jobs = [
        schedule_for(task, _config.interval_minutes(job_type)) for job_type, task in _TASKS.items()
    ]
    on_startup = on_startup
    on_shutdown = on_shutdown
    redis_settings = redis_settings
