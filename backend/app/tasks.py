from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from app.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

RECOVERY_TASKS = {
    "payment_retry": "process_payment_retries_task",
    "dunning_campaigns": "process_dunning_campaigns_task",
    "grace_period_monitoring": "process_expired_grace_periods_task",
    "analytics_generation": "generate_recovery_analytics_task",
}


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_recovery_job(job_type: str) -> Job:
    """Enqueue one run of a recovery job on the arq worker.

    Raises:
        ValueError: If ``job_type`` is not a recovery job.
    """
    task_name = RECOVERY_TASKS.get(job_type)
    if task_name is None:
        raise ValueError(f"Unknown job type: {job_type}")
    return await enqueue_task(task_name)
