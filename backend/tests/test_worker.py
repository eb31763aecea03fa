"""Tests for the arq worker wiring of the recovery jobs."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.schemas.recovery_job import JobResult
from app.services.recovery_scheduler import RecoveryJobScheduler
from app.worker import (
    WorkerSettings,
    generate_recovery_analytics_task,
    on_shutdown,
    on_startup,
    process_dunning_campaigns_task,
    process_expired_grace_periods_task,
    process_payment_retries_task,
    schedule_for,
)


async def _noop(ctx):
    return None


class TestScheduleFor:
    def test_sub_hourly_interval_uses_minutes(self):
        job = schedule_for(_noop, 15)
        assert job.minute == {0, 15, 30, 45}
        assert job.hour is None

    def test_hourly_interval(self):
        job = schedule_for(_noop, 60)
        assert job.hour == set(range(24))
        assert job.minute == 0

    def test_multi_hour_interval(self):
        job = schedule_for(_noop, 360)
        assert job.hour == {0, 6, 12, 18}

    def test_daily_interval(self):
        job = schedule_for(_noop, 1440)
        assert job.hour == 0
        assert job.minute == 0

    def test_zero_interval_runs_every_minute(self):
        assert schedule_for(_noop, 0).minute == set(range(60))


class TestWorkerSettings:
    def test_registers_recovery_tasks(self):
        assert process_payment_retries_task in WorkerSettings.functions
        assert len(WorkerSettings.functions) == 4
        assert len(WorkerSettings.cron_jobs) == 4

    @pytest.mark.asyncio
    async def test_startup_and_shutdown(self):
        ctx: dict = {}
        await on_startup(ctx)
        assert isinstance(ctx["scheduler"], RecoveryJobScheduler)

        with patch.object(ctx["scheduler"], "stop", new_callable=AsyncMock) as mock_stop:
            await on_shutdown(ctx)
        mock_stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_without_scheduler(self):
        await on_shutdown({})


class TestRecoveryTasks:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("task", "job_type"),
        [
            (process_payment_retries_task, "payment_retry"),
            (process_dunning_campaigns_task, "dunning_campaigns"),
            (process_expired_grace_periods_task, "grace_period_monitoring"),
            (generate_recovery_analytics_task, "analytics_generation"),
        ],
    )
    async def test_task_triggers_job(self, task, job_type):
        scheduler = MagicMock()
        scheduler.trigger_job = AsyncMock(
            return_value=JobResult(job_type=job_type, success=True, processed=2)
        )

        result = await task({"scheduler": scheduler})

        scheduler.trigger_job.assert_awaited_once_with(job_type)
        assert result["job_type"] == job_type
        assert result["processed"] == 2
        assert result["success"] is True
