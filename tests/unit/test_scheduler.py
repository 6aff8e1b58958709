import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from core.exceptions import WorkflowAlreadyRunningError
from fakes import connection_config
from orchestration.scheduler import SyncScheduler
from schemas.workflow import DataSyncInput


def sync_input(schedule_expression=None):
    return DataSyncInput(
        connection=connection_config(),
        sync_config={"schedule_expression": schedule_expression},
    )


def test_cron_expression_builds_cron_trigger():
    trigger = SyncScheduler.build_trigger("0 */6 * * *")
    assert isinstance(trigger, CronTrigger)


def test_missing_expression_uses_default_interval():
    with patch("orchestration.scheduler.settings") as mock_settings:
        mock_settings.SCHEDULE_INTERVAL_MINUTES = 15
        trigger = SyncScheduler.build_trigger(None)

    assert isinstance(trigger, IntervalTrigger)
    assert trigger.interval.total_seconds() == 15 * 60


def test_invalid_cron_expression_is_rejected():
    with pytest.raises(ValueError):
        SyncScheduler.build_trigger("every tuesday")


def test_schedule_sync_registers_job_per_connection():
    mock_scheduler = MagicMock()
    scheduler = SyncScheduler(engine=MagicMock(), scheduler=mock_scheduler)

    job_id = scheduler.schedule_sync(sync_input("*/5 * * * *"))

    assert job_id == "sync-warehouse"
    kwargs = mock_scheduler.add_job.call_args.kwargs
    assert kwargs["id"] == "sync-warehouse"
    assert kwargs["replace_existing"] is True
    assert isinstance(kwargs["trigger"], CronTrigger)
    assert scheduler.jobs() == ["sync-warehouse"]

    scheduler.unschedule(job_id)
    mock_scheduler.remove_job.assert_called_once_with("sync-warehouse")
    assert scheduler.jobs() == []


@pytest.mark.asyncio
async def test_scheduler_job_execution():
    engine = MagicMock()
    engine.start_sync = AsyncMock(return_value="data-sync-warehouse")
    scheduler = SyncScheduler(engine=engine, scheduler=MagicMock())
    workflow_input = sync_input()

    await scheduler.run_sync_job(workflow_input)

    engine.start_sync.assert_awaited_once_with(workflow_input)


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped():
    engine = MagicMock()
    engine.start_sync = AsyncMock(side_effect=WorkflowAlreadyRunningError("Workflow data-sync-warehouse is already running"))
    scheduler = SyncScheduler(engine=engine, scheduler=MagicMock())

    # Must not raise into the scheduler
    await scheduler.run_sync_job(sync_input())

    engine.start_sync.assert_awaited_once()
