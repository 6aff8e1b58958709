"""
Tests for the data sync workflow state machine
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from core.exceptions import QueryError, ValidationError
from core.retry import NO_RETRY
from fakes import FakeConnector, FakeTable, RecordingSink, column, connection_config, factory_for
from models.base import WorkflowPhase
from orchestration.notifications import NotificationType
from orchestration.workflows import DataSyncWorkflow
from schemas.checkpoint import Cursor


def sync_input(**sync_config):
    return {
        "connection": connection_config().model_dump(),
        "workflow_id": "sync-1",
        "sync_config": sync_config,
    }


def numbered_tables(count, rows=3):
    return [
        FakeTable(
            name=f"t{i:02d}",
            schema="public",
            columns=[column("event_id", "bigint", primary_key=True), column("payload", "text")],
            rows=[{"event_id": r, "payload": f"p{r}"} for r in range(1, rows + 1)],
        )
        for i in range(count)
    ]


def make_workflow(connector, stores, sink=None, notifier=None, **kwargs):
    return DataSyncWorkflow(
        kwargs.pop("workflow_input", None) or sync_input(validate_quality=False),
        sink=sink or RecordingSink(),
        stores=stores,
        connector_factory=factory_for(connector),
        notifier=notifier or AsyncMock(),
        retry_policy=NO_RETRY,
        **kwargs,
    )


async def wait_until(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def persisted_paused(stores, workflow_id="sync-1"):
    status = stores.statuses.latest(workflow_id)
    return status is not None and status.paused


# ========== Outcomes ==========

@pytest.mark.asyncio
async def test_sync_completes_and_releases_session(fake_connector, stores):
    sink = RecordingSink()
    workflow = make_workflow(fake_connector, stores, sink=sink)

    status = await workflow.run()

    assert status.phase == WorkflowPhase.COMPLETED
    assert status.progress.total_tables == 2
    assert status.progress.processed_tables == 2
    assert status.progress.records_processed == 8
    assert status.metrics.records_transferred == 8
    assert status.metrics.bytes_transferred == 800
    assert status.metrics.end_time is not None
    assert status.errors == []
    assert sink.tables_written == ["public.orders", "public.customers"]
    assert fake_connector.connect_count == 1
    assert fake_connector.disconnect_count == 1
    assert (await stores.statuses.get_status("sync-1")).phase == WorkflowPhase.COMPLETED


def test_invalid_input_is_rejected():
    with pytest.raises(ValidationError):
        DataSyncWorkflow({"workflow_id": "sync-1"})


@pytest.mark.asyncio
async def test_connection_test_failure_fails_run(fake_connector, stores):
    fake_connector.failures["test"] = RuntimeError("connection refused")
    workflow = make_workflow(fake_connector, stores)

    status = await workflow.run()

    assert status.phase == WorkflowPhase.FAILED
    assert status.errors[0].message == "Connection test failed: connection refused"
    assert status.errors[0].retryable is True
    assert fake_connector.disconnect_count == 0


@pytest.mark.asyncio
async def test_failed_table_is_skipped_and_run_completes(fake_connector, stores):
    fake_connector.failures["query:public.orders"] = QueryError("permission denied")
    workflow = make_workflow(fake_connector, stores)

    status = await workflow.run()

    assert status.phase == WorkflowPhase.COMPLETED
    assert [e.object for e in status.errors] == ["table:public.orders"]
    assert status.metrics.tables_skipped == 1
    assert status.progress.processed_tables == 2
    assert status.progress.records_processed == 3


@pytest.mark.asyncio
async def test_failed_batch_is_logged_against_its_table(fake_connector, stores):
    workflow = make_workflow(fake_connector, stores, sink=RecordingSink(fail_batches=[0]))

    status = await workflow.run()

    assert status.phase == WorkflowPhase.COMPLETED
    assert status.errors[0].object == "table:public.orders"
    assert status.errors[0].message.startswith("Batch 0 failed (5 records)")
    assert status.progress.records_processed == 3


@pytest.mark.asyncio
async def test_eleventh_table_failure_aborts(stores):
    tables = numbered_tables(15)
    connector = FakeConnector(tables=tables)
    for table in tables:
        connector.failures[f"query:{table.qualified_name}"] = QueryError("relation is locked")
    workflow = make_workflow(connector, stores)

    status = await workflow.run()

    assert status.phase == WorkflowPhase.FAILED
    assert status.errors[-1].message == "Too many errors, aborting"
    assert len(status.errors) == 12
    assert status.progress.processed_tables == 11
    assert connector.disconnect_count == 1


# ========== Signals ==========

@pytest.mark.asyncio
async def test_pause_holds_progress_until_resume(fake_connector, stores):
    workflow = None

    def pause_on_first_write(table, index):
        if index == 0:
            workflow.pause()

    workflow = make_workflow(fake_connector, stores, sink=RecordingSink(on_write=pause_on_first_write))
    task = asyncio.create_task(workflow.run())

    await wait_until(lambda: persisted_paused(stores))

    paused = workflow.status()
    assert paused.progress.processed_tables == 1
    assert paused.phase == WorkflowPhase.SYNCING
    checkpoint = await stores.checkpoints.load("sync-1")
    assert checkpoint.table_index == 0
    assert checkpoint.records_processed == 5
    assert (await stores.statuses.get_status("sync-1")).paused is True

    workflow.resume()
    status = await asyncio.wait_for(task, 1)

    assert status.phase == WorkflowPhase.COMPLETED
    assert status.paused is False
    assert status.progress.processed_tables == 2
    assert await stores.checkpoints.load("sync-1") is None


@pytest.mark.asyncio
async def test_cancel_fails_run_and_disconnects(fake_connector, stores):
    workflow = None

    def cancel_on_first_write(table, index):
        workflow.cancel()

    workflow = make_workflow(fake_connector, stores, sink=RecordingSink(on_write=cancel_on_first_write))

    status = await workflow.run()

    assert status.phase == WorkflowPhase.FAILED
    assert status.errors[-1].message == "Workflow cancelled by user"
    assert status.progress.processed_tables == 1
    assert fake_connector.disconnect_count == 1


@pytest.mark.asyncio
async def test_cancel_while_paused(fake_connector, stores):
    workflow = make_workflow(fake_connector, stores)
    workflow.pause()
    task = asyncio.create_task(workflow.run())

    await wait_until(lambda: persisted_paused(stores))
    workflow.cancel()
    status = await asyncio.wait_for(task, 1)

    assert status.phase == WorkflowPhase.FAILED
    assert status.errors[-1].message == "Workflow cancelled by user"
    assert status.progress.processed_tables == 0


# ========== Checkpoints ==========

@pytest.mark.asyncio
async def test_rerun_resumes_from_checkpoint_with_cursors(stores):
    connector = FakeConnector(tables=numbered_tables(12))
    first = None

    def cancel_at_eleventh_table(table, index):
        if table == "public.t10":
            first.cancel()

    first = make_workflow(
        connector, stores,
        sink=RecordingSink(on_write=cancel_at_eleventh_table),
        workflow_input=sync_input(mode="incremental", validate_quality=False),
        checkpoint_interval=10,
    )
    status = await first.run()
    assert status.phase == WorkflowPhase.FAILED

    checkpoint = await stores.checkpoints.load("sync-1")
    assert checkpoint.table_index == 9
    assert checkpoint.records_processed == 30
    assert checkpoint.per_table_cursor["public.t09"].last_id == "3"

    queries_before = len(connector.queries)
    sink = RecordingSink()
    second = make_workflow(
        connector, stores, sink=sink,
        workflow_input=sync_input(mode="incremental", validate_quality=False),
        checkpoint_interval=10,
    )
    status = await second.run()

    assert status.phase == WorkflowPhase.COMPLETED
    assert '"public"."t09"' in connector.queries[queries_before]
    assert connector.query_params[queries_before] == {"cursor_value": 3}
    assert sink.tables_written == ["public.t11"]
    assert status.progress.processed_tables == 12
    assert status.progress.records_processed == 33
    assert await stores.checkpoints.load("sync-1") is None


@pytest.mark.asyncio
async def test_checkpoint_written_every_interval(stores):
    connector = FakeConnector(tables=numbered_tables(5))
    workflow = make_workflow(connector, stores, checkpoint_interval=2)

    await workflow.run()

    # after tables 2 and 4; cleared on completion
    assert stores.checkpoints.save_count == 2
    assert stores.checkpoints.checkpoints == {}


@pytest.mark.asyncio
async def test_incremental_cursors_saved_per_table(fake_connector, stores):
    workflow = make_workflow(
        fake_connector, stores, workflow_input=sync_input(mode="incremental", validate_quality=False),
    )

    await workflow.run()

    cursors = await stores.checkpoints.load_cursors("warehouse")
    assert cursors["public.orders"].last_sync_timestamp == "2024-01-15T15:00:00"
    assert cursors["public.customers"].last_id == "102"


@pytest.mark.asyncio
async def test_same_table_in_two_databases_keeps_separate_cursors(stores):
    connector = FakeConnector(tables=[
        FakeTable(
            name="events",
            schema="public",
            database=database,
            columns=[column("event_id", "bigint", primary_key=True), column("payload", "text")],
            rows=[{"event_id": r, "payload": f"{database}-{r}"} for r in range(1, count + 1)],
        )
        for database, count in (("sales", 3), ("ops", 5))
    ])
    await stores.checkpoints.save_cursor("warehouse", "sales.public.events", Cursor(last_id="2"))
    sink = RecordingSink()
    workflow = make_workflow(
        connector, stores, sink=sink, workflow_input=sync_input(mode="incremental", validate_quality=False),
    )

    status = await workflow.run()

    assert status.phase == WorkflowPhase.COMPLETED
    assert sink.tables_written == ["ops.public.events", "sales.public.events"]
    assert status.progress.records_processed == 6
    sales_query = next(i for i, q in enumerate(connector.queries) if '"sales"."public"."events"' in q)
    assert connector.query_params[sales_query] == {"cursor_value": 2}
    assert any('"ops"."public"."events"' in q for q in connector.queries)

    cursors = await stores.checkpoints.load_cursors("warehouse")
    assert cursors["sales.public.events"].last_id == "3"
    assert cursors["ops.public.events"].last_id == "5"


# ========== Validation and notification ==========

@pytest.mark.asyncio
async def test_validation_passes_for_clean_tables(fake_connector, stores):
    workflow = make_workflow(
        fake_connector, stores, workflow_input=sync_input(tables=["customers"]),
    )

    status = await workflow.run()

    assert status.phase == WorkflowPhase.COMPLETED
    assert workflow.quality_report.critical_issues == 0
    assert workflow.quality_report.tables_checked == 1


@pytest.mark.asyncio
async def test_critical_validation_issue_fails_run_and_notifies(fake_connector, stores):
    notifier = AsyncMock()
    workflow_input = sync_input(tables=["orders"])
    workflow_input["notification"] = {"webhook": "https://hooks.example.com/etl", "only_on_failure": True}
    workflow = make_workflow(fake_connector, stores, notifier=notifier, workflow_input=workflow_input)

    status = await workflow.run()

    assert status.phase == WorkflowPhase.FAILED
    assert status.errors[-1].object == "validation"
    assert status.errors[-1].message == "Data quality validation failed"
    assert status.progress.total_tables == 1

    notifier.send.assert_awaited_once()
    notification, config = notifier.send.await_args.args
    assert notification.type == NotificationType.SYNC_FAILED
    assert notification.payload["report"]["critical_issues"] == 1
    assert config.only_on_failure is True


@pytest.mark.asyncio
async def test_success_not_notified_when_only_on_failure(fake_connector, stores):
    notifier = AsyncMock()
    workflow_input = sync_input(validate_quality=False)
    workflow_input["notification"] = {"email": ["ops@example.com"], "only_on_failure": True}
    workflow = make_workflow(fake_connector, stores, notifier=notifier, workflow_input=workflow_input)

    await workflow.run()

    notifier.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_validation_skipped_after_errors(fake_connector, stores):
    fake_connector.failures["query:public.customers"] = QueryError("permission denied")
    workflow = make_workflow(fake_connector, stores, workflow_input=sync_input(tables=["orders", "customers"]))

    status = await workflow.run()

    assert status.phase == WorkflowPhase.COMPLETED
    assert workflow.quality_report is None
