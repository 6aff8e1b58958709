"""
Tests for the in-process workflow engine
"""

import asyncio
import pytest
from unittest.mock import MagicMock

from core.exceptions import ValidationError, WorkflowAlreadyRunningError, WorkflowNotFoundError
from core.retry import NO_RETRY
from fakes import RecordingSink, connection_config, factory_for
from models.base import WorkflowKind, WorkflowPhase
from orchestration.engine import WorkflowEngine
from orchestration.loaders import EstimatingBatchSink, PostgresBatchSink
from orchestration.stores import SqlCheckpointStore, SqlStatusStore
from orchestration.workflows import DataSyncWorkflow
from schemas.workflow import WorkflowStatus


@pytest.fixture
def engine(fake_connector, stores):
    return WorkflowEngine(
        stores=stores,
        connector_factory=factory_for(fake_connector),
        retry_policy=NO_RETRY,
    )


def sync_input(workflow_id="sync-1"):
    return {
        "connection": connection_config().model_dump(),
        "workflow_id": workflow_id,
        "sync_config": {"validate_quality": False},
    }


@pytest.mark.asyncio
async def test_start_and_wait_for_result(engine):
    sink = RecordingSink()
    workflow_id = await engine.start_sync(sync_input(), sink=sink)

    status = await engine.result(workflow_id, timeout=1)

    assert workflow_id == "sync-1"
    assert status.phase == WorkflowPhase.COMPLETED
    assert len(sink.records) == 8
    assert not engine.is_running(workflow_id)
    assert (await engine.query(workflow_id)).phase == WorkflowPhase.COMPLETED


@pytest.mark.asyncio
async def test_create_validates_and_wires_stores(engine, stores):
    workflow = engine.create(WorkflowKind.DATA_SYNC, sync_input())

    assert isinstance(workflow, DataSyncWorkflow)
    assert workflow.stores is stores
    assert workflow.context.retry_policy is NO_RETRY

    with pytest.raises(ValidationError):
        engine.create(WorkflowKind.DATA_QUALITY, {"tables": ["orders"]})


@pytest.mark.asyncio
async def test_duplicate_running_id_is_rejected(engine):
    workflow_id = await engine.start_sync(sync_input(), sink=RecordingSink())
    engine.pause(workflow_id)

    with pytest.raises(WorkflowAlreadyRunningError):
        await engine.start_sync(sync_input(), sink=RecordingSink())

    engine.cancel(workflow_id)
    status = await engine.result(workflow_id, timeout=1)
    assert status.phase == WorkflowPhase.FAILED
    assert status.errors[-1].message == "Workflow cancelled by user"


@pytest.mark.asyncio
async def test_finished_id_can_be_started_again(engine):
    first = await engine.start_sync(sync_input(), sink=RecordingSink())
    await engine.result(first, timeout=1)

    second = await engine.start_sync(sync_input(), sink=RecordingSink())
    status = await engine.result(second, timeout=1)

    assert status.phase == WorkflowPhase.COMPLETED


@pytest.mark.asyncio
async def test_signals_route_by_id(engine):
    workflow_id = await engine.start_sync(sync_input(), sink=RecordingSink())

    paused = engine.pause(workflow_id)
    assert paused.paused is True

    with pytest.raises(ValidationError):
        engine.signal(workflow_id, "restart")
    with pytest.raises(WorkflowNotFoundError):
        engine.pause("nope")

    engine.resume(workflow_id)
    status = await engine.result(workflow_id, timeout=1)
    assert status.phase == WorkflowPhase.COMPLETED


@pytest.mark.asyncio
async def test_query_falls_back_to_persisted_status(engine, stores):
    await stores.statuses.save_status(WorkflowStatus(
        workflow_id="old-run", connection_id="warehouse", kind=WorkflowKind.DATA_SYNC, phase=WorkflowPhase.FAILED,
    ))

    status = await engine.query("old-run")

    assert status.phase == WorkflowPhase.FAILED
    with pytest.raises(WorkflowNotFoundError):
        await engine.query("never-ran")


@pytest.mark.asyncio
async def test_list_filters_by_connection(engine):
    await engine.start_sync(sync_input("a"), sink=RecordingSink())
    await engine.start_discovery({"connection": connection_config("crm").model_dump(), "workflow_id": "b"})

    assert [s.workflow_id for s in engine.list()] == ["a", "b"]
    assert [s.workflow_id for s in engine.list("crm")] == ["b"]

    await engine.shutdown()


@pytest.mark.asyncio
async def test_terminate_runs_finalization(engine, stores):
    workflow_id = await engine.start_sync(sync_input(), sink=RecordingSink())
    engine.pause(workflow_id)
    await asyncio.sleep(0.01)

    status = await engine.terminate(workflow_id)

    assert status.phase == WorkflowPhase.FAILED
    assert status.errors[-1].message == "Workflow terminated"
    assert status.metrics.end_time is not None
    assert not engine.is_running(workflow_id)
    assert (await stores.statuses.get_status(workflow_id)).phase == WorkflowPhase.FAILED


@pytest.mark.asyncio
async def test_shutdown_terminates_running_workflows(engine):
    workflow_id = await engine.start_sync(sync_input(), sink=RecordingSink())
    engine.pause(workflow_id)
    await asyncio.sleep(0.01)

    await engine.shutdown()

    assert not engine.is_running(workflow_id)
    assert (await engine.query(workflow_id)).phase == WorkflowPhase.FAILED


def test_sql_backend_engine_writes_syncs_to_postgres(fake_connector):
    session_maker = MagicMock()
    engine = WorkflowEngine.for_backend("sql", session_maker=session_maker, connector_factory=factory_for(fake_connector))

    workflow = engine.create(WorkflowKind.DATA_SYNC, sync_input())

    assert isinstance(workflow.sink, PostgresBatchSink)
    assert workflow.sink.session_maker is session_maker
    assert isinstance(engine.stores.statuses, SqlStatusStore)
    assert isinstance(engine.stores.checkpoints, SqlCheckpointStore)
    # only sync workflows take a sink
    discovery = engine.create(WorkflowKind.SCHEMA_DISCOVERY, {"connection": connection_config().model_dump()})
    assert not hasattr(discovery, "sink")


def test_memory_backend_engine_and_per_run_sink(fake_connector):
    engine = WorkflowEngine.for_backend("memory", connector_factory=factory_for(fake_connector))
    assert isinstance(engine.create(WorkflowKind.DATA_SYNC, sync_input()).sink, EstimatingBatchSink)

    sink = RecordingSink()
    assert engine.create(WorkflowKind.DATA_SYNC, sync_input(), sink=sink).sink is sink


@pytest.mark.asyncio
async def test_reruns_keep_one_audit_record_each(engine, stores):
    first = await engine.result(await engine.start_sync(sync_input(), sink=RecordingSink()), timeout=1)
    second = await engine.result(await engine.start_sync(sync_input(), sink=RecordingSink()), timeout=1)

    runs = await stores.statuses.list_statuses("warehouse")

    assert first.run_id != second.run_id
    assert sorted(s.run_id for s in runs) == sorted([first.run_id, second.run_id])
    assert all(s.phase == WorkflowPhase.COMPLETED for s in runs)
    assert (await stores.statuses.get_status("sync-1")).run_id == second.run_id


@pytest.mark.asyncio
async def test_finished_instances_beyond_retention_are_evicted(fake_connector, stores):
    engine = WorkflowEngine(
        stores=stores,
        connector_factory=factory_for(fake_connector),
        retry_policy=NO_RETRY,
        retain_finished=1,
    )

    await engine.result(await engine.start_sync(sync_input("a"), sink=RecordingSink()), timeout=1)
    await engine.result(await engine.start_sync(sync_input("b"), sink=RecordingSink()), timeout=1)
    await asyncio.sleep(0)

    assert [s.workflow_id for s in engine.list()] == ["b"]
    assert (await engine.query("a")).phase == WorkflowPhase.COMPLETED
    assert (await engine.result("a")).phase == WorkflowPhase.COMPLETED
    with pytest.raises(WorkflowNotFoundError):
        engine.pause("a")
