"""
Tests for checkpoint, status, catalog and quality report stores
"""

import pytest
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import CatalogError, CheckpointError
from models.base import CheckType, Severity, WorkflowKind, WorkflowPhase
from orchestration.stores import (
    InMemoryCheckpointStore,
    InMemoryStatusStore,
    SqlCatalogSink,
    SqlCheckpointStore,
    SqlQualityReportSink,
    SqlStatusStore,
    build_stores,
)
from schemas.catalog import DiscoveredCatalog, TableDescriptor
from schemas.checkpoint import Checkpoint, Cursor
from schemas.quality import QualityCheckResult, QualityReport, TableQualityResult
from schemas.workflow import Metrics, WorkflowStatus


def mock_session_maker(session):
    session_maker = MagicMock()
    session_maker.return_value.__aenter__.return_value = session
    session_maker.return_value.__aexit__.return_value = False
    return session_maker


def mock_session(row=None, rows=None, error=None):
    session = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    result.scalars.return_value.all.return_value = rows or []
    result.scalars.return_value.first.return_value = row
    session.execute = AsyncMock(return_value=result, side_effect=error)
    session.commit = AsyncMock()
    return session


def compiled(statement):
    return str(statement.compile(dialect=postgresql.dialect()))


# ========== In-memory stores ==========

@pytest.mark.asyncio
async def test_in_memory_checkpoint_is_copied():
    store = InMemoryCheckpointStore()
    checkpoint = Checkpoint(workflow_id="wf", table_index=3, per_table_cursor={"t": Cursor(last_id="7")})

    await store.save(checkpoint)
    checkpoint.per_table_cursor["t"].last_id = "99"
    loaded = await store.load("wf")

    assert loaded.per_table_cursor["t"].last_id == "7"
    await store.clear("wf")
    assert await store.load("wf") is None


@pytest.mark.asyncio
async def test_in_memory_cursors_scoped_by_connection():
    store = InMemoryCheckpointStore()
    await store.save_cursor("a", "public.orders", Cursor(last_id="1"))
    await store.save_cursor("b", "public.orders", Cursor(last_id="2"))

    assert (await store.load_cursors("a")) == {"public.orders": Cursor(last_id="1")}


@pytest.mark.asyncio
async def test_in_memory_status_listing():
    store = InMemoryStatusStore()
    for i, connection_id in enumerate(["a", "b", "a"]):
        status = WorkflowStatus(
            workflow_id=f"wf-{i}",
            connection_id=connection_id,
            kind=WorkflowKind.DATA_SYNC,
            metrics=Metrics(start_time=datetime(2024, 1, 1, i)),
        )
        await store.save_status(status)

    assert [s.workflow_id for s in await store.list_statuses("a")] == ["wf-2", "wf-0"]
    assert len(await store.list_statuses(limit=1)) == 1


@pytest.mark.asyncio
async def test_in_memory_reruns_are_kept_apart():
    store = InMemoryStatusStore()
    first = WorkflowStatus(
        workflow_id="wf", connection_id="a", kind=WorkflowKind.DATA_SYNC,
        phase=WorkflowPhase.FAILED, metrics=Metrics(start_time=datetime(2024, 1, 1)),
    )
    second = WorkflowStatus(
        workflow_id="wf", connection_id="a", kind=WorkflowKind.DATA_SYNC,
        phase=WorkflowPhase.COMPLETED, metrics=Metrics(start_time=datetime(2024, 1, 2)),
    )
    await store.save_status(first)
    await store.save_status(second)

    assert [s.run_id for s in await store.list_statuses("a")] == [second.run_id, first.run_id]
    assert (await store.get_status("wf")).phase == WorkflowPhase.COMPLETED


def test_build_stores_backends():
    memory = build_stores("memory")
    assert isinstance(memory.checkpoints, InMemoryCheckpointStore)

    sql = build_stores("sql", session_maker=MagicMock())
    assert isinstance(sql.checkpoints, SqlCheckpointStore)
    assert isinstance(sql.statuses, SqlStatusStore)

    with pytest.raises(ValueError):
        build_stores("redis")


# ========== SQL checkpoint store ==========

@pytest.mark.asyncio
async def test_sql_checkpoint_load_maps_row():
    row = SimpleNamespace(
        workflow_id="wf",
        table_index=9,
        synced_tables=["public.orders"],
        records_processed=120,
        per_table_cursor={"public.orders": {"last_sync_timestamp": "2024-01-15T15:00:00"}},
    )
    store = SqlCheckpointStore(mock_session_maker(mock_session(row=row)))

    checkpoint = await store.load("wf")

    assert checkpoint.table_index == 9
    assert checkpoint.records_processed == 120
    assert checkpoint.per_table_cursor["public.orders"].last_sync_timestamp == "2024-01-15T15:00:00"


@pytest.mark.asyncio
async def test_sql_checkpoint_save_is_an_upsert():
    session = mock_session()
    store = SqlCheckpointStore(mock_session_maker(session))

    await store.save(Checkpoint(workflow_id="wf", table_index=4))

    statement = session.execute.await_args.args[0]
    sql = compiled(statement)
    assert "INSERT INTO workflow_checkpoints" in sql
    assert "ON CONFLICT (workflow_id) DO UPDATE" in sql
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_sql_cursor_save_upserts_on_connection_and_table():
    session = mock_session()
    store = SqlCheckpointStore(mock_session_maker(session))

    await store.save_cursor("warehouse", "public.orders", Cursor(last_id="5"), cursor_column="order_id")

    sql = compiled(session.execute.await_args.args[0])
    assert "ON CONFLICT (connection_id, table_name) DO UPDATE" in sql


@pytest.mark.asyncio
async def test_sql_checkpoint_errors_are_wrapped():
    store = SqlCheckpointStore(mock_session_maker(mock_session(error=SQLAlchemyError("connection lost"))))

    with pytest.raises(CheckpointError) as exc_info:
        await store.load("wf")

    assert exc_info.value.context["operation"] == "load"


# ========== SQL status, catalog and report stores ==========

@pytest.mark.asyncio
async def test_sql_status_round_trips_snapshot():
    status = WorkflowStatus(
        workflow_id="wf", connection_id="warehouse", kind=WorkflowKind.DATA_QUALITY, phase=WorkflowPhase.VALIDATING,
    )
    row = SimpleNamespace(status_snapshot=status.model_dump(mode="json"))
    store = SqlStatusStore(mock_session_maker(mock_session(row=row)))

    loaded = await store.get_status("wf")

    assert loaded.phase == WorkflowPhase.VALIDATING
    assert loaded.kind == WorkflowKind.DATA_QUALITY


@pytest.mark.asyncio
async def test_sql_status_upserts_one_row_per_run():
    session = mock_session()
    store = SqlStatusStore(mock_session_maker(session))
    status = WorkflowStatus(workflow_id="wf", connection_id="warehouse", kind=WorkflowKind.DATA_SYNC)

    await store.save_status(status)

    sql = compiled(session.execute.await_args.args[0])
    assert "INSERT INTO workflow_runs" in sql
    assert "ON CONFLICT (run_id) DO UPDATE" in sql
    assert "started_at = excluded.started_at" not in sql


@pytest.mark.asyncio
async def test_sql_status_reads_latest_run():
    session = mock_session()
    store = SqlStatusStore(mock_session_maker(session))

    assert await store.get_status("wf") is None

    sql = compiled(session.execute.await_args.args[0])
    assert "ORDER BY workflow_runs.started_at DESC" in sql


@pytest.mark.asyncio
async def test_sql_catalog_failure_raises_catalog_error():
    store = SqlCatalogSink(mock_session_maker(mock_session(error=SQLAlchemyError("disk full"))))
    catalog = DiscoveredCatalog(connection_id="warehouse", tables=[TableDescriptor(name="orders", schema_name="public")])

    with pytest.raises(CatalogError):
        await store.replace_snapshot(catalog, "wf")


@pytest.mark.asyncio
async def test_sql_report_stores_flattened_checks():
    session = mock_session()
    store = SqlQualityReportSink(mock_session_maker(session))
    check = QualityCheckResult(
        check_type=CheckType.COMPLETENESS, table="public.orders", passed=False,
        score=0.5, threshold=0.95, severity=Severity.ERROR,
    )
    report = QualityReport(
        connection_id="warehouse",
        tables=[TableQualityResult(table="public.orders", score=0.5, checks=[check], critical_issues=1)],
        critical_issues=1,
    )

    await store.save_report(report)

    record = session.add.call_args.args[0]
    assert record.connection_id == "warehouse"
    assert record.critical_issues == 1
    assert [c.table_name for c in record.checks] == ["public.orders"]
    session.commit.assert_awaited_once()
