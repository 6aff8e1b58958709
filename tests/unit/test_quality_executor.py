"""
Tests for the data quality executor
"""

import uuid

import pytest
from datetime import datetime, time, timedelta

from core.exceptions import QueryError
from fakes import FakeConnector, FakeTable, column
from models.base import CheckType, Severity
from orchestration.executors.quality import QualityExecutor, aggregate_report
from orchestration.heuristics import summarize_table
from schemas.catalog import TableDescriptor
from schemas.quality import BusinessRule, QualityCheckResult, QualityChecksConfig


def table(name, schema="public"):
    return TableDescriptor(name=name, schema_name=schema)


def only(**enabled):
    flags = {"completeness": False, "uniqueness": False, "validity": False, "timeliness": False}
    flags.update(enabled)
    return QualityChecksConfig(**flags)


def result_for(report, table_name, check_type):
    table_result = next(t for t in report.tables if t.table == table_name)
    return next(c for c in table_result.checks if c.check_type == check_type)


# ========== Individual checks ==========

@pytest.mark.asyncio
async def test_completeness_counts_null_cells(context):
    contacts = FakeTable(
        name="contacts",
        schema="public",
        columns=[column("id", "integer", primary_key=True), column("email", "text")],
        rows=[
            {"id": 1, "email": "a@example.com"},
            {"id": 2, "email": None},
            {"id": 3, "email": None},
            {"id": 4, "email": "d@example.com"},
        ],
    )
    executor = QualityExecutor(FakeConnector(tables=[contacts]), context, checks=only(completeness=True))

    report = await executor.run([table("contacts")])

    check = result_for(report, "public.contacts", CheckType.COMPLETENESS)
    assert check.score == 0.75
    assert not check.passed
    assert check.severity == Severity.WARNING
    assert check.details.total_records == 8
    assert check.details.failed_records == 2
    assert check.details.sample_failures == [{"value": "email", "reason": "2 null values found"}]
    assert "Implement NOT NULL constraints where appropriate" in check.suggestions


@pytest.mark.asyncio
async def test_uniqueness_averages_key_like_columns(fake_connector, context):
    executor = QualityExecutor(fake_connector, context, checks=only(uniqueness=True))

    report = await executor.run([table("orders")])

    # order_id is unique (1.0), customer_id has 3 distinct of 5 (0.6)
    check = result_for(report, "public.orders", CheckType.UNIQUENESS)
    assert check.score == 0.8
    assert check.severity == Severity.ERROR
    assert check.details.failed_records == 2
    assert report.critical_issues == 1


@pytest.mark.asyncio
async def test_uniqueness_without_key_columns_scores_one(context):
    notes = FakeTable(name="notes", schema="public", columns=[column("body")], rows=[{"body": "x"}, {"body": "x"}])
    executor = QualityExecutor(FakeConnector(tables=[notes]), context, checks=only(uniqueness=True))

    report = await executor.run([table("notes")])

    assert result_for(report, "public.notes", CheckType.UNIQUENESS).score == 1.0


@pytest.mark.asyncio
async def test_validity_checks_values_against_declared_types(context):
    readings = FakeTable(
        name="readings",
        schema="public",
        columns=[column("sensor", "integer"), column("taken_at", "timestamp")],
        rows=[
            {"sensor": 1, "taken_at": datetime(2024, 1, 1)},
            {"sensor": "abc", "taken_at": "2024-01-02T00:00:00"},
            {"sensor": 3, "taken_at": "not a date"},
            {"sensor": None, "taken_at": None},
        ],
    )
    executor = QualityExecutor(FakeConnector(tables=[readings]), context, checks=only(validity=True))

    report = await executor.run([table("readings")])

    check = result_for(report, "public.readings", CheckType.VALIDITY)
    assert check.details.total_records == 6
    assert check.details.failed_records == 2
    assert check.score == round(4 / 6, 6)
    assert check.severity == Severity.ERROR
    assert check.details.sample_failures[0]["reason"] == "sensor is not a valid integer"


@pytest.mark.asyncio
async def test_validity_passes_for_typed_rows(fake_connector, context):
    executor = QualityExecutor(fake_connector, context, checks=only(validity=True))

    report = await executor.run([table("orders")])

    check = result_for(report, "public.orders", CheckType.VALIDITY)
    assert check.passed
    assert check.severity == Severity.INFO


@pytest.mark.asyncio
async def test_validity_accepts_driver_uuid_time_and_interval_values(context):
    visits = FakeTable(
        name="visits",
        schema="public",
        columns=[
            column("visit_ref", "uuid"),
            column("opens_at", "time without time zone"),
            column("stay", "interval"),
        ],
        rows=[
            {"visit_ref": uuid.uuid4(), "opens_at": time(9, 0), "stay": timedelta(hours=1)},
            {"visit_ref": uuid.uuid4(), "opens_at": time(17, 30), "stay": timedelta(minutes=45)},
            {"visit_ref": str(uuid.uuid4()), "opens_at": "08:15:00", "stay": timedelta(days=1)},
            {"visit_ref": None, "opens_at": None, "stay": None},
        ],
    )
    executor = QualityExecutor(FakeConnector(tables=[visits]), context, checks=only(validity=True))

    report = await executor.run([table("visits")])

    check = result_for(report, "public.visits", CheckType.VALIDITY)
    assert check.details.total_records == 9
    assert check.details.failed_records == 0
    assert check.score == 1.0
    assert check.passed
    assert check.severity == Severity.INFO


@pytest.mark.asyncio
async def test_timeliness_fresh_stale_and_missing(fake_connector, context):
    fresh = FakeTable(
        name="events",
        schema="public",
        columns=[column("id", "bigint", primary_key=True), column("created_at", "timestamp")],
        rows=[{"id": 1, "created_at": datetime.utcnow() - timedelta(hours=1)}],
    )
    fake_connector.add_table(fresh)
    executor = QualityExecutor(fake_connector, context, checks=only(timeliness=True))

    report = await executor.run([table("events"), table("orders"), table("customers")])

    events = result_for(report, "public.events", CheckType.TIMELINESS)
    assert events.passed and events.score == 1.0
    assert events.column == "created_at"

    orders = result_for(report, "public.orders", CheckType.TIMELINESS)
    assert not orders.passed
    assert orders.score == 0.0
    assert orders.severity == Severity.ERROR
    assert "hours old" in orders.details.sample_failures[0]["reason"]

    customers = result_for(report, "public.customers", CheckType.TIMELINESS)
    assert customers.severity == Severity.WARNING
    assert customers.suggestions == ["Add a timestamp column to track data freshness"]


@pytest.mark.asyncio
async def test_timeliness_without_data(context):
    empty = FakeTable(
        name="audit", schema="public", columns=[column("changed_at", "timestamp")], rows=[],
    )
    executor = QualityExecutor(FakeConnector(tables=[empty]), context, checks=only(timeliness=True))

    report = await executor.run([table("audit")])

    check = result_for(report, "public.audit", CheckType.TIMELINESS)
    assert check.severity == Severity.ERROR
    assert check.suggestions == ["No timestamp data found"]


# ========== Business rules ==========

@pytest.mark.asyncio
async def test_business_rule_counts_violations(fake_connector, context):
    rule = BusinessRule(name="small_orders", table="orders", condition="amount < 40", severity=Severity.WARNING)
    fake_connector.predicates["amount < 40"] = lambda row: row["amount"] < 40
    executor = QualityExecutor(fake_connector, context, checks=only(business_rules=[rule]))

    report = await executor.run([table("orders"), table("customers")])

    check = result_for(report, "public.orders", CheckType.BUSINESS_RULE)
    assert check.rule_name == "small_orders"
    assert check.score == 0.6
    assert check.severity == Severity.WARNING
    assert check.details.failed_records == 2
    assert [s["value"]["order_id"] for s in check.details.sample_failures] == [4, 5]
    # the rule names one table only
    assert next(t for t in report.tables if t.table == "public.customers").checks == []
    assert context.status.progress.total_checks == 1


@pytest.mark.asyncio
async def test_passing_business_rule_is_info(fake_connector, context):
    rule = BusinessRule(name="positive", table="public.orders", condition="amount > 0")
    fake_connector.predicates["amount > 0"] = lambda row: row["amount"] > 0
    executor = QualityExecutor(fake_connector, context, checks=only(business_rules=[rule]))

    report = await executor.run([table("orders")])

    check = result_for(report, "public.orders", CheckType.BUSINESS_RULE)
    assert check.passed
    assert check.severity == Severity.INFO


@pytest.mark.asyncio
async def test_rejected_rule_condition_becomes_failed_check(fake_connector, context):
    rule = BusinessRule(name="broken", table="orders", condition="amount >>> 0")
    executor = QualityExecutor(fake_connector, context, checks=only(business_rules=[rule]))

    report = await executor.run([table("orders")])

    check = result_for(report, "public.orders", CheckType.BUSINESS_RULE)
    assert not check.passed
    assert check.score == 0.0
    assert check.severity == Severity.ERROR
    assert "amount >>> 0" in check.details.sample_failures[0]["reason"]
    assert context.status.errors == []
    assert report.critical_issues == 1


@pytest.mark.asyncio
async def test_transient_rule_failure_is_recorded_as_error(fake_connector, context):
    rule = BusinessRule(name="positive", table="orders", condition="amount > 0")
    fake_connector.predicates["amount > 0"] = lambda row: row["amount"] > 0
    fake_connector.failures["query:public.orders"] = [QueryError("deadlock detected", retryable=True)]
    executor = QualityExecutor(fake_connector, context, checks=only(business_rules=[rule]))

    report = await executor.run([table("orders")])

    assert [e.object for e in context.status.errors] == ["check:rule:positive:public.orders"]
    assert context.status.errors[0].retryable is True
    assert report.tables[0].checks == []
    assert context.status.progress.completed_checks == 1


# ========== Run bookkeeping ==========

@pytest.mark.asyncio
async def test_run_tracks_progress_and_aggregates(fake_connector, context):
    executor = QualityExecutor(fake_connector, context)

    report = await executor.run([table("orders"), table("customers")])

    progress = context.status.progress
    assert progress.total_tables == 2
    assert progress.processed_tables == 2
    assert progress.total_checks == 6
    assert progress.completed_checks == 6
    assert report.tables_checked == 2
    assert report.checks_run == 6
    assert report.checks_passed + report.checks_failed == 6
    assert report.workflow_id == "wf-test"
    assert report.duration_seconds is not None
    assert all(c.execution_time_ms is not None for t in report.tables for c in t.checks)


@pytest.mark.asyncio
async def test_unlisted_table_is_skipped(fake_connector, context):
    fake_connector.failures["columns:public.orders"] = QueryError("permission denied")
    executor = QualityExecutor(fake_connector, context)

    report = await executor.run([table("orders"), table("customers")])

    assert [t.table for t in report.tables] == ["public.customers"]
    assert [e.object for e in context.status.errors] == ["table:public.orders"]
    assert context.status.metrics.tables_skipped == 1
    assert context.status.progress.processed_tables == 2


@pytest.mark.asyncio
async def test_untracked_run_leaves_table_counters_alone(fake_connector, context):
    context.status.progress.total_tables = 7
    executor = QualityExecutor(fake_connector, context, track_tables=False)

    await executor.run([table("orders")])

    assert context.status.progress.total_tables == 7
    assert context.status.progress.processed_tables == 0


def test_aggregate_report_excludes_unscored_tables():
    passed = QualityCheckResult(
        check_type=CheckType.COMPLETENESS, table="a", passed=True, score=0.9, threshold=0.8, severity=Severity.INFO,
    )
    failed = QualityCheckResult(
        check_type=CheckType.UNIQUENESS, table="a", passed=False, score=0.5, threshold=0.99,
        severity=Severity.ERROR, suggestions=["Add unique constraints to prevent duplicates"],
    )
    report = aggregate_report("warehouse", [summarize_table("a", [passed, failed]), summarize_table("b", [])])

    assert report.overall_score == 0.7
    assert report.tables_checked == 2
    assert report.checks_failed == 1
    assert report.critical_issues == 1
    assert report.recommendations[0] == "Add unique constraints to prevent duplicates"
