"""
Data quality executor.

Runs completeness, uniqueness, validity, timeliness and business-rule
checks per table, scores each table as the mean of its checks, and
aggregates a report across tables.
"""

import logging
import time
import uuid
from datetime import date, datetime, time as dtime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from connectors.base import DataConnector
from core.config import settings
from core.exceptions import ErrorBudgetExceededError, QualityCheckError, QueryError
from models.base import CheckType, Severity
from orchestration.context import WorkflowContext
from orchestration.heuristics import (
    completeness_severity,
    find_incremental_column,
    generate_recommendations,
    overall_score,
    summarize_table,
    timeliness_severity,
    uniqueness_severity,
    validity_severity,
)
from schemas.catalog import ColumnDescriptor, TableDescriptor
from schemas.quality import (
    BusinessRule,
    CheckDetails,
    QualityCheckResult,
    QualityChecksConfig,
    QualityReport,
    QualityThresholds,
    TableQualityResult,
)

logger = logging.getLogger(__name__)

SAMPLE_FAILURE_LIMIT = 5


def aggregate_report(
    connection_id: str,
    tables: List[TableQualityResult],
    workflow_id: Optional[str] = None,
    duration_seconds: Optional[float] = None,
) -> QualityReport:
    """Roll table results up into a report."""
    checks = [c for t in tables for c in t.checks]
    passed = sum(1 for c in checks if c.passed)
    return QualityReport(
        connection_id=connection_id,
        workflow_id=workflow_id,
        overall_score=overall_score(tables),
        tables=tables,
        tables_checked=len(tables),
        checks_run=len(checks),
        checks_passed=passed,
        checks_failed=len(checks) - passed,
        critical_issues=sum(t.critical_issues for t in tables),
        warnings=sum(t.warnings for t in tables),
        recommendations=generate_recommendations(checks),
        duration_seconds=duration_seconds,
    )


def _to_int(value: Any) -> int:
    return int(value or 0)


def _conforms(value: Any, logical_type: str) -> bool:
    if logical_type == "integer":
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        if isinstance(value, (float, Decimal)):
            return float(value).is_integer()
        return isinstance(value, str) and value.strip().lstrip("-").isdigit()
    if logical_type == "float":
        if isinstance(value, bool):
            return False
        if isinstance(value, (int, float, Decimal)):
            return True
        if isinstance(value, str):
            try:
                float(value)
                return True
            except ValueError:
                return False
        return False
    if logical_type == "boolean":
        return isinstance(value, bool) or str(value).lower() in ("true", "false", "0", "1", "t", "f")
    if logical_type == "datetime":
        if isinstance(value, (datetime, date)):
            return True
        if isinstance(value, str):
            try:
                datetime.fromisoformat(value.replace("Z", "+00:00"))
                return True
            except ValueError:
                return False
        return False
    if logical_type == "time":
        if isinstance(value, dtime):
            return True
        if isinstance(value, str):
            try:
                dtime.fromisoformat(value)
                return True
            except ValueError:
                return False
        return False
    if logical_type == "uuid":
        if isinstance(value, uuid.UUID):
            return True
        if isinstance(value, str):
            try:
                uuid.UUID(value)
                return True
            except ValueError:
                return False
        return False
    if logical_type == "string":
        return isinstance(value, str)
    return True


def _as_utc(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class QualityExecutor:
    """Quality checks over the tables of one connection"""

    def __init__(
        self,
        connector: DataConnector,
        context: WorkflowContext,
        checks: Optional[QualityChecksConfig] = None,
        thresholds: Optional[QualityThresholds] = None,
        max_sample_rows: Optional[int] = None,
        track_tables: bool = True,
    ):
        self.connector = connector
        self.context = context
        self.checks = checks or QualityChecksConfig()
        self.thresholds = thresholds or QualityThresholds()
        self.max_sample_rows = max_sample_rows or settings.MAX_SAMPLE_ROWS
        # False when running inside another workflow that owns the table counters
        self.track_tables = track_tables

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _plan(self, table: TableDescriptor) -> List[Tuple[str, Callable[..., Awaitable[QualityCheckResult]], Any]]:
        plan = []
        if self.checks.completeness:
            plan.append((CheckType.COMPLETENESS.value, self.check_completeness, None))
        if self.checks.uniqueness:
            plan.append((CheckType.UNIQUENESS.value, self.check_uniqueness, None))
        if self.checks.validity:
            plan.append((CheckType.VALIDITY.value, self.check_validity, None))
        if self.checks.timeliness:
            plan.append((CheckType.TIMELINESS.value, self.check_timeliness, None))
        for rule in self.checks.business_rules:
            if rule.table in (table.name, table.qualified_name, table.full_name):
                plan.append((f"rule:{rule.name}", self.check_business_rule, rule))
        return plan

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(self, tables: Sequence[TableDescriptor]) -> QualityReport:
        started = time.perf_counter()
        progress = self.context.status.progress
        if self.track_tables:
            progress.total_tables = len(tables)
        progress.total_checks = sum(len(self._plan(t)) for t in tables)

        results: List[TableQualityResult] = []
        for table in tables:
            await self.context.observe()
            name = table.full_name
            self.context.set_current(f"table:{name}")

            try:
                columns = table.columns or await self.context.run_unit(
                    lambda: self.connector.list_columns(table.database, table.schema_name, table.name),
                    f"list columns of {name}",
                )
            except Exception as e:
                self.context.record_error(f"table:{name}", e)
                if self.track_tables:
                    self.context.status.metrics.tables_skipped += 1
                    progress.processed_tables += 1
                continue

            checks: List[QualityCheckResult] = []
            for label, check, rule in self._plan(table):
                await self.context.observe()
                self.context.set_current(f"{label}:{name}")
                try:
                    result = await self.context.run_unit(
                        lambda: self._timed(check, table, columns, rule), f"{label} check on {name}"
                    )
                    checks.append(result)
                except ErrorBudgetExceededError:
                    raise
                except Exception as e:
                    self.context.record_error(f"check:{label}:{name}", e)
                progress.completed_checks += 1

            results.append(summarize_table(name, checks))
            if self.track_tables:
                progress.processed_tables += 1

        self.context.set_current(None)
        report = aggregate_report(
            self.context.connection_id,
            results,
            workflow_id=self.context.workflow_id,
            duration_seconds=round(time.perf_counter() - started, 3),
        )
        logger.info(
            f"[{self.context.workflow_id}] Quality checks finished: score={report.overall_score}, "
            f"{report.checks_failed}/{report.checks_run} failed, {report.critical_issues} critical"
        )
        return report

    async def _timed(self, check, table, columns, rule) -> QualityCheckResult:
        started = time.perf_counter()
        if rule is not None:
            result = await check(table, columns, rule)
        else:
            result = await check(table, columns)
        result.execution_time_ms = round((time.perf_counter() - started) * 1000, 2)
        return result

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _table_sql(self, table: TableDescriptor) -> str:
        return self.connector.table_reference(table)

    async def _total_rows(self, table: TableDescriptor) -> int:
        result = await self.connector.execute_query(
            f"SELECT COUNT(*) AS total_count FROM {self._table_sql(table)}"
        )
        return _to_int(result.rows[0]["total_count"]) if result.rows else 0

    async def check_completeness(self, table: TableDescriptor, columns: List[ColumnDescriptor]) -> QualityCheckResult:
        """Share of non-null cells over all cells of the table."""
        quote = self.connector.quote_identifier
        counts = ", ".join(f"COUNT({quote(c.name)}) AS nn_{i}" for i, c in enumerate(columns))
        sql = f"SELECT COUNT(*) AS total_count{', ' + counts if counts else ''} FROM {self._table_sql(table)}"
        result = await self.connector.execute_query(sql)
        row = result.rows[0] if result.rows else {}

        total_rows = _to_int(row.get("total_count"))
        nulls = [(c.name, total_rows - _to_int(row.get(f"nn_{i}"))) for i, c in enumerate(columns)]
        total_cells = total_rows * len(columns)
        null_cells = sum(n for _, n in nulls)

        score = (total_cells - null_cells) / total_cells if total_cells > 0 else 1.0
        threshold = self.thresholds.completeness
        passed = score >= threshold
        return QualityCheckResult(
            check_type=CheckType.COMPLETENESS,
            table=table.full_name,
            passed=passed,
            score=round(score, 6),
            threshold=threshold,
            severity=completeness_severity(passed, score),
            details=CheckDetails(
                total_records=total_cells,
                failed_records=null_cells,
                sample_failures=[
                    {"value": name, "reason": f"{n} null values found"}
                    for name, n in nulls if n > 0
                ][:SAMPLE_FAILURE_LIMIT],
            ),
            suggestions=[] if passed else [
                "Implement NOT NULL constraints where appropriate",
                "Add data validation at source",
                "Consider default values for optional fields",
            ],
        )

    async def check_uniqueness(self, table: TableDescriptor, columns: List[ColumnDescriptor]) -> QualityCheckResult:
        """Mean distinct/non-null ratio of key-like columns."""
        quote = self.connector.quote_identifier
        key_columns = [
            c for c in columns
            if c.primary_key or "id" in c.name.lower() or "key" in c.name.lower()
        ]

        ratios = []
        failures = []
        total_records = 0
        failed_records = 0
        for column in key_columns:
            result = await self.connector.execute_query(
                f"SELECT COUNT({quote(column.name)}) AS non_null_count, "
                f"COUNT(DISTINCT {quote(column.name)}) AS unique_count FROM {self._table_sql(table)}"
            )
            row = result.rows[0] if result.rows else {}
            non_null = _to_int(row.get("non_null_count"))
            unique = _to_int(row.get("unique_count"))
            ratios.append(unique / non_null if non_null > 0 else 1.0)
            total_records = max(total_records, non_null)
            if unique < non_null:
                failed_records += non_null - unique
                failures.append({"value": column.name, "reason": f"{non_null - unique} duplicate values found"})

        score = sum(ratios) / len(ratios) if ratios else 1.0
        threshold = self.thresholds.uniqueness
        passed = score >= threshold
        return QualityCheckResult(
            check_type=CheckType.UNIQUENESS,
            table=table.full_name,
            passed=passed,
            score=round(score, 6),
            threshold=threshold,
            severity=uniqueness_severity(passed, score),
            details=CheckDetails(
                total_records=total_records,
                failed_records=failed_records,
                sample_failures=failures[:SAMPLE_FAILURE_LIMIT],
            ),
            suggestions=[] if passed else [
                "Add unique constraints to prevent duplicates",
                "Implement deduplication logic in ETL process",
                "Review data source for duplicate generation",
            ],
        )

    async def check_validity(self, table: TableDescriptor, columns: List[ColumnDescriptor]) -> QualityCheckResult:
        """Sampled values conforming to their column's declared type."""
        quote = self.connector.quote_identifier
        column_list = ", ".join(quote(c.name) for c in columns) or "*"
        result = await self.connector.execute_query(
            f"SELECT {column_list} FROM {self._table_sql(table)} LIMIT {self.max_sample_rows}"
        )

        checked = 0
        invalid = 0
        failures = []
        for column in columns:
            logical_type = self.connector.map_column_type(column.type)
            for row in result.rows:
                value = row.get(column.name)
                if value is None:
                    continue
                checked += 1
                if not _conforms(value, logical_type):
                    invalid += 1
                    if len(failures) < SAMPLE_FAILURE_LIMIT:
                        failures.append({
                            "value": repr(value),
                            "reason": f"{column.name} is not a valid {logical_type}",
                        })

        score = (checked - invalid) / checked if checked > 0 else 1.0
        threshold = self.thresholds.validity
        passed = score >= threshold
        return QualityCheckResult(
            check_type=CheckType.VALIDITY,
            table=table.full_name,
            passed=passed,
            score=round(score, 6),
            threshold=threshold,
            severity=validity_severity(passed, score),
            details=CheckDetails(total_records=checked, failed_records=invalid, sample_failures=failures),
            suggestions=[] if passed else [
                "Enforce column types at the source",
                "Cast or reject malformed values during ingestion",
            ],
        )

    async def check_timeliness(self, table: TableDescriptor, columns: List[ColumnDescriptor]) -> QualityCheckResult:
        """Latest timestamp no older than freshness_hours; scored 1.0 or 0.0."""
        freshness_hours = self.thresholds.freshness_hours
        incremental = find_incremental_column(columns)
        if incremental is None or incremental.kind != "timestamp":
            return QualityCheckResult(
                check_type=CheckType.TIMELINESS,
                table=table.full_name,
                passed=False,
                score=0.0,
                threshold=1.0,
                severity=Severity.WARNING,
                suggestions=["Add a timestamp column to track data freshness"],
            )

        column = self.connector.quote_identifier(incremental.name)
        result = await self.connector.execute_query(
            f"SELECT MAX({column}) AS latest_value, COUNT(*) AS total_count FROM {self._table_sql(table)}"
        )
        row = result.rows[0] if result.rows else {}
        total = _to_int(row.get("total_count"))
        latest = _as_utc(row.get("latest_value"))

        if latest is None:
            return QualityCheckResult(
                check_type=CheckType.TIMELINESS,
                table=table.full_name,
                column=incremental.name,
                passed=False,
                score=0.0,
                threshold=1.0,
                severity=Severity.ERROR,
                details=CheckDetails(total_records=total, failed_records=total),
                suggestions=["No timestamp data found"],
            )

        age_hours = (datetime.now(timezone.utc) - latest).total_seconds() / 3600
        passed = age_hours <= freshness_hours
        return QualityCheckResult(
            check_type=CheckType.TIMELINESS,
            table=table.full_name,
            column=incremental.name,
            passed=passed,
            score=1.0 if passed else 0.0,
            threshold=1.0,
            severity=timeliness_severity(passed, age_hours, freshness_hours),
            details=CheckDetails(
                total_records=total,
                failed_records=0 if passed else total,
                sample_failures=[] if passed else [{
                    "value": latest.isoformat(),
                    "reason": f"Latest data is {round(age_hours, 2)} hours old (threshold: {freshness_hours} hours)",
                }],
            ),
            suggestions=[] if passed else [
                "Consider more frequent data refresh",
                "Check if data source is updating as expected",
                "Review ETL scheduling configuration",
            ],
        )

    async def check_business_rule(
        self, table: TableDescriptor, columns: List[ColumnDescriptor], rule: BusinessRule
    ) -> QualityCheckResult:
        """
        Share of rows satisfying ``rule.condition``.

        A predicate the source rejects becomes a failed check with
        severity error; transient query errors propagate for retry.
        """
        table_sql = self._table_sql(table)
        try:
            total = await self._total_rows(table)
            result = await self.connector.execute_query(
                f"SELECT COUNT(*) AS violation_count FROM {table_sql} WHERE NOT ({rule.condition})"
            )
            violations = _to_int(result.rows[0]["violation_count"]) if result.rows else 0
            samples = []
            if violations > 0:
                sample = await self.connector.execute_query(
                    f"SELECT * FROM {table_sql} WHERE NOT ({rule.condition}) LIMIT {SAMPLE_FAILURE_LIMIT}"
                )
                samples = [
                    {"value": row, "reason": f"Violates rule: {rule.description or rule.name}"}
                    for row in sample.rows
                ]
        except QueryError as e:
            if e.retryable:
                raise
            error = QualityCheckError(
                f"Business rule '{rule.name}' could not be evaluated",
                context={"table": table.full_name, "rule": rule.name},
                original_exception=e,
            )
            logger.warning(str(error))
            return QualityCheckResult(
                check_type=CheckType.BUSINESS_RULE,
                table=table.full_name,
                rule_name=rule.name,
                passed=False,
                score=0.0,
                threshold=1.0,
                severity=Severity.ERROR,
                details=CheckDetails(sample_failures=[{"value": None, "reason": e.message}]),
                suggestions=[f"Fix the condition of business rule '{rule.name}'"],
            )

        score = (total - violations) / total if total > 0 else 1.0
        passed = score >= 1.0
        return QualityCheckResult(
            check_type=CheckType.BUSINESS_RULE,
            table=table.full_name,
            rule_name=rule.name,
            passed=passed,
            score=round(max(score, 0.0), 6),
            threshold=1.0,
            severity=Severity.INFO if passed else rule.severity,
            details=CheckDetails(total_records=total, failed_records=violations, sample_failures=samples),
            suggestions=[] if passed else [
                f"Review records violating business rule: {rule.description or rule.name}",
            ],
        )
