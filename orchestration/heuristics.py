"""
Pure inference and scoring rules shared by the executors.

Nothing in this module performs I/O: callers gather counts and samples
from the connector and pass them in, which keeps every rule testable
without a source.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from models.base import CheckType, Severity
from schemas.catalog import (
    DECIMAL_TYPE_NAMES,
    INTEGER_TYPE_NAMES,
    ColumnDescriptor,
    ColumnPair,
    ColumnStatistics,
    ForeignKeyInfo,
    PrimaryKeyCandidate,
    RelationshipCandidate,
    is_integer_type,
    type_tokens,
)
from schemas.quality import QualityCheckResult, TableQualityResult

# ============================================================================
# Incremental column detection
# ============================================================================

# Priority order for timestamp cursors
INCREMENTAL_COLUMN_NAMES = (
    "updated_at",
    "modified_at",
    "last_modified",
    "timestamp",
    "created_at",
    "inserted_at",
    "date_modified",
    "last_updated",
)

# time-of-day columns are not cursors
TIMESTAMP_TYPE_HINTS = ("timestamp", "datetime", "date")


@dataclass(frozen=True)
class IncrementalColumn:
    name: str
    kind: str  # "timestamp" or "id"


def is_timestamp_type(column_type: str) -> bool:
    t = column_type.lower()
    return any(hint in t for hint in TIMESTAMP_TYPE_HINTS)


def is_numeric_type(column_type: str) -> bool:
    return bool(type_tokens(column_type) & (INTEGER_TYPE_NAMES | DECIMAL_TYPE_NAMES))


def find_incremental_column(columns: Sequence[ColumnDescriptor]) -> Optional[IncrementalColumn]:
    """
    Pick the cursor column for an incremental sync.

    1. A well-known change-tracking name with a timestamp-family type,
       in INCREMENTAL_COLUMN_NAMES priority order
    2. Any timestamp-family column
    3. A numeric primary key named like an id (auto-increment cursor)

    Returns None when nothing qualifies; the caller falls back to a full
    sync of that table.
    """
    by_name = {c.name.lower(): c for c in columns}
    for candidate in INCREMENTAL_COLUMN_NAMES:
        column = by_name.get(candidate)
        if column is not None and is_timestamp_type(column.type):
            return IncrementalColumn(column.name, "timestamp")

    for column in columns:
        if is_timestamp_type(column.type):
            return IncrementalColumn(column.name, "timestamp")

    for column in columns:
        name = column.name.lower()
        if column.primary_key and is_numeric_type(column.type) and ("id" in name or name == "pk"):
            return IncrementalColumn(column.name, "id")

    return None


# ============================================================================
# Primary key and relationship inference
# ============================================================================

def infer_primary_key_candidates(
    columns: Sequence[ColumnDescriptor],
    uniqueness: Dict[str, Tuple[int, int]],
) -> List[PrimaryKeyCandidate]:
    """
    Rank primary key candidates.

    Args:
        columns: Table columns with declared primary_key flags
        uniqueness: ``{column: (total_count, distinct_count)}`` for probed
            non-key columns; missing entries are not considered

    Declared keys form one composite candidate at 1.0. A probed column
    whose values are all distinct scores 0.8, +0.1 for id/key naming,
    +0.05 for an integer or serial type, capped at 0.95.
    """
    candidates: List[PrimaryKeyCandidate] = []

    declared = [c.name for c in columns if c.primary_key]
    if declared:
        candidates.append(PrimaryKeyCandidate(
            columns=declared,
            confidence=1.0,
            reasoning="Explicitly defined primary key",
        ))

    for column in columns:
        if column.primary_key or column.name not in uniqueness:
            continue
        total, distinct = uniqueness[column.name]
        if total <= 0 or distinct != total:
            continue

        confidence = 0.8
        reasoning = "Column contains only unique values"

        name = column.name.lower()
        if "id" in name or "key" in name or name == "pk":
            confidence += 0.1
            reasoning += " and has ID/key naming pattern"

        if is_integer_type(column.type):
            confidence += 0.05
            reasoning += " with numeric auto-increment type"

        candidates.append(PrimaryKeyCandidate(
            columns=[column.name],
            confidence=round(min(confidence, 0.95), 4),
            reasoning=reasoning,
        ))

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    return candidates


def _relationship_stem(column_name: str) -> Optional[str]:
    name = column_name.lower()
    if not (name.endswith("_id") or name.endswith("_key") or "ref" in name):
        return None
    stem = re.sub(r"_id$|_key$", "", name)
    stem = stem.replace("ref_", "", 1)
    return stem or None


def _pk_like_column(columns: Sequence[ColumnDescriptor]) -> Optional[ColumnDescriptor]:
    for column in columns:
        name = column.name.lower()
        if column.primary_key or name == "id" or name.endswith("_id"):
            return column
    return None


def infer_relationships(
    table_name: str,
    columns: Sequence[ColumnDescriptor],
    foreign_keys: Iterable[ForeignKeyInfo],
    other_tables: Dict[str, Sequence[ColumnDescriptor]],
) -> List[RelationshipCandidate]:
    """
    Relationship candidates of one table.

    Declared foreign keys are returned at confidence 1.0. Columns without
    a declared key whose names look like references (``*_id``, ``*_key``,
    ``*ref*``) are matched by name against the other tables; a match with
    a primary-key-like column yields an inferred candidate at 0.7.
    """
    relationships: List[RelationshipCandidate] = []

    declared_columns = set()
    for fk in foreign_keys:
        if fk.from_table != table_name:
            continue
        declared_columns.add(fk.from_column)
        relationships.append(RelationshipCandidate(
            type="foreign_key",
            target_table=fk.to_table,
            column_pairs=[ColumnPair(source=fk.from_column, target=fk.to_column)],
            confidence=1.0,
        ))

    for column in columns:
        if column.name in declared_columns:
            continue
        stem = _relationship_stem(column.name)
        if stem is None:
            continue

        for target_name, target_columns in other_tables.items():
            if target_name == table_name:
                continue
            target = target_name.lower().split(".")[-1]
            if stem not in target and target not in stem:
                continue
            target_column = _pk_like_column(target_columns)
            if target_column is None:
                continue
            relationships.append(RelationshipCandidate(
                type="inferred",
                target_table=target_name,
                column_pairs=[ColumnPair(source=column.name, target=target_column.name)],
                confidence=0.7,
            ))

    return relationships


# ============================================================================
# Sample statistics and value typing
# ============================================================================

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$")


def _is_date_string(value: str) -> bool:
    if len(value) <= 8 or not DATE_PATTERN.match(value):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


def infer_value_type(value: Any) -> str:
    """Logical type of a single sampled value"""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, (float, Decimal)):
        return "integer" if float(value).is_integer() else "float"
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, (date, time)):
        return "date"
    if isinstance(value, str):
        if _is_date_string(value):
            return "date"
        if EMAIL_PATTERN.match(value):
            return "email"
        if _is_url(value):
            return "url"
        return "string"
    if isinstance(value, (list, tuple, set)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "unknown"


def infer_column_type(values: Sequence[Any]) -> Tuple[str, float]:
    """Majority type over non-null values, with its share as confidence."""
    counts: Dict[str, int] = {}
    non_null = [v for v in values if v is not None]
    for value in non_null:
        value_type = infer_value_type(value)
        counts[value_type] = counts.get(value_type, 0) + 1
    if not counts:
        return "unknown", 0.0
    most_common = max(counts, key=counts.get)
    return most_common, round(counts[most_common] / len(non_null), 4)


def _hashable(value: Any) -> Any:
    try:
        hash(value)
        return value
    except TypeError:
        return repr(value)


def compute_column_statistics(
    column: str, rows: Sequence[Dict[str, Any]], max_samples: int = 10
) -> Tuple[ColumnStatistics, List[Any]]:
    """Null/distinct counts, numeric range and string length over sampled rows."""
    values = [row.get(column) for row in rows]
    non_null = [v for v in values if v is not None]

    distinct: List[Any] = []
    seen = set()
    for value in non_null:
        key = _hashable(value)
        if key not in seen:
            seen.add(key)
            distinct.append(value)

    numbers = [
        float(v) for v in non_null
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool)
    ]
    strings = [v for v in non_null if isinstance(v, str)]

    statistics = ColumnStatistics(
        null_count=len(values) - len(non_null),
        unique_count=len(distinct),
        min=min(numbers) if numbers else None,
        max=max(numbers) if numbers else None,
        avg_length=round(sum(len(s) for s in strings) / len(strings), 2) if strings else None,
    )
    return statistics, distinct[:max_samples]


# ============================================================================
# Quality scoring
# ============================================================================

def completeness_severity(passed: bool, score: float) -> Severity:
    if passed:
        return Severity.INFO
    return Severity.WARNING if score > 0.7 else Severity.ERROR


def uniqueness_severity(passed: bool, score: float) -> Severity:
    if passed:
        return Severity.INFO
    return Severity.WARNING if score > 0.8 else Severity.ERROR


def validity_severity(passed: bool, score: float) -> Severity:
    if passed:
        return Severity.INFO
    return Severity.WARNING if score > 0.8 else Severity.ERROR


def timeliness_severity(passed: bool, age_hours: Optional[float], freshness_hours: float) -> Severity:
    """Stale by up to twice the allowed age is a warning, beyond is an error."""
    if passed:
        return Severity.INFO
    if age_hours is None or age_hours <= 2 * freshness_hours:
        return Severity.WARNING
    return Severity.ERROR


def mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return math.fsum(values) / len(values)


def summarize_table(table: str, checks: List[QualityCheckResult]) -> TableQualityResult:
    """Unweighted mean of the table's checks, plus failed-check tallies by severity."""
    failed = [c for c in checks if not c.passed]
    return TableQualityResult(
        table=table,
        score=mean([c.score for c in checks]),
        checks=checks,
        critical_issues=sum(1 for c in failed if c.severity == Severity.ERROR),
        warnings=sum(1 for c in failed if c.severity == Severity.WARNING),
    )


def overall_score(tables: Sequence[TableQualityResult]) -> Optional[float]:
    """Mean of per-table scores; tables without checks are left out."""
    return mean([t.score for t in tables if t.score is not None])


PATTERN_RECOMMENDATIONS = {
    CheckType.COMPLETENESS: "Consider implementing data validation at the source to prevent null values",
    CheckType.UNIQUENESS: "Review data ingestion processes to prevent duplicate records",
    CheckType.VALIDITY: "Add format validation at the source for values that fail type checks",
    CheckType.TIMELINESS: "Set up automated data refresh schedules to maintain data freshness",
}


def generate_recommendations(checks: Iterable[QualityCheckResult]) -> List[str]:
    """Suggestions of failed checks plus pattern advice, de-duplicated in order."""
    recommendations: List[str] = []
    failed_types = []
    for check in checks:
        if check.passed:
            continue
        recommendations.extend(check.suggestions)
        if check.check_type not in failed_types:
            failed_types.append(check.check_type)

    for check_type in failed_types:
        advice = PATTERN_RECOMMENDATIONS.get(check_type)
        if advice:
            recommendations.append(advice)

    return list(dict.fromkeys(recommendations))
