"""
Pydantic schemas for data quality checks and reports
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any
from datetime import datetime
from models.base import CheckType, Severity


class CheckDetails(BaseModel):
    total_records: int = 0
    failed_records: int = 0
    sample_failures: List[Any] = Field(default_factory=list)


class QualityCheckResult(BaseModel):
    """Outcome of one check; passed is score >= threshold"""
    check_type: CheckType
    table: str
    column: Optional[str] = None
    rule_name: Optional[str] = None
    passed: bool
    score: float = Field(..., ge=0, le=1)
    threshold: float = Field(..., ge=0, le=1)
    severity: Severity
    details: CheckDetails = Field(default_factory=CheckDetails)
    suggestions: List[str] = Field(default_factory=list)
    execution_time_ms: Optional[float] = None


class TableQualityResult(BaseModel):
    table: str
    score: Optional[float] = None
    checks: List[QualityCheckResult] = Field(default_factory=list)
    critical_issues: int = 0
    warnings: int = 0


class QualityReport(BaseModel):
    """Aggregated assessment across tables"""
    connection_id: str
    workflow_id: Optional[str] = None
    overall_score: Optional[float] = None
    tables: List[TableQualityResult] = Field(default_factory=list)
    tables_checked: int = 0
    checks_run: int = 0
    checks_passed: int = 0
    checks_failed: int = 0
    critical_issues: int = 0
    warnings: int = 0
    recommendations: List[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    duration_seconds: Optional[float] = None


# ============================================================================
# Check configuration
# ============================================================================

class BusinessRule(BaseModel):
    """Boolean SQL predicate every row is expected to satisfy"""
    name: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)
    condition: str = Field(..., min_length=1)
    severity: Severity = Severity.ERROR
    description: Optional[str] = None


class QualityThresholds(BaseModel):
    completeness: float = Field(0.95, ge=0, le=1)
    uniqueness: float = Field(0.99, ge=0, le=1)
    validity: float = Field(0.95, ge=0, le=1)
    freshness_hours: float = Field(24.0, gt=0)


class QualityChecksConfig(BaseModel):
    completeness: bool = True
    uniqueness: bool = True
    validity: bool = True
    timeliness: bool = False
    business_rules: List[BusinessRule] = Field(default_factory=list)

    def enabled_types(self) -> List[CheckType]:
        enabled = []
        if self.completeness:
            enabled.append(CheckType.COMPLETENESS)
        if self.uniqueness:
            enabled.append(CheckType.UNIQUENESS)
        if self.validity:
            enabled.append(CheckType.VALIDITY)
        if self.timeliness:
            enabled.append(CheckType.TIMELINESS)
        if self.business_rules:
            enabled.append(CheckType.BUSINESS_RULE)
        return enabled
