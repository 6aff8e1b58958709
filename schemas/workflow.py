"""
Pydantic schemas for workflow inputs and status
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
import uuid
from models.base import SyncMode, WorkflowKind, WorkflowPhase, Severity
from schemas.connector import ConnectionConfig
from schemas.quality import QualityChecksConfig, QualityThresholds


# ============================================================================
# Status
# ============================================================================

class ErrorEntry(BaseModel):
    """One entry of a workflow's error log"""
    object: Optional[str] = None
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    retryable: bool = False
    severity: Severity = Severity.ERROR
    error_type: Optional[str] = None


class Progress(BaseModel):
    total_tables: int = 0
    processed_tables: int = 0
    records_processed: int = 0
    current_object: Optional[str] = None
    total_checks: int = 0
    completed_checks: int = 0


class Metrics(BaseModel):
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    bytes_transferred: int = 0
    records_transferred: int = 0
    tables_skipped: int = 0

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class WorkflowStatus(BaseModel):
    """
    Queryable snapshot of a workflow instance.

    ``workflow_id`` names the instance (and its checkpoint) across
    reruns; ``run_id`` is unique per execution and keys the audit trail.
    """
    workflow_id: str
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    connection_id: str
    kind: WorkflowKind
    phase: WorkflowPhase = WorkflowPhase.INITIALIZING
    paused: bool = False
    progress: Progress = Field(default_factory=Progress)
    errors: List[ErrorEntry] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal


# ============================================================================
# Inputs
# ============================================================================

class NotificationConfig(BaseModel):
    """Where lifecycle notifications go"""
    email: List[str] = Field(default_factory=list)
    webhook: Optional[str] = None
    only_on_failure: bool = False

    @field_validator("webhook")
    def check_webhook(cls, v):
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("webhook must be an http(s) URL")
        return v


class TableFilter(BaseModel):
    """Database / schema / table include lists; empty means everything"""
    databases: List[str] = Field(default_factory=list)
    schemas: List[str] = Field(default_factory=list)
    tables: List[str] = Field(default_factory=list)
    exclude_tables: List[str] = Field(default_factory=list)


class SyncConfig(TableFilter):
    mode: SyncMode = SyncMode.FULL
    batch_size: int = Field(1000, gt=0, le=100000)
    schedule_expression: Optional[str] = None
    validate_quality: bool = True


class DiscoveryConfig(TableFilter):
    include_columns: bool = True
    include_sample_data: bool = True
    infer_primary_keys: bool = True
    infer_relationships: bool = True
    max_sample_rows: int = Field(100, gt=0, le=10000)


class _WorkflowInput(BaseModel):
    connection: ConnectionConfig
    workflow_id: Optional[str] = None
    notification: Optional[NotificationConfig] = None

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


class DataSyncInput(_WorkflowInput):
    sync_config: SyncConfig = Field(default_factory=SyncConfig)


class SchemaDiscoveryInput(_WorkflowInput):
    discovery_config: DiscoveryConfig = Field(default_factory=DiscoveryConfig)


class DataQualityInput(_WorkflowInput):
    tables: List[str] = Field(default_factory=list)
    checks: QualityChecksConfig = Field(default_factory=QualityChecksConfig)
    thresholds: QualityThresholds = Field(default_factory=QualityThresholds)
    max_sample_rows: int = Field(100, gt=0, le=10000)

    @model_validator(mode="after")
    def check_rules_target_tables(self):
        if self.tables:
            unknown = [r.name for r in self.checks.business_rules if r.table not in self.tables]
            if unknown:
                raise ValueError(f"business rules target tables outside the run: {unknown}")
        return self
