"""
SQLAlchemy ORM models for database tables.

This package defines the persistence schema of the orchestration core:

Models:
    base: Base declarative class and shared enums (ConnectorType,
        WorkflowKind, WorkflowPhase, SyncMode, CheckType, Severity)
    workflow_run: Status and error log of each workflow execution
    checkpoint: Sync resume points and per-table incremental cursors
    catalog: Latest discovered catalog per connection
    quality_report: Quality assessments and their individual checks
    synced_record: Rows copied from source tables

Database Schema:
    All models inherit from the Base declarative class and use
    PostgreSQL JSONB for nested documents (status snapshots, catalogs,
    reports, row payloads).

Usage:
    from models import WorkflowRun, WorkflowCheckpoint, CatalogSnapshot
    from models.base import WorkflowPhase, SyncMode
"""

from models.base import (
    Base,
    CheckType,
    ConnectorType,
    Severity,
    SyncMode,
    TableType,
    WorkflowKind,
    WorkflowPhase,
)
from models.catalog import CatalogSnapshot
from models.checkpoint import TableCursor, WorkflowCheckpoint
from models.quality_report import QualityCheckRecord, QualityReportRecord
from models.synced_record import SyncedRecord
from models.workflow_run import WorkflowRun

__all__ = [
    "Base",
    "CheckType",
    "ConnectorType",
    "Severity",
    "SyncMode",
    "TableType",
    "WorkflowKind",
    "WorkflowPhase",
    "WorkflowRun",
    "WorkflowCheckpoint",
    "TableCursor",
    "CatalogSnapshot",
    "QualityReportRecord",
    "QualityCheckRecord",
    "SyncedRecord",
]
