"""
Pydantic schemas for data validation and serialization.

This package defines the documents exchanged between connectors,
executors, workflows, stores and the API:

Schemas:
    connector: Connection configuration, query results, OAuth tokens
    catalog: Databases, schemas, tables, columns and inferred keys
    checkpoint: Sync resume points and table cursors
    sync: Per-table sync results and batch errors
    quality: Quality checks, thresholds, business rules and reports
    workflow: Workflow inputs and the queryable status document
    api: API endpoint request/response schemas

Usage:
    from schemas.workflow import DataSyncInput, WorkflowStatus
    from schemas.quality import QualityReport

Example:
    workflow_input = DataSyncInput(
        connection={
            "connection_id": "warehouse",
            "connector_type": "postgresql",
            "auth": {"url": "postgresql+asyncpg://user:pass@db/warehouse"},
        },
        sync_config={"mode": "incremental", "tables": ["public.orders"]},
    )

    # Pydantic validates types, ranges and cross-field rules
    assert workflow_input.connection_id == "warehouse"

Validation:
    Workflows validate their input before anything runs; a violation
    raises core.exceptions.ValidationError.
"""

__all__ = [
    "ConnectionConfig",
    "DiscoveredCatalog",
    "TableDescriptor",
    "Checkpoint",
    "Cursor",
    "TableSyncResult",
    "QualityReport",
    "DataSyncInput",
    "SchemaDiscoveryInput",
    "DataQualityInput",
    "WorkflowStatus",
]
