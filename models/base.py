from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class ConnectorType(str, enum.Enum):
    """Supported source systems"""
    SNOWFLAKE = "snowflake"
    XERO = "xero"
    MSSQL = "mssql"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SPENDESK = "spendesk"
    AZURE_SQL = "azure-sql"
    SALESFORCE = "salesforce"
    BIGQUERY = "bigquery"
    REDSHIFT = "redshift"
    DATABRICKS = "databricks"


class WorkflowKind(str, enum.Enum):
    """Workflow types driven by the orchestrator"""
    DATA_SYNC = "data_sync"
    SCHEMA_DISCOVERY = "schema_discovery"
    DATA_QUALITY = "data_quality"


class WorkflowPhase(str, enum.Enum):
    """Lifecycle phase of a workflow instance"""
    INITIALIZING = "initializing"
    DISCOVERING = "discovering"
    SYNCING = "syncing"
    VALIDATING = "validating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowPhase.COMPLETED, WorkflowPhase.FAILED)


class SyncMode(str, enum.Enum):
    """Table synchronization semantics"""
    FULL = "full"
    INCREMENTAL = "incremental"
    SNAPSHOT = "snapshot"


class CheckType(str, enum.Enum):
    """Quality check kinds"""
    COMPLETENESS = "completeness"
    UNIQUENESS = "uniqueness"
    VALIDITY = "validity"
    TIMELINESS = "timeliness"
    BUSINESS_RULE = "business_rule"


class Severity(str, enum.Enum):
    """Severity attached to quality checks and error entries"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class TableType(str, enum.Enum):
    TABLE = "TABLE"
    VIEW = "VIEW"
