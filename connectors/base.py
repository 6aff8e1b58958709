"""
Abstract connector contract every source adapter implements
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional
from models.base import ConnectorType
from schemas.catalog import (
    DECIMAL_TYPE_NAMES,
    INTEGER_TYPE_NAMES,
    ColumnDescriptor,
    DatabaseInfo,
    ForeignKeyInfo,
    SchemaInfo,
    TableDescriptor,
    type_tokens,
)
from schemas.connector import AuthConfig, ConnectionTestResult, OAuthTokens, QueryResult
from core.exceptions import ConnectorError
import logging

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = (
    "password",
    "access_token",
    "refresh_token",
    "token",
    "secret",
    "client_secret",
    "private_key",
)

FLOAT_TYPE_NAMES = frozenset({"float", "float4", "float8", "double", "real", "money"})
UUID_TYPE_NAMES = frozenset({"uuid", "uniqueidentifier"})


class DataConnector(ABC):
    """
    Abstract base class for all data connectors.

    Responsibilities:
    - Session lifecycle (test, connect, disconnect)
    - Metadata listing (databases, schemas, tables, columns, foreign keys)
    - Query execution, optionally streamed
    - Error classification into ConnectorError subclasses carrying
      a retryable flag

    Connectors without a database or schema level return an empty list
    from list_databases / list_schemas; callers walk them with an
    implicit ``None`` level instead.
    """

    connector_type: ConnectorType
    name: str = "connector"
    version: str = "1.0.0"

    # Whether stream_query yields rows incrementally
    supports_streaming: bool = False

    def __init__(self, auth: AuthConfig):
        self.auth = auth
        self._connected = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def test_connection(self) -> ConnectionTestResult:
        pass

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    def is_connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_databases(self) -> List[DatabaseInfo]:
        pass

    @abstractmethod
    async def list_schemas(self, database: Optional[str] = None) -> List[SchemaInfo]:
        pass

    @abstractmethod
    async def list_tables(
        self, database: Optional[str] = None, schema: Optional[str] = None
    ) -> List[TableDescriptor]:
        pass

    @abstractmethod
    async def list_columns(
        self, database: Optional[str], schema: Optional[str], table: str
    ) -> List[ColumnDescriptor]:
        pass

    @abstractmethod
    async def list_foreign_keys(
        self, database: Optional[str] = None, schema: Optional[str] = None
    ) -> List[ForeignKeyInfo]:
        pass

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @abstractmethod
    async def execute_query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Run a statement with named ``:param`` placeholders."""
        pass

    async def stream_query(
        self, sql: str, params: Optional[Dict[str, Any]] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield rows one by one. Only available when supports_streaming."""
        raise NotImplementedError(f"{self.name} does not support streaming queries")
        yield  # pragma: no cover

    @abstractmethod
    async def ping(self) -> bool:
        pass

    @abstractmethod
    async def get_version(self) -> str:
        pass

    # ------------------------------------------------------------------
    # OAuth (SaaS connectors only)
    # ------------------------------------------------------------------

    supports_oauth: bool = False

    async def get_oauth_url(self, redirect_uri: str, state: Optional[str] = None) -> str:
        raise NotImplementedError(f"{self.name} does not use OAuth")

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str) -> OAuthTokens:
        raise NotImplementedError(f"{self.name} does not use OAuth")

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        raise NotImplementedError(f"{self.name} does not use OAuth")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        """Quote a possibly dotted identifier (``schema.table``)."""
        parts = name.split(".")
        return ".".join('"' + p.replace('"', '""') + '"' for p in parts)

    def table_reference(self, table: TableDescriptor) -> str:
        """Quoted FROM-clause reference, database-qualified when the table names one."""
        return self.quote_identifier(table.full_name)

    def validate_config(self, required_fields: List[str]) -> None:
        """Raise a non-retryable ConnectorError for missing auth fields."""
        values = self.auth.model_dump()
        for field in required_fields:
            if not values.get(field) and not self.auth.options.get(field):
                raise ConnectorError(
                    f"Missing required configuration field: {field}",
                    context={"connector_type": self.connector_type.value, "field": field},
                    retryable=False,
                )

    def sanitize_config_for_logging(self) -> Dict[str, Any]:
        sanitized = self.auth.model_dump()
        options = dict(sanitized.get("options") or {})
        for field in SENSITIVE_FIELDS:
            if sanitized.get(field):
                sanitized[field] = "***"
            if options.get(field):
                options[field] = "***"
        sanitized["options"] = options
        return sanitized

    def log_connection(self, action: str) -> None:
        logger.info(
            f"[{self.connector_type.value}] {action}",
            extra={"connection_config": self.sanitize_config_for_logging()}
        )

    @staticmethod
    def map_column_type(native_type: str) -> str:
        """Map a native column type onto a coarse logical type."""
        t = native_type.lower()
        tokens = type_tokens(t)
        if "bool" in t:
            return "boolean"
        if tokens & FLOAT_TYPE_NAMES or tokens & DECIMAL_TYPE_NAMES:
            return "float"
        if tokens & INTEGER_TYPE_NAMES:
            return "integer"
        if tokens & UUID_TYPE_NAMES:
            return "uuid"
        if "timestamp" in t or "date" in t:
            return "datetime"
        if tokens & {"time", "timetz"}:
            return "time"
        if any(k in t for k in ("char", "text", "string")):
            return "string"
        return native_type
