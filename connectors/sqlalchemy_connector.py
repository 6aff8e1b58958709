"""
Generic connector for SQL sources reachable through an async SQLAlchemy URL.

Metadata comes from SQLAlchemy reflection (``inspect`` run on the sync
facade of an async connection); row reads are streamed with server-side
cursors.
"""

import time
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from models.base import ConnectorType
from schemas.catalog import ColumnDescriptor, DatabaseInfo, ForeignKeyInfo, SchemaInfo, TableDescriptor
from schemas.connector import AuthConfig, ConnectionTestResult, QueryResult
from connectors.base import DataConnector
from connectors.registry import register_connector
from core.exceptions import AuthenticationError, ConnectorError, QueryError, SourceConnectionError
import logging

logger = logging.getLogger(__name__)

# Async driver per connector type when the URL is built from parts
DRIVERS = {
    ConnectorType.POSTGRESQL: "postgresql+asyncpg",
    ConnectorType.REDSHIFT: "postgresql+asyncpg",
}

SYSTEM_SCHEMAS = {"information_schema", "pg_catalog", "pg_toast", "sys", "mysql", "performance_schema"}

AUTH_FAILURE_HINTS = ("password authentication failed", "access denied", "authentication failed", "invalid password")
TRANSIENT_QUERY_HINTS = ("deadlock", "lock timeout", "could not serialize", "canceling statement due to statement timeout")


@register_connector(ConnectorType.POSTGRESQL, ConnectorType.REDSHIFT)
class SQLAlchemyConnector(DataConnector):
    """Connector backed by an async SQLAlchemy engine"""

    connector_type = ConnectorType.POSTGRESQL
    name = "SQLAlchemy"
    version = "1.0.0"
    supports_streaming = True

    def __init__(self, auth: AuthConfig):
        super().__init__(auth)
        self._engine: Optional[AsyncEngine] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def build_url(self) -> URL:
        if self.auth.url:
            return make_url(self.auth.url)
        self.validate_config(["host", "database"])
        return URL.create(
            DRIVERS.get(self.connector_type, "postgresql+asyncpg"),
            username=self.auth.username,
            password=self.auth.password,
            host=self.auth.host,
            port=self.auth.port,
            database=self.auth.database,
            query={k: str(v) for k, v in self.auth.options.items()},
        )

    def _create_engine(self) -> AsyncEngine:
        return create_async_engine(self.build_url(), poolclass=NullPool)

    async def test_connection(self) -> ConnectionTestResult:
        engine = self._create_engine()
        start = time.perf_counter()
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                server_version = ".".join(str(p) for p in (engine.dialect.server_version_info or ()))
            return ConnectionTestResult(
                success=True,
                message="Connection successful",
                latency_ms=(time.perf_counter() - start) * 1000,
                server_version=server_version or None,
            )
        except (SQLAlchemyError, OSError) as e:
            error = self._translate_error(e, "test_connection")
            return ConnectionTestResult(success=False, message=error.message)
        finally:
            await engine.dispose()

    async def connect(self) -> None:
        if self._engine is not None:
            return
        self._engine = self._create_engine()
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            await self._engine.dispose()
            self._engine = None
            raise self._translate_error(e, "connect")
        self._connected = True
        self.log_connection("Connected")

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._connected = False
        self.log_connection("Disconnected")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise SourceConnectionError(
                "Connector is not connected",
                context={"connector_type": self.connector_type.value},
            )
        return self._engine

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def _reflect(self, operation: str, fn):
        try:
            async with self.engine.connect() as conn:
                return await conn.run_sync(lambda sync_conn: fn(inspect(sync_conn)))
        except (SQLAlchemyError, OSError) as e:
            raise self._translate_error(e, operation)

    async def list_databases(self) -> List[DatabaseInfo]:
        # One engine is bound to one database
        database = self.engine.url.database
        return [DatabaseInfo(name=database)] if database else []

    def table_reference(self, table: TableDescriptor) -> str:
        # The bound database is implicit; cross-database names are not portable
        return self.quote_identifier(table.qualified_name)

    async def list_schemas(self, database: Optional[str] = None) -> List[SchemaInfo]:
        names = await self._reflect("list_schemas", lambda insp: insp.get_schema_names())
        return [
            SchemaInfo(name=n, database=database)
            for n in names
            if n not in SYSTEM_SCHEMAS and not n.startswith("pg_")
        ]

    async def list_tables(
        self, database: Optional[str] = None, schema: Optional[str] = None
    ) -> List[TableDescriptor]:
        def _list(insp):
            tables = [(n, "TABLE") for n in insp.get_table_names(schema=schema)]
            views = [(n, "VIEW") for n in insp.get_view_names(schema=schema)]
            return tables + views

        listed = await self._reflect("list_tables", _list)
        return [
            TableDescriptor(database=database, schema=schema, name=n, type=t)
            for n, t in listed
        ]

    async def list_columns(
        self, database: Optional[str], schema: Optional[str], table: str
    ) -> List[ColumnDescriptor]:
        def _list(insp):
            pk = set(insp.get_pk_constraint(table, schema=schema).get("constrained_columns") or [])
            return [
                ColumnDescriptor(
                    name=c["name"],
                    type=str(c["type"]),
                    nullable=bool(c.get("nullable", True)),
                    primary_key=c["name"] in pk,
                    default=str(c["default"]) if c.get("default") is not None else None,
                )
                for c in insp.get_columns(table, schema=schema)
            ]

        return await self._reflect("list_columns", _list)

    async def list_foreign_keys(
        self, database: Optional[str] = None, schema: Optional[str] = None
    ) -> List[ForeignKeyInfo]:
        def _list(insp):
            found = []
            for table in insp.get_table_names(schema=schema):
                for fk in insp.get_foreign_keys(table, schema=schema):
                    pairs = zip(fk.get("constrained_columns") or [], fk.get("referred_columns") or [])
                    for from_column, to_column in pairs:
                        found.append(ForeignKeyInfo(
                            from_table=table,
                            from_column=from_column,
                            to_table=fk["referred_table"],
                            to_column=to_column,
                            constraint_name=fk.get("name"),
                        ))
            return found

        return await self._reflect("list_foreign_keys", _list)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def execute_query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        start = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(sql), params or {})
                columns = list(result.keys())
                rows = [dict(row._mapping) for row in result]
        except (SQLAlchemyError, OSError) as e:
            raise self._translate_error(e, "execute_query", sql)
        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            execution_time_ms=(time.perf_counter() - start) * 1000,
        )

    async def stream_query(
        self, sql: str, params: Optional[Dict[str, Any]] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.stream(text(sql), params or {})
                async for row in result:
                    yield dict(row._mapping)
        except (SQLAlchemyError, OSError) as e:
            raise self._translate_error(e, "stream_query", sql)

    async def ping(self) -> bool:
        try:
            await self.execute_query("SELECT 1")
            return True
        except ConnectorError:
            return False

    async def get_version(self) -> str:
        result = await self.execute_query("SELECT version() AS version")
        return str(result.rows[0]["version"]) if result.rows else ""

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    def _translate_error(self, error: Exception, operation: str, sql: Optional[str] = None) -> ConnectorError:
        context = {"connector_type": self.connector_type.value, "operation": operation}
        if sql:
            context["sql"] = sql[:500]
        message = str(error)
        lowered = message.lower()

        if any(hint in lowered for hint in AUTH_FAILURE_HINTS):
            return AuthenticationError(f"Authentication failed: {message}", context=context, original_exception=error)
        if isinstance(error, (OperationalError, InterfaceError, OSError)) and sql is None:
            return SourceConnectionError(f"Connection failed: {message}", context=context, original_exception=error)
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            return SourceConnectionError(f"Connection lost: {message}", context=context, original_exception=error)
        if isinstance(error, OSError):
            return SourceConnectionError(f"Connection failed: {message}", context=context, original_exception=error)

        retryable = any(hint in lowered for hint in TRANSIENT_QUERY_HINTS)
        return QueryError(f"Query failed: {message}", context=context, original_exception=error, retryable=retryable)
