"""
Schema discovery executor.

Walks databases -> schemas -> tables -> columns -> sample data ->
primary key inference -> relationship inference -> catalog update.
A failure on one object is recorded with its qualified name and the
walk continues with its siblings.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from connectors.base import DataConnector
from core.exceptions import ErrorBudgetExceededError
from orchestration.context import WorkflowContext
from orchestration.heuristics import (
    compute_column_statistics,
    infer_column_type,
    infer_primary_key_candidates,
    infer_relationships,
)
from orchestration.stores.base import CatalogSink
from schemas.catalog import ColumnDescriptor, DiscoveredCatalog, ForeignKeyInfo, TableDescriptor
from schemas.workflow import DiscoveryConfig, TableFilter

logger = logging.getLogger(__name__)


def _dotted(*parts: Optional[str]) -> str:
    return ".".join(p for p in parts if p)


def table_matches(table: TableDescriptor, table_filter: TableFilter) -> bool:
    """Include/exclude by bare or schema-qualified name."""
    names = {table.name, table.qualified_name, table.full_name}
    if table_filter.tables and not names & set(table_filter.tables):
        return False
    if names & set(table_filter.exclude_tables):
        return False
    return True


async def list_filtered_tables(
    connector: DataConnector,
    context: WorkflowContext,
    table_filter: TableFilter,
) -> List[TableDescriptor]:
    """
    Shallow table listing honouring database / schema / table filters.

    Connectors without a database or schema level are walked with a
    single implicit ``None`` level.
    """
    tables: List[TableDescriptor] = []

    await context.observe()
    try:
        databases = await context.run_unit(connector.list_databases, "list databases")
        database_names: List[Optional[str]] = [d.name for d in databases]
    except Exception as e:
        context.record_error("databases", e)
        database_names = []
    if table_filter.databases:
        database_names = [d for d in database_names if d in table_filter.databases]
    elif not database_names:
        database_names = [None]

    for database in database_names:
        await context.observe()
        context.set_current(f"database:{database}" if database else None)
        try:
            schemas = await context.run_unit(
                lambda: connector.list_schemas(database), f"list schemas of {database or 'default'}"
            )
            schema_names: List[Optional[str]] = [s.name for s in schemas]
        except Exception as e:
            context.record_error(f"database:{database}", e)
            continue
        if table_filter.schemas:
            schema_names = [s for s in schema_names if s in table_filter.schemas]
        elif not schema_names:
            schema_names = [None]

        for schema in schema_names:
            await context.observe()
            context.set_current(f"schema:{_dotted(database, schema)}")
            try:
                listed = await context.run_unit(
                    lambda: connector.list_tables(database, schema),
                    f"list tables of {_dotted(database, schema) or 'default'}",
                )
            except Exception as e:
                context.record_error(f"schema:{_dotted(database, schema)}", e)
                continue

            for table in listed:
                if table.database is None:
                    table.database = database
                if table.schema_name is None:
                    table.schema_name = schema
                if table_matches(table, table_filter):
                    tables.append(table)

    logger.info(f"[{context.workflow_id}] Found {len(tables)} table(s)")
    return tables


class DiscoveryExecutor:
    """Deep discovery of the tables of one connection"""

    def __init__(
        self,
        connector: DataConnector,
        context: WorkflowContext,
        config: DiscoveryConfig,
        catalog_sink: Optional[CatalogSink] = None,
    ):
        self.connector = connector
        self.context = context
        self.config = config
        self.catalog_sink = catalog_sink
        self._foreign_keys: Dict[Tuple[Optional[str], Optional[str]], List[ForeignKeyInfo]] = {}

    async def discover(self) -> DiscoveredCatalog:
        progress = self.context.status.progress

        tables = await list_filtered_tables(self.connector, self.context, self.config)
        progress.total_tables = len(tables)

        # ------ PASS 1: columns, sample statistics, key candidates ------
        described: List[TableDescriptor] = []
        for table in tables:
            await self.context.observe()
            self.context.set_current(f"table:{table.full_name}")
            try:
                await self.context.run_unit(
                    lambda: self._describe_table(table), f"describe {table.full_name}"
                )
                described.append(table)
            except ErrorBudgetExceededError:
                raise
            except Exception as e:
                self.context.record_error(f"table:{table.full_name}", e)
            progress.processed_tables += 1

        # ------ PASS 2: relationships ------
        if self.config.infer_relationships and self.config.include_columns:
            columns_by_table = {t.qualified_name: t.columns or [] for t in described}
            for table in described:
                await self.context.observe()
                self.context.set_current(f"relationships:{table.full_name}")
                try:
                    foreign_keys = await self._foreign_keys_for(table)
                    table.relationships = infer_relationships(
                        table.qualified_name,
                        table.columns or [],
                        self._qualify_foreign_keys(table, foreign_keys),
                        columns_by_table,
                    )
                except Exception as e:
                    self.context.record_error(f"relationships:{table.full_name}", e)

        catalog = DiscoveredCatalog(
            connection_id=self.context.connection_id,
            tables=tables,
        )

        # ------ Catalog update ------
        if self.catalog_sink is not None:
            await self.context.observe()
            self.context.set_current("catalog")
            try:
                await self.context.run_unit(
                    lambda: self.catalog_sink.replace_snapshot(catalog, self.context.workflow_id),
                    "update catalog",
                )
            except Exception as e:
                self.context.record_error("catalog", e)

        self.context.set_current(None)
        logger.info(
            f"[{self.context.workflow_id}] Discovery finished: {len(tables)} tables, "
            f"{catalog.column_count} columns, {catalog.relationship_count} relationships"
        )
        return catalog

    # ------------------------------------------------------------------
    # Per-table steps
    # ------------------------------------------------------------------

    async def _describe_table(self, table: TableDescriptor) -> None:
        if not self.config.include_columns:
            return

        table.columns = await self.connector.list_columns(table.database, table.schema_name, table.name)

        if self.config.include_sample_data:
            try:
                await self._analyze_sample(table)
            except Exception as e:
                self.context.record_error(f"table_data:{table.full_name}", e)

        if self.config.infer_primary_keys:
            uniqueness = await self._probe_uniqueness(table)
            table.primary_key_candidates = infer_primary_key_candidates(table.columns, uniqueness)

    async def _analyze_sample(self, table: TableDescriptor) -> None:
        quote = self.connector.quote_identifier
        column_list = ", ".join(quote(c.name) for c in table.columns) or "*"
        result = await self.connector.execute_query(
            f"SELECT {column_list} FROM {self.connector.table_reference(table)} LIMIT {self.config.max_sample_rows}"
        )
        table.sample_rows = result.rows

        for column in table.columns:
            statistics, samples = compute_column_statistics(column.name, result.rows)
            column.statistics = statistics
            column.sample_values = samples
            inferred, confidence = infer_column_type([row.get(column.name) for row in result.rows])
            column.inferred_type = inferred
            column.inferred_type_confidence = confidence

    def _probe_candidates(self, columns: Sequence[ColumnDescriptor], sampled: int) -> List[ColumnDescriptor]:
        candidates = []
        for column in columns:
            if column.primary_key:
                continue
            stats = column.statistics
            # A sampled duplicate or null already rules the column out
            if stats is not None and sampled and (stats.null_count > 0 or stats.unique_count < sampled):
                continue
            candidates.append(column)
        return candidates

    async def _probe_uniqueness(self, table: TableDescriptor) -> Dict[str, Tuple[int, int]]:
        quote = self.connector.quote_identifier
        sampled = len(table.sample_rows or [])
        uniqueness: Dict[str, Tuple[int, int]] = {}

        for column in self._probe_candidates(table.columns or [], sampled):
            sql = (
                f"SELECT COUNT(*) AS total_count, COUNT(DISTINCT {quote(column.name)}) AS unique_count "
                f"FROM {self.connector.table_reference(table)}"
            )
            try:
                result = await self.connector.execute_query(sql)
            except Exception as e:
                logger.warning(f"Failed to check uniqueness of {table.full_name}.{column.name}: {e}")
                continue
            if result.rows:
                row = result.rows[0]
                uniqueness[column.name] = (int(row["total_count"] or 0), int(row["unique_count"] or 0))
        return uniqueness

    async def _foreign_keys_for(self, table: TableDescriptor) -> List[ForeignKeyInfo]:
        key = (table.database, table.schema_name)
        if key not in self._foreign_keys:
            self._foreign_keys[key] = await self.context.run_unit(
                lambda: self.connector.list_foreign_keys(table.database, table.schema_name),
                f"list foreign keys of {_dotted(*key) or 'default'}",
            )
        return self._foreign_keys[key]

    @staticmethod
    def _qualify_foreign_keys(table: TableDescriptor, foreign_keys: List[ForeignKeyInfo]) -> List[ForeignKeyInfo]:
        """Foreign keys of ``table`` with names in the same form as the catalog keys."""
        if not table.schema_name:
            return foreign_keys
        qualified = []
        for fk in foreign_keys:
            if fk.from_table not in (table.name, table.qualified_name):
                continue
            to_table = fk.to_table if "." in fk.to_table else f"{table.schema_name}.{fk.to_table}"
            qualified.append(fk.model_copy(update={"from_table": table.qualified_name, "to_table": to_table}))
        return qualified
