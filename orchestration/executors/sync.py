"""
Table sync executor: full / snapshot / incremental reads in batches.

Rows are read from the source (streamed when the connector supports it,
otherwise one query chunked client-side), grouped into batches and
handed to a BatchSink. A failing batch is recorded and skipped; later
batches still run. The cursor tracks the highest value seen in the
cursor column regardless of batch outcome.
"""

import logging
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from connectors.base import DataConnector
from core.config import settings
from models.base import SyncMode
from orchestration.heuristics import IncrementalColumn, find_incremental_column
from orchestration.loaders.batch_sink import BatchSink, EstimatingBatchSink
from schemas.catalog import ColumnDescriptor, TableDescriptor
from schemas.checkpoint import Cursor
from schemas.sync import BatchError, TableSyncResult

logger = logging.getLogger(__name__)


def cursor_to_param(cursor: Cursor, incremental: IncrementalColumn) -> Optional[Any]:
    """Typed bind value for ``WHERE col > :cursor_value`` (None without a cursor)."""
    if incremental.kind == "timestamp":
        if not cursor.last_sync_timestamp:
            return None
        try:
            return datetime.fromisoformat(cursor.last_sync_timestamp)
        except ValueError:
            return cursor.last_sync_timestamp
    if not cursor.last_id:
        return None
    try:
        return int(cursor.last_id)
    except ValueError:
        return cursor.last_id


def value_to_cursor_text(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _greater(value: Any, current: Any) -> bool:
    try:
        return value > current
    except TypeError:
        return str(value) > str(current)


class SyncExecutor:
    """
    Sync one table at a time from a connector into a sink.

    Stateless across tables; the caller owns checkpoints and cursors.
    """

    def __init__(
        self,
        connector: DataConnector,
        connection_id: str,
        sink: Optional[BatchSink] = None,
        batch_size: Optional[int] = None,
        workflow_id: Optional[str] = None,
    ):
        self.connector = connector
        self.connection_id = connection_id
        self.sink = sink or EstimatingBatchSink()
        self.batch_size = batch_size or settings.SYNC_BATCH_SIZE
        self.workflow_id = workflow_id

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def build_query(
        self,
        table: TableDescriptor,
        columns: List[ColumnDescriptor],
        mode: SyncMode,
        cursor: Optional[Cursor] = None,
    ) -> Tuple[str, Dict[str, Any], Optional[IncrementalColumn]]:
        """
        SELECT statement, bind params and the cursor column (incremental only).

        Incremental mode without a usable cursor column falls back to a
        full read of this table.
        """
        quote = self.connector.quote_identifier
        column_list = ", ".join(quote(c.name) for c in columns) if columns else "*"
        base = f"SELECT {column_list} FROM {self.connector.table_reference(table)}"

        if mode != SyncMode.INCREMENTAL:
            return base, {}, None

        incremental = find_incremental_column(columns)
        if incremental is None:
            logger.warning(
                f"No incremental column found for {table.full_name}; falling back to full sync"
            )
            return base, {}, None

        order_column = quote(incremental.name)
        value = cursor_to_param(cursor or Cursor(), incremental)
        if value is None:
            return f"{base} ORDER BY {order_column}", {}, incremental
        return (
            f"{base} WHERE {order_column} > :cursor_value ORDER BY {order_column}",
            {"cursor_value": value},
            incremental,
        )

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def _read_batches(self, sql: str, params: Dict[str, Any]) -> AsyncIterator[List[Dict[str, Any]]]:
        if self.connector.supports_streaming:
            batch: List[Dict[str, Any]] = []
            async for row in self.connector.stream_query(sql, params):
                batch.append(row)
                if len(batch) >= self.batch_size:
                    yield batch
                    batch = []
            if batch:
                yield batch
            return

        result = await self.connector.execute_query(sql, params)
        for i in range(0, len(result.rows), self.batch_size):
            yield result.rows[i:i + self.batch_size]

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_table(
        self,
        table: TableDescriptor,
        mode: SyncMode,
        cursor: Optional[Cursor] = None,
        columns: Optional[List[ColumnDescriptor]] = None,
    ) -> TableSyncResult:
        """
        Copy one table into the sink.

        Batch failures are collected in ``errors``; read or metadata
        failures propagate to the caller, which treats the table as
        skipped.
        """
        start_time = datetime.utcnow()
        if columns is None:
            columns = table.columns or await self.connector.list_columns(
                table.database, table.schema_name, table.name
            )

        sql, params, incremental = self.build_query(table, columns, mode, cursor)
        effective_mode = SyncMode.INCREMENTAL if incremental else (
            SyncMode.FULL if mode == SyncMode.INCREMENTAL else mode
        )
        key_columns = [c.name for c in columns if c.primary_key] or None

        logger.info(
            f"Syncing {table.full_name} ({effective_mode.value})"
            + (f" from cursor {params['cursor_value']}" if "cursor_value" in params else "")
        )

        records_processed = 0
        bytes_transferred = 0
        errors: List[BatchError] = []
        max_value: Any = None
        batch_index = 0

        async for batch in self._read_batches(sql, params):
            if incremental is not None:
                for row in batch:
                    value = row.get(incremental.name)
                    if value is not None and (max_value is None or _greater(value, max_value)):
                        max_value = value

            try:
                bytes_transferred += await self.sink.write_batch(
                    self.connection_id,
                    table.full_name,
                    batch,
                    key_columns=key_columns,
                    workflow_id=self.workflow_id,
                )
                records_processed += len(batch)
                logger.debug(f"Processed batch {batch_index} of {table.full_name}: {len(batch)} records")
            except Exception as e:
                logger.error(f"Batch {batch_index} of {table.full_name} failed: {e}")
                errors.append(BatchError(
                    batch_index=batch_index,
                    error=str(e),
                    records_affected=len(batch),
                ))
            batch_index += 1

        checkpoint = None
        if incremental is not None:
            checkpoint = (cursor or Cursor()).model_copy()
            if max_value is not None:
                text = value_to_cursor_text(max_value)
                if incremental.kind == "timestamp":
                    checkpoint.last_sync_timestamp = text
                else:
                    checkpoint.last_id = text

        end_time = datetime.utcnow()
        logger.info(
            f"Synced {table.full_name}: {records_processed} records, "
            f"{bytes_transferred} bytes, {len(errors)} failed batch(es) "
            f"in {(end_time - start_time).total_seconds():.2f}s"
        )

        return TableSyncResult(
            table=table.full_name,
            mode=effective_mode,
            records_processed=records_processed,
            bytes_transferred=bytes_transferred,
            start_time=start_time,
            end_time=end_time,
            checkpoint=checkpoint,
            cursor_column=incremental.name if incremental else None,
            errors=errors,
        )
