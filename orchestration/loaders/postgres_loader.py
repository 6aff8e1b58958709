"""
Load synced batches into PostgreSQL with upsert logic (idempotency)
"""

import hashlib
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from models.synced_record import SyncedRecord
from orchestration.loaders.batch_sink import BatchSink
import logging

logger = logging.getLogger(__name__)


def serialize_row(row: Dict[str, Any]) -> str:
    """Canonical JSON text of a row; non-JSON values are stringified."""
    return json.dumps(row, sort_keys=True, default=str, separators=(",", ":"))


def record_key(row: Dict[str, Any], key_columns: Optional[List[str]], serialized: str) -> str:
    """Primary key values joined with '|', or a content hash without a key."""
    if key_columns and all(row.get(c) is not None for c in key_columns):
        return "|".join(str(row[c]) for c in key_columns)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class PostgresBatchSink(BatchSink):
    """
    Upsert source rows into ``synced_records``.

    Ensures:
    - No duplicate rows when a batch is re-delivered
    - Rows changed at the source overwrite the stored payload
    - One transaction per batch
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def write_batch(
        self,
        connection_id: str,
        table: str,
        rows: List[Dict[str, Any]],
        key_columns: Optional[List[str]] = None,
        workflow_id: Optional[str] = None,
    ) -> int:
        """
        Upsert one batch.

        Returns:
            Size in bytes of the serialized payloads written
        """
        if not rows:
            return 0

        values = {}
        total_bytes = 0
        now = datetime.utcnow()
        for row in rows:
            serialized = serialize_row(row)
            size = len(serialized.encode("utf-8"))
            key = record_key(row, key_columns, serialized)
            # Last occurrence wins within a batch; ON CONFLICT cannot touch a row twice
            values[key] = {
                "connection_id": connection_id,
                "table_name": table,
                "record_key": key,
                "payload": json.loads(serialized),
                "payload_bytes": size,
                "workflow_id": workflow_id,
                "synced_at": now,
            }
            total_bytes += size

        stmt = insert(SyncedRecord).values(list(values.values()))
        stmt = stmt.on_conflict_do_update(
            index_elements=["connection_id", "table_name", "record_key"],
            set_={
                "payload": stmt.excluded.payload,
                "payload_bytes": stmt.excluded.payload_bytes,
                "workflow_id": stmt.excluded.workflow_id,
                "synced_at": stmt.excluded.synced_at,
            },
        )

        async with self.session_maker() as session:
            await session.execute(stmt)
            await session.commit()

        logger.info(f"Loaded {len(values)} records from {connection_id}:{table} ({total_bytes} bytes)")
        return total_bytes
