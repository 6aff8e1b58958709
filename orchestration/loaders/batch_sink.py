"""
Destination contract for synced row batches
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from core.config import settings
import logging

logger = logging.getLogger(__name__)


class BatchSink(ABC):
    """
    Receives batches of rows read from a source table.

    ``write_batch`` returns the number of bytes it accounted for. A sink
    raises to reject the batch; the sync executor records the failure and
    carries on with the next batch. Writes must be idempotent, since a
    resumed sync re-delivers the table it was interrupted in.
    """

    @abstractmethod
    async def write_batch(
        self,
        connection_id: str,
        table: str,
        rows: List[Dict[str, Any]],
        key_columns: Optional[List[str]] = None,
        workflow_id: Optional[str] = None,
    ) -> int:
        pass


class EstimatingBatchSink(BatchSink):
    """
    Sink that only accounts for rows.

    Bytes are a flat per-record estimate, not a measurement.
    """

    def __init__(self, bytes_per_record: Optional[int] = None):
        self.bytes_per_record = bytes_per_record or settings.BYTES_PER_RECORD_ESTIMATE
        self.batches_written = 0
        self.records_written = 0

    async def write_batch(
        self,
        connection_id: str,
        table: str,
        rows: List[Dict[str, Any]],
        key_columns: Optional[List[str]] = None,
        workflow_id: Optional[str] = None,
    ) -> int:
        self.batches_written += 1
        self.records_written += len(rows)
        logger.debug(f"Accepted batch of {len(rows)} rows from {connection_id}:{table}")
        return len(rows) * self.bytes_per_record
