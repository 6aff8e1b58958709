"""
Pydantic schemas for table sync results
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from models.base import SyncMode
from schemas.checkpoint import Cursor


class BatchError(BaseModel):
    batch_index: int
    error: str
    records_affected: int


class TableSyncResult(BaseModel):
    """
    Outcome of syncing one table.

    records_processed only counts rows of batches the sink accepted;
    checkpoint is set in incremental mode only.
    """
    table: str
    mode: SyncMode
    records_processed: int = 0
    bytes_transferred: int = 0
    start_time: datetime
    end_time: Optional[datetime] = None
    checkpoint: Optional[Cursor] = None
    cursor_column: Optional[str] = None
    errors: List[BatchError] = Field(default_factory=list)
