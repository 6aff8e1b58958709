"""
Pydantic schemas for sync resume state
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict


class Cursor(BaseModel):
    """High-water mark of one table"""
    last_sync_timestamp: Optional[str] = None
    last_id: Optional[str] = None
    resume_token: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.last_sync_timestamp or self.last_id or self.resume_token)


class Checkpoint(BaseModel):
    """
    Sync resume point.

    table_index is the 0-based position of the last table whose
    processing returned; a resumed run starts again at that table.
    """
    workflow_id: str
    table_index: int = Field(0, ge=0)
    synced_tables: List[str] = Field(default_factory=list)
    records_processed: int = Field(0, ge=0)
    per_table_cursor: Dict[str, Cursor] = Field(default_factory=dict)
