from sqlalchemy import Column, Integer, String, DateTime, BigInteger, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base


class WorkflowCheckpoint(Base):
    """
    Resume point of a data sync workflow.

    Purpose:
    - Resume a sync from the last completed table after a crash or pause
    - Carry per-table cursors so the resumed table continues incrementally

    Design:
    - One row per workflow_id, overwritten on every save
    - Deleted when the workflow completes successfully
    """
    __tablename__ = "workflow_checkpoints"

    workflow_id = Column(String(255), primary_key=True)

    table_index = Column(Integer, nullable=False, default=0)
    synced_tables = Column(JSONB, nullable=False, default=list)
    records_processed = Column(BigInteger, nullable=False, default=0)
    per_table_cursor = Column(JSONB, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class TableCursor(Base):
    """
    High-water mark of an incrementally synced table.

    Survives across runs, unlike WorkflowCheckpoint, so the next
    scheduled sync of the same connection only reads newer rows.
    """
    __tablename__ = "table_cursors"

    id = Column(Integer, primary_key=True, autoincrement=True)

    connection_id = Column(String(255), nullable=False)
    table_name = Column(String(512), nullable=False)

    cursor_column = Column(String(255), nullable=True)
    last_sync_timestamp = Column(String(64), nullable=True)
    last_id = Column(String(255), nullable=True)
    resume_token = Column(String(1024), nullable=True)

    last_records_processed = Column(Integer, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_table_cursor_connection_table", "connection_id", "table_name", unique=True),
    )
