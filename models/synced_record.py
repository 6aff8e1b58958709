from sqlalchemy import Column, BigInteger, String, DateTime, Integer, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base


class SyncedRecord(Base):
    """
    Row copied from a source table.

    Design:
    - Rows are stored as JSONB, one record per (connection, table, record_key)
    - record_key is built from primary key values, or a content hash
      when the table has none
    - Upserts on the unique index make batch re-delivery idempotent
    """
    __tablename__ = "synced_records"

    id = Column(BigInteger, primary_key=True, autoincrement=True)

    connection_id = Column(String(255), nullable=False)
    table_name = Column(String(512), nullable=False)
    record_key = Column(String(512), nullable=False)

    payload = Column(JSONB, nullable=False)
    payload_bytes = Column(Integer, default=0)
    workflow_id = Column(String(255), nullable=True)

    synced_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_synced_record_key", "connection_id", "table_name", "record_key", unique=True),
        Index("idx_synced_record_table", "connection_id", "table_name"),
    )
