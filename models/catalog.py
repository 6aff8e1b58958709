from sqlalchemy import Column, BigInteger, String, DateTime, Integer, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base


class CatalogSnapshot(Base):
    """
    Latest discovered catalog of a connection.

    Design:
    - One row per connection, replaced on every successful discovery
    - The full table list (columns, statistics, relationships) lives in JSONB
    """
    __tablename__ = "catalog_snapshots"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    connection_id = Column(String(255), nullable=False)
    workflow_id = Column(String(255), nullable=True)

    table_count = Column(Integer, default=0)
    column_count = Column(Integer, default=0)
    relationship_count = Column(Integer, default=0)
    tables = Column(JSONB, nullable=False, default=list)

    discovered_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_catalog_connection", "connection_id", unique=True),
    )
