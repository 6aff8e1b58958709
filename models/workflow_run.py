from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Float, Integer, Boolean, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base, WorkflowKind, WorkflowPhase


class WorkflowRun(Base):
    """
    Persisted status of one workflow execution.

    Purpose:
    - Audit trail of all sync, discovery and quality runs; reruns under
      the same workflow_id each get their own row
    - Status queries that outlive the in-process engine
    - Error log inspection after the fact
    """
    __tablename__ = "workflow_runs"

    run_id = Column(String(64), primary_key=True)
    workflow_id = Column(String(255), nullable=False)
    connection_id = Column(String(255), nullable=False, index=True)
    kind = Column(Enum(WorkflowKind), nullable=False, index=True)

    phase = Column(Enum(WorkflowPhase), default=WorkflowPhase.INITIALIZING, nullable=False, index=True)
    paused = Column(Boolean, default=False, nullable=False)

    # Progress
    total_tables = Column(Integer, default=0)
    processed_tables = Column(Integer, default=0)
    records_processed = Column(BigInteger, default=0)
    current_object = Column(String(512), nullable=True)

    # Metrics
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    bytes_transferred = Column(BigInteger, default=0)
    records_transferred = Column(BigInteger, default=0)
    tables_skipped = Column(Integer, default=0)

    # Error log and the full status document
    error_count = Column(Integer, default=0)
    errors = Column(JSONB, nullable=True)
    status_snapshot = Column(JSONB, nullable=True)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_workflow_run_connection_started", "connection_id", "started_at"),
        Index("idx_workflow_run_workflow_started", "workflow_id", "started_at"),
        Index("idx_workflow_run_phase", "phase", "started_at"),
    )
