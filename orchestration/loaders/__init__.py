"""
Destinations for synced row batches.

Modules:
    batch_sink: BatchSink contract and the estimating sink
    postgres_loader: Idempotent JSONB upserts into synced_records
"""

from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from orchestration.loaders.batch_sink import BatchSink, EstimatingBatchSink
from orchestration.loaders.postgres_loader import PostgresBatchSink


def build_sink(backend: Optional[str] = None, session_maker: Optional[async_sessionmaker] = None) -> BatchSink:
    """Sync destination for ``backend``: synced_records for "sql", counting only for "memory"."""
    backend = (backend or settings.STORE_BACKEND).lower()
    if backend == "memory":
        return EstimatingBatchSink()
    if backend != "sql":
        raise ValueError(f"Unknown store backend: {backend}")

    if session_maker is None:
        from core.database import async_session_maker
        session_maker = async_session_maker
    return PostgresBatchSink(session_maker)


__all__ = ["BatchSink", "EstimatingBatchSink", "PostgresBatchSink", "build_sink"]
