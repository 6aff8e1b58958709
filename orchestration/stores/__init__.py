"""
Persistence of workflow state: checkpoints, statuses, catalogs and
quality reports.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from orchestration.stores.base import (
    CatalogSink,
    CheckpointStore,
    InMemoryCatalogSink,
    InMemoryCheckpointStore,
    InMemoryQualityReportSink,
    InMemoryStatusStore,
    QualityReportSink,
    StatusStore,
)
from orchestration.stores.sql import (
    SqlCatalogSink,
    SqlCheckpointStore,
    SqlQualityReportSink,
    SqlStatusStore,
)


@dataclass
class Stores:
    """Bundle of the stores a workflow writes to"""
    checkpoints: CheckpointStore = field(default_factory=InMemoryCheckpointStore)
    statuses: StatusStore = field(default_factory=InMemoryStatusStore)
    catalog: CatalogSink = field(default_factory=InMemoryCatalogSink)
    quality_reports: QualityReportSink = field(default_factory=InMemoryQualityReportSink)


def build_stores(backend: Optional[str] = None, session_maker: Optional[async_sessionmaker] = None) -> Stores:
    """Stores for ``backend`` ("sql" or "memory"; defaults to settings.STORE_BACKEND)."""
    backend = (backend or settings.STORE_BACKEND).lower()
    if backend == "memory":
        return Stores()
    if backend != "sql":
        raise ValueError(f"Unknown store backend: {backend}")

    if session_maker is None:
        from core.database import async_session_maker
        session_maker = async_session_maker

    return Stores(
        checkpoints=SqlCheckpointStore(session_maker),
        statuses=SqlStatusStore(session_maker),
        catalog=SqlCatalogSink(session_maker),
        quality_reports=SqlQualityReportSink(session_maker),
    )


__all__ = [
    "Stores",
    "build_stores",
    "CheckpointStore",
    "StatusStore",
    "CatalogSink",
    "QualityReportSink",
    "InMemoryCheckpointStore",
    "InMemoryStatusStore",
    "InMemoryCatalogSink",
    "InMemoryQualityReportSink",
    "SqlCheckpointStore",
    "SqlStatusStore",
    "SqlCatalogSink",
    "SqlQualityReportSink",
]
