"""
Store contracts for workflow state, plus in-memory implementations.

The in-memory stores back tests and single-process runs without a
database; the SQL stores in ``orchestration.stores.sql`` persist the
same shapes through SQLAlchemy.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
from schemas.catalog import DiscoveredCatalog
from schemas.checkpoint import Checkpoint, Cursor
from schemas.quality import QualityReport
from schemas.workflow import WorkflowStatus


class CheckpointStore(ABC):
    """Sync resume points (per workflow) and table cursors (per connection)"""

    @abstractmethod
    async def load(self, workflow_id: str) -> Optional[Checkpoint]:
        pass

    @abstractmethod
    async def save(self, checkpoint: Checkpoint) -> None:
        pass

    @abstractmethod
    async def clear(self, workflow_id: str) -> None:
        pass

    @abstractmethod
    async def load_cursors(self, connection_id: str) -> Dict[str, Cursor]:
        pass

    @abstractmethod
    async def save_cursor(
        self,
        connection_id: str,
        table: str,
        cursor: Cursor,
        cursor_column: Optional[str] = None,
        records_processed: int = 0,
    ) -> None:
        pass


class StatusStore(ABC):
    @abstractmethod
    async def save_status(self, status: WorkflowStatus) -> None:
        pass

    @abstractmethod
    async def get_status(self, workflow_id: str) -> Optional[WorkflowStatus]:
        pass

    @abstractmethod
    async def list_statuses(self, connection_id: Optional[str] = None, limit: int = 50) -> List[WorkflowStatus]:
        pass


class CatalogSink(ABC):
    @abstractmethod
    async def replace_snapshot(self, catalog: DiscoveredCatalog, workflow_id: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def get_snapshot(self, connection_id: str) -> Optional[DiscoveredCatalog]:
        pass


class QualityReportSink(ABC):
    @abstractmethod
    async def save_report(self, report: QualityReport) -> None:
        pass

    @abstractmethod
    async def latest_report(self, connection_id: str) -> Optional[QualityReport]:
        pass


# ============================================================================
# In-memory implementations
# ============================================================================

class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self):
        self.checkpoints: Dict[str, Checkpoint] = {}
        self.cursors: Dict[Tuple[str, str], Cursor] = {}
        self.save_count = 0

    async def load(self, workflow_id: str) -> Optional[Checkpoint]:
        checkpoint = self.checkpoints.get(workflow_id)
        return checkpoint.model_copy(deep=True) if checkpoint else None

    async def save(self, checkpoint: Checkpoint) -> None:
        self.checkpoints[checkpoint.workflow_id] = checkpoint.model_copy(deep=True)
        self.save_count += 1

    async def clear(self, workflow_id: str) -> None:
        self.checkpoints.pop(workflow_id, None)

    async def load_cursors(self, connection_id: str) -> Dict[str, Cursor]:
        return {
            table: cursor.model_copy()
            for (conn, table), cursor in self.cursors.items()
            if conn == connection_id
        }

    async def save_cursor(
        self,
        connection_id: str,
        table: str,
        cursor: Cursor,
        cursor_column: Optional[str] = None,
        records_processed: int = 0,
    ) -> None:
        self.cursors[(connection_id, table)] = cursor.model_copy()


class InMemoryStatusStore(StatusStore):
    """Run statuses keyed by run_id; reruns of one workflow_id accumulate."""

    def __init__(self):
        self.runs: Dict[str, WorkflowStatus] = {}

    async def save_status(self, status: WorkflowStatus) -> None:
        self.runs[status.run_id] = status.model_copy(deep=True)

    def latest(self, workflow_id: str) -> Optional[WorkflowStatus]:
        runs = [s for s in self.runs.values() if s.workflow_id == workflow_id]
        # ties go to the most recently saved run
        return max(reversed(runs), key=lambda s: s.metrics.start_time) if runs else None

    async def get_status(self, workflow_id: str) -> Optional[WorkflowStatus]:
        status = self.latest(workflow_id)
        return status.model_copy(deep=True) if status else None

    async def list_statuses(self, connection_id: Optional[str] = None, limit: int = 50) -> List[WorkflowStatus]:
        statuses = [
            s for s in self.runs.values()
            if connection_id is None or s.connection_id == connection_id
        ]
        statuses.sort(key=lambda s: s.metrics.start_time, reverse=True)
        return [s.model_copy(deep=True) for s in statuses[:limit]]


class InMemoryCatalogSink(CatalogSink):
    def __init__(self):
        self.snapshots: Dict[str, DiscoveredCatalog] = {}

    async def replace_snapshot(self, catalog: DiscoveredCatalog, workflow_id: Optional[str] = None) -> None:
        self.snapshots[catalog.connection_id] = catalog.model_copy(deep=True)

    async def get_snapshot(self, connection_id: str) -> Optional[DiscoveredCatalog]:
        return self.snapshots.get(connection_id)


class InMemoryQualityReportSink(QualityReportSink):
    def __init__(self):
        self.reports: List[QualityReport] = []

    async def save_report(self, report: QualityReport) -> None:
        self.reports.append(report.model_copy(deep=True))

    async def latest_report(self, connection_id: str) -> Optional[QualityReport]:
        for report in reversed(self.reports):
            if report.connection_id == connection_id:
                return report
        return None
