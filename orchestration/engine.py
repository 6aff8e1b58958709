"""
In-process workflow engine.

Runs each workflow instance as its own asyncio task and routes signals
(pause / resume / cancel), status queries and terminate requests to it
by workflow id.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from connectors.session import ConnectorFactory
from core.config import settings
from core.exceptions import ValidationError, WorkflowAlreadyRunningError, WorkflowNotFoundError
from models.base import WorkflowKind
from orchestration.loaders import BatchSink, build_sink
from orchestration.notifications import Notifier
from orchestration.stores import Stores, build_stores
from orchestration.workflow import PhasedWorkflow
from orchestration.workflows import DataQualityWorkflow, DataSyncWorkflow, SchemaDiscoveryWorkflow
from schemas.workflow import WorkflowStatus

logger = logging.getLogger(__name__)

WORKFLOW_TYPES = {
    WorkflowKind.DATA_SYNC: DataSyncWorkflow,
    WorkflowKind.SCHEMA_DISCOVERY: SchemaDiscoveryWorkflow,
    WorkflowKind.DATA_QUALITY: DataQualityWorkflow,
}

SIGNALS = ("pause", "resume", "cancel")


class WorkflowEngine:
    """
    Registry of running workflow instances.

    Workflow ids are unique among running instances; a finished
    instance may be started again under the same id (a sync rerun picks
    up its checkpoint). Only the most recent ``retain_finished`` finished
    instances stay in memory; queries for older ones read the status
    store.
    """

    def __init__(
        self,
        stores: Optional[Stores] = None,
        connector_factory: Optional[ConnectorFactory] = None,
        notifier: Optional[Notifier] = None,
        sink: Optional[BatchSink] = None,
        retain_finished: Optional[int] = None,
        **workflow_options,
    ):
        self.stores = stores or Stores()
        self.connector_factory = connector_factory
        self.notifier = notifier or Notifier()
        self.sink = sink
        self.retain_finished = settings.ENGINE_RETAINED_FINISHED if retain_finished is None else retain_finished
        self.workflow_options = workflow_options
        self._workflows: Dict[str, PhasedWorkflow] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    @classmethod
    def for_backend(
        cls,
        backend: Optional[str] = None,
        session_maker: Optional[async_sessionmaker] = None,
        **kwargs,
    ) -> "WorkflowEngine":
        """Engine whose stores and sync destination share one backend."""
        return cls(
            stores=build_stores(backend, session_maker),
            sink=build_sink(backend, session_maker),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def create(self, kind: WorkflowKind, workflow_input: Any, **options) -> PhasedWorkflow:
        """Build (and validate) a workflow instance wired to this engine's stores."""
        kind = WorkflowKind(kind)
        if kind == WorkflowKind.DATA_SYNC and self.sink is not None:
            options.setdefault("sink", self.sink)
        workflow_class = WORKFLOW_TYPES[kind]
        return workflow_class(
            workflow_input,
            stores=self.stores,
            connector_factory=self.connector_factory,
            notifier=self.notifier,
            **{**self.workflow_options, **options},
        )

    async def start(self, workflow: PhasedWorkflow) -> str:
        workflow_id = workflow.workflow_id
        if self.is_running(workflow_id):
            raise WorkflowAlreadyRunningError(
                f"Workflow {workflow_id} is already running",
                context={"workflow_id": workflow_id},
            )

        self._workflows.pop(workflow_id, None)
        self._tasks.pop(workflow_id, None)
        self._workflows[workflow_id] = workflow
        task = asyncio.create_task(workflow.run(), name=f"workflow-{workflow_id}")
        task.add_done_callback(self._on_task_done)
        self._tasks[workflow_id] = task

        logger.info(f"Started {workflow.kind.value} workflow {workflow_id}")
        return workflow_id

    async def start_sync(self, workflow_input: Any, **options) -> str:
        return await self.start(self.create(WorkflowKind.DATA_SYNC, workflow_input, **options))

    async def start_discovery(self, workflow_input: Any, **options) -> str:
        return await self.start(self.create(WorkflowKind.SCHEMA_DISCOVERY, workflow_input, **options))

    async def start_quality(self, workflow_input: Any, **options) -> str:
        return await self.start(self.create(WorkflowKind.DATA_QUALITY, workflow_input, **options))

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._evict_finished()
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Workflow task {task.get_name()} crashed: {error}")

    def _evict_finished(self) -> None:
        """Drop the oldest finished instances beyond ``retain_finished``."""
        finished = [wid for wid, task in self._tasks.items() if task.done()]
        for workflow_id in finished[:max(len(finished) - self.retain_finished, 0)]:
            self._tasks.pop(workflow_id)
            self._workflows.pop(workflow_id, None)
            logger.debug(f"Evicted finished workflow {workflow_id}")

    # ------------------------------------------------------------------
    # Signals and queries
    # ------------------------------------------------------------------

    def get(self, workflow_id: str) -> PhasedWorkflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(
                f"Workflow {workflow_id} not found",
                context={"workflow_id": workflow_id},
            )
        return workflow

    def is_running(self, workflow_id: str) -> bool:
        task = self._tasks.get(workflow_id)
        return task is not None and not task.done()

    def signal(self, workflow_id: str, signal: str) -> WorkflowStatus:
        if signal not in SIGNALS:
            raise ValidationError(
                f"Unknown signal: {signal}",
                context={"workflow_id": workflow_id, "allowed": list(SIGNALS)},
            )
        workflow = self.get(workflow_id)
        handler: Callable[[], None] = getattr(workflow, signal)
        handler()
        logger.info(f"Signal '{signal}' sent to workflow {workflow_id}")
        return workflow.status()

    def pause(self, workflow_id: str) -> WorkflowStatus:
        return self.signal(workflow_id, "pause")

    def resume(self, workflow_id: str) -> WorkflowStatus:
        return self.signal(workflow_id, "resume")

    def cancel(self, workflow_id: str) -> WorkflowStatus:
        return self.signal(workflow_id, "cancel")

    async def query(self, workflow_id: str) -> WorkflowStatus:
        """Live status of a known instance, else the last persisted status."""
        workflow = self._workflows.get(workflow_id)
        if workflow is not None:
            return workflow.status()

        status = await self.stores.statuses.get_status(workflow_id)
        if status is None:
            raise WorkflowNotFoundError(
                f"Workflow {workflow_id} not found",
                context={"workflow_id": workflow_id},
            )
        return status

    def list(self, connection_id: Optional[str] = None) -> List[WorkflowStatus]:
        return [
            w.status() for w in self._workflows.values()
            if connection_id is None or w.input.connection_id == connection_id
        ]

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def result(self, workflow_id: str, timeout: Optional[float] = None) -> WorkflowStatus:
        """Wait for an instance to finish and return its final status."""
        if workflow_id not in self._workflows:
            # evicted after finishing, or never known here
            return await self.query(workflow_id)
        workflow = self._workflows[workflow_id]
        task = self._tasks[workflow_id]
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        return workflow.status()

    async def terminate(self, workflow_id: str) -> WorkflowStatus:
        """Force-stop an instance; finalization still runs inside the task."""
        workflow = self.get(workflow_id)
        task = self._tasks[workflow_id]
        if not task.done():
            logger.warning(f"Terminating workflow {workflow_id}")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return workflow.status()

    async def shutdown(self) -> None:
        for workflow_id in [w for w in self._tasks if self.is_running(w)]:
            await self.terminate(workflow_id)
