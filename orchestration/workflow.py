"""
Workflow state machine shared by sync, discovery and quality workflows.

Phases: initializing -> discovering -> syncing -> validating ->
completed | failed, with an orthogonal ``paused`` flag. Subclasses
implement ``execute``; this class owns input validation, signal
handling, error-budget and cancellation outcomes, and finalization
(disconnect, end time, final status, notification).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from core.exceptions import (
    ErrorBudgetExceededError,
    OrchestrationError,
    ValidationError,
    WorkflowCancelledError,
)
from core.logging import bind_workflow, current_workflow_id
from core.retry import RetryPolicy, is_retryable
from connectors.base import DataConnector
from connectors.session import ConnectorFactory, SessionRegistry
from models.base import WorkflowKind, WorkflowPhase
from orchestration.context import WorkflowContext
from orchestration.control import WorkflowControl
from orchestration.notifications import Notification, NotificationType, Notifier
from orchestration.stores import Stores
from schemas.workflow import ErrorEntry, NotificationConfig, WorkflowStatus

logger = logging.getLogger(__name__)


class PhasedWorkflow(ABC):
    """
    One workflow instance.

    ``run`` always returns the final status; the outcome is its phase.
    Only ``asyncio.CancelledError`` (engine terminate) propagates, after
    finalization has run.
    """

    kind: WorkflowKind
    input_model: type
    completed_notification: NotificationType
    failed_notification: NotificationType
    default_retry_policy: RetryPolicy
    default_unit_timeout: float

    def __init__(
        self,
        workflow_input: Any,
        stores: Optional[Stores] = None,
        connector_factory: Optional[ConnectorFactory] = None,
        notifier: Optional[Notifier] = None,
        retry_policy: Optional[RetryPolicy] = None,
        unit_timeout: Optional[float] = None,
        error_budget: Optional[int] = None,
        workflow_id: Optional[str] = None,
    ):
        self.input = self._validate_input(workflow_input)
        self.workflow_id = workflow_id or self.input.workflow_id or self.default_workflow_id()
        self.stores = stores or Stores()
        self.sessions = SessionRegistry(connector_factory)
        self.notifier = notifier or Notifier()
        self.control = WorkflowControl(self.workflow_id)

        self._status = WorkflowStatus(
            workflow_id=self.workflow_id,
            connection_id=self.input.connection_id,
            kind=self.kind,
        )
        self.context = WorkflowContext(
            status=self._status,
            control=self.control,
            retry_policy=retry_policy or self.default_retry_policy,
            unit_timeout=unit_timeout if unit_timeout is not None else self.default_unit_timeout,
            error_budget=error_budget,
            on_pause=self._handle_pause,
            on_resume=self._handle_resume,
        )

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _validate_input(self, workflow_input: Any) -> BaseModel:
        if isinstance(workflow_input, self.input_model):
            return workflow_input
        try:
            return self.input_model.model_validate(workflow_input)
        except Exception as e:
            raise ValidationError(
                f"Invalid {self.kind.value} input",
                context={"field_errors": str(e)},
                original_exception=e,
            )

    def default_workflow_id(self) -> str:
        return f"{self.kind.value.replace('_', '-')}-{self.input.connection_id}"

    # ------------------------------------------------------------------
    # Signals and queries
    # ------------------------------------------------------------------

    def pause(self) -> None:
        self.control.pause()

    def resume(self) -> None:
        self.control.resume()

    def cancel(self) -> None:
        self.control.cancel()

    def status(self) -> WorkflowStatus:
        """Consistent snapshot; safe to call while the workflow runs."""
        snapshot = self._status.model_copy(deep=True)
        snapshot.paused = self.control.paused and not snapshot.is_terminal
        return snapshot

    @property
    def phase(self) -> WorkflowPhase:
        return self._status.phase

    def set_phase(self, phase: WorkflowPhase) -> None:
        logger.info(f"[{self.workflow_id}] {self._status.phase.value} -> {phase.value}")
        self._status.phase = phase

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @abstractmethod
    async def execute(self, connector: DataConnector) -> None:
        """Drive the active phases. Set FAILED to end unsuccessfully."""
        pass

    async def run(self) -> WorkflowStatus:
        token = bind_workflow(self.workflow_id)
        try:
            return await self._run()
        finally:
            current_workflow_id.reset(token)

    async def _run(self) -> WorkflowStatus:
        logger.info(
            f"Starting {self.kind.value} workflow {self.workflow_id} "
            f"for connection {self.input.connection_id}"
        )
        self._status.metrics.start_time = datetime.utcnow()

        try:
            # ------ PHASE: initializing ------
            await self.persist_status()
            await self.context.observe()
            connector = await self.sessions.acquire(self.input.connection)

            await self.execute(connector)

            if self._status.phase != WorkflowPhase.FAILED:
                self.set_phase(WorkflowPhase.COMPLETED)
                await self.on_completed()

        except WorkflowCancelledError:
            logger.info(f"Workflow {self.workflow_id} cancelled")
            self.set_phase(WorkflowPhase.FAILED)
            self.context.add_message("Workflow cancelled by user")

        except ErrorBudgetExceededError as e:
            logger.error(f"Workflow {self.workflow_id} aborted: {e.error_count} errors (budget {e.budget})")
            self.set_phase(WorkflowPhase.FAILED)
            self.context.add_message("Too many errors, aborting")

        except asyncio.CancelledError:
            logger.warning(f"Workflow {self.workflow_id} terminated")
            self.set_phase(WorkflowPhase.FAILED)
            self.context.add_message("Workflow terminated")
            raise

        except Exception as e:
            logger.error(f"Workflow {self.workflow_id} failed: {e}", exc_info=not isinstance(e, OrchestrationError))
            self.set_phase(WorkflowPhase.FAILED)
            self._status.errors.append(self._fatal_entry(e))

        finally:
            await self._finalize()

        logger.info(
            f"Workflow {self.workflow_id} finished: phase={self._status.phase.value}, "
            f"records={self._status.progress.records_processed}, errors={len(self._status.errors)}"
        )
        return self.status()

    def _fatal_entry(self, error: Exception) -> ErrorEntry:
        message = error.message if isinstance(error, OrchestrationError) else str(error)
        return ErrorEntry(
            message=message or type(error).__name__,
            retryable=is_retryable(error),
            error_type=type(error).__name__,
        )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def on_pause(self) -> None:
        """Called once when a pause is observed, before waiting."""
        pass

    async def on_completed(self) -> None:
        pass

    def should_notify(self, completed: bool, config: NotificationConfig) -> bool:
        return not (completed and config.only_on_failure)

    def notification_payload(self) -> Dict[str, Any]:
        return {"status": self._status.model_dump(mode="json")}

    async def _handle_pause(self) -> None:
        self._status.paused = True
        await self.on_pause()
        await self.persist_status()

    async def _handle_resume(self) -> None:
        self._status.paused = False
        await self.persist_status()

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def persist_status(self) -> None:
        """Status writes are best-effort; failures never change the outcome."""
        try:
            await self.stores.statuses.save_status(self._status)
        except Exception as e:
            logger.warning(f"Failed to persist status of {self.workflow_id}: {e}")

    async def _finalize(self) -> None:
        await self.sessions.release_all()

        self._status.paused = False
        self._status.progress.current_object = None
        self._status.metrics.end_time = datetime.utcnow()
        await self.persist_status()

        config = self.input.notification
        if config is None:
            return
        completed = self._status.phase == WorkflowPhase.COMPLETED
        if not self.should_notify(completed, config):
            return

        notification = Notification(
            type=self.completed_notification if completed else self.failed_notification,
            connection_id=self.input.connection_id,
            workflow_id=self.workflow_id,
            payload=self.notification_payload(),
        )
        await self.notifier.send(notification, config)
