"""
Per-workflow execution context handed to the executors
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from core.config import settings
from core.exceptions import ErrorBudgetExceededError, OrchestrationError
from core.retry import RetryPolicy, is_retryable, run_with_retry
from models.base import Severity
from orchestration.control import WorkflowControl
from schemas.workflow import ErrorEntry, WorkflowStatus

logger = logging.getLogger(__name__)


class WorkflowContext:
    """
    Mutable state shared by a workflow and its executors.

    Holds the status document, the control token, and the per-unit
    retry policy, timeout and error budget. Executors call ``observe``
    before each unit, wrap the unit in ``run_unit``, and report unit
    failures through ``record_error``.
    """

    def __init__(
        self,
        status: WorkflowStatus,
        control: WorkflowControl,
        retry_policy: RetryPolicy,
        unit_timeout: Optional[float] = None,
        error_budget: Optional[int] = None,
        on_pause: Optional[Callable[[], Awaitable[None]]] = None,
        on_resume: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.status = status
        self.control = control
        self.retry_policy = retry_policy
        self.unit_timeout = unit_timeout
        self.error_budget = settings.ERROR_BUDGET if error_budget is None else error_budget
        self._on_pause = on_pause
        self._on_resume = on_resume

    @property
    def workflow_id(self) -> str:
        return self.status.workflow_id

    @property
    def connection_id(self) -> str:
        return self.status.connection_id

    async def observe(self) -> None:
        """Observation point: honours pause and raises on cancel."""
        await self.control.checkpoint(on_pause=self._on_pause, on_resume=self._on_resume)

    def set_current(self, object_name: Optional[str]) -> None:
        self.status.progress.current_object = object_name

    async def run_unit(self, operation: Callable[[], Awaitable[Any]], description: str) -> Any:
        """Run one unit of work under the retry policy and timeout ceiling."""
        return await run_with_retry(
            operation,
            self.retry_policy,
            timeout=self.unit_timeout,
            description=f"[{self.workflow_id}] {description}",
        )

    def record_error(
        self,
        object_name: Optional[str],
        error: BaseException,
        retryable: Optional[bool] = None,
        severity: Severity = Severity.ERROR,
    ) -> ErrorEntry:
        """
        Append a unit failure to the error log.

        Raises:
            ErrorBudgetExceededError: The log is now longer than the budget
        """
        message = error.message if isinstance(error, OrchestrationError) else str(error)
        entry = ErrorEntry(
            object=object_name,
            message=message or type(error).__name__,
            retryable=is_retryable(error) if retryable is None else retryable,
            severity=severity,
            error_type=type(error).__name__,
        )
        self.status.errors.append(entry)

        logger.error(
            f"[{self.workflow_id}] {object_name or 'workflow'} failed: {entry.message}",
            extra={"error_context": error.to_dict() if isinstance(error, OrchestrationError) else {}}
        )

        self.check_budget()
        return entry

    def add_message(self, message: str, object_name: Optional[str] = None, retryable: bool = False) -> ErrorEntry:
        """Append a terminal entry that is not tied to a caught exception."""
        entry = ErrorEntry(object=object_name, message=message, retryable=retryable)
        self.status.errors.append(entry)
        return entry

    def check_budget(self) -> None:
        count = len(self.status.errors)
        if count > self.error_budget:
            raise ErrorBudgetExceededError(
                "Too many errors, aborting",
                context={"workflow_id": self.workflow_id},
                error_count=count,
                budget=self.error_budget,
            )
