"""
Pause / resume / cancel token observed between units of work
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.exceptions import WorkflowCancelledError

logger = logging.getLogger(__name__)


class WorkflowControl:
    """
    Cooperative control flags of one workflow instance.

    Signals only set flags; the workflow observes them at the top of each
    unit (table, discovery object, quality check) through ``checkpoint``.
    A pause followed by a resume before the next observation point is
    therefore a no-op, and an in-flight unit is never interrupted.
    """

    def __init__(self, workflow_id: str = ""):
        self.workflow_id = workflow_id
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._cancelled = False

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def pause(self) -> None:
        if self._cancelled:
            return
        logger.info(f"Workflow {self.workflow_id} pause requested")
        self._resumed.clear()

    def resume(self) -> None:
        logger.info(f"Workflow {self.workflow_id} resume requested")
        self._resumed.set()

    def cancel(self) -> None:
        logger.info(f"Workflow {self.workflow_id} cancel requested")
        self._cancelled = True
        # Wake a paused workflow so it can observe the cancel
        self._resumed.set()

    async def checkpoint(
        self,
        on_pause: Optional[Callable[[], Awaitable[None]]] = None,
        on_resume: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        """
        Observation point between units of work.

        Raises:
            WorkflowCancelledError: A cancel signal has been received
        """
        self._raise_if_cancelled()
        if self._resumed.is_set():
            return

        logger.info(f"Workflow {self.workflow_id} paused")
        if on_pause is not None:
            await on_pause()
        await self._resumed.wait()
        self._raise_if_cancelled()
        logger.info(f"Workflow {self.workflow_id} resumed")
        if on_resume is not None:
            await on_resume()

    def _raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise WorkflowCancelledError(
                "Workflow cancelled by user",
                context={"workflow_id": self.workflow_id},
            )
