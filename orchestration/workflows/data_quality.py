"""
Data quality workflow: run the configured checks over the requested
tables and persist the report.
"""

import logging
from typing import Any, Dict, Optional

from connectors.base import DataConnector
from core.config import settings
from core.retry import QUALITY_RETRY_POLICY
from models.base import WorkflowKind, WorkflowPhase
from orchestration.executors.discovery import list_filtered_tables
from orchestration.executors.quality import QualityExecutor
from orchestration.notifications import NotificationType
from orchestration.workflow import PhasedWorkflow
from schemas.quality import QualityReport
from schemas.workflow import DataQualityInput, NotificationConfig, TableFilter

logger = logging.getLogger(__name__)


class DataQualityWorkflow(PhasedWorkflow):
    """
    Quality assessment of one connection.

    Critical issues do not fail the run; they are carried in the report
    and force a notification even with ``only_on_failure``.
    """

    kind = WorkflowKind.DATA_QUALITY
    input_model = DataQualityInput
    completed_notification = NotificationType.QUALITY_CHECK_COMPLETED
    failed_notification = NotificationType.QUALITY_CHECK_FAILED
    default_retry_policy = QUALITY_RETRY_POLICY
    default_unit_timeout = settings.QUALITY_CHECK_TIMEOUT_SECONDS

    def __init__(self, workflow_input: Any, **kwargs):
        super().__init__(workflow_input, **kwargs)
        self.report: Optional[QualityReport] = None

    async def execute(self, connector: DataConnector) -> None:
        # ------ PHASE: discovering ------
        self.set_phase(WorkflowPhase.DISCOVERING)
        await self.persist_status()
        tables = await list_filtered_tables(
            connector, self.context, TableFilter(tables=self.input.tables)
        )

        found = {n for t in tables for n in (t.name, t.qualified_name, t.full_name)}
        for requested in self.input.tables:
            if requested not in found:
                self.context.add_message(f"Table {requested} not found", object_name=f"table:{requested}")
        self.context.check_budget()

        # ------ PHASE: validating ------
        self.set_phase(WorkflowPhase.VALIDATING)
        await self.persist_status()

        executor = QualityExecutor(
            connector,
            self.context,
            checks=self.input.checks,
            thresholds=self.input.thresholds,
            max_sample_rows=self.input.max_sample_rows,
        )
        self.report = await executor.run(tables)

        try:
            await self.context.run_unit(
                lambda: self.stores.quality_reports.save_report(self.report),
                "save quality report",
            )
        except Exception as e:
            self.context.record_error("quality_report", e)

    def should_notify(self, completed: bool, config: NotificationConfig) -> bool:
        if self.report is not None and self.report.critical_issues > 0:
            return True
        return super().should_notify(completed, config)

    def notification_payload(self) -> Dict[str, Any]:
        payload = super().notification_payload()
        if self.report is not None:
            payload["report"] = self.report.model_dump(mode="json")
        return payload
