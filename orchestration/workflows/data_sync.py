"""
Data sync workflow: discover tables, sync them one by one with
checkpoints, then validate the result.
"""

import logging
from typing import Any, Dict, List, Optional

from connectors.base import DataConnector
from core.config import settings
from core.retry import SYNC_RETRY_POLICY
from models.base import WorkflowKind, WorkflowPhase
from orchestration.executors.discovery import list_filtered_tables
from orchestration.executors.quality import QualityExecutor
from orchestration.executors.sync import SyncExecutor
from orchestration.loaders.batch_sink import BatchSink
from orchestration.notifications import NotificationType
from orchestration.workflow import PhasedWorkflow
from schemas.catalog import TableDescriptor
from schemas.checkpoint import Checkpoint, Cursor
from schemas.quality import QualityChecksConfig, QualityReport
from schemas.sync import TableSyncResult
from schemas.workflow import DataSyncInput

logger = logging.getLogger(__name__)

VALIDATION_CHECKS = QualityChecksConfig(
    completeness=True,
    uniqueness=True,
    validity=False,
    timeliness=False,
)


class DataSyncWorkflow(PhasedWorkflow):
    """
    Copy the filtered tables of one connection into a BatchSink.

    A full checkpoint is written every ``checkpoint_interval`` tables
    and whenever a pause is observed. A rerun with the same workflow id
    resumes at the checkpoint's ``table_index`` with its cursors.
    """

    kind = WorkflowKind.DATA_SYNC
    input_model = DataSyncInput
    completed_notification = NotificationType.SYNC_COMPLETED
    failed_notification = NotificationType.SYNC_FAILED
    default_retry_policy = SYNC_RETRY_POLICY
    default_unit_timeout = settings.SYNC_TABLE_TIMEOUT_SECONDS

    def __init__(
        self,
        workflow_input: Any,
        sink: Optional[BatchSink] = None,
        checkpoint_interval: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(workflow_input, **kwargs)
        self.sink = sink
        self.checkpoint_interval = checkpoint_interval or settings.CHECKPOINT_INTERVAL
        self.tables: List[TableDescriptor] = []
        self.cursors: Dict[str, Cursor] = {}
        self.synced_tables: List[str] = []
        self.quality_report: Optional[QualityReport] = None
        self._table_index = 0

    async def execute(self, connector: DataConnector) -> None:
        config = self.input.sync_config

        # ------ PHASE: discovering ------
        self.set_phase(WorkflowPhase.DISCOVERING)
        await self.persist_status()
        self.tables = await list_filtered_tables(connector, self.context, config)
        self._status.progress.total_tables = len(self.tables)

        # ------ PHASE: syncing ------
        self.set_phase(WorkflowPhase.SYNCING)
        await self.persist_status()
        start_index = await self._restore()

        executor = SyncExecutor(
            connector,
            self.input.connection_id,
            sink=self.sink,
            batch_size=config.batch_size,
            workflow_id=self.workflow_id,
        )

        for index in range(start_index, len(self.tables)):
            await self.context.observe()
            table = self.tables[index]
            name = table.full_name
            self.context.set_current(f"table:{name}")

            try:
                result = await self.context.run_unit(
                    lambda: executor.sync_table(table, config.mode, self.cursors.get(name)),
                    f"sync {name}",
                )
            except Exception as e:
                self._status.metrics.tables_skipped += 1
                self._advance(index)
                self.context.record_error(f"table:{name}", e)
            else:
                self._advance(index)
                await self._apply_result(name, result)

            if (index + 1) % self.checkpoint_interval == 0:
                await self.save_checkpoint()

        self.context.set_current(None)
        await self.persist_status()

        # ------ PHASE: validating ------
        if self._status.errors or not config.validate_quality or not self.synced_tables:
            return

        self.set_phase(WorkflowPhase.VALIDATING)
        await self.persist_status()
        synced = set(self.synced_tables)
        validator = QualityExecutor(
            connector,
            self.context,
            checks=VALIDATION_CHECKS,
            track_tables=False,
        )
        self.quality_report = await validator.run(
            [t for t in self.tables if t.full_name in synced]
        )

        if self.quality_report.critical_issues > 0:
            logger.warning(
                f"[{self.workflow_id}] Validation found {self.quality_report.critical_issues} critical issue(s)"
            )
            self.context.add_message("Data quality validation failed", object_name="validation")
            self.set_phase(WorkflowPhase.FAILED)

    # ------------------------------------------------------------------
    # Progress and cursors
    # ------------------------------------------------------------------

    def _advance(self, index: int) -> None:
        self._table_index = index
        self._status.progress.processed_tables = index + 1

    async def _apply_result(self, name: str, result: TableSyncResult) -> None:
        progress = self._status.progress
        metrics = self._status.metrics
        progress.records_processed += result.records_processed
        metrics.records_transferred += result.records_processed
        metrics.bytes_transferred += result.bytes_transferred

        if result.checkpoint is not None:
            self.cursors[name] = result.checkpoint
            try:
                await self.stores.checkpoints.save_cursor(
                    self.input.connection_id,
                    name,
                    result.checkpoint,
                    cursor_column=result.cursor_column,
                    records_processed=result.records_processed,
                )
            except Exception as e:
                self.context.record_error(f"cursor:{name}", e)

        if name not in self.synced_tables:
            self.synced_tables.append(name)

        for batch_error in result.errors:
            self.context.add_message(
                f"Batch {batch_error.batch_index} failed ({batch_error.records_affected} records): "
                f"{batch_error.error}",
                object_name=f"table:{name}",
            )
        if result.errors:
            self.context.check_budget()

    async def _restore(self) -> int:
        """Load cursors and the resume point; returns the first table index."""
        try:
            self.cursors = await self.stores.checkpoints.load_cursors(self.input.connection_id)
        except Exception as e:
            self.context.record_error("cursors", e)

        try:
            checkpoint = await self.stores.checkpoints.load(self.workflow_id)
        except Exception as e:
            self.context.record_error("checkpoint", e)
            checkpoint = None

        if checkpoint is None:
            return 0

        start_index = min(checkpoint.table_index, len(self.tables))
        self.cursors.update(checkpoint.per_table_cursor)
        self.synced_tables = list(checkpoint.synced_tables)
        self._table_index = start_index
        self._status.progress.processed_tables = start_index
        self._status.progress.records_processed = checkpoint.records_processed

        logger.info(
            f"[{self.workflow_id}] Resuming at table {start_index}/{len(self.tables)} "
            f"({checkpoint.records_processed} records already processed)"
        )
        return start_index

    def build_checkpoint(self) -> Checkpoint:
        return Checkpoint(
            workflow_id=self.workflow_id,
            table_index=self._table_index,
            synced_tables=list(self.synced_tables),
            records_processed=self._status.progress.records_processed,
            per_table_cursor={name: cursor.model_copy() for name, cursor in self.cursors.items()},
        )

    async def save_checkpoint(self) -> None:
        checkpoint = self.build_checkpoint()
        try:
            await self.stores.checkpoints.save(checkpoint)
            logger.info(f"[{self.workflow_id}] Checkpoint saved at table index {checkpoint.table_index}")
        except Exception as e:
            self.context.record_error("checkpoint", e)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def on_pause(self) -> None:
        await self.save_checkpoint()

    async def on_completed(self) -> None:
        try:
            await self.stores.checkpoints.clear(self.workflow_id)
        except Exception as e:
            logger.warning(f"Failed to clear checkpoint of {self.workflow_id}: {e}")

    def notification_payload(self) -> Dict[str, Any]:
        payload = super().notification_payload()
        if self.quality_report is not None:
            payload["report"] = self.quality_report.model_dump(mode="json")
        return payload
