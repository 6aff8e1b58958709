"""
PostgreSQL-backed stores using SQLAlchemy async sessions.

Each operation opens its own session from the session maker, so stores
can be shared by concurrently running workflows; their keys are
disjoint (workflow_id, connection_id + table).
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.exceptions import CatalogError, CheckpointError
from models.catalog import CatalogSnapshot
from models.checkpoint import TableCursor, WorkflowCheckpoint
from models.quality_report import QualityCheckRecord, QualityReportRecord
from models.workflow_run import WorkflowRun
from schemas.catalog import DiscoveredCatalog
from schemas.checkpoint import Checkpoint, Cursor
from schemas.quality import QualityReport
from schemas.workflow import WorkflowStatus
from orchestration.stores.base import CatalogSink, CheckpointStore, QualityReportSink, StatusStore
import logging

logger = logging.getLogger(__name__)


class SqlCheckpointStore(CheckpointStore):
    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def load(self, workflow_id: str) -> Optional[Checkpoint]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(WorkflowCheckpoint).where(WorkflowCheckpoint.workflow_id == workflow_id)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CheckpointError(
                "Failed to load checkpoint",
                context={"workflow_id": workflow_id, "operation": "load"},
                original_exception=e,
            )

        if row is None:
            return None
        return Checkpoint(
            workflow_id=row.workflow_id,
            table_index=row.table_index,
            synced_tables=list(row.synced_tables or []),
            records_processed=row.records_processed or 0,
            per_table_cursor={
                table: Cursor(**cursor) for table, cursor in (row.per_table_cursor or {}).items()
            },
        )

    async def save(self, checkpoint: Checkpoint) -> None:
        values = {
            "workflow_id": checkpoint.workflow_id,
            "table_index": checkpoint.table_index,
            "synced_tables": checkpoint.synced_tables,
            "records_processed": checkpoint.records_processed,
            "per_table_cursor": {
                table: cursor.model_dump() for table, cursor in checkpoint.per_table_cursor.items()
            },
            "updated_at": datetime.utcnow(),
        }
        stmt = insert(WorkflowCheckpoint).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["workflow_id"],
            set_={
                "table_index": stmt.excluded.table_index,
                "synced_tables": stmt.excluded.synced_tables,
                "records_processed": stmt.excluded.records_processed,
                "per_table_cursor": stmt.excluded.per_table_cursor,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            async with self.session_maker() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise CheckpointError(
                "Failed to save checkpoint",
                context={
                    "workflow_id": checkpoint.workflow_id,
                    "table_index": checkpoint.table_index,
                    "operation": "save",
                },
                original_exception=e,
            )
        logger.debug(f"Checkpoint saved for {checkpoint.workflow_id} at table {checkpoint.table_index}")

    async def clear(self, workflow_id: str) -> None:
        try:
            async with self.session_maker() as session:
                await session.execute(
                    delete(WorkflowCheckpoint).where(WorkflowCheckpoint.workflow_id == workflow_id)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise CheckpointError(
                "Failed to clear checkpoint",
                context={"workflow_id": workflow_id, "operation": "clear"},
                original_exception=e,
            )

    async def load_cursors(self, connection_id: str) -> Dict[str, Cursor]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(TableCursor).where(TableCursor.connection_id == connection_id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise CheckpointError(
                "Failed to load table cursors",
                context={"connection_id": connection_id, "operation": "load_cursors"},
                original_exception=e,
            )
        return {
            row.table_name: Cursor(
                last_sync_timestamp=row.last_sync_timestamp,
                last_id=row.last_id,
                resume_token=row.resume_token,
            )
            for row in rows
        }

    async def save_cursor(
        self,
        connection_id: str,
        table: str,
        cursor: Cursor,
        cursor_column: Optional[str] = None,
        records_processed: int = 0,
    ) -> None:
        stmt = insert(TableCursor).values(
            connection_id=connection_id,
            table_name=table,
            cursor_column=cursor_column,
            last_sync_timestamp=cursor.last_sync_timestamp,
            last_id=cursor.last_id,
            resume_token=cursor.resume_token,
            last_records_processed=records_processed,
            updated_at=datetime.utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["connection_id", "table_name"],
            set_={
                "cursor_column": stmt.excluded.cursor_column,
                "last_sync_timestamp": stmt.excluded.last_sync_timestamp,
                "last_id": stmt.excluded.last_id,
                "resume_token": stmt.excluded.resume_token,
                "last_records_processed": stmt.excluded.last_records_processed,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            async with self.session_maker() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise CheckpointError(
                "Failed to save table cursor",
                context={"connection_id": connection_id, "table": table, "operation": "save_cursor"},
                original_exception=e,
            )


class SqlStatusStore(StatusStore):
    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def save_status(self, status: WorkflowStatus) -> None:
        snapshot = status.model_dump(mode="json")
        values = {
            "run_id": status.run_id,
            "workflow_id": status.workflow_id,
            "connection_id": status.connection_id,
            "kind": status.kind,
            "phase": status.phase,
            "paused": status.paused,
            "total_tables": status.progress.total_tables,
            "processed_tables": status.progress.processed_tables,
            "records_processed": status.progress.records_processed,
            "current_object": status.progress.current_object,
            "started_at": status.metrics.start_time,
            "completed_at": status.metrics.end_time,
            "duration_seconds": status.metrics.duration_seconds,
            "bytes_transferred": status.metrics.bytes_transferred,
            "records_transferred": status.metrics.records_transferred,
            "tables_skipped": status.metrics.tables_skipped,
            "error_count": len(status.errors),
            "errors": snapshot["errors"],
            "status_snapshot": snapshot,
            "updated_at": datetime.utcnow(),
        }
        stmt = insert(WorkflowRun).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["run_id"],
            set_={k: stmt.excluded[k] for k in values if k not in ("run_id", "workflow_id", "started_at")},
        )
        async with self.session_maker() as session:
            await session.execute(stmt)
            await session.commit()

    async def get_status(self, workflow_id: str) -> Optional[WorkflowStatus]:
        """Status of the most recent run of ``workflow_id``."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(WorkflowRun)
                .where(WorkflowRun.workflow_id == workflow_id)
                .order_by(WorkflowRun.started_at.desc())
                .limit(1)
            )
            row = result.scalars().first()
        if row is None or not row.status_snapshot:
            return None
        return WorkflowStatus.model_validate(row.status_snapshot)

    async def list_statuses(self, connection_id: Optional[str] = None, limit: int = 50) -> List[WorkflowStatus]:
        query = select(WorkflowRun).order_by(WorkflowRun.started_at.desc()).limit(limit)
        if connection_id is not None:
            query = query.where(WorkflowRun.connection_id == connection_id)
        async with self.session_maker() as session:
            result = await session.execute(query)
            rows = result.scalars().all()
        return [WorkflowStatus.model_validate(r.status_snapshot) for r in rows if r.status_snapshot]


class SqlCatalogSink(CatalogSink):
    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def replace_snapshot(self, catalog: DiscoveredCatalog, workflow_id: Optional[str] = None) -> None:
        tables = [t.model_dump(mode="json", by_alias=True) for t in catalog.tables]
        stmt = insert(CatalogSnapshot).values(
            connection_id=catalog.connection_id,
            workflow_id=workflow_id,
            table_count=len(catalog.tables),
            column_count=catalog.column_count,
            relationship_count=catalog.relationship_count,
            tables=tables,
            discovered_at=catalog.discovered_at,
            updated_at=datetime.utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["connection_id"],
            set_={
                "workflow_id": stmt.excluded.workflow_id,
                "table_count": stmt.excluded.table_count,
                "column_count": stmt.excluded.column_count,
                "relationship_count": stmt.excluded.relationship_count,
                "tables": stmt.excluded.tables,
                "discovered_at": stmt.excluded.discovered_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            async with self.session_maker() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise CatalogError(
                "Failed to update catalog",
                context={"connection_id": catalog.connection_id, "tables": len(tables)},
                original_exception=e,
            )
        logger.info(f"Catalog updated for {catalog.connection_id}: {len(tables)} tables")

    async def get_snapshot(self, connection_id: str) -> Optional[DiscoveredCatalog]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(CatalogSnapshot).where(CatalogSnapshot.connection_id == connection_id)
            )
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return DiscoveredCatalog.model_validate({
            "connection_id": row.connection_id,
            "tables": row.tables or [],
            "discovered_at": row.discovered_at,
        })


class SqlQualityReportSink(QualityReportSink):
    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def save_report(self, report: QualityReport) -> None:
        record = QualityReportRecord(
            connection_id=report.connection_id,
            workflow_id=report.workflow_id,
            overall_score=report.overall_score,
            tables_checked=report.tables_checked,
            checks_run=report.checks_run,
            checks_passed=report.checks_passed,
            checks_failed=report.checks_failed,
            critical_issues=report.critical_issues,
            warnings=report.warnings,
            recommendations=report.recommendations,
            report=report.model_dump(mode="json"),
            generated_at=report.generated_at,
        )
        for table in report.tables:
            for check in table.checks:
                record.checks.append(QualityCheckRecord(
                    table_name=check.table,
                    column_name=check.column,
                    rule_name=check.rule_name,
                    check_type=check.check_type,
                    severity=check.severity,
                    passed=check.passed,
                    score=check.score,
                    threshold=check.threshold,
                    details=check.details.model_dump(mode="json"),
                ))
        async with self.session_maker() as session:
            session.add(record)
            await session.commit()
        logger.info(f"Quality report stored for {report.connection_id} (score={report.overall_score})")

    async def latest_report(self, connection_id: str) -> Optional[QualityReport]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(QualityReportRecord)
                .where(QualityReportRecord.connection_id == connection_id)
                .order_by(QualityReportRecord.generated_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return QualityReport.model_validate(row.report)
