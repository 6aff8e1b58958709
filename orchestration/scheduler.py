import logging
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.exceptions import WorkflowAlreadyRunningError
from orchestration.engine import WorkflowEngine
from schemas.workflow import DataSyncInput

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Recurring data sync runs, one APScheduler job per connection"""

    def __init__(self, engine: WorkflowEngine, scheduler: Optional[AsyncIOScheduler] = None):
        self.engine = engine
        self.scheduler = scheduler or AsyncIOScheduler()
        self._inputs: Dict[str, DataSyncInput] = {}

    @staticmethod
    def build_trigger(schedule_expression: Optional[str]):
        """Cron trigger from a crontab expression, else the default interval."""
        if schedule_expression:
            return CronTrigger.from_crontab(schedule_expression)
        return IntervalTrigger(minutes=settings.SCHEDULE_INTERVAL_MINUTES)

    async def run_sync_job(self, workflow_input: DataSyncInput):
        """Job to start one sync run"""
        logger.info(f"Scheduler: Starting sync of {workflow_input.connection_id}")
        try:
            workflow_id = await self.engine.start_sync(workflow_input)
            logger.info(f"Scheduler: Started workflow {workflow_id}")
        except WorkflowAlreadyRunningError as e:
            logger.warning(f"Scheduler: Skipping run, {e.message}")
        except Exception as e:
            logger.error(f"Scheduler: Sync job for {workflow_input.connection_id} failed - {e}")

    def schedule_sync(self, workflow_input: DataSyncInput, job_id: Optional[str] = None) -> str:
        job_id = job_id or f"sync-{workflow_input.connection_id}"
        trigger = self.build_trigger(workflow_input.sync_config.schedule_expression)
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=trigger,
            args=[workflow_input],
            id=job_id,
            replace_existing=True,
        )
        self._inputs[job_id] = workflow_input
        logger.info(f"Scheduled sync job {job_id} ({trigger})")
        return job_id

    def unschedule(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        self._inputs.pop(job_id, None)
        logger.info(f"Removed sync job {job_id}")

    def jobs(self) -> List[str]:
        return list(self._inputs)

    def start(self):
        """Start the scheduler"""
        self.scheduler.start()
        logger.info("Sync scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")
