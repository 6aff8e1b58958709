"""
Health check endpoint with database and workflow status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db, get_engine
from models.base import WorkflowPhase
from orchestration.engine import WorkflowEngine
from schemas.api import HealthCheckResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])

RECENT_RUNS_LIMIT = 20


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Number of running workflows
    - Outcome of the most recent persisted runs
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    workflows_running = sum(1 for s in engine.list() if not s.is_terminal)

    recent = []
    try:
        recent = await engine.stores.statuses.list_statuses(limit=RECENT_RUNS_LIMIT)
    except Exception as e:
        logger.error(f"Failed to fetch recent workflow runs: {str(e)}")

    finished = [s for s in recent if s.is_terminal]

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        workflows_running=workflows_running,
        recent_runs=len(finished),
        failed_runs=sum(1 for s in finished if s.phase == WorkflowPhase.FAILED),
    )
