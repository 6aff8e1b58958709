"""
FastAPI dependencies
"""

from typing import AsyncIterator, Optional

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import async_session_maker
from orchestration.engine import WorkflowEngine
from orchestration.scheduler import SyncScheduler
from orchestration.stores import Stores


async def get_db() -> AsyncIterator[AsyncSession]:
    async with async_session_maker() as session:
        yield session


def get_engine(request: Request) -> WorkflowEngine:
    return request.app.state.engine


def get_stores(request: Request) -> Stores:
    return request.app.state.engine.stores


def get_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Require X-API-Key when API_KEY is configured."""
    if settings.API_KEY and x_api_key != settings.API_KEY:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")
