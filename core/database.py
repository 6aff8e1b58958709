"""
Database engine and session factories with SQLAlchemy async.

The orchestration stores, the API and the scripts all share the
process-wide ``async_session_maker``. Tests and tools that need an
isolated database call ``build_session_maker`` with their own URL.
"""

from typing import AsyncIterator, Optional
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine; NullPool keeps connections per-task."""
    return create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=False,
        poolclass=NullPool,
        future=True,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_maker = build_session_maker(engine)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a database session (FastAPI dependency)."""
    async with async_session_maker() as session:
        yield session
