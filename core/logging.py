"""
Logging configuration.

Every record handled by the root handler carries a ``workflow_id``
field: the id bound with ``bind_workflow`` in the emitting task, or
``-`` outside any workflow. asyncio tasks copy the context they are
created in, so connector and executor logs pick up the id of the
workflow that called them.
"""

import logging
import sys
from contextvars import ContextVar, Token
from typing import Optional

from core.config import settings

current_workflow_id: ContextVar[Optional[str]] = ContextVar("current_workflow_id", default=None)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(workflow_id)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "asyncpg", "apscheduler", "httpx")


def bind_workflow(workflow_id: Optional[str]) -> Token:
    """Tag records logged from the current context with ``workflow_id``."""
    return current_workflow_id.set(workflow_id)


class WorkflowIdFilter(logging.Filter):
    """Fill ``record.workflow_id`` unless the caller passed one in ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "workflow_id", None) is None:
            record.workflow_id = current_workflow_id.get() or "-"
        return True


def build_handler(stream=None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(WorkflowIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(level: Optional[str] = None):
    """Configure application logging; ``level`` overrides settings.LOG_LEVEL"""
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(handlers=[build_handler()])
    logging.getLogger().setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level")
