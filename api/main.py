"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from api.routes import catalog, health, workflows
from core.config import settings
from core.exceptions import (
    ValidationError,
    WorkflowAlreadyRunningError,
    WorkflowNotFoundError,
)
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from orchestration.engine import WorkflowEngine
from orchestration.scheduler import SyncScheduler

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="ETL Orchestrator API",
    description="Workflow orchestration for data sync, schema discovery and data quality",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Workflow engine (stores and sync destination from STORE_BACKEND) and scheduler
app.state.engine = WorkflowEngine.for_backend()
app.state.scheduler = SyncScheduler(app.state.engine)


# Include routers
app.include_router(health.router)
app.include_router(workflows.router)
app.include_router(catalog.router)


# ========== Error mapping ==========

def _error_response(status_code: int, error) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": error.message, "error": error.to_dict()})


@app.exception_handler(WorkflowNotFoundError)
async def workflow_not_found_handler(request: Request, exc: WorkflowNotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(WorkflowAlreadyRunningError)
async def workflow_already_running_handler(request: Request, exc: WorkflowAlreadyRunningError):
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting ETL Orchestrator API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    logger.info(f"Store backend: {settings.STORE_BACKEND}")

    if settings.SCHEDULER_ENABLED:
        app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down ETL Orchestrator API")
    if settings.SCHEDULER_ENABLED:
        app.state.scheduler.stop()
    await app.state.engine.shutdown()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "ETL Orchestrator API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "workflows": "/workflows",
            "catalog": "/catalog/{connection_id}",
            "quality": "/quality/{connection_id}/latest",
            "schedules": "/schedules",
        }
    }
