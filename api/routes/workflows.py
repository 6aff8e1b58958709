"""
Workflow endpoints: start, signal, query and terminate workflow instances
"""

from fastapi import APIRouter, Depends, Query, Request, status
from typing import Optional
import logging

from api.dependencies import get_engine, get_scheduler, get_stores, verify_api_key
from models.base import WorkflowKind
from orchestration.engine import WorkflowEngine
from orchestration.scheduler import SyncScheduler
from orchestration.stores import Stores
from schemas.api import (
    ScheduleListResponse,
    ScheduleRequest,
    ScheduleResponse,
    WorkflowListResponse,
    WorkflowStartResponse,
)
from schemas.workflow import DataQualityInput, DataSyncInput, SchemaDiscoveryInput, WorkflowStatus

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Workflows"], dependencies=[Depends(verify_api_key)])


async def _start(engine: WorkflowEngine, kind: WorkflowKind, workflow_input, request: Request) -> WorkflowStartResponse:
    request_id = getattr(request.state, "request_id", "-")
    workflow = engine.create(kind, workflow_input)
    workflow_id = await engine.start(workflow)
    logger.info(f"[{request_id}] Started {kind.value} workflow {workflow_id}")
    return WorkflowStartResponse(
        workflow_id=workflow_id,
        kind=kind,
        status_url=f"/workflows/{workflow_id}",
    )


# ========== Start ==========

@router.post("/workflows/sync", response_model=WorkflowStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_sync(
    workflow_input: DataSyncInput,
    request: Request,
    engine: WorkflowEngine = Depends(get_engine),
):
    return await _start(engine, WorkflowKind.DATA_SYNC, workflow_input, request)


@router.post("/workflows/discovery", response_model=WorkflowStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_discovery(
    workflow_input: SchemaDiscoveryInput,
    request: Request,
    engine: WorkflowEngine = Depends(get_engine),
):
    return await _start(engine, WorkflowKind.SCHEMA_DISCOVERY, workflow_input, request)


@router.post("/workflows/quality", response_model=WorkflowStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_quality(
    workflow_input: DataQualityInput,
    request: Request,
    engine: WorkflowEngine = Depends(get_engine),
):
    return await _start(engine, WorkflowKind.DATA_QUALITY, workflow_input, request)


# ========== Signals ==========

@router.post("/workflows/{workflow_id}/pause", response_model=WorkflowStatus)
async def pause_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)):
    return engine.pause(workflow_id)


@router.post("/workflows/{workflow_id}/resume", response_model=WorkflowStatus)
async def resume_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)):
    return engine.resume(workflow_id)


@router.post("/workflows/{workflow_id}/cancel", response_model=WorkflowStatus)
async def cancel_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)):
    return engine.cancel(workflow_id)


@router.post("/workflows/{workflow_id}/terminate", response_model=WorkflowStatus)
async def terminate_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)):
    return await engine.terminate(workflow_id)


# ========== Queries ==========

@router.get("/workflows/{workflow_id}", response_model=WorkflowStatus)
async def get_workflow(workflow_id: str, engine: WorkflowEngine = Depends(get_engine)):
    """
    Status of a workflow instance.

    Live for instances known to this process, otherwise the last
    persisted status.
    """
    return await engine.query(workflow_id)


@router.get("/workflows", response_model=WorkflowListResponse)
async def list_workflows(
    connection_id: Optional[str] = Query(None, description="Filter by connection"),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of runs"),
    stores: Stores = Depends(get_stores),
    engine: WorkflowEngine = Depends(get_engine),
):
    # one entry per run; live statuses supersede their persisted copies
    live = {s.run_id: s for s in engine.list(connection_id)}
    persisted = await stores.statuses.list_statuses(connection_id=connection_id, limit=limit)
    merged = {s.run_id: s for s in persisted}
    merged.update(live)

    items = sorted(merged.values(), key=lambda s: s.metrics.start_time, reverse=True)[:limit]
    return WorkflowListResponse(items=items, total=len(items))


# ========== Schedules ==========

@router.post("/schedules/sync", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def schedule_sync(body: ScheduleRequest, scheduler: SyncScheduler = Depends(get_scheduler)):
    workflow_input = DataSyncInput.model_validate(body.model_dump(exclude={"job_id"}))
    job_id = scheduler.schedule_sync(workflow_input, job_id=body.job_id)
    return ScheduleResponse(
        job_id=job_id,
        connection_id=workflow_input.connection_id,
        schedule_expression=workflow_input.sync_config.schedule_expression,
    )


@router.get("/schedules", response_model=ScheduleListResponse)
async def list_schedules(scheduler: SyncScheduler = Depends(get_scheduler)):
    return ScheduleListResponse(jobs=scheduler.jobs())


@router.delete("/schedules/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(job_id: str, scheduler: SyncScheduler = Depends(get_scheduler)):
    scheduler.unschedule(job_id)
