"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime
from models.base import WorkflowKind
from schemas.workflow import DataSyncInput, WorkflowStatus


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    workflows_running: int = 0
    recent_runs: int = 0
    failed_runs: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.recent_runs and self.failed_runs >= self.recent_runs:
            self.status = "unhealthy"
        elif self.failed_runs:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "workflows_running": 2,
                "recent_runs": 12,
                "failed_runs": 0,
            }
        }


# ============================================================================
# Workflow Schemas
# ============================================================================

class WorkflowStartResponse(BaseModel):
    """Returned when a workflow instance is started"""
    workflow_id: str
    kind: WorkflowKind
    status_url: str

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "workflow_id": "data-sync-warehouse",
                "kind": "data_sync",
                "status_url": "/workflows/data-sync-warehouse",
            }
        }


class WorkflowListResponse(BaseModel):
    items: List[WorkflowStatus]
    total: int


# ============================================================================
# Schedule Schemas
# ============================================================================

class ScheduleRequest(DataSyncInput):
    """A sync input plus an optional explicit job id"""
    job_id: Optional[str] = None


class ScheduleResponse(BaseModel):
    job_id: str
    connection_id: str
    schedule_expression: Optional[str] = None


class ScheduleListResponse(BaseModel):
    jobs: List[str]
