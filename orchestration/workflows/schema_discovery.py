"""
Schema discovery workflow
"""

import logging
from typing import Any, Dict, Optional

from connectors.base import DataConnector
from core.config import settings
from core.retry import DISCOVERY_RETRY_POLICY
from models.base import WorkflowKind, WorkflowPhase
from orchestration.executors.discovery import DiscoveryExecutor
from orchestration.notifications import NotificationType
from orchestration.workflow import PhasedWorkflow
from schemas.catalog import DiscoveredCatalog
from schemas.workflow import SchemaDiscoveryInput

logger = logging.getLogger(__name__)


class SchemaDiscoveryWorkflow(PhasedWorkflow):
    kind = WorkflowKind.SCHEMA_DISCOVERY
    input_model = SchemaDiscoveryInput
    completed_notification = NotificationType.DISCOVERY_COMPLETED
    failed_notification = NotificationType.DISCOVERY_FAILED
    default_retry_policy = DISCOVERY_RETRY_POLICY
    default_unit_timeout = settings.DISCOVERY_TIMEOUT_SECONDS

    def __init__(self, workflow_input: Any, **kwargs):
        super().__init__(workflow_input, **kwargs)
        self.catalog: Optional[DiscoveredCatalog] = None

    async def execute(self, connector: DataConnector) -> None:
        # ------ PHASE: discovering ------
        self.set_phase(WorkflowPhase.DISCOVERING)
        await self.persist_status()

        executor = DiscoveryExecutor(
            connector,
            self.context,
            self.input.discovery_config,
            catalog_sink=self.stores.catalog,
        )
        self.catalog = await executor.discover()

    def notification_payload(self) -> Dict[str, Any]:
        payload = super().notification_payload()
        if self.catalog is not None:
            payload["catalog"] = {
                "tables": len(self.catalog.tables),
                "columns": self.catalog.column_count,
                "relationships": self.catalog.relationship_count,
            }
        return payload
