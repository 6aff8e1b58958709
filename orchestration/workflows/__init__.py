"""
Concrete workflows built on PhasedWorkflow.

Modules:
    data_sync: discovering -> syncing -> validating
    schema_discovery: discovering (catalog update)
    data_quality: discovering -> validating (quality report)
"""

from orchestration.workflows.data_quality import DataQualityWorkflow
from orchestration.workflows.data_sync import DataSyncWorkflow
from orchestration.workflows.schema_discovery import SchemaDiscoveryWorkflow

__all__ = ["DataSyncWorkflow", "SchemaDiscoveryWorkflow", "DataQualityWorkflow"]
