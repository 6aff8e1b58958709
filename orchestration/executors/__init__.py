"""
Executors: the unit-of-work engines driven by the workflows.

Modules:
    sync: per-table full / snapshot / incremental reads into a BatchSink
    discovery: database -> schema -> table walk with inference
    quality: per-table checks and report aggregation
"""

from orchestration.executors.discovery import DiscoveryExecutor, list_filtered_tables
from orchestration.executors.quality import QualityExecutor, aggregate_report
from orchestration.executors.sync import SyncExecutor

__all__ = [
    "SyncExecutor",
    "DiscoveryExecutor",
    "QualityExecutor",
    "list_filtered_tables",
    "aggregate_report",
]
