"""
Workflow orchestration for data sync, schema discovery and data quality.

Modules:
    workflow: PhasedWorkflow state machine (phases, signals, finalization)
    engine: In-process engine running workflows as asyncio tasks
    scheduler: APScheduler integration for recurring syncs
    control: Pause / resume / cancel token
    context: Per-workflow retry, timeout and error-budget context
    heuristics: Pure inference and scoring functions
    notifications: Email and webhook lifecycle notifications

Subpackages:
    executors: Sync, discovery and quality executors
    workflows: Concrete workflows
    loaders: Batch sinks for synced rows
    stores: Checkpoint, status, catalog and quality report persistence

Usage:
    from orchestration.engine import WorkflowEngine
    from orchestration.stores import build_stores

    engine = WorkflowEngine(stores=build_stores())
    workflow_id = await engine.start_sync(
        {"connection": {...}, "sync_config": {"mode": "incremental"}}
    )
    engine.pause(workflow_id)
    engine.resume(workflow_id)
    status = await engine.result(workflow_id)

Error Handling:
    Unit failures are recorded in the workflow's error log and never
    unwind the run unless the error budget is exceeded. See
    core.exceptions for the hierarchy and retryability.
"""

__all__ = [
    "PhasedWorkflow",
    "WorkflowEngine",
    "SyncScheduler",
    "WorkflowControl",
    "WorkflowContext",
    "Notifier",
]
