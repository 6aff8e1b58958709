"""
Core utilities and configuration for the ETL orchestration service.

This package provides foundational components used throughout the
orchestration layer:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factories
    exceptions: Exception hierarchy with retryability
    logging: Logging configuration
    retry: Retry policies and the per-unit retry loop

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import QueryError, SourceConnectionError
    from core.logging import setup_logging
    from core.retry import RetryPolicy, run_with_retry

Example:
    setup_logging()

    rows = await run_with_retry(
        lambda: connector.execute_query("SELECT 1"),
        SYNC_RETRY_POLICY,
        timeout=settings.SYNC_TABLE_TIMEOUT_SECONDS,
        description="ping",
    )
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    "RetryPolicy",
    "run_with_retry",
    "is_retryable",
    # Exceptions
    "OrchestrationError",
    "RetryableError",
    "NonRetryableError",
    "ConnectorError",
    "SourceConnectionError",
    "AuthenticationError",
    "QueryError",
    "ValidationError",
    "QualityCheckError",
    "CheckpointError",
    "CatalogError",
    "ActivityTimeoutError",
    "WorkflowCancelledError",
    "ErrorBudgetExceededError",
    "WorkflowNotFoundError",
    "WorkflowAlreadyRunningError",
]
