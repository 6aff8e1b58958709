"""
Custom exceptions for the orchestration core with structured error context.

Every failure that crosses a unit-of-work boundary (one table sync, one
discovery object, one quality check) is expressed as a subclass of
OrchestrationError so the workflow can decide whether to retry it,
record it in the error log, or abort.

Exception Hierarchy:
    OrchestrationError (base)
    ├── ConnectorError
    │   ├── SourceConnectionError
    │   ├── AuthenticationError
    │   └── QueryError
    ├── ValidationError
    ├── QualityCheckError
    ├── CheckpointError
    ├── CatalogError
    ├── ActivityTimeoutError
    ├── WorkflowCancelledError
    ├── ErrorBudgetExceededError
    ├── WorkflowNotFoundError
    ├── WorkflowAlreadyRunningError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class OrchestrationError(Exception):
    """
    Base exception for all orchestration errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (object, connection, etc.)
        original_exception: The original exception that was caught (if any)
        retryable: Whether the substrate may retry the failed unit
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        context = {k: v for k, v in self.context.items() if k != "error_timestamp"}
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(OrchestrationError):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Connection resets and timeouts
    - Source rate limiting
    - Temporary lock contention on the source
    """

    retryable = True


class NonRetryableError(OrchestrationError):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures
    - Invalid workflow input
    - Unknown tables or columns
    """

    retryable = False


# ============================================================================
# Connector Errors
# ============================================================================

class ConnectorError(OrchestrationError):
    """
    Base exception for failures raised by a data connector.

    Context should include:
        - connector_type: The connector that raised
        - operation: Connector operation (connect, execute_query, ...)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retryable: Optional[bool] = None
    ):
        super().__init__(message, context, original_exception)
        if retryable is not None:
            self.retryable = retryable


class SourceConnectionError(RetryableError, ConnectorError):
    """Network or session level failure talking to the source."""
    pass


class AuthenticationError(NonRetryableError, ConnectorError):
    """Credentials rejected by the source; retrying will not help."""
    pass


class QueryError(ConnectorError):
    """
    Exception raised when a query against the source fails.

    Retryability depends on the cause: lock timeouts and dropped
    connections are retryable, syntax errors and unknown objects are not.

    Context should include:
        - sql: The statement that failed (truncated if large)
    """
    pass


# ============================================================================
# Input / Domain Errors
# ============================================================================

class ValidationError(NonRetryableError):
    """
    Exception raised when workflow input or configuration is invalid.

    Context should include:
        - field_errors: Field-level validation messages
    """
    pass


class QualityCheckError(NonRetryableError):
    """
    Exception raised when a quality check cannot be evaluated.

    The quality executor converts it into a failed check with
    severity error instead of propagating it.
    """
    pass


class CheckpointError(OrchestrationError):
    """
    Exception raised when checkpoint persistence fails.

    Context should include:
        - workflow_id: Owner of the checkpoint
        - operation: Operation that failed (load, save, clear)
    """
    pass


class CatalogError(OrchestrationError):
    """Exception raised when the catalog snapshot cannot be written."""
    pass


class ActivityTimeoutError(RetryableError):
    """A unit of work exceeded its timeout ceiling."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        timeout_seconds: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.timeout_seconds = timeout_seconds
        if timeout_seconds is not None:
            self.context["timeout_seconds"] = timeout_seconds


# ============================================================================
# Workflow Control Errors
# ============================================================================

class WorkflowCancelledError(NonRetryableError):
    """Raised at an observation point after a cancel signal."""
    pass


class ErrorBudgetExceededError(NonRetryableError):
    """Raised once the error log grows past the configured budget."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        error_count: int = 0,
        budget: int = 0
    ):
        super().__init__(message, context, original_exception)
        self.error_count = error_count
        self.budget = budget
        self.context["error_count"] = error_count
        self.context["budget"] = budget


class WorkflowNotFoundError(NonRetryableError):
    """No workflow with the requested id is known to the engine."""
    pass


class WorkflowAlreadyRunningError(NonRetryableError):
    """A workflow with the same id is still running."""
    pass
