"""
Retry policies and the per-unit retry loop.

A unit of work (one table sync, one discovery object, one quality check)
runs under a timeout ceiling and is retried with exponential backoff
while the raised error is retryable and attempts remain.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import ActivityTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy (intervals in seconds)."""

    initial_interval: float = 1.0
    backoff_coefficient: float = 2.0
    maximum_interval: float = 60.0
    maximum_attempts: int = 3

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        delay = self.initial_interval * (self.backoff_coefficient ** (attempt - 1))
        return min(delay, self.maximum_interval)


# Per-workflow defaults
SYNC_RETRY_POLICY = RetryPolicy(
    initial_interval=30.0, backoff_coefficient=2.0, maximum_interval=300.0, maximum_attempts=3
)
DISCOVERY_RETRY_POLICY = RetryPolicy(
    initial_interval=10.0, backoff_coefficient=2.0, maximum_interval=120.0, maximum_attempts=3
)
QUALITY_RETRY_POLICY = RetryPolicy(
    initial_interval=30.0, backoff_coefficient=2.0, maximum_interval=180.0, maximum_attempts=2
)
NO_RETRY = RetryPolicy(initial_interval=0.0, maximum_interval=0.0, maximum_attempts=1)

RETRYABLE_MESSAGES = (
    "timeout",
    "connection reset",
    "connection refused",
    "network error",
    "socket hang up",
)


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether an error warrants another attempt.

    An explicit ``retryable`` attribute wins. Otherwise OS-level
    connection failures, timeouts and errors whose message reads like a
    network hiccup are treated as transient.
    """
    flag = getattr(error, "retryable", None)
    if flag is not None:
        return bool(flag)
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError, OSError)):
        return True
    message = str(error).lower()
    return any(hint in message for hint in RETRYABLE_MESSAGES)


async def run_with_retry(
    operation: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    timeout: Optional[float] = None,
    description: str = "operation",
) -> Any:
    """
    Run ``operation`` with a timeout per attempt and retry per ``policy``.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        policy: Backoff and attempt limits
        timeout: Ceiling in seconds for a single attempt (None = unbounded)
        description: Used in log messages

    Returns:
        The result of the first successful attempt

    Raises:
        The last error once attempts are exhausted or the error is not
        retryable. Timeouts surface as ActivityTimeoutError.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            if timeout is not None:
                return await asyncio.wait_for(operation(), timeout=timeout)
            return await operation()
        except asyncio.TimeoutError as e:
            error: Exception = ActivityTimeoutError(
                f"{description} timed out after {timeout}s",
                context={"attempt": attempt},
                original_exception=e,
                timeout_seconds=timeout,
            )
        except Exception as e:
            error = e

        if not is_retryable(error) or attempt >= policy.maximum_attempts:
            if attempt > 1:
                logger.error(
                    f"{description} failed after {attempt} attempt(s): {error}"
                )
            raise error

        delay = policy.delay_for(attempt)
        logger.warning(
            f"{description} failed (attempt {attempt}/{policy.maximum_attempts}). "
            f"Retrying in {delay} seconds: {error}"
        )
        await asyncio.sleep(delay)
