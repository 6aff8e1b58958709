"""
Tests for retry policies and retryability classification
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from core.exceptions import (
    ActivityTimeoutError,
    AuthenticationError,
    QueryError,
    SourceConnectionError,
)
from core.retry import (
    DISCOVERY_RETRY_POLICY,
    QUALITY_RETRY_POLICY,
    SYNC_RETRY_POLICY,
    RetryPolicy,
    is_retryable,
    run_with_retry,
)

FAST = RetryPolicy(initial_interval=0.0, backoff_coefficient=2.0, maximum_interval=0.0, maximum_attempts=3)


def test_backoff_is_capped():
    policy = RetryPolicy(initial_interval=30, backoff_coefficient=2, maximum_interval=300, maximum_attempts=5)
    assert [policy.delay_for(a) for a in range(1, 6)] == [30, 60, 120, 240, 300]


def test_default_policies():
    assert SYNC_RETRY_POLICY.maximum_attempts == 3
    assert SYNC_RETRY_POLICY.maximum_interval == 300
    assert DISCOVERY_RETRY_POLICY.initial_interval == 10
    assert QUALITY_RETRY_POLICY.maximum_attempts == 2


def test_retryability_classification():
    assert is_retryable(SourceConnectionError("reset"))
    assert not is_retryable(AuthenticationError("bad password"))
    assert not is_retryable(QueryError("syntax error"))
    assert is_retryable(QueryError("deadlock detected", retryable=True))
    assert is_retryable(ActivityTimeoutError("slow"))
    assert is_retryable(ConnectionResetError())
    assert is_retryable(RuntimeError("socket hang up"))
    assert not is_retryable(ValueError("bad value"))


@pytest.mark.asyncio
async def test_retries_transient_errors_until_success():
    operation = AsyncMock(side_effect=[SourceConnectionError("down"), SourceConnectionError("down"), "ok"])

    result = await run_with_retry(operation, FAST, description="flaky")

    assert result == "ok"
    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_non_retryable_error_raises_immediately():
    operation = AsyncMock(side_effect=AuthenticationError("denied"))

    with pytest.raises(AuthenticationError):
        await run_with_retry(operation, FAST)

    assert operation.await_count == 1


@pytest.mark.asyncio
async def test_gives_up_after_maximum_attempts():
    operation = AsyncMock(side_effect=SourceConnectionError("down"))

    with pytest.raises(SourceConnectionError):
        await run_with_retry(operation, FAST)

    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_timeout_surfaces_as_activity_timeout():
    async def slow():
        await asyncio.sleep(1)

    policy = RetryPolicy(initial_interval=0, maximum_interval=0, maximum_attempts=1)
    with pytest.raises(ActivityTimeoutError) as exc_info:
        await run_with_retry(slow, policy, timeout=0.01)

    assert exc_info.value.timeout_seconds == 0.01


@pytest.mark.asyncio
async def test_sleeps_with_backoff_between_attempts():
    policy = RetryPolicy(initial_interval=1, backoff_coefficient=2, maximum_interval=10, maximum_attempts=3)
    operation = AsyncMock(side_effect=SourceConnectionError("down"))

    with patch("core.retry.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        with pytest.raises(SourceConnectionError):
            await run_with_retry(operation, policy)

    assert [call.args[0] for call in mock_sleep.await_args_list] == [1, 2]
