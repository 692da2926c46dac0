"""Tests for common/retry.py: exponential backoff executor.

指数退避重试执行器测试。

Run with: pytest tests/common/test_retry.py -v
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from common.exceptions import (
    HttpRequestError,
    RetryError,
    RetryExhaustedError,
    RetryIntervalExceededError,
)
from common.retry import retry_backoff


def _failing(error: Exception, succeed_after: int | None = None):
    """Build an operation that fails until ``succeed_after`` calls have failed."""
    calls = {"count": 0}

    async def _op():
        calls["count"] += 1
        if succeed_after is not None and calls["count"] > succeed_after:
            return "ok"
        raise error

    return _op, calls


class TestRetryBackoffSuccess:
    """Successful operations.

    操作成功时立即返回结果。
    """

    @pytest.mark.asyncio
    async def test_returns_first_result(self, no_backoff_sleep):
        op = AsyncMock(return_value=42)

        result = await retry_backoff(op, max_retries=3)

        assert result == 42
        op.assert_awaited_once()
        no_backoff_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, no_backoff_sleep):
        op, calls = _failing(HttpRequestError("boom"), succeed_after=2)

        result = await retry_backoff(op, max_retries=5, initial_interval=1, max_interval=600)

        assert result == "ok"
        assert calls["count"] == 3
        assert [c.args[0] for c in no_backoff_sleep.await_args_list] == [2, 4]


class TestRetryBackoffTermination:
    """Termination rules.

    重试次数耗尽与退避间隔超限是两种不同的终止错误。
    """

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self, no_backoff_sleep):
        error = HttpRequestError("down")
        op, calls = _failing(error)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_backoff(op, max_retries=0)

        assert calls["count"] == 1
        assert exc_info.value.cause is error
        no_backoff_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_after_max_retries_attempts(self, no_backoff_sleep):
        op, calls = _failing(HttpRequestError("down"))

        with pytest.raises(RetryExhaustedError):
            await retry_backoff(op, max_retries=3, initial_interval=1, max_interval=600)

        assert calls["count"] == 3
        assert [c.args[0] for c in no_backoff_sleep.await_args_list] == [2, 4]

    @pytest.mark.asyncio
    async def test_interval_exceeded(self, no_backoff_sleep):
        """Delays 20, 40, 80, 160, 320 are slept; 640 reaches the cap."""
        op, calls = _failing(HttpRequestError("down"))

        with pytest.raises(RetryIntervalExceededError) as exc_info:
            await retry_backoff(op, max_retries=100, initial_interval=10, max_interval=600)

        assert calls["count"] == 6
        assert [c.args[0] for c in no_backoff_sleep.await_args_list] == [20, 40, 80, 160, 320]
        assert isinstance(exc_info.value, RetryError)
        assert not isinstance(exc_info.value, RetryExhaustedError)

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_unwrapped(self, no_backoff_sleep):
        op, calls = _failing(ValueError("bad config"))

        with pytest.raises(ValueError):
            await retry_backoff(
                op,
                max_retries=5,
                should_retry=lambda error: isinstance(error, HttpRequestError),
            )

        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self, no_backoff_sleep):
        op, calls = _failing(asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await retry_backoff(op, max_retries=5)

        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_explicit_sleep_override(self):
        sleep = AsyncMock()
        op, _ = _failing(HttpRequestError("down"), succeed_after=1)

        await retry_backoff(op, max_retries=3, initial_interval=0.5, sleep=sleep)

        sleep.assert_awaited_once_with(1.0)
