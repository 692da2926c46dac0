# =============================================================================
# 模块: common/retry.py
# 功能: 指数退避重试执行器
# 架构角色: 所有网络操作（订阅源抓取、BitTorrent 客户端调用、AI 摘要等待）
#   都通过 retry_backoff 包装，统一退避策略与终止语义。
#
# 退避规则:
#   - 每次失败后计数器加一，计数达到 max_retries 时抛出 RetryExhaustedError
#   - 下一次等待时间 delay = max(10ms, initial_interval) * 2 ** attempt
#   - delay >= max_interval 时抛出 RetryIntervalExceededError
#   - should_retry(error) 返回 False 时原始异常直接向上抛出
#   - max_retries = 0 表示只尝试一次
# =============================================================================
"""Exponential backoff retry executor built on tenacity."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

from common.exceptions import RetryExhaustedError, RetryIntervalExceededError

logger = logging.getLogger(__name__)

# 最小退避间隔（秒）
MIN_INTERVAL = 0.01


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def retry_backoff(
    operation: Callable[[], Awaitable[Any]],
    *,
    max_retries: int = 0,
    initial_interval: float = 1.0,
    max_interval: float = 600.0,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> Any:
    """Run ``operation`` with exponential backoff.

    以指数退避方式执行异步操作，成功时立即返回结果。

    Args:
        operation: Zero-argument coroutine function to run.
        max_retries: Attempt count at which retrying stops.
        initial_interval: Base delay in seconds.
        max_interval: Upper bound in seconds; reaching it stops retrying.
        should_retry: Predicate deciding whether an error is retryable.
        sleep: Awaitable sleep override.

    Returns:
        Any: The operation's return value.

    Raises:
        RetryExhaustedError: The attempt counter reached ``max_retries``.
        RetryIntervalExceededError: The next delay would reach ``max_interval``.
    """
    interval = max(MIN_INTERVAL, initial_interval)
    predicate = should_retry or (lambda error: True)

    def _retryable(error: BaseException) -> bool:
        # 任务取消等 BaseException 永远不重试
        return isinstance(error, Exception) and predicate(error)

    def _delay(retry_state: RetryCallState) -> float:
        return interval * 2 ** retry_state.attempt_number

    def _stop(retry_state: RetryCallState) -> bool:
        return retry_state.attempt_number >= max_retries or _delay(retry_state) >= max_interval

    def _give_up(retry_state: RetryCallState) -> Any:
        cause = retry_state.outcome.exception() if retry_state.outcome else None
        attempts = retry_state.attempt_number
        if attempts >= max_retries:
            raise RetryExhaustedError(
                f"Retry exhausted after {attempts} attempt(s): {cause}", cause
            ) from cause
        raise RetryIntervalExceededError(
            f"Retry interval exceeded {max_interval}s after {attempts} attempt(s): {cause}",
            cause,
        ) from cause

    def _before_sleep(retry_state: RetryCallState) -> None:
        cause = retry_state.outcome.exception() if retry_state.outcome else None
        logger.debug(
            f"Attempt {retry_state.attempt_number} failed ({cause}), "
            f"retrying in {_delay(retry_state):.2f}s"
        )

    retrying = AsyncRetrying(
        stop=_stop,
        wait=_delay,
        retry=retry_if_exception(_retryable),
        retry_error_callback=_give_up,
        before_sleep=_before_sleep,
        sleep=sleep or _sleep,
    )
    return await retrying(operation)
