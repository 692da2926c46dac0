# =============================================================================
# 模块: common/pools.py
# 功能: 按操作类型划分的有界并发池
# 架构角色: 系统唯一的背压机制。每类操作（订阅源抓取、钩子执行、文件下载、
#   BitTorrent 操作、AI 调用、通知发送）各有一个固定容量的准入闸门，
#   超出容量的调用方按 FIFO 排队等待，不同类型的池互不阻塞。
#
# 设计决策:
#   - 基于 asyncio.Semaphore 实现，等待者按到达顺序被唤醒（Python 3.11 起保证，
#     因此项目要求 Python >= 3.11）
#   - 池在进程启动时创建一次，通过 DispatchContext 传递给各组件，不使用模块级单例
# =============================================================================
"""Bounded concurrency pools, one per operation class."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


class Pool:
    """Fixed-capacity admission gate."""

    def __init__(self, name: str, capacity: int):
        if capacity < 1:
            raise ValueError(f"Pool {name} capacity must be >= 1")
        self.name = name
        self.capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._active = 0
        self._waiting = 0

    @property
    def active(self) -> int:
        """Number of operations currently holding a slot."""
        return self._active

    @property
    def waiting(self) -> int:
        """Number of callers queued for a slot."""
        return self._waiting

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` once a slot is free.

        获取槽位后执行协程函数，执行结束（无论成功或异常）后释放槽位。
        """
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._active += 1
        try:
            return await fn(*args, **kwargs)
        finally:
            self._active -= 1
            self._semaphore.release()

    def __repr__(self) -> str:
        return f"<Pool(name={self.name}, capacity={self.capacity}, active={self._active}, waiting={self._waiting})>"


@dataclass
class ConcurrencyPools:
    """The six independent pools."""

    rss: Pool
    hook: Pool
    download: Pool
    bit_torrent: Pool
    ai: Pool
    notification: Pool

    @classmethod
    def from_settings(cls, settings: Any) -> "ConcurrencyPools":
        """Build pools from configured capacities.

        根据配置中的容量创建六个并发池。
        """
        return cls(
            rss=Pool("rss", settings.rss_limit),
            hook=Pool("hook", settings.hook_limit),
            download=Pool("download", settings.download_limit),
            bit_torrent=Pool("bit_torrent", settings.bit_torrent_limit),
            ai=Pool("ai", settings.ai_limit),
            notification=Pool("notification", settings.notification_limit),
        )
