# =============================================================================
# 模块: common/background.py
# 功能: 可追踪、可取消的后台任务注册表
# 架构角色: BitTorrent 钩子在种子大小未知时启动一个脱离当前调用链的后台重试任务，
#   该任务按资源 id 注册到此处：
#   - 资源被保留期清理删除时取消对应任务
#   - 进程关闭时统一取消所有未完成任务
# 设计决策:
#   - 注册表持有任务的强引用，避免 asyncio 任务被垃圾回收
#   - 任务结束后自动从注册表移除；后台任务的异常只记录日志，不向外传播
# =============================================================================
"""Registry of detached background tasks keyed by owner id."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Dict, Hashable

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Tracks detached asyncio tasks so they can be cancelled by key."""

    def __init__(self) -> None:
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, key: Hashable, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """Start ``coro`` in the background under ``key``.

        同一个 key 已有未完成的任务时，先取消旧任务再启动新任务。
        """
        self.cancel(key)
        task = asyncio.create_task(coro, name=name or f"background-{key}")
        self._tasks[key] = task

        def _done(finished: asyncio.Task) -> None:
            if self._tasks.get(key) is finished:
                del self._tasks[key]
            if finished.cancelled():
                logger.info(f"Background task {finished.get_name()} cancelled")
                return
            error = finished.exception()
            if error is not None:
                logger.error(f"Background task {finished.get_name()} failed: {error}")

        task.add_done_callback(_done)
        return task

    def cancel(self, key: Hashable) -> bool:
        """Cancel the task registered under ``key``; returns whether one existed."""
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        if not task.done():
            task.cancel()
        return True

    async def cancel_all(self) -> None:
        """Cancel every pending task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def join(self) -> None:
        """Wait for every currently registered task to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
