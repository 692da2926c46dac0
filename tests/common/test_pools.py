"""Tests for common/pools.py: bounded concurrency pools.

并发池测试：容量上限、先进先出、池之间相互独立。
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from common.pools import ConcurrencyPools, Pool


class TestPool:
    """Single pool behaviour."""

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            Pool("rss", 0)

    @pytest.mark.asyncio
    async def test_never_exceeds_capacity(self):
        pool = Pool("download", 2)
        peak = 0

        async def _work():
            nonlocal peak
            peak = max(peak, pool.active)
            await asyncio.sleep(0.01)

        await asyncio.gather(*(pool.run(_work) for _ in range(6)))

        assert peak == 2
        assert pool.active == 0
        assert pool.waiting == 0

    @pytest.mark.asyncio
    async def test_admits_in_fifo_order(self):
        pool = Pool("ai", 1)
        order = []

        async def _work(i):
            order.append(i)
            await asyncio.sleep(0)

        await asyncio.gather(*(pool.run(_work, i) for i in range(5)))

        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_slot_released_on_error(self):
        pool = Pool("hook", 1)

        async def _boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await pool.run(_boom)

        assert pool.active == 0
        assert await pool.run(asyncio.sleep, 0, result="next") == "next"


class TestConcurrencyPools:
    """Independence of the six pools.

    一个池被占满时，其它池的任务不受影响。
    """

    def _settings(self, **overrides):
        values = dict(rss_limit=1, hook_limit=1, download_limit=1, bit_torrent_limit=1, ai_limit=1, notification_limit=1)
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_from_settings_capacities(self):
        pools = ConcurrencyPools.from_settings(self._settings(download_limit=3, ai_limit=2))

        assert pools.download.capacity == 3
        assert pools.ai.capacity == 2
        assert pools.rss.name == "rss"

    @pytest.mark.asyncio
    async def test_saturated_pool_does_not_block_others(self):
        pools = ConcurrencyPools.from_settings(self._settings())
        release = asyncio.Event()

        async def _hold():
            await release.wait()

        holder = asyncio.create_task(pools.download.run(_hold))
        await asyncio.sleep(0)
        assert pools.download.active == 1

        result = await asyncio.wait_for(pools.bit_torrent.run(asyncio.sleep, 0, result="done"), timeout=1)

        assert result == "done"
        release.set()
        await holder
