"""Tests for common/background.py."""

from __future__ import annotations

import asyncio

import pytest

from common.background import BackgroundTasks


class TestBackgroundTasks:
    """Keyed detached tasks.

    按 key 登记的后台任务：可取消、完成后自动注销。
    """

    @pytest.mark.asyncio
    async def test_finished_task_unregisters(self):
        tasks = BackgroundTasks()

        task = tasks.spawn(1, asyncio.sleep(0, result="done"))
        assert 1 in tasks
        assert await task == "done"
        await asyncio.sleep(0)

        assert 1 not in tasks
        assert len(tasks) == 0

    @pytest.mark.asyncio
    async def test_cancel_by_key(self):
        tasks = BackgroundTasks()
        task = tasks.spawn("res-7", asyncio.sleep(60))

        assert tasks.cancel("res-7") is True
        with pytest.raises(asyncio.CancelledError):
            await task
        assert tasks.cancel("res-7") is False

    @pytest.mark.asyncio
    async def test_respawn_replaces_previous(self):
        tasks = BackgroundTasks()
        first = tasks.spawn(3, asyncio.sleep(60))
        second = tasks.spawn(3, asyncio.sleep(0))

        await asyncio.gather(first, second, return_exceptions=True)

        assert first.cancelled()
        assert not second.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        tasks = BackgroundTasks()
        pending = [tasks.spawn(i, asyncio.sleep(60)) for i in range(3)]

        await tasks.cancel_all()

        assert all(task.cancelled() for task in pending)
        assert len(tasks) == 0

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        tasks = BackgroundTasks()

        async def _boom():
            raise RuntimeError("boom")

        tasks.spawn(9, _boom(), name="boom-task")
        await tasks.join()
        await asyncio.sleep(0)

        assert "boom-task failed" in caplog.text
