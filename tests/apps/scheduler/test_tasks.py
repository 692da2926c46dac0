"""Tests for apps/scheduler/tasks.py: scheduler management.

调度器管理测试。

Run with: pytest tests/apps/scheduler/ -v
"""

from __future__ import annotations

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from apps.feed.models import Feed


def _reset_scheduler():
    """Stop any running scheduler and reset the singletons."""
    import apps.scheduler.tasks as tasks_module
    if tasks_module._scheduler is not None:
        if tasks_module._scheduler.running:
            tasks_module._scheduler.shutdown(wait=False)
        tasks_module._scheduler = None
    tasks_module._feed_tasks = None


class TestSchedulerSingleton:
    """Test scheduler singleton pattern.

    验证调度器单例模式。
    """

    def test_get_scheduler_returns_singleton(self):
        from apps.scheduler.tasks import get_scheduler

        _reset_scheduler()

        assert get_scheduler() is get_scheduler()
        assert isinstance(get_scheduler(), AsyncIOScheduler)

    def test_get_scheduler_uses_configured_timezone(self):
        """Verify scheduler uses configured timezone.

        验证调度器使用配置的时区。
        """
        from apps.scheduler.tasks import get_scheduler
        from settings import settings

        _reset_scheduler()

        assert str(get_scheduler().timezone) == settings.timezone


class TestStartStop:
    """Daily jobs and feed jobs are registered on start.

    启动时注册每日统计、清理任务以及所有启用订阅源的轮询任务。
    """

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, ctx, persist):
        from apps.scheduler.tasks import get_feed_tasks, start_scheduler, stop_scheduler

        _reset_scheduler()
        feed = await persist(Feed(url="https://example.com/feed.xml", user_id=1))

        feed_tasks = await start_scheduler(ctx)
        try:
            job_ids = {job.id for job in feed_tasks.scheduler.get_jobs()}
            assert {"daily_count_job", "cleanup_job", f"feed_{feed.id}"} <= job_ids
            assert get_feed_tasks() is feed_tasks
            assert feed_tasks.scheduler.running
        finally:
            await stop_scheduler()

        assert get_feed_tasks() is None

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        from apps.scheduler.tasks import stop_scheduler

        _reset_scheduler()

        await stop_scheduler()
