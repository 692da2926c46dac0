"""Tests for apps/scheduler/jobs: daily counts and retention cleanup.

每日统计与保留期清理任务测试。
"""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from apps.feed.models import Article
from apps.hooks.models import WebhookLog
from apps.resource.models import Resource
from apps.scheduler.jobs.cleanup_job import run_cleanup_job
from apps.scheduler.jobs.daily_count_job import count_by_date, run_daily_count_job
from apps.scheduler.models import DailyCount
from common.utils import day_bounds, utc_now

DAY = date(2024, 1, 15)


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(model.id)))).scalar_one()


class TestDailyCountJob:
    """Counts follow the local calendar day.

    按配置时区的自然日统计，数值不变时不写数据库。
    """

    @pytest.fixture
    def inside(self, test_settings):
        start, _ = day_bounds(DAY, test_settings.timezone)
        return start + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_counts_rows_inside_the_day(self, ctx, persist, inside):
        _, end = day_bounds(DAY, ctx.settings.timezone)
        await persist(
            Article(guid="a", feed_id=1, user_id=1, created_at=inside),
            Article(guid="b", feed_id=1, user_id=1, created_at=end),
            Resource(url="https://x/a.png", user_id=1, created_at=inside),
            WebhookLog(user_id=1, type="webhook", created_at=inside),
        )

        counts = await count_by_date(ctx, DAY)

        assert counts == {"article_count": 1, "resource_count": 1, "webhook_log_count": 1}

    @pytest.mark.asyncio
    async def test_insert_unchanged_update(self, ctx, persist, inside, session_factory):
        await persist(Article(guid="a", feed_id=1, user_id=1, created_at=inside))

        first = await run_daily_count_job(ctx, DAY)
        second = await run_daily_count_job(ctx, DAY)
        await persist(Article(guid="b", feed_id=1, user_id=1, created_at=inside))
        third = await run_daily_count_job(ctx, DAY)

        assert (first["action"], second["action"], third["action"]) == ("inserted", "unchanged", "updated")
        assert third["date"] == "2024-01-15"
        async with session_factory() as session:
            rows = (await session.execute(select(DailyCount))).scalars().all()
        assert [(row.date, row.article_count) for row in rows] == [("2024-01-15", 2)]


class TestCleanupJob:
    """Retention sweeps.

    删除过期文章、资源与日志，清理孤立文件并取消被删除资源的后台任务。
    """

    @pytest.mark.asyncio
    async def test_removes_expired_rows_and_orphans(self, ctx, persist, session_factory):
        old = utc_now() - timedelta(days=365)
        download_dir = Path(ctx.settings.resource_download_path)
        download_dir.mkdir(parents=True)
        for name in ("old.png", "keep.png", "orphan.jpg", "data.sqlite"):
            (download_dir / name).write_bytes(b"x")

        expired, _ = await persist(
            Resource(url="https://x/old.png", name="old.png", status="success", user_id=1, created_at=old),
            Resource(url="https://x/keep.png", name="keep.png", status="success", user_id=1),
        )
        await persist(
            Article(guid="old", feed_id=1, user_id=1, created_at=old),
            Article(guid="new", feed_id=1, user_id=1),
            WebhookLog(user_id=1, type="webhook", created_at=old),
            WebhookLog(user_id=1, type="webhook"),
        )
        task = ctx.background.spawn(expired.id, asyncio.sleep(3600))

        results = await run_cleanup_job(ctx)

        assert results == {
            "articles": 1,
            "resources": 1,
            "cancelled_tasks": 1,
            "files": 2,
            "logs": 1,
            "errors": [],
        }
        assert sorted(path.name for path in download_dir.iterdir()) == ["data.sqlite", "keep.png"]
        assert await _count(session_factory, Article) == 1
        assert await _count(session_factory, Resource) == 1
        await asyncio.sleep(0)
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_sweeps_are_independent(self, ctx, persist, session_factory):
        await persist(WebhookLog(user_id=1, type="webhook", created_at=utc_now() - timedelta(days=365)))

        with patch(
            "apps.scheduler.jobs.cleanup_job.remove_articles",
            AsyncMock(side_effect=RuntimeError("db gone")),
        ):
            results = await run_cleanup_job(ctx)

        assert results["errors"] == ["articles: db gone"]
        assert results["logs"] == 1
        assert await _count(session_factory, WebhookLog) == 0
