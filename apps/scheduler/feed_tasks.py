# ==============================================================================
# 模块: 订阅源定时任务管理
# 作用: 为每个启用的订阅源维护一个 APScheduler 定时任务（任务 id 为 feed_<id>），
#       支持运行时启用、停用，以及进程启动时为所有启用的订阅源重建任务。
# 架构角色: 调度层与 poller 之间的桥梁。任务触发时先随机延迟（避免大量订阅源
#           在同一时刻集中抓取），再把 poll_feed 提交到 rss 并发池执行。
# 设计思路:
#   - enable / disable 都是幂等的，内部异常只记录日志，不向调用方抛出
#   - 订阅源 id -> Job 的映射与调度器中的任务一一对应
#   - 每次触发时按 id 重新读取订阅源，订阅源被删除时自动停用对应任务
# ==============================================================================

"""Per-feed polling jobs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select

from apps.feed.cron import resolve_cron
from apps.feed.models import Feed
from apps.feed.poller import FeedPoller
from common.utils import random_sleep

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)


def feed_job_id(feed_id: int) -> str:
    return f"feed_{feed_id}"


class FeedTaskScheduler:
    """Registry of live feed polling jobs."""

    def __init__(
        self,
        ctx: "DispatchContext",
        scheduler: AsyncIOScheduler,
        poller: Optional[FeedPoller] = None,
    ):
        self.ctx = ctx
        self.scheduler = scheduler
        self.poller = poller or FeedPoller(ctx)
        self._jobs: Dict[int, Job] = {}

    def __contains__(self, feed_id: int) -> bool:
        return feed_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def enable(self, feed: Feed) -> bool:
        """Create the polling job of ``feed``.

        订阅源未启用、任务已存在或 cron 标签无法解析时，记录警告并直接返回。

        Returns:
            bool: Whether a new job was created.
        """
        job_id = feed_job_id(feed.id)
        try:
            if not feed.is_enabled:
                logger.warning(f"Feed task {job_id} is disabled, enable the feed first")
                return False
            if feed.id in self._jobs or self.scheduler.get_job(job_id):
                logger.warning(f"Feed task {job_id} already exists")
                return False
            trigger = resolve_cron(feed.cron, self.ctx.settings.timezone)
            if trigger is None:
                logger.warning(f"Feed task {job_id} has an invalid cron: {feed.cron}")
                return False
            job = self.scheduler.add_job(
                self.tick,
                trigger,
                args=[feed.id],
                id=job_id,
                name=f"Poll feed {feed.id}",
                coalesce=True,
            )
            self._jobs[feed.id] = job
            logger.info(f"Feed task {job_id} ({feed.cron}) started")
            return True
        except Exception as e:
            logger.exception(f"Enable feed task {job_id} failed: {e}")
            return False

    def disable(self, feed_id: int) -> bool:
        """Remove the polling job of ``feed_id``; returns whether one existed."""
        job_id = feed_job_id(feed_id)
        job = self._jobs.pop(feed_id, None)
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            if job is None:
                return False
        except Exception as e:
            logger.exception(f"Disable feed task {job_id} failed: {e}")
            return False
        logger.info(f"Feed task {job_id} removed")
        return True

    async def tick(self, feed_id: int) -> Dict[str, Any] | None:
        """One scheduled poll: jitter, then ``poll_feed`` inside the rss pool."""
        settings = self.ctx.settings
        max_delay = settings.feed_jitter_seconds_debug if settings.debug else settings.feed_jitter_seconds
        try:
            await random_sleep(0, max_delay)
            async with self.ctx.session_factory() as session:
                feed = await session.get(Feed, feed_id)
            if feed is None:
                logger.warning(f"Feed {feed_id} no longer exists, removing its task")
                self.disable(feed_id)
                return None
            logger.info(f"Polling feed {feed.id}: {feed.url}")
            summary = await self.ctx.pools.rss.run(self.poller.poll_feed, feed)
            logger.info(f"Feed task {feed_job_id(feed_id)} completed: {summary}")
            return summary
        except Exception as e:
            logger.exception(f"Feed task {feed_job_id(feed_id)} failed: {e}")
            return None

    async def init_feed_tasks(self) -> int:
        """Enable a job for every enabled feed; returns the number created."""
        async with self.ctx.session_factory() as session:
            result = await session.execute(select(Feed).where(Feed.is_enabled.is_(True)).order_by(Feed.id))
            feeds = list(result.scalars().all())
        created = sum(1 for feed in feeds if self.enable(feed))
        logger.info(f"Initialized {created}/{len(feeds)} feed task(s)")
        return created
