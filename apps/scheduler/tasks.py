# ==============================================================================
# 模块: 调度任务注册与管理模块
# 作用: 创建和管理 APScheduler 调度器单例，注册每日统计与保留期清理任务，
#       并为启用的订阅源创建轮询任务。
# 架构角色: 调度层的顶层编排器，由 main.py 的 lifespan 在启动时调用 start_scheduler，
#           关闭时调用 stop_scheduler。
# 设计思路: 调度器与 FeedTaskScheduler 都是进程内单例；每日任务在配置时区的
#           00:00 触发，订阅源任务由 FeedTaskScheduler 按各自的 cron 标签注册。
# ==============================================================================

"""Scheduler registry for FeedImpact."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.scheduler.feed_tasks import FeedTaskScheduler
from settings import settings

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

# 模块级别的调度器单例
_scheduler: Optional[AsyncIOScheduler] = None
_feed_tasks: Optional[FeedTaskScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler singleton.

    获取或创建调度器单例实例，使用配置中的时区初始化。
    """
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=settings.timezone)
    return _scheduler


def get_feed_tasks() -> Optional[FeedTaskScheduler]:
    return _feed_tasks


async def start_scheduler(ctx: "DispatchContext") -> FeedTaskScheduler:
    """Register the daily jobs, start the scheduler and enable feed jobs.

    Returns:
        FeedTaskScheduler: The registry of live feed jobs.
    """
    global _feed_tasks
    scheduler = get_scheduler()

    # ---- 每日统计任务 ----
    # 每天 00:00 统计前一天新增的文章、资源与推送日志数量
    from apps.scheduler.jobs.daily_count_job import run_daily_count_job
    scheduler.add_job(
        run_daily_count_job,
        CronTrigger(hour=0, minute=0, timezone=settings.timezone),
        args=[ctx],
        id="daily_count_job",
        name="Count yesterday's articles, resources and webhook logs",
        replace_existing=True,
    )

    # ---- 保留期清理任务 ----
    # 每天 00:00 删除超过保留期的文章、资源（含孤立文件）与推送日志
    from apps.scheduler.jobs.cleanup_job import run_cleanup_job
    scheduler.add_job(
        run_cleanup_job,
        CronTrigger(hour=0, minute=0, timezone=settings.timezone),
        args=[ctx],
        id="cleanup_job",
        name="Remove expired articles, resources and webhook logs",
        replace_existing=True,
    )

    _feed_tasks = FeedTaskScheduler(ctx, scheduler)
    scheduler.start()
    logger.info("Scheduler started")
    await _feed_tasks.init_feed_tasks()
    return _feed_tasks


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    global _scheduler, _feed_tasks
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None
    _feed_tasks = None
