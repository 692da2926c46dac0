# ==============================================================================
# 模块: 每日统计定时任务
# 作用: 统计某个本地自然日内新增的文章、资源与推送日志数量，写入 daily_counts。
# 设计思路: 同一天重复统计时，只有数值发生变化才更新，数值相同则不写数据库。
# 执行方式: 每天 00:00（配置时区）触发，统计前一天。
# ==============================================================================

"""Daily count job for FeedImpact."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Dict, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select

from apps.feed.models import Article
from apps.hooks.models import WebhookLog
from apps.resource.models import Resource
from apps.scheduler.models import DailyCount
from common.utils import day_bounds

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

_COUNT_FIELDS = ("article_count", "resource_count", "webhook_log_count")


async def count_by_date(ctx: "DispatchContext", day: date) -> Dict[str, int]:
    """Count rows created during local calendar ``day``."""
    start, end = day_bounds(day, ctx.settings.timezone)
    counts: Dict[str, int] = {}
    async with ctx.session_factory() as session:
        for field, model in zip(_COUNT_FIELDS, (Article, Resource, WebhookLog)):
            result = await session.execute(
                select(func.count(model.id)).where(model.created_at >= start, model.created_at < end)
            )
            counts[field] = int(result.scalar_one())
    return counts


async def run_daily_count_job(ctx: "DispatchContext", day: Optional[date] = None) -> dict:
    """Upsert the :class:`DailyCount` row of ``day`` (yesterday by default).

    Returns:
        dict: ``{date, article_count, resource_count, webhook_log_count, action}``,
        where ``action`` is ``inserted``, ``updated`` or ``unchanged``.
    """
    if day is None:
        day = datetime.now(ZoneInfo(ctx.settings.timezone)).date() - timedelta(days=1)
    date_str = day.isoformat()
    logger.info(f"Starting daily count job for {date_str}")

    counts = await count_by_date(ctx, day)
    async with ctx.session_factory() as session:
        result = await session.execute(select(DailyCount).where(DailyCount.date == date_str))
        row = result.scalar_one_or_none()
        if row is None:
            session.add(DailyCount(date=date_str, **counts))
            action = "inserted"
        elif any(getattr(row, field) != value for field, value in counts.items()):
            for field, value in counts.items():
                setattr(row, field, value)
            action = "updated"
        else:
            action = "unchanged"
        if action != "unchanged":
            await session.commit()

    summary = {"date": date_str, **counts, "action": action}
    logger.info(f"Daily count job completed: {summary}")
    return summary
