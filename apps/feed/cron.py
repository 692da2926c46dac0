# =============================================================================
# 模块: apps/feed/cron.py
# 功能: 订阅源 cron 标签解析
# 架构角色: 订阅源只保存可读的 cron 标签（如 EVERY_10_MINUTES），
#   定时任务调度器通过 resolve_cron 把标签换算为 APScheduler 的 CronTrigger。
#   无法解析的标签返回 None，由调用方记录警告并跳过该订阅源。
# =============================================================================
"""Cron label resolution for feed schedules."""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

# 标签 -> 标准 5 段 cron 表达式（分 时 日 月 周）
# 星期字段使用英文缩写，避免 APScheduler 与 crontab 对数字星期的解释差异
RSS_CRON_EXPRESSIONS: dict[str, str] = {
    "EVERY_MINUTE": "* * * * *",
    "EVERY_5_MINUTES": "*/5 * * * *",
    "EVERY_10_MINUTES": "*/10 * * * *",
    "EVERY_15_MINUTES": "*/15 * * * *",
    "EVERY_30_MINUTES": "*/30 * * * *",
    "EVERY_HOUR": "0 * * * *",
    "EVERY_2_HOURS": "0 */2 * * *",
    "EVERY_3_HOURS": "0 */3 * * *",
    "EVERY_6_HOURS": "0 */6 * * *",
    "EVERY_12_HOURS": "0 */12 * * *",
    "EVERY_DAY_AT_MIDNIGHT": "0 0 * * *",
    "EVERY_DAY_AT_8AM": "0 8 * * *",
    "EVERY_WEEK": "0 0 * * sun",
}


def resolve_cron(label: str | None, timezone: str) -> Optional[CronTrigger]:
    """Resolve a cron label (or raw 5-field expression) to a trigger.

    先按标签查表，查不到时尝试把值当作原始 cron 表达式解析。

    Args:
        label: Cron label such as ``EVERY_10_MINUTES``.
        timezone: Timezone the trigger fires in.

    Returns:
        Optional[CronTrigger]: Trigger, or ``None`` when the label does not resolve.
    """
    if not label:
        return None
    expression = RSS_CRON_EXPRESSIONS.get(label.strip().upper(), label.strip())
    try:
        return CronTrigger.from_crontab(expression, timezone=timezone)
    except ValueError as e:
        logger.debug(f"Cron label {label!r} did not resolve: {e}")
        return None
