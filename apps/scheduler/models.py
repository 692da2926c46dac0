# =============================================================================
# 模块: apps/scheduler/models.py
# 功能: 每日统计模型
# 架构角色: 每日统计任务把前一天新增的文章、资源与钩子日志数量写入此表，
#           每个日期一行，重复计算时只有数值变化才会更新。
# =============================================================================

"""Daily count model for FeedImpact."""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, TimestampMixin


class DailyCount(Base, TimestampMixin):
    """Per-date activity counters."""

    __tablename__ = "daily_counts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # 本地时区日期，格式 YYYY-MM-DD
    date: Mapped[str] = mapped_column(String(10), unique=True, nullable=False, index=True)
    article_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resource_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    webhook_log_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<DailyCount(date={self.date}, articles={self.article_count})>"
