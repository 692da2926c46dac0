# =============================================================================
# ORM 基础模型与通用混入类模块
# =============================================================================
# 本模块定义了 FeedImpact 中所有 SQLAlchemy ORM 模型的基类和通用混入（Mixin）。
# 主要职责：
#   1. 提供所有 ORM 模型的声明式基类（Base），统一模型注册与元数据管理
#   2. 提供时间戳混入类（TimestampMixin），自动管理创建时间和更新时间字段
#
# 设计决策：
#   - 使用 SQLAlchemy 2.0 风格的 DeclarativeBase 声明式基类
#   - 时间戳统一使用 UTC 时区，每日统计与保留期清理都按 created_at 过滤
#   - 使用 lambda 默认值而非 server_default，确保在 Python 层面生成时间戳
# =============================================================================

"""Base models and mixins for FeedImpact."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class TimestampMixin:
    """Mixin providing ``created_at`` and ``updated_at`` timestamps.

    The timestamps are generated in UTC at the Python layer. ``updated_at`` is
    refreshed automatically on update operations.
    """

    # 记录创建时间，带索引：每日统计与保留期清理都按此字段做范围查询
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
