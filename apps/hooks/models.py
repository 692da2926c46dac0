# =============================================================================
# 模块: apps/hooks/models.py
# 功能: 钩子与钩子执行日志模型定义
# 架构角色: 数据持久化层。钩子（Hook）描述新文章（或订阅源出错）时要执行的动作，
#           执行日志（WebhookLog）记录通知与 Webhook 两类钩子每一次执行的结果。
# 设计决策:
#   1. 钩子类型是封闭集合（HookType），config 按类型存放不同结构的 JSON
#   2. is_reversed 为 True 的钩子只在订阅源抓取失败时触发（反转钩子）
#   3. WebhookLog 插入后不再修改；反转钩子的频率限制基于最近一小时的日志数
# =============================================================================

"""Hook and webhook log models for FeedImpact."""

from __future__ import annotations

import enum
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, TimestampMixin


class HookType(str, enum.Enum):
    """Closed set of hook types."""

    NOTIFICATION = "notification"
    WEBHOOK = "webhook"
    DOWNLOAD = "download"
    BIT_TORRENT = "bitTorrent"
    AI_SUMMARY = "aiSummary"
    REGULAR = "regular"


# 可以作为反转钩子触发的类型
REVERSIBLE_HOOK_TYPES = (HookType.NOTIFICATION.value, HookType.WEBHOOK.value)


class WebhookLogType(str, enum.Enum):
    WEBHOOK = "webhook"
    NOTIFICATION = "notification"


class WebhookLogStatus(str, enum.Enum):
    SUCCESS = "success"
    FAIL = "fail"
    UNKNOWN = "unknown"


# =============================================================================
# Hook 模型
# 职责: 存储钩子配置
# 表名: hooks
# =============================================================================
class Hook(Base, TimestampMixin):
    """Sink configuration attached to feeds."""

    __tablename__ = "hooks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    # 钩子类型，取值见 HookType
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    # 按类型区分结构的配置，由 apps.hooks.configs.parse_hook_config 解析
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    # 文章过滤规则，由 apps.hooks.filters.filter_articles 使用
    filter: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_reversed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    proxy_config_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("proxy_configs.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Hook(id={self.id}, type={self.type}, reversed={self.is_reversed})>"


# =============================================================================
# WebhookLog 模型
# 职责: 记录一次通知/Webhook 钩子执行的结果
# 表名: webhook_logs
# =============================================================================
class WebhookLog(Base, TimestampMixin):
    """Immutable outcome of one sink execution."""

    __tablename__ = "webhook_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hook_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    feed_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=WebhookLogStatus.UNKNOWN.value)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    data: Mapped[Any] = mapped_column(JSON, nullable=True)
    headers: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<WebhookLog(id={self.id}, type={self.type}, status={self.status})>"
