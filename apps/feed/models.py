# =============================================================================
# 模块: apps/feed/models.py
# 功能: 订阅源、代理配置与文章模型定义
# 架构角色: 数据持久化层。订阅源（Feed）是定时抓取的目标，
#           文章（Article）是从订阅源解析出的条目，钩子通过 feed_hooks 关联到订阅源。
# 核心模型:
#   - ProxyConfig: 代理配置，订阅源与钩子都可以引用
#   - Feed: 订阅源，包含 cron 标签、重试次数与启用状态
#   - Article: 文章，(guid, user_id) 唯一
# 设计决策:
#   1. guid 由订阅源提供，只在同一用户范围内唯一，不是全局唯一
#   2. ai_summary 由 AI 摘要钩子异步填充，初始为空
#   3. 订阅源的代理只保存 proxy_config_id，抓取时再按需加载
# =============================================================================

"""Feed, proxy and article models for FeedImpact."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from apps.hooks.models import Hook
from core.models.base import Base, TimestampMixin

# 订阅源与钩子的多对多关联表
feed_hooks = Table(
    "feed_hooks",
    Base.metadata,
    Column("feed_id", Integer, ForeignKey("feeds.id", ondelete="CASCADE"), primary_key=True),
    Column("hook_id", Integer, ForeignKey("hooks.id", ondelete="CASCADE"), primary_key=True),
)


class ProxyConfig(Base, TimestampMixin):
    """Proxy configuration shared by feeds and hooks."""

    __tablename__ = "proxy_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    # 代理地址，如 http://127.0.0.1:7890 或 socks5://127.0.0.1:1080
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ProxyConfig(id={self.id}, url={self.url})>"


# =============================================================================
# Feed 模型
# 职责: 存储订阅源配置
# 表名: feeds
# 使用场景: 启动时为所有 is_enabled 的订阅源创建定时任务；
#           定时任务触发时按 url 抓取并解析新文章。
# =============================================================================
class Feed(Base, TimestampMixin):
    """Feed polling target."""

    __tablename__ = "feeds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # 订阅源描述与封面，首次抓取时若为空则从文档中回填
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # cron 标签（如 EVERY_10_MINUTES），由 apps.feed.cron 解析为 cron 表达式
    cron: Mapped[str] = mapped_column(String(64), nullable=False, default="EVERY_10_MINUTES")
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 抓取失败时的最大重试次数，0 表示只尝试一次
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    proxy_config_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("proxy_configs.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    hooks: Mapped[list[Hook]] = relationship(
        Hook,
        secondary=feed_hooks,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Feed(id={self.id}, title={self.title}, cron={self.cron})>"


# =============================================================================
# Article 模型
# 职责: 存储从订阅源解析出的文章条目
# 表名: articles
# 设计决策:
#   1. (guid, user_id) 唯一约束由数据库保证，并发插入冲突直接以 IntegrityError 暴露
#   2. 正则钩子会改写 content / content_snippet，AI 钩子会填充 ai_summary
#   3. enclosure_* 字段保存附件信息，BitTorrent 钩子据此识别种子与磁力链接
# =============================================================================
class Article(Base, TimestampMixin):
    """One feed item."""

    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("guid", "user_id", name="uq_articles_guid_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guid: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    feed_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    link: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    title: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # 原始 HTML 内容与纯文本摘录
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    pub_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    categories: Mapped[list | None] = mapped_column(JSON, nullable=True)
    enclosure_url: Mapped[str | None] = mapped_column(String(4096), nullable=True)
    enclosure_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # 附件大小（字节），BitTorrent 钩子解析出种子大小后会回填
    enclosure_length: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Article(id={self.id}, guid={self.guid[:50] if self.guid else ''})>"
