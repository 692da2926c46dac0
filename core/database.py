# =============================================================================
# 数据库连接与会话管理模块
# =============================================================================
# 本模块负责 FeedImpact 的数据库连接管理，是整个后端系统的数据访问基础层。
# 主要职责：
#   1. 创建和管理 SQLAlchemy 异步数据库引擎（AsyncEngine）
#   2. 提供异步会话工厂（async_sessionmaker），用于生成数据库会话
#   3. 提供数据库初始化（建表）和关闭（释放连接池）功能
#   4. 提供数据库健康检查功能
#
# 架构设计说明：
#   - 使用模块级全局变量（_engine、_session_factory）实现单例模式
#   - 会话工厂在进程启动时放入 DispatchContext，业务组件不直接访问单例
#   - 默认使用 SQLite（aiosqlite 驱动），可通过 DATABASE_URL 切换到其它数据库
# =============================================================================

"""Database connection and session management for FeedImpact."""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.models.base import Base

logger = logging.getLogger(__name__)

# 模块级全局变量：数据库引擎实例（单例模式）
_engine: AsyncEngine | None = None

# 模块级全局变量：异步会话工厂实例（单例模式）
_session_factory: async_sessionmaker[AsyncSession] | None = None


def import_models() -> None:
    """Import every ORM module so their tables register on ``Base.metadata``."""
    import core.models.user  # noqa: F401
    import apps.feed.models  # noqa: F401
    import apps.hooks.models  # noqa: F401
    import apps.resource.models  # noqa: F401
    import apps.scheduler.models  # noqa: F401


def get_engine() -> AsyncEngine:
    """Get or create the async database engine.

    Lazily constructs a singleton ``AsyncEngine`` from ``settings.database_url``.
    For SQLite the data directory is created first and a busy timeout is set so
    that concurrent writers wait for the lock instead of failing immediately.

    Returns:
        AsyncEngine: A shared asynchronous engine.
    """
    global _engine
    if _engine is None:
        # 延迟导入 settings，避免模块加载时的循环依赖
        from settings import settings

        url = settings.database_url
        connect_args: dict = {}
        if url.startswith("sqlite"):
            settings.data_dir.mkdir(parents=True, exist_ok=True)
            # 多个钩子并发写入时等待写锁，而不是立刻报 database is locked
            connect_args["timeout"] = 30
        _engine = create_async_engine(
            url,
            echo=settings.db_echo,
            connect_args=connect_args,
        )
        logger.info("Database engine created")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory.

    ``expire_on_commit=False`` keeps loaded attributes usable after commit,
    which the sinks rely on when they log or re-save articles.

    Returns:
        async_sessionmaker[AsyncSession]: A session factory bound to the shared engine.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db() -> None:
    """Initialize database schema.

    Creates all tables registered on ``Base.metadata`` if they do not already
    exist.
    """
    import_models()
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified")


async def close_db() -> None:
    """Dispose the database engine and clear session factory."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")


async def check_db_connection() -> bool:
    """Check whether the database connection is healthy.

    Returns:
        bool: ``True`` if ``SELECT 1`` succeeds, otherwise ``False``.
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        # 健康检查只返回状态，不向调用方抛出异常
        logger.error(f"Database connection check failed: {e}")
        return False
