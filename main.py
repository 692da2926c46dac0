# =============================================================================
# 模块: main.py
# 功能: FeedImpact 进程入口
# 架构角色: FastAPI 应用的启动与关闭编排：
#   启动：初始化日志 -> 建表 -> 构建 DispatchContext -> 启动调度器（每日任务 +
#         所有启用订阅源的轮询任务）
#   关闭：停止调度器 -> 取消后台任务 -> 关闭数据库连接
#   另外提供健康检查与订阅源任务的运行时启停接口。
# =============================================================================

"""Main application entry point for FeedImpact."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from apps.context import DispatchContext
from apps.feed.models import Feed
from apps.scheduler.feed_tasks import FeedTaskScheduler
from apps.scheduler.tasks import get_scheduler, start_scheduler, stop_scheduler
from common.logger import setup_logging
from core.database import check_db_connection, close_db, get_session_factory, init_db
from settings import settings

setup_logging("DEBUG" if settings.debug else "INFO")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting {settings.app_name}...")

    if not await check_db_connection():
        logger.error("Database connection failed")
        raise RuntimeError("Cannot connect to database")

    await init_db()
    logger.info("Database initialized")

    ctx = DispatchContext.build(settings, get_session_factory())
    app.state.ctx = ctx
    app.state.feed_tasks = await start_scheduler(ctx)
    logger.info(f"{settings.app_name} started successfully")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await stop_scheduler()
    await ctx.background.cancel_all()
    await close_db()
    logger.info(f"{settings.app_name} shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Feed polling and hook dispatch service",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


async def _load_feed(request: Request, feed_id: int) -> Feed:
    ctx: DispatchContext = request.app.state.ctx
    async with ctx.session_factory() as session:
        feed = await session.get(Feed, feed_id)
    if feed is None:
        raise HTTPException(status_code=404, detail=f"Feed {feed_id} not found")
    return feed


@app.get("/health")
async def health_check():
    """Health check with database status and live job count."""
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "unhealthy",
        "components": {
            "database": "connected" if db_ok else "disconnected",
        },
        "jobs": len(get_scheduler().get_jobs()),
    }


@app.post("/api/feeds/{feed_id}/task")
async def enable_feed_task(feed_id: int, request: Request):
    """Start the polling job of a feed."""
    feed = await _load_feed(request, feed_id)
    feed_tasks: FeedTaskScheduler = request.app.state.feed_tasks
    created = feed_tasks.enable(feed)
    return {"feed_id": feed_id, "enabled": feed_id in feed_tasks, "created": created}


@app.delete("/api/feeds/{feed_id}/task")
async def disable_feed_task(feed_id: int, request: Request):
    """Stop the polling job of a feed."""
    feed_tasks: FeedTaskScheduler = request.app.state.feed_tasks
    removed = feed_tasks.disable(feed_id)
    return {"feed_id": feed_id, "removed": removed}


@app.post("/api/feeds/{feed_id}/poll")
async def poll_feed_now(feed_id: int, request: Request):
    """Poll a feed immediately inside the rss pool."""
    feed = await _load_feed(request, feed_id)
    feed_tasks: FeedTaskScheduler = request.app.state.feed_tasks
    return await request.app.state.ctx.pools.rss.run(feed_tasks.poller.poll_feed, feed)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.app_host, port=settings.app_port, reload=settings.debug)
