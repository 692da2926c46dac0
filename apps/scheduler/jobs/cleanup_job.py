# ==============================================================================
# 模块: 保留期清理定时任务
# 作用: 每天删除超过保留期的文章、资源与推送日志，并清理下载目录中
#       没有任何 success 资源引用的孤立文件。
# 设计思路:
#   - 三类清理互相独立，任何一类失败只记录日志，不影响其它两类
#   - 删除资源时同时取消该资源仍在等待解析种子大小的后台任务
#   - 下载目录可能被误配置为数据目录，.sqlite / .db 文件永远不会被删除
# 执行方式: 每天 00:00（配置时区）触发。
# ==============================================================================

"""Retention cleanup job for FeedImpact."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import delete

from apps.feed.models import Article
from apps.hooks.models import WebhookLog
from apps.resource.store import ResourceStore
from common.utils import utc_now

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

# 永远不删除的文件后缀（防止把数据库文件当作孤立文件删除）
PROTECTED_SUFFIXES = (".sqlite", ".db")


async def remove_articles(ctx: "DispatchContext") -> int:
    threshold = utc_now() - timedelta(days=ctx.settings.article_save_days)
    async with ctx.session_factory() as session:
        result = await session.execute(delete(Article).where(Article.created_at < threshold))
        await session.commit()
    return result.rowcount or 0


async def remove_logs(ctx: "DispatchContext") -> int:
    threshold = utc_now() - timedelta(days=ctx.settings.log_save_days)
    async with ctx.session_factory() as session:
        result = await session.execute(delete(WebhookLog).where(WebhookLog.created_at < threshold))
        await session.commit()
    return result.rowcount or 0


async def remove_orphan_files(ctx: "DispatchContext", store: ResourceStore) -> int:
    """Delete files in the download dir not referenced by a success resource."""
    dir_path = Path(ctx.settings.resource_download_path).resolve()
    if not dir_path.is_dir():
        return 0
    referenced = await store.success_names()
    removed = 0
    for path in dir_path.iterdir():
        if not path.is_file() or path.suffix.lower() in PROTECTED_SUFFIXES:
            continue
        if path.name in referenced:
            continue
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            logger.error(f"Remove orphan file {path} failed: {e}")
    return removed


async def remove_resources(ctx: "DispatchContext") -> dict:
    """Delete expired resources, cancel their deferred tasks and sweep orphan files."""
    store = ResourceStore(ctx.session_factory)
    threshold = utc_now() - timedelta(days=ctx.settings.resource_save_days)
    ids = await store.delete_created_before(threshold)
    cancelled = sum(1 for resource_id in ids if ctx.background.cancel(resource_id))
    files = await remove_orphan_files(ctx, store)
    return {"resources": len(ids), "cancelled_tasks": cancelled, "files": files}


async def run_cleanup_job(ctx: "DispatchContext") -> dict:
    """Run the three retention sweeps.

    Returns:
        dict: Cleanup summary with per-sweep counts and errors.
    """
    logger.info("Starting cleanup job")
    results: dict = {"articles": 0, "resources": 0, "cancelled_tasks": 0, "files": 0, "logs": 0, "errors": []}

    try:
        results["articles"] = await remove_articles(ctx)
    except Exception as e:
        logger.error(f"Remove expired articles failed: {e}")
        results["errors"].append(f"articles: {e}")

    try:
        results.update(await remove_resources(ctx))
    except Exception as e:
        logger.error(f"Remove expired resources failed: {e}")
        results["errors"].append(f"resources: {e}")

    try:
        results["logs"] = await remove_logs(ctx)
    except Exception as e:
        logger.error(f"Remove expired webhook logs failed: {e}")
        results["errors"].append(f"logs: {e}")

    logger.info(f"Cleanup job completed: {results}")
    return results
