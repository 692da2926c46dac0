# =============================================================================
# 模块: apps/hooks/sinks/notification.py
# 功能: 通知钩子（新文章推送、订阅源出错推送）
# 架构角色: 把匹配到的文章渲染为一条或多条推送，经 notification 并发池
#   交给推送渠道发送，每条推送写一条 WebhookLog(type=notification)。
# 推送规则:
#   - 合并推送：所有文章合并为一条正文，超长时切分，至多 5 条
#   - 逐条推送：每篇文章一条正文，超长时切分，每篇至多 3 条
#   - 标题截断到 256 个字符，正文截断到 max_length
#   - 需要 AI 摘要时，先等待所有文章的 ai_summary 填充完成（有限次重试）
# =============================================================================
"""Notification sink."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Tuple

from sqlalchemy import select

from apps.feed.models import Article, Feed
from apps.hooks.configs import NotificationConfig
from apps.hooks.formatting import (
    article_item_format,
    articles_format,
    break_links,
    cut_chunks,
)
from apps.hooks.models import Hook, WebhookLog, WebhookLogType
from apps.hooks.sinks.base import record_delivery
from common.exceptions import FeedImpactError, RetryError
from common.retry import retry_backoff
from common.utils import time_format

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 256
MERGED_MAX_CHUNKS = 5
ARTICLE_MAX_CHUNKS = 3
# 等待 AI 摘要的退避参数（秒）
AI_WAIT_MAX_RETRIES = 10
AI_WAIT_INTERVAL = (10, 60 * 60)


class SummaryPendingError(FeedImpactError):
    """Some articles have no AI summary yet."""


async def wait_for_ai_summaries(ctx: "DispatchContext", articles: List[Article]) -> List[Article]:
    """Re-read ``articles`` until all have ``ai_summary`` or retries run out.

    超时后记录日志并返回最后一次读取到的文章，推送照常进行。
    """
    ids = [article.id for article in articles]
    latest = list(articles)

    async def _reload() -> None:
        nonlocal latest
        async with ctx.session_factory() as session:
            result = await session.execute(select(Article).where(Article.id.in_(ids)).order_by(Article.id))
            latest = list(result.scalars().all())
        if not all(article.ai_summary for article in latest):
            raise SummaryPendingError("AI summaries are not complete")

    try:
        await retry_backoff(
            _reload,
            max_retries=AI_WAIT_MAX_RETRIES,
            initial_interval=AI_WAIT_INTERVAL[0],
            max_interval=AI_WAIT_INTERVAL[1],
        )
    except RetryError as e:
        logger.error(f"Waiting for AI summaries failed: {e}")
    return latest


def build_notifications(feed: Feed, articles: List[Article], config: NotificationConfig) -> List[Tuple[str, str]]:
    """Return ``(title, body)`` pairs for the matched articles."""
    notifications: List[Tuple[str, str]] = []
    if config.is_merge_push:
        title = f"检测到【 {feed.title} 】有更新"
        body = articles_format(articles, config)
        for chunk in cut_chunks(body, config.max_length, MERGED_MAX_CHUNKS):
            notifications.append((title, chunk))
        return notifications
    for article in articles:
        title = article.title or f"检测到【 {feed.title} 】有更新"
        body = article_item_format(article, config)
        for chunk in cut_chunks(body, config.max_length, ARTICLE_MAX_CHUNKS):
            notifications.append((title, chunk))
    return notifications


def build_error_notification(
    feed: Feed, error: BaseException, config: NotificationConfig, show_stack: bool, stack: str = ""
) -> Tuple[str, str]:
    """Title and body reporting a feed failure."""
    title = f"检测到【 {feed.title} 】发生错误，请及时检查"
    cause = error.__cause__ or getattr(error, "cause", None)
    body = (
        f"URL：{feed.url}\n"
        f"错误名称：{type(error).__name__}\n"
        f"错误信息：{error}\n"
        f"错误堆栈：{stack if show_stack else ''}\n"
        f"错误原因：{(cause or '') if show_stack else ''}\n"
        f"发生时间：{time_format()}"
    )
    if config.is_markdown:
        body = body.replace("\n", "\n\n")
    return title, break_links(body)


async def send_notification(
    ctx: "DispatchContext",
    hook: Hook,
    feed: Feed,
    title: str,
    body: str,
    config: NotificationConfig,
    proxy_url: str | None = None,
) -> WebhookLog:
    """Send one notification and record its outcome."""
    logger.info(f"Sending notification via {config.type} for hook {hook.id}")
    return await record_delivery(
        ctx,
        hook,
        feed,
        WebhookLogType.NOTIFICATION,
        lambda: ctx.push.send(
            title[:TITLE_MAX_LENGTH],
            body[: config.max_length or None],
            config,
            proxy_url,
        ),
    )


async def run_notification_hook(
    ctx: "DispatchContext",
    hook: Hook,
    feed: Feed,
    articles: List[Article],
    config: NotificationConfig,
    proxy_url: str | None = None,
) -> int:
    """Push the matched articles; returns the number of notifications sent."""
    if config.use_ai_summary or config.append_ai_summary:
        articles = await wait_for_ai_summaries(ctx, articles)

    notifications = build_notifications(feed, articles, config)
    await asyncio.gather(
        *(
            ctx.pools.notification.run(send_notification, ctx, hook, feed, title, body, config, proxy_url)
            for title, body in notifications
        )
    )
    return len(notifications)
