# =============================================================================
# 模块: apps/feed/poller.py
# 功能: 订阅源轮询
# 架构角色: 定时任务触发后执行的核心流程：
#   1. 解析代理 -> 带退避重试地抓取订阅源 -> 解析文档
#   2. 回填订阅源为空的描述与封面
#   3. 按 (guid, user_id) 去重，批量插入新文章
#   4. 有新文章时交给钩子分发器
#   第 1、2 步的任何异常转交反转触发，不会抛给调度器。
# 设计决策:
#   - 抓取退避区间为 [10 秒, 10 分钟]，不超过最短轮询间隔
#   - 同一文档内重复的 guid 只保留第一次出现的条目
#   - 并发插入同一文章由唯一约束拒绝，不做额外协调
# =============================================================================
"""Feed polling: fetch, parse, dedup, persist, dispatch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from sqlalchemy import select, update

from apps.feed.models import Article, Feed
from apps.feed.parser import ParsedFeed, parse_feed
from apps.feed.proxy import resolve_proxy_url
from apps.hooks.dispatcher import HookDispatcher
from common.retry import retry_backoff

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

# 抓取重试的退避区间（秒）
FETCH_INITIAL_INTERVAL = 10
FETCH_MAX_INTERVAL = 10 * 60


class FeedPoller:
    """Polls one feed and hands new articles to the dispatcher."""

    def __init__(self, ctx: "DispatchContext", dispatcher: HookDispatcher | None = None):
        self.ctx = ctx
        self.dispatcher = dispatcher or HookDispatcher(ctx)

    async def fetch_document(self, feed: Feed) -> str:
        """Fetch ``feed.url`` through its proxy with backoff.

        Raises:
            ConfigurationError: ``proxy_config_id`` points at a missing proxy.
            RetryError: The fetch kept failing.
        """
        async with self.ctx.session_factory() as session:
            proxy_url = await resolve_proxy_url(session, feed.proxy_config_id)

        async def _fetch() -> Any:
            return await self.ctx.http.fetch(
                feed.url,
                proxy_url=proxy_url,
                timeout=self.ctx.settings.feed_request_timeout,
                response_type="text",
            )

        response = await retry_backoff(
            _fetch,
            max_retries=feed.max_retries or 0,
            initial_interval=FETCH_INITIAL_INTERVAL,
            max_interval=FETCH_MAX_INTERVAL,
        )
        return response.data

    async def backfill_feed(self, feed: Feed, parsed: ParsedFeed) -> None:
        """Fill an empty description or image from the document."""
        values: Dict[str, Any] = {}
        if not feed.description and parsed.description:
            values["description"] = parsed.description.strip()
        if not feed.image_url and parsed.image_url:
            values["image_url"] = parsed.image_url
        if not values:
            return
        for key, value in values.items():
            setattr(feed, key, value)
        async with self.ctx.session_factory() as session:
            await session.execute(update(Feed).where(Feed.id == feed.id).values(**values))
            await session.commit()

    async def insert_new_articles(self, feed: Feed, parsed: ParsedFeed) -> List[Article]:
        """Persist the items whose guid is unseen for ``feed.user_id``."""
        items: Dict[str, Dict[str, Any]] = {}
        for item in parsed.items:
            items.setdefault(item["guid"], item)
        if not items:
            return []

        async with self.ctx.session_factory() as session:
            result = await session.execute(
                select(Article.guid).where(
                    Article.guid.in_(list(items)),
                    Article.user_id == feed.user_id,
                )
            )
            existing = set(result.scalars().all())
            articles = [
                Article(
                    **{**item, "author": item.get("author") or parsed.author},
                    feed_id=feed.id,
                    user_id=feed.user_id,
                )
                for guid, item in items.items()
                if guid not in existing
            ]
            if not articles:
                return []
            session.add_all(articles)
            await session.commit()
        return articles

    async def poll_feed(self, feed: Feed, document: str | bytes | ParsedFeed | None = None) -> Dict[str, Any]:
        """Poll ``feed`` once.

        从订阅源抓取（或使用传入的文档）、去重、保存新文章并触发钩子。
        抓取与解析阶段的异常转交反转触发钩子，本方法不会抛出异常。

        Args:
            feed: Feed to poll.
            document: Pre-fetched raw document or parsed feed; fetched when omitted.

        Returns:
            Dict[str, Any]: ``{feed_id, status, fetched, inserted}``.
        """
        summary: Dict[str, Any] = {"feed_id": feed.id, "status": "ok", "fetched": 0, "inserted": 0}
        try:
            if document is None:
                document = await self.fetch_document(feed)
            parsed = document if isinstance(document, ParsedFeed) else parse_feed(document)
            await self.backfill_feed(feed, parsed)
        except Exception as e:
            cause = getattr(e, "cause", None) or e.__cause__
            logger.error(f"Poll feed {feed.id} failed, url: {feed.url}, message: {e}, cause: {cause}")
            summary.update(status="error", error=str(e))
            try:
                await self.dispatcher.reverse_trigger(feed, e)
            except Exception as trigger_error:
                logger.exception(f"Reverse trigger of feed {feed.id} failed: {trigger_error}")
            return summary

        summary["fetched"] = len(parsed.items)
        try:
            articles = await self.insert_new_articles(feed, parsed)
            summary["inserted"] = len(articles)
            if articles:
                logger.info(f"Feed {feed.id} has {len(articles)} new article(s)")
                await self.dispatcher.dispatch_hooks(feed, articles)
        except Exception as e:
            logger.exception(f"Handling new articles of feed {feed.id} failed: {e}")
            summary.update(status="error", error=str(e))
        return summary
