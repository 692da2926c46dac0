# =============================================================================
# 模块: apps/hooks/dispatcher.py
# 功能: 钩子分发器
# 架构角色: poller 在插入新文章后调用 dispatch_hooks，在抓取失败时调用
#   reverse_trigger。分发器负责：
#   1. 从数据库重新加载订阅源当前关联的钩子（钩子可能在任务运行期间被修改）
#   2. 每个钩子提交到 hook 并发池，按过滤规则筛选文章，无匹配则跳过且不写日志
#   3. 把钩子配置解析为带标签的变体，穷尽匹配到对应的处理器
#   4. 单个钩子的异常只记录日志，不影响其它钩子
#
# 反转触发:
#   - 最近一小时该订阅源的 WebhookLog 数达到上限时直接跳过，防止持续出错的订阅源刷屏
#   - 只触发 is_reversed 且类型为 notification / webhook 的钩子
#   - 订阅源所属用户为管理员或处于调试模式时，推送内容包含错误堆栈与原因
# =============================================================================
"""Hook dispatch and reverse triggering."""

from __future__ import annotations

import asyncio
import logging
import traceback
from datetime import timedelta
from typing import TYPE_CHECKING, List

from sqlalchemy import func, select

from apps.feed.models import Article, Feed, feed_hooks
from apps.hooks.configs import (
    AISummaryConfig,
    BitTorrentConfig,
    DownloadConfig,
    NotificationConfig,
    RegularConfig,
    WebhookConfig,
    parse_hook_config,
)
from apps.hooks.filters import filter_articles
from apps.hooks.formatting import article_to_dict, model_to_dict
from apps.hooks.models import REVERSIBLE_HOOK_TYPES, Hook, WebhookLog
from apps.hooks.sinks.ai_summary import run_ai_summary_hook
from apps.hooks.sinks.base import hook_proxy_url
from apps.hooks.sinks.bit_torrent import run_bit_torrent_hook
from apps.hooks.sinks.download import run_download_hook
from apps.hooks.sinks.notification import build_error_notification, run_notification_hook, send_notification
from apps.hooks.sinks.regular import run_regular_hook
from apps.hooks.sinks.webhook import run_webhook_hook
from common.exceptions import UnsupportedTypeError
from common.utils import utc_now
from core.models.user import User

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

# 反转触发的统计窗口
REVERSE_TRIGGER_WINDOW = timedelta(hours=1)


class HookDispatcher:
    """Routes new articles and feed errors to hook sinks."""

    def __init__(self, ctx: "DispatchContext"):
        self.ctx = ctx

    async def load_hooks(self, feed_id: int, reversed_: bool = False) -> List[Hook]:
        """Load the enabled hooks of ``feed_id`` fresh from storage."""
        stmt = (
            select(Hook)
            .join(feed_hooks, feed_hooks.c.hook_id == Hook.id)
            .where(
                feed_hooks.c.feed_id == feed_id,
                Hook.is_enabled.is_(True),
                Hook.is_reversed.is_(reversed_),
            )
            .order_by(Hook.id)
        )
        if reversed_:
            stmt = stmt.where(Hook.type.in_(REVERSIBLE_HOOK_TYPES))
        async with self.ctx.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # =========================================================================
    # 新文章分发
    # =========================================================================
    async def dispatch_hooks(self, feed: Feed, articles: List[Article]) -> int:
        """Run every non-reversed hook of ``feed`` against ``articles``.

        Returns:
            int: Number of hooks that matched at least one article and ran.
        """
        if not articles:
            return 0
        hooks = await self.load_hooks(feed.id)
        if not hooks:
            return 0
        results = await asyncio.gather(
            *(self.ctx.pools.hook.run(self._run_guarded, hook, feed, articles) for hook in hooks)
        )
        triggered = sum(1 for ran in results if ran)
        logger.info(f"Feed {feed.id}: {triggered}/{len(hooks)} hook(s) triggered for {len(articles)} article(s)")
        return triggered

    async def _run_guarded(self, hook: Hook, feed: Feed, articles: List[Article]) -> bool:
        try:
            return await self.run_hook(hook, feed, articles)
        except Exception as e:
            logger.exception(f"Hook {hook.id} ({hook.type}) failed: {e}")
            return False

    async def run_hook(self, hook: Hook, feed: Feed, articles: List[Article]) -> bool:
        """Filter ``articles`` for ``hook`` and run its sink.

        Returns:
            bool: False when no article matched.

        Raises:
            UnsupportedTypeError: Unknown hook type.
        """
        matched = filter_articles(articles, hook.filter)
        if not matched:
            logger.debug(f"Hook {hook.id} matched no article")
            return False

        ctx = self.ctx
        config = parse_hook_config(hook)
        logger.debug(f"Running hook {hook.id} ({hook.type}) on {len(matched)} article(s)")
        match config:
            case NotificationConfig():
                proxy_url = await hook_proxy_url(ctx, hook)
                await run_notification_hook(ctx, hook, feed, matched, config, proxy_url)
            case WebhookConfig():
                proxy_url = await hook_proxy_url(ctx, hook, feed.proxy_config_id)
                payload = [article_to_dict(article) for article in matched]
                await run_webhook_hook(ctx, hook, feed, payload, config, proxy_url)
            case DownloadConfig():
                proxy_url = await hook_proxy_url(ctx, hook)
                await run_download_hook(ctx, hook, matched, config, proxy_url)
            case BitTorrentConfig():
                proxy_url = await hook_proxy_url(ctx, hook)
                await run_bit_torrent_hook(ctx, hook, matched, config, proxy_url)
            case AISummaryConfig():
                proxy_url = await hook_proxy_url(ctx, hook)
                await run_ai_summary_hook(ctx, matched, config, proxy_url)
            case RegularConfig():
                await run_regular_hook(ctx, matched, config)
            case _:
                raise UnsupportedTypeError(f"Unsupported hook type: {hook.type}")
        return True

    # =========================================================================
    # 反转触发
    # =========================================================================
    async def recent_log_count(self, feed_id: int) -> int:
        since = utc_now() - REVERSE_TRIGGER_WINDOW
        async with self.ctx.session_factory() as session:
            result = await session.execute(
                select(func.count(WebhookLog.id)).where(
                    WebhookLog.feed_id == feed_id,
                    WebhookLog.created_at >= since,
                )
            )
            return int(result.scalar_one())

    async def _show_stack(self, user_id: int) -> bool:
        if self.ctx.settings.debug:
            return True
        async with self.ctx.session_factory() as session:
            user = await session.get(User, user_id)
            return bool(user and user.is_admin)

    async def reverse_trigger(self, feed: Feed, error: BaseException) -> int:
        """Notify the reversed hooks of ``feed`` about ``error``.

        Returns:
            int: Number of hooks dispatched; 0 when rate-limited.
        """
        limit = self.ctx.settings.reverse_trigger_limit
        count = await self.recent_log_count(feed.id)
        if count >= limit:
            logger.warning(f"Feed {feed.id} triggered {count} times within an hour (limit {limit}), skipped")
            return 0

        hooks = await self.load_hooks(feed.id, reversed_=True)
        if not hooks:
            return 0
        show_stack = await self._show_stack(feed.user_id)
        results = await asyncio.gather(
            *(
                self.ctx.pools.hook.run(self._reverse_guarded, hook, feed, error, show_stack)
                for hook in hooks
            )
        )
        return sum(1 for ran in results if ran)

    async def _reverse_guarded(self, hook: Hook, feed: Feed, error: BaseException, show_stack: bool) -> bool:
        try:
            await self.run_reverse_hook(hook, feed, error, show_stack)
            return True
        except Exception as e:
            logger.exception(f"Reversed hook {hook.id} ({hook.type}) failed: {e}")
            return False

    async def run_reverse_hook(self, hook: Hook, feed: Feed, error: BaseException, show_stack: bool) -> None:
        ctx = self.ctx
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        cause = error.__cause__ or getattr(error, "cause", None)
        config = parse_hook_config(hook)
        match config:
            case NotificationConfig():
                proxy_url = await hook_proxy_url(ctx, hook)
                title, body = build_error_notification(feed, error, config, show_stack, stack)
                await ctx.pools.notification.run(send_notification, ctx, hook, feed, title, body, config, proxy_url)
            case WebhookConfig():
                proxy_url = await hook_proxy_url(ctx, hook, feed.proxy_config_id)
                payload = {
                    "feed": model_to_dict(feed),
                    "message": str(error),
                    "stack": stack if show_stack else None,
                    "cause": str(cause) if show_stack and cause is not None else None,
                    "date": utc_now().isoformat(),
                }
                await run_webhook_hook(ctx, hook, feed, payload, config, proxy_url)
            case _:
                logger.warning(f"Hook type {hook.type} cannot be reverse triggered")
