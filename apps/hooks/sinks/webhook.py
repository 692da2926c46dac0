"""Webhook sink: one outbound HTTP call per trigger."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from apps.feed.models import Feed
from apps.hooks.configs import WebhookConfig
from apps.hooks.models import Hook, WebhookLog, WebhookLogType
from apps.hooks.sinks.base import record_delivery

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)


async def run_webhook_hook(
    ctx: "DispatchContext",
    hook: Hook,
    feed: Feed,
    data: Any,
    config: WebhookConfig,
    proxy_url: str | None = None,
) -> WebhookLog:
    """Call the configured URL with ``data`` as body.

    ``data`` 为序列化后的文章列表，反转触发时为错误信息。
    """
    logger.info(f"Triggering webhook {config.method} {config.url}")
    return await record_delivery(
        ctx,
        hook,
        feed,
        WebhookLogType.WEBHOOK,
        lambda: ctx.http.fetch(
            config.url,
            method=config.method,
            proxy_url=proxy_url,
            timeout=config.timeout or 60,
            response_type="json",
            headers=config.headers or None,
            data=data,
        ),
    )
