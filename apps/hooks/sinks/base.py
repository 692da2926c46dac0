# =============================================================================
# 模块: apps/hooks/sinks/base.py
# 功能: 钩子处理器共用的工具（执行日志写入、代理解析）
# 架构角色: 通知与 Webhook 两类钩子的每一次投递都通过 record_delivery 执行：
#   - 成功：记录响应的状态码、响应体、响应头与状态描述，status=success
#   - 失败：有响应时记录响应体与响应头，否则合成 500 Internal Server Error，
#     status=fail
#   无论成功失败都只写入一条 WebhookLog，异常不会向上传播。
# =============================================================================
"""Shared helpers for sink handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from apps.feed.models import Feed
from apps.feed.proxy import resolve_proxy_url
from apps.hooks.models import Hook, WebhookLog, WebhookLogStatus, WebhookLogType
from common.http import HttpResponse

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    """Coerce a response body into something the JSON column accepts."""
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


async def hook_proxy_url(ctx: "DispatchContext", hook: Hook, fallback_id: int | None = None) -> str | None:
    """Proxy URL of ``hook``, falling back to ``fallback_id`` (the feed's proxy)."""
    async with ctx.session_factory() as session:
        return await resolve_proxy_url(session, hook.proxy_config_id or fallback_id)


async def record_delivery(
    ctx: "DispatchContext",
    hook: Hook,
    feed: Feed,
    log_type: WebhookLogType,
    send: Callable[[], Awaitable[HttpResponse]],
) -> WebhookLog:
    """Run ``send`` and persist exactly one :class:`WebhookLog` for it.

    Args:
        ctx: Dispatch context.
        hook: Hook being executed.
        feed: Feed that triggered the hook.
        log_type: ``webhook`` or ``notification``.
        send: Zero-argument coroutine function performing the delivery.

    Returns:
        WebhookLog: The persisted outcome row.
    """
    log = WebhookLog(
        hook_id=hook.id,
        feed_id=feed.id,
        user_id=hook.user_id,
        type=log_type.value,
        status=WebhookLogStatus.UNKNOWN.value,
    )
    try:
        response = await send()
        log.status = WebhookLogStatus.SUCCESS.value
        log.status_code = response.status
        log.status_text = response.status_text
        log.data = _jsonable(response.data)
        log.headers = dict(response.headers or {})
        logger.info(f"Hook {hook.id} ({log_type.value}) delivered: HTTP {response.status}")
    except Exception as e:
        logger.error(f"Hook {hook.id} ({log_type.value}) delivery failed: {e}")
        response = getattr(e, "response", None)
        log.status = WebhookLogStatus.FAIL.value
        if response is not None:
            log.status_code = response.status
            log.status_text = response.status_text or "Internal Server Error"
            log.data = _jsonable(response.data)
            log.headers = dict(response.headers or {})
        else:
            log.status_code = 500
            log.status_text = "Internal Server Error"
            log.data = {"message": str(e), "name": type(e).__name__}
            log.headers = {}

    async with ctx.session_factory() as session:
        session.add(log)
        await session.commit()
        await session.refresh(log)
    return log
