# =============================================================================
# 模块: apps/hooks/push.py
# 功能: 推送渠道（通知钩子的下游）
# 架构角色: 通知钩子只依赖一个调用约定：
#   send(title, desp, config, proxy_url) -> HttpResponse(status, data, headers, status_text)
#   失败时抛出 HttpRequestError（有响应时携带响应体与响应头）。
# 支持的渠道:
#   - ServerChanTurbo: Server 酱 Turbo 版（SCTKEY）
#   - Telegram: Bot API sendMessage
#   - Discord: 频道 Webhook
#   - CustomWebhook: 自定义地址，POST {title, desp}
#   - Email: SMTP（复用 common.email）
# =============================================================================
"""Push-delivery channels for notification hooks."""

from __future__ import annotations

import logging
from typing import Any, Dict

from apps.hooks.configs import NotificationConfig
from common.email import send_email_async
from common.exceptions import HttpRequestError, UnsupportedTypeError
from common.http import HttpFetcher, HttpResponse

logger = logging.getLogger(__name__)

# 推送请求超时（秒）
PUSH_TIMEOUT = 60


class PushSender:
    """Sends one notification through the configured channel."""

    def __init__(self, http: HttpFetcher, settings: Any):
        self._http = http
        self._settings = settings

    async def send(
        self,
        title: str,
        desp: str,
        config: NotificationConfig,
        proxy_url: str | None = None,
    ) -> HttpResponse:
        """Deliver ``title``/``desp`` through ``config.type``.

        Raises:
            HttpRequestError: Delivery failed.
            UnsupportedTypeError: Unknown channel type.
        """
        channel = config.type
        options = config.config
        if channel == "ServerChanTurbo":
            return await self._server_chan_turbo(title, desp, options, proxy_url)
        if channel == "Telegram":
            return await self._telegram(title, desp, options, config.is_markdown, proxy_url)
        if channel == "Discord":
            return await self._discord(title, desp, options, proxy_url)
        if channel == "CustomWebhook":
            return await self._custom_webhook(title, desp, options, proxy_url)
        if channel == "Email":
            return await self._email(title, desp, options)
        raise UnsupportedTypeError(f"Unsupported push channel: {channel}")

    async def _server_chan_turbo(
        self, title: str, desp: str, options: Dict[str, Any], proxy_url: str | None
    ) -> HttpResponse:
        key = options.get("SCTKEY") or options.get("key", "")
        return await self._http.fetch(
            f"https://sctapi.ftqq.com/{key}.send",
            method="POST",
            proxy_url=proxy_url,
            timeout=PUSH_TIMEOUT,
            response_type="json",
            data={"title": title, "desp": desp},
        )

    async def _telegram(
        self,
        title: str,
        desp: str,
        options: Dict[str, Any],
        is_markdown: bool,
        proxy_url: str | None,
    ) -> HttpResponse:
        token = options.get("TELEGRAM_BOT_TOKEN") or options.get("token", "")
        chat_id = options.get("TELEGRAM_CHAT_ID") or options.get("chat_id", "")
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": f"{title}\n\n{desp}",
            "disable_web_page_preview": True,
        }
        if is_markdown:
            payload["parse_mode"] = "Markdown"
        return await self._http.fetch(
            f"https://api.telegram.org/bot{token}/sendMessage",
            method="POST",
            proxy_url=proxy_url,
            timeout=PUSH_TIMEOUT,
            response_type="json",
            data=payload,
        )

    async def _discord(
        self, title: str, desp: str, options: Dict[str, Any], proxy_url: str | None
    ) -> HttpResponse:
        url = options.get("DISCORD_WEBHOOK") or options.get("url", "")
        return await self._http.fetch(
            url,
            method="POST",
            proxy_url=proxy_url,
            timeout=PUSH_TIMEOUT,
            response_type="json",
            data={"content": f"**{title}**\n{desp}"},
        )

    async def _custom_webhook(
        self, title: str, desp: str, options: Dict[str, Any], proxy_url: str | None
    ) -> HttpResponse:
        url = options.get("url", "")
        return await self._http.fetch(
            url,
            method=options.get("method", "POST"),
            proxy_url=proxy_url,
            timeout=PUSH_TIMEOUT,
            response_type="json",
            headers=options.get("headers") or None,
            data={"title": title, "desp": desp},
        )

    async def _email(self, title: str, desp: str, options: Dict[str, Any]) -> HttpResponse:
        settings = self._settings
        to_addrs = options.get("to") or []
        if isinstance(to_addrs, str):
            to_addrs = [addr.strip() for addr in to_addrs.split(",") if addr.strip()]
        ok, error = await send_email_async(
            subject=title,
            body=desp,
            from_addr=options.get("from") or settings.smtp_user,
            to_addrs=to_addrs,
            smtp_host=options.get("host") or settings.smtp_host,
            smtp_port=int(options.get("port") or settings.smtp_port),
            smtp_user=options.get("user") or settings.smtp_user,
            smtp_password=options.get("password") or settings.smtp_password,
            timeout=settings.smtp_timeout,
            use_tls=settings.smtp_tls,
            use_ssl=settings.smtp_ssl,
        )
        if not ok:
            raise HttpRequestError(f"Email delivery failed: {error}")
        return HttpResponse(status=200, data={"sent": len(to_addrs)}, headers={}, status_text="OK")
