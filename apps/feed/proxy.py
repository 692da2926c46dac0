"""Proxy resolution for feeds and hooks."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from apps.feed.models import ProxyConfig
from common.exceptions import ConfigurationError


async def resolve_proxy_url(session: AsyncSession, proxy_config_id: int | None) -> str | None:
    """Load the proxy URL for ``proxy_config_id``.

    未配置代理时返回 None；配置了 id 但找不到记录时抛出 ConfigurationError。
    """
    if not proxy_config_id:
        return None
    proxy = await session.get(ProxyConfig, proxy_config_id)
    if proxy is None or not proxy.url:
        raise ConfigurationError(f"Proxy config {proxy_config_id} not found")
    return proxy.url
