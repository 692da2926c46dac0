# =============================================================================
# 模块: apps/context.py
# 功能: 分发上下文（DispatchContext）
# 架构角色: 进程启动时构建一次，持有六个并发池、数据库会话工厂、HTTP 客户端、
#   推送渠道、后台任务注册表，以及 BitTorrent 客户端 / AI 提供商的工厂函数。
#   poller、分发器、各钩子处理器与定时任务都通过它拿到依赖，不读取模块级单例。
# 设计决策:
#   - 工厂函数可替换，测试中注入假的 BitTorrent 客户端与 AI 提供商
#   - HttpFetcher 的 transport 可注入 httpx.MockTransport
# =============================================================================
"""Dispatch context threaded through every component."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from apps.ai.provider import AIProvider, create_ai_provider
from apps.bit_torrent.client import BitTorrentClient, create_bit_torrent_client
from apps.hooks.configs import AISummaryConfig, BitTorrentConfig
from apps.hooks.push import PushSender
from common.background import BackgroundTasks
from common.http import HttpFetcher
from common.pools import ConcurrencyPools


@dataclass
class DispatchContext:
    """Shared handles for pollers, dispatchers and sinks."""

    settings: Any
    pools: ConcurrencyPools
    session_factory: async_sessionmaker[AsyncSession]
    http: HttpFetcher
    push: PushSender
    background: BackgroundTasks = field(default_factory=BackgroundTasks)
    bit_torrent_client_factory: Optional[Callable[[BitTorrentConfig, str | None], BitTorrentClient]] = None
    ai_provider_factory: Optional[Callable[[AISummaryConfig, str | None], AIProvider]] = None

    def __post_init__(self) -> None:
        if self.bit_torrent_client_factory is None:
            self.bit_torrent_client_factory = lambda config, proxy_url: create_bit_torrent_client(
                config, proxy_url, transport=self.http.transport
            )
        if self.ai_provider_factory is None:
            self.ai_provider_factory = lambda config, proxy_url: create_ai_provider(
                config, proxy_url, transport=self.http.transport
            )

    @classmethod
    def build(
        cls,
        settings: Any,
        session_factory: async_sessionmaker[AsyncSession],
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "DispatchContext":
        """Build the context once at process start."""
        http = HttpFetcher(transport=transport)
        return cls(
            settings=settings,
            pools=ConcurrencyPools.from_settings(settings),
            session_factory=session_factory,
            http=http,
            push=PushSender(http, settings),
        )
