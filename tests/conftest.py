"""Shared test fixtures for FeedImpact tests."""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import BigInteger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure the project root is on sys.path so bare imports work
_PROJECT_ROOT = os.path.join(os.path.dirname(__file__), os.pardir)
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, os.path.abspath(_PROJECT_ROOT))

# BigInteger renders as BIGINT which does not alias ROWID on SQLite; only the
# exact type name INTEGER gets autoincrement behaviour.
from sqlalchemy.ext.compiler import compiles as _compiles  # noqa: E402


@_compiles(BigInteger, "sqlite")
def _compile_big_int_sqlite(type_, compiler, **kw):
    return "INTEGER"


from apps.bit_torrent.client import BitTorrentClient, TorrentInfo  # noqa: E402
from apps.ai.provider import AIProvider  # noqa: E402


RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Feed</title>
    <link>https://example.com/</link>
    <description>Example feed description</description>
    <image><url>https://example.com/logo.png</url><title>Example</title><link>https://example.com/</link></image>
    {items}
  </channel>
</rss>
"""


def make_rss(*items: Dict[str, str]) -> str:
    """Render a minimal RSS 2.0 document.

    每个条目可包含 guid / title / link / description / enclosure（dict，含 url/type/length）。
    """
    rendered = []
    for item in items:
        parts = ["<item>"]
        for key in ("guid", "title", "link", "author"):
            if item.get(key):
                parts.append(f"<{key}>{item[key]}</{key}>")
        if item.get("description"):
            parts.append(f"<description><![CDATA[{item['description']}]]></description>")
        enclosure = item.get("enclosure")
        if enclosure:
            parts.append(
                f'<enclosure url="{enclosure["url"]}" type="{enclosure.get("type", "")}" '
                f'length="{enclosure.get("length", "")}"/>'
            )
        parts.append("</item>")
        rendered.append("".join(parts))
    return RSS_TEMPLATE.format(items="\n".join(rendered))


# =========================================================================
# HTTP stub
# =========================================================================

class HttpStub:
    """Routes ``httpx.MockTransport`` requests by URL prefix and records them.

    按注册顺序匹配 URL 前缀；值可以是 httpx.Response、返回 Response 的函数，
    或异常实例（模拟网络错误）。未匹配的请求返回 404。
    """

    def __init__(self) -> None:
        self.routes: List[tuple[str, Any]] = []
        self.requests: List[httpx.Request] = []

    def add(self, prefix: str, handler: Any) -> None:
        self.routes.insert(0, (prefix, handler))

    def calls(self, prefix: str) -> List[httpx.Request]:
        return [request for request in self.requests if str(request.url).startswith(prefix)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        for prefix, handler in self.routes:
            if not url.startswith(prefix):
                continue
            if isinstance(handler, Exception):
                raise handler
            if callable(handler):
                return handler(request)
            return handler
        return httpx.Response(404, text="not found")


@pytest.fixture
def http_stub() -> HttpStub:
    return HttpStub()


# =========================================================================
# Collaborator fakes
# =========================================================================

class FakeBitTorrentClient(BitTorrentClient):
    """In-memory BitTorrent client.

    记录添加/删除操作；torrents 字典模拟客户端中的种子。
    """

    def __init__(self, free_space: int = 1024 ** 4):
        self.free_space = free_space
        self.torrents: Dict[str, TorrentInfo] = {}
        self.added: List[str] = []
        self.removed: List[str] = []
        self.remove_error: Optional[Exception] = None
        self.keep_after_remove = False
        # 设置后删除请求会阻塞到事件被 set
        self.remove_gate: Optional[asyncio.Event] = None
        self.closed = 0

    async def add_magnet(self, magnet_uri: str, save_path: str = "") -> None:
        self.added.append(magnet_uri)

    async def add_torrent(self, data: bytes, filename: str, save_path: str = "") -> None:
        self.added.append(filename)

    async def get_free_space(self) -> int:
        return self.free_space

    async def list_torrents(self, sort: str = "downloaded", reverse: bool = True) -> List[TorrentInfo]:
        return sorted(self.torrents.values(), key=lambda t: t.downloaded, reverse=reverse)

    async def get_torrent(self, info_hash: str) -> Optional[TorrentInfo]:
        return self.torrents.get(info_hash)

    async def remove_torrent(self, info_hash: str, delete_files: bool = True) -> None:
        self.removed.append(info_hash)
        if self.remove_gate is not None:
            await self.remove_gate.wait()
        if self.remove_error is not None:
            raise self.remove_error
        if not self.keep_after_remove:
            torrent = self.torrents.pop(info_hash, None)
            if torrent is not None:
                self.free_space += torrent.downloaded

    async def close(self) -> None:
        self.closed += 1


class FakeAIProvider(AIProvider):
    """AI provider returning canned summaries."""

    def __init__(self, replies: Optional[List[Any]] = None):
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def complete(
        self,
        system_prompt: str,
        user_content: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        self.calls.append({"prompt": system_prompt, "content": user_content, "max_tokens": max_tokens})
        reply = self.replies.pop(0) if self.replies else f"summary of {len(user_content)} chars"
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def bt_client() -> FakeBitTorrentClient:
    return FakeBitTorrentClient()


@pytest.fixture
def ai_provider() -> FakeAIProvider:
    return FakeAIProvider()


# =========================================================================
# Database and context
# =========================================================================

@pytest.fixture
def test_settings(tmp_path):
    """Settings copy pointing downloads at a temp dir.

    测试使用的配置副本：下载目录指向临时目录，关闭 debug。
    """
    from settings import settings

    return settings.model_copy(
        update={
            "resource_download_path": tmp_path / "download",
            "debug": False,
            "reverse_trigger_limit": 5,
            "feed_request_timeout": 5,
            "timezone": "Asia/Shanghai",
        }
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database per test.

    每个测试使用独立的 SQLite 文件，多个会话之间共享数据。
    """
    from core.database import import_models
    from core.models.base import Base

    import_models()
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def ctx(test_settings, session_factory, http_stub, bt_client, ai_provider):
    """Dispatch context wired to the HTTP stub and fakes."""
    from apps.context import DispatchContext

    context = DispatchContext.build(test_settings, session_factory, transport=httpx.MockTransport(http_stub))
    context.bit_torrent_client_factory = lambda config, proxy_url: bt_client
    context.ai_provider_factory = lambda config, proxy_url: ai_provider

    yield context

    await context.background.cancel_all()


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch) -> AsyncMock:
    """Replace the retry sleep so backoff loops finish instantly."""
    sleep = AsyncMock()
    monkeypatch.setattr("common.retry._sleep", sleep)
    return sleep


@pytest.fixture
def persist(session_factory) -> Callable:
    """Return a coroutine function that inserts rows and returns them."""

    async def _persist(*objs):
        async with session_factory() as session:
            session.add_all(objs)
            await session.commit()
            for obj in objs:
                await session.refresh(obj)
        return objs[0] if len(objs) == 1 else objs

    return _persist


@pytest_asyncio.fixture
async def feed(persist):
    from apps.feed.models import Feed

    return await persist(
        Feed(url="https://example.com/feed.xml", title="Example", cron="EVERY_10_MINUTES", user_id=1)
    )


@pytest.fixture
def attach_hook(persist, session_factory):
    """Create a hook and link it to a feed."""
    from apps.feed.models import feed_hooks
    from apps.hooks.models import Hook

    async def _attach(feed, type_: str, config: dict, **kwargs):
        hook = await persist(Hook(type=type_, config=config, user_id=feed.user_id, **kwargs))
        async with session_factory() as session:
            await session.execute(feed_hooks.insert().values(feed_id=feed.id, hook_id=hook.id))
            await session.commit()
        return hook

    return _attach


@pytest.fixture
def rss() -> Callable[..., str]:
    """Return :func:`make_rss`."""
    return make_rss
