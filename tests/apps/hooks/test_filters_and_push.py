"""Tests for apps/hooks/filters.py, apps/hooks/configs.py and apps/hooks/push.py."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pydantic import ValidationError

from apps.feed.models import Article
from apps.hooks.configs import (
    BitTorrentConfig,
    DownloadConfig,
    NotificationConfig,
    WebhookConfig,
    parse_hook_config,
)
from apps.hooks.filters import filter_articles, match_article
from apps.hooks.models import Hook
from apps.hooks.push import PushSender
from common.exceptions import HttpRequestError, UnsupportedTypeError
from common.http import HttpFetcher


def _article(**kwargs) -> Article:
    return Article(guid="f-1", feed_id=1, user_id=1, **kwargs)


class TestFilters:
    """Include/exclude rules.

    过滤规则：各字段正则均需命中，filterout 中任一字段命中则排除。
    """

    def test_empty_rule_matches(self):
        assert match_article(_article(title="x"), None)
        assert match_article(_article(title="x"), {})

    def test_include_and_exclude(self):
        release = _article(title="Release v2", categories=["news"])
        beta = _article(title="Release v3 beta", categories=["news"])
        other = _article(title="Meetup", categories=["events"])
        rule = {"title": "release", "categories": "news", "filterout": {"title": "beta"}}

        assert filter_articles([release, beta, other], rule) == [release]

    def test_content_searches_snippet_and_summary(self):
        article = _article(content="<p>x</p>", summary="contains keyword")

        assert match_article(article, {"content": "KEYWORD"})

    def test_invalid_pattern_is_ignored(self):
        assert match_article(_article(title="x"), {"title": "("})


class TestHookConfigs:
    def test_parse_by_type(self):
        hook = Hook(type="bitTorrent", config={"baseUrl": "http://qb", "maxSize": "10GB", "autoRemove": True})

        config = parse_hook_config(hook)

        assert isinstance(config, BitTorrentConfig)
        assert config.max_size_bytes == 10 * 1024 ** 3
        assert config.min_disk_size_bytes == 0
        assert config.auto_remove is True

    def test_unknown_type(self):
        with pytest.raises(UnsupportedTypeError):
            parse_hook_config(Hook(type="fax", config={}))

    def test_webhook_requires_url(self):
        with pytest.raises(ValidationError):
            parse_hook_config(Hook(type="webhook", config={"method": "GET"}))

    def test_skip_hashes(self):
        assert DownloadConfig(skip_hashes="AB, cd").skip_hash_list == ["ab", "cd"]
        assert isinstance(parse_hook_config(Hook(type="webhook", config={"url": "https://x"})), WebhookConfig)


class TestPushSender:
    """Push channels.

    推送渠道：按配置类型选择接口地址与请求体。
    """

    def _sender(self, http_stub, **settings) -> PushSender:
        return PushSender(HttpFetcher(transport=httpx.MockTransport(http_stub)), SimpleNamespace(**settings))

    @pytest.mark.asyncio
    async def test_server_chan_turbo(self, http_stub):
        http_stub.add("https://sctapi.ftqq.com/", httpx.Response(200, json={"code": 0}))
        config = NotificationConfig(type="ServerChanTurbo", config={"SCTKEY": "SCT123"})

        response = await self._sender(http_stub).send("title", "body", config)

        assert response.status == 200
        request = http_stub.requests[0]
        assert str(request.url) == "https://sctapi.ftqq.com/SCT123.send"
        assert json.loads(request.content) == {"title": "title", "desp": "body"}

    @pytest.mark.asyncio
    async def test_telegram_markdown(self, http_stub):
        http_stub.add("https://api.telegram.org/", httpx.Response(200, json={"ok": True}))
        config = NotificationConfig(
            type="Telegram",
            is_markdown=True,
            config={"TELEGRAM_BOT_TOKEN": "tok", "TELEGRAM_CHAT_ID": "42"},
        )

        await self._sender(http_stub).send("t", "d", config)

        payload = json.loads(http_stub.requests[0].content)
        assert str(http_stub.requests[0].url) == "https://api.telegram.org/bottok/sendMessage"
        assert payload["chat_id"] == "42"
        assert payload["parse_mode"] == "Markdown"

    @pytest.mark.asyncio
    async def test_email_failure_raises(self, http_stub):
        config = NotificationConfig(type="Email", config={"to": "a@example.com"})
        sender = self._sender(
            http_stub,
            smtp_user="bot@example.com",
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_password="pw",
            smtp_timeout=10,
            smtp_tls=True,
            smtp_ssl=False,
        )

        with patch("apps.hooks.push.send_email_async", AsyncMock(return_value=(False, "auth failed"))) as send:
            with pytest.raises(HttpRequestError):
                await sender.send("t", "d", config)

        assert send.await_args.kwargs["to_addrs"] == ["a@example.com"]

    @pytest.mark.asyncio
    async def test_unknown_channel(self, http_stub):
        with pytest.raises(UnsupportedTypeError):
            await self._sender(http_stub).send("t", "d", NotificationConfig(type="Pager"))
