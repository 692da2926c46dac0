"""Tests for apps/hooks/sinks/webhook.py and apps/hooks/sinks/regular.py."""

from __future__ import annotations

import json
import re

import httpx
import pytest
from sqlalchemy import select

from apps.feed.models import Article
from apps.hooks.configs import RegularConfig, WebhookConfig
from apps.hooks.models import Hook, WebhookLog
from apps.hooks.sinks.regular import rewrite_article, run_regular_hook
from apps.hooks.sinks.webhook import run_webhook_hook

HOOK_URL = "https://hooks.example.com/in"


class TestWebhookSink:
    """Outbound webhook calls.

    Webhook 调用：成功或失败都只写一条日志。
    """

    @pytest.mark.asyncio
    async def test_custom_method_and_headers(self, ctx, feed, persist, http_stub):
        hook = await persist(Hook(type="webhook", config={}, user_id=1))
        http_stub.add(HOOK_URL, httpx.Response(201, json={"id": 7}, headers={"x-request-id": "abc"}))
        config = WebhookConfig(url=HOOK_URL, method="PUT", headers={"X-Token": "secret"})

        log = await run_webhook_hook(ctx, hook, feed, [{"guid": "g-1"}], config)

        request = http_stub.calls(HOOK_URL)[0]
        assert request.method == "PUT"
        assert request.headers["x-token"] == "secret"
        assert json.loads(request.content) == [{"guid": "g-1"}]
        assert (log.status, log.status_code, log.data) == ("success", 201, {"id": 7})
        assert log.headers["x-request-id"] == "abc"

    @pytest.mark.asyncio
    async def test_error_response_is_logged(self, ctx, feed, persist, http_stub, session_factory):
        hook = await persist(Hook(type="webhook", config={}, user_id=1))
        http_stub.add(HOOK_URL, httpx.Response(500, text="oops"))

        await run_webhook_hook(ctx, hook, feed, {"message": "x"}, WebhookConfig(url=HOOK_URL))

        async with session_factory() as session:
            logs = (await session.execute(select(WebhookLog))).scalars().all()
        assert len(logs) == 1
        assert (logs[0].status, logs[0].status_code, logs[0].hook_id) == ("fail", 500, hook.id)


class TestRegularSink:
    """Regex rewrite of article content.

    正则改写：忽略大小写，同时作用于 content 与 content_snippet。
    """

    def test_rewrite_article(self):
        article = Article(id=1, content="<p>Hello WORLD</p>", content_snippet="Hello WORLD")

        assert rewrite_article(article, re.compile("world", re.IGNORECASE), "there") is True

        assert article.content == "<p>Hello there</p>"
        assert article.content_snippet == "Hello there"

    def test_rewrite_with_missing_group_fails(self):
        article = Article(id=1, content="abc")

        assert rewrite_article(article, re.compile("(b)"), r"\2") is False
        assert article.content == "abc"

    @pytest.mark.asyncio
    async def test_run_persists_rewrites(self, ctx, persist, session_factory):
        stored = await persist(
            Article(guid="r-1", feed_id=1, user_id=1, content="price: 10 USD", content_snippet="price: 10 USD")
        )
        config = RegularConfig(content_regular=r"(\d+) usd", content_replace=r"$\1")

        rewritten = await run_regular_hook(ctx, [stored], config)

        assert rewritten == 1
        async with session_factory() as session:
            reloaded = await session.get(Article, stored.id)
        assert reloaded.content == "price: $10"

    @pytest.mark.asyncio
    async def test_empty_pattern_leaves_content(self, ctx, persist):
        stored = await persist(Article(guid="r-2", feed_id=1, user_id=1, content="unchanged"))

        assert await run_regular_hook(ctx, [stored], RegularConfig()) == 0
        assert stored.content == "unchanged"

    def test_camel_case_config(self):
        config = RegularConfig.model_validate({"contentRegular": "a+", "contentReplace": "b"})

        assert (config.content_regular, config.content_replace) == ("a+", "b")
