"""Tests for main.py: application entry point and feed task routes.

针对应用入口、健康检查与订阅源任务接口的测试。
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from apps.scheduler.feed_tasks import FeedTaskScheduler


class TestAppConfiguration:
    """Test FastAPI application configuration.

    验证 FastAPI 应用基础配置是否正确。
    """

    def test_app_title(self):
        from main import app
        from settings import settings

        assert app.title == settings.app_name

    def test_global_exception_handler_configured(self):
        from main import app

        assert Exception in app.exception_handlers


@pytest_asyncio.fixture
async def client(ctx):
    """ASGI client with the dispatch context installed on app.state.

    不触发 lifespan，直接在 app.state 上挂载测试用的上下文与任务注册表。
    """
    from main import app

    poller = MagicMock(poll_feed=AsyncMock(return_value={"feed_id": 1, "inserted": 3}))
    app.state.ctx = ctx
    app.state.feed_tasks = FeedTaskScheduler(ctx, AsyncIOScheduler(timezone=ctx.settings.timezone), poller)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
        yield http

    del app.state.ctx
    del app.state.feed_tasks


class TestRoutes:
    """Health check and runtime feed task control."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        import apps.scheduler.tasks as tasks_module

        tasks_module._scheduler = None
        with patch("main.check_db_connection", AsyncMock(return_value=True)):
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "components": {"database": "connected"}, "jobs": 0}

    @pytest.mark.asyncio
    async def test_enable_and_disable_task(self, client, feed):
        created = await client.post(f"/api/feeds/{feed.id}/task")
        again = await client.post(f"/api/feeds/{feed.id}/task")
        removed = await client.delete(f"/api/feeds/{feed.id}/task")

        assert created.json() == {"feed_id": feed.id, "enabled": True, "created": True}
        assert again.json()["created"] is False
        assert removed.json() == {"feed_id": feed.id, "removed": True}

    @pytest.mark.asyncio
    async def test_unknown_feed(self, client):
        response = await client.post("/api/feeds/999/task")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_poll_now(self, client, feed):
        response = await client.post(f"/api/feeds/{feed.id}/poll")

        assert response.status_code == 200
        assert response.json()["inserted"] == 3
