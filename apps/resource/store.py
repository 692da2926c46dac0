# =============================================================================
# 模块: apps/resource/store.py
# 功能: 资源去重存储
# 架构角色: 下载钩子与 BitTorrent 钩子共用的资源访问层：
#   - 按 (url, user_id) / (hash, user_id) 查找当前用户已有的资源
#   - 按 url / hash 全局查找任意用户已成功获取的资源，用于跨用户复用
#   - 复制资源给新用户（不复制本地路径），并按需强制状态为 skip
# 设计决策:
#   - 每个操作使用独立的会话，资源记录在会话之间以脱离态对象传递
#   - 唯一约束冲突（并发插入同一资源）不做特殊处理，直接以 IntegrityError 暴露
# =============================================================================
"""Resource lookup, cloning and persistence."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from apps.resource.models import Resource, ResourceStatus

logger = logging.getLogger(__name__)


class ResourceStore:
    """Persistence operations on :class:`Resource`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _first(self, *conditions) -> Optional[Resource]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Resource).where(*conditions).order_by(Resource.id).limit(1)
            )
            return result.scalar_one_or_none()

    async def find_by_url(self, url: str, user_id: int) -> Optional[Resource]:
        return await self._first(Resource.url == url, Resource.user_id == user_id)

    async def find_by_hash(self, hash_: str, user_id: int) -> Optional[Resource]:
        return await self._first(Resource.hash == hash_, Resource.user_id == user_id)

    async def find_success_by_url(self, url: str) -> Optional[Resource]:
        """Any user's successful resource for ``url``."""
        return await self._first(Resource.url == url, Resource.status == ResourceStatus.SUCCESS.value)

    async def clone_for_user(self, source: Resource, user_id: int, status: str | None = None) -> Resource:
        """Copy ``source`` for ``user_id`` without its physical path.

        跨用户复用：新记录拥有新的 id 与时间戳，path 为空。
        """
        clone = Resource(
            url=source.url,
            name=source.name,
            path="",
            status=status or source.status,
            size=source.size,
            type=source.type,
            hash=source.hash,
            user_id=user_id,
        )
        return await self.save(clone)

    async def save(self, resource: Resource) -> Resource:
        """Insert or update ``resource`` and return the persisted copy."""
        async with self._session_factory() as session:
            merged = await session.merge(resource)
            await session.commit()
            await session.refresh(merged)
            return merged

    async def delete_created_before(self, threshold: datetime) -> list[int]:
        """Delete resources created before ``threshold``; returns their ids."""
        async with self._session_factory() as session:
            result = await session.execute(select(Resource.id).where(Resource.created_at < threshold))
            ids = list(result.scalars().all())
            if ids:
                await session.execute(delete(Resource).where(Resource.id.in_(ids)))
                await session.commit()
            return ids

    async def success_names(self) -> set[str]:
        """File names referenced by successful resources."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Resource.name).where(Resource.status == ResourceStatus.SUCCESS.value)
            )
            return {name for name in result.scalars().all() if name}
