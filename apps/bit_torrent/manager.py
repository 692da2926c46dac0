# =============================================================================
# 模块: apps/bit_torrent/manager.py
# 功能: BitTorrent 资源管理（磁盘空间回收、体积限制、延迟解析种子大小）
# 架构角色: BitTorrent 钩子的下半部分，负责添加种子之后的资源生命周期：
#   1. remove_max_size_torrent: 磁盘剩余空间低于下限时，删除已下载体积最大的种子，
#      直到空间足够或没有可删除的种子
#   2. try_remove_torrent: 删除种子并轮询确认客户端中已不存在
#   3. update_torrent_info: 从客户端读取已解析的种子信息，回写资源记录，
#      超出体积上限时标记 skip，并由后台任务删除种子（不占用并发池槽位）
#   4. schedule_size_resolution: 磁力链接在元数据解析前大小未知，
#      启动一个按资源 id 注册的后台重试任务等待大小解析完成
# 设计决策:
#   - 所有客户端调用都经过 retry_backoff，退避参数见各方法
#   - 后台任务使用独立创建的客户端，不依赖钩子执行结束后已关闭的客户端
# =============================================================================
"""BitTorrent resource lifecycle management."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import or_, update

from apps.bit_torrent.client import BitTorrentClient
from apps.bit_torrent.torrent import build_magnet_uri, is_http_url
from apps.feed.models import Article
from apps.hooks.configs import BitTorrentConfig
from apps.resource.models import Resource, ResourceStatus
from apps.resource.store import ResourceStore
from common.exceptions import FeedImpactError
from common.retry import retry_backoff
from common.utils import data_format

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

# 退避参数（秒）
EVICT_MAX_RETRIES = 3
EVICT_INTERVAL = (10, 10 * 60)
REMOVE_MAX_RETRIES = 10
REMOVE_INTERVAL = (10, 60 * 60)
RESOLVE_MAX_RETRIES = 10
RESOLVE_INTERVAL = (10, 60 * 60)

# update_torrent_info 的返回值：已因超出体积上限被跳过
SIZE_SKIPPED = -1

_SUCCESS_STATES = ("downloading", "seeding", "paused", "queued", "warning")


class TorrentPendingError(FeedImpactError):
    """Raised inside retry loops to request another attempt."""


def status_for_state(state: str) -> str:
    """Map a normalized client state to a resource status."""
    if state == "error":
        return ResourceStatus.FAIL.value
    if any(name in state for name in _SUCCESS_STATES):
        return ResourceStatus.SUCCESS.value
    return ResourceStatus.UNKNOWN.value


async def backfill_enclosure_length(ctx: "DispatchContext", article: Article, size: int | None) -> None:
    """Fill ``article.enclosure_length`` when it is still empty."""
    if not size or size <= 0 or article.enclosure_length:
        return
    article.enclosure_length = size
    async with ctx.session_factory() as session:
        await session.execute(
            update(Article)
            .where(
                Article.id == article.id,
                or_(Article.enclosure_length.is_(None), Article.enclosure_length <= 1),
            )
            .values(enclosure_length=size)
        )
        await session.commit()


class BitTorrentManager:
    """Disk-space and size-limit management for one BitTorrent hook."""

    def __init__(
        self,
        ctx: "DispatchContext",
        client: BitTorrentClient,
        config: BitTorrentConfig,
    ):
        self.ctx = ctx
        self.client = client
        self.config = config
        self.store = ResourceStore(ctx.session_factory)

    async def remove_max_size_torrent(self, min_disk_size: int) -> None:
        """Evict the most-downloaded torrents until free space reaches ``min_disk_size``.

        每次删除前重新查询剩余空间，避免并发钩子重复删除。
        删除一个种子后空间仍不足时抛出异常，由 retry_backoff 继续下一轮删除。
        """

        async def _evict() -> None:
            free_space = await self.client.get_free_space()
            if not free_space or free_space >= min_disk_size:
                return
            logger.warning(
                f"Free disk space {data_format(free_space)} is below {data_format(min_disk_size)}, "
                f"removing the largest torrent"
            )
            torrents = await self.client.list_torrents(sort="downloaded", reverse=True)
            torrent = torrents[0] if torrents else None
            if torrent is None or torrent.downloaded <= 0:
                logger.warning("No torrent left to remove")
                return
            await self.client.remove_torrent(torrent.hash, delete_files=True)
            logger.info(f"Removed torrent {torrent.name or torrent.hash} ({data_format(torrent.downloaded)})")
            if free_space + torrent.downloaded < min_disk_size:
                raise TorrentPendingError("Free disk space is still insufficient")

        await retry_backoff(
            _evict,
            max_retries=EVICT_MAX_RETRIES,
            initial_interval=EVICT_INTERVAL[0],
            max_interval=EVICT_INTERVAL[1],
        )

    async def try_remove_torrent(self, info_hash: str) -> None:
        """Remove ``info_hash`` and confirm the client no longer has it.

        删除请求失败只记录日志；随后查询种子，查询报错或查无此种子都视为已删除，
        否则抛出异常进入下一次重试。
        """

        async def _remove() -> None:
            try:
                await self.client.remove_torrent(info_hash, delete_files=True)
            except FeedImpactError as e:
                logger.error(f"Remove torrent {info_hash} failed: {e}")
            try:
                torrent = await self.client.get_torrent(info_hash)
            except FeedImpactError as e:
                logger.debug(f"Torrent {info_hash} lookup failed after removal: {e}")
                return
            if torrent is None:
                return
            raise TorrentPendingError(f"Torrent {info_hash} is still present")

        await retry_backoff(
            _remove,
            max_retries=REMOVE_MAX_RETRIES,
            initial_interval=REMOVE_INTERVAL[0],
            max_interval=REMOVE_INTERVAL[1],
        )

    async def skip_resource(self, resource: Resource) -> Resource:
        """Mark ``resource`` as skipped and remove its torrent in the background.

        删除种子可能要重试很久，不能占用钩子与并发池的执行槽位，
        因此只保存 skip 状态，删除交给按种子 hash 注册的后台任务。
        """
        resource.status = ResourceStatus.SKIP.value
        resource = await self.store.save(resource)
        self.schedule_removal(resource.hash)
        return resource

    def schedule_removal(self, info_hash: str) -> None:
        """Remove ``info_hash`` in a detached task with its own client."""
        ctx = self.ctx
        config = self.config

        async def _run() -> None:
            client = ctx.bit_torrent_client_factory(config, None)
            try:
                await BitTorrentManager(ctx, client, config).try_remove_torrent(info_hash)
                logger.info(f"Removed torrent {info_hash}")
            finally:
                await client.close()

        ctx.background.spawn(("remove", info_hash), _run(), name=f"torrent-remove-{info_hash}")

    async def update_torrent_info(self, resource: Resource, article: Article) -> int:
        """Refresh ``resource`` from the client.

        Returns:
            int: Resolved size in bytes, 0 when not resolved yet,
            or ``SIZE_SKIPPED`` when the resource exceeded ``max_size``.
        """
        url = article.enclosure_url or ""
        try:
            torrent = await self.client.get_torrent(resource.hash)
        except FeedImpactError as e:
            logger.error(f"Get torrent {resource.hash} failed, url: {url[:128]}: {e}")
            return 0
        if torrent is None or torrent.total_size <= 0:
            return 0

        magnet_uri = build_magnet_uri(resource.hash, torrent.name, torrent.total_size, torrent.trackers)
        resource.url = url if is_http_url(url) else magnet_uri
        resource.name = torrent.name
        resource.size = torrent.total_size
        await backfill_enclosure_length(self.ctx, article, resource.size)

        max_size = self.config.max_size_bytes
        if 0 < max_size <= resource.size:
            logger.warning(f"Resource {url[:128]} exceeds {self.config.max_size}, skipped")
            await self.skip_resource(resource)
            return SIZE_SKIPPED

        resource.status = status_for_state(torrent.state)
        await self.store.save(resource)
        return resource.size

    async def resolve_size(self, resource: Resource, article: Article) -> int:
        """Poll the client until the torrent size is known."""

        async def _resolve() -> int:
            size = await self.update_torrent_info(resource, article)
            if size > 0 or size == SIZE_SKIPPED:
                return size
            raise TorrentPendingError(f"Size of {resource.hash} is not resolved yet")

        return await retry_backoff(
            _resolve,
            max_retries=RESOLVE_MAX_RETRIES,
            initial_interval=RESOLVE_INTERVAL[0],
            max_interval=RESOLVE_INTERVAL[1],
        )

    def schedule_size_resolution(self, resource: Resource, article: Article) -> None:
        """Resolve the size in a detached task registered under the resource id."""
        ctx = self.ctx
        config = self.config

        async def _run() -> None:
            client = ctx.bit_torrent_client_factory(config, None)
            try:
                manager = BitTorrentManager(ctx, client, config)
                size = await manager.resolve_size(resource, article)
                logger.info(f"Resolved torrent {resource.hash}: {size}")
            finally:
                await client.close()

        ctx.background.spawn(resource.id, _run(), name=f"torrent-size-{resource.id}")
