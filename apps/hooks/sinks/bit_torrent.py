# =============================================================================
# 模块: apps/hooks/sinks/bit_torrent.py
# 功能: BitTorrent 钩子（把种子/磁力链接提交给 BitTorrent 客户端）
# 架构角色: 只处理附件为 application/x-bittorrent 或磁力链接的文章，
#   每篇文章经 bit_torrent 并发池处理：
#   1. 配置了最小磁盘空间且允许自动删除时，先回收空间
#   2. 磁力链接直接解析 info-hash；http 链接下载 .torrent 文件后计算 info-hash
#   3. 当前用户已有相同 hash 的资源时跳过（必要时回填文章附件大小）
#   4. 提交给客户端，生成只保留一个 tracker 的规范磁力链接，保存资源记录
#   5. 磁盘空间不足或体积超过上限时标记 skip 并删除种子
#   6. 大小未知时启动后台任务等待客户端解析出大小
# =============================================================================
"""BitTorrent sink."""

from __future__ import annotations

import asyncio
import logging
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, List
from urllib.parse import urlparse

from apps.bit_torrent.client import BitTorrentClient
from apps.bit_torrent.manager import BitTorrentManager, backfill_enclosure_length
from apps.bit_torrent.torrent import (
    build_magnet_uri,
    is_http_url,
    is_magnet_uri,
    parse_magnet,
    parse_torrent,
)
from apps.feed.models import Article
from apps.hooks.configs import BitTorrentConfig
from apps.hooks.models import Hook
from apps.resource.models import BIT_TORRENT_MIME, Resource, ResourceStatus
from apps.resource.store import ResourceStore
from common.utils import data_format

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)

# 下载 .torrent 文件的超时（秒）
TORRENT_FETCH_TIMEOUT = 60


def is_torrent_article(article: Article) -> bool:
    url = article.enclosure_url
    if not url:
        return False
    return article.enclosure_type == BIT_TORRENT_MIME or is_magnet_uri(url)


def _torrent_filename(url: str) -> str:
    name = PurePosixPath(urlparse(url).path).name
    return name if name.endswith(".torrent") else f"{name or 'file'}.torrent"


async def acquire_torrent(
    ctx: "DispatchContext",
    manager: BitTorrentManager,
    store: ResourceStore,
    article: Article,
    user_id: int,
    proxy_url: str | None = None,
) -> Resource | None:
    """Submit one article's enclosure to the client.

    Returns:
        Resource | None: The new resource, or None when it already existed.
    """
    config = manager.config
    client = manager.client
    url = article.enclosure_url or ""
    short_url = url[:128]
    max_size = config.max_size_bytes
    min_disk_size = config.min_disk_size_bytes

    if min_disk_size and config.auto_remove:
        await manager.remove_max_size_torrent(min_disk_size)

    # 部分订阅源把附件大小写成 1，视为未知
    if article.enclosure_length == 1:
        article.enclosure_length = 0

    if is_magnet_uri(url):
        meta = parse_magnet(url)
        existing = await store.find_by_hash(meta.info_hash, user_id)
        if existing is not None:
            logger.debug(f"Resource {short_url} already exists, skipped")
            if existing.url != url and is_http_url(existing.url):
                await backfill_enclosure_length(ctx, article, existing.size)
            return None
        logger.info(f"Adding magnet {short_url}")
        await client.add_magnet(url, save_path=config.download_path)
    elif is_http_url(url):
        if await store.find_by_url(url, user_id):
            logger.debug(f"Resource {short_url} already exists, skipped")
            return None
        response = await ctx.http.fetch(
            url, proxy_url=proxy_url, timeout=TORRENT_FETCH_TIMEOUT, response_type="bytes"
        )
        meta = parse_torrent(response.data)
        existing = await store.find_by_hash(meta.info_hash, user_id)
        if existing is not None:
            logger.debug(f"Resource {short_url} already exists, skipped")
            if existing.url != url and is_magnet_uri(existing.url):
                await backfill_enclosure_length(ctx, article, existing.size)
            return None
        logger.info(f"Adding torrent {short_url}")
        await client.add_torrent(response.data, _torrent_filename(url), save_path=config.download_path)
    else:
        logger.error(f"Unsupported resource url: {short_url}")
        return None

    size = article.enclosure_length or meta.length or 0
    magnet_uri = build_magnet_uri(meta.info_hash, meta.name, size, meta.trackers)
    resource = await store.save(
        Resource(
            url=url if is_http_url(url) else magnet_uri,
            name=meta.name,
            path="",
            status=ResourceStatus.SUCCESS.value if size else ResourceStatus.UNKNOWN.value,
            size=size,
            type=BIT_TORRENT_MIME,
            hash=meta.info_hash,
            user_id=user_id,
        )
    )
    await backfill_enclosure_length(ctx, article, resource.size)

    if min_disk_size:
        free_space = await client.get_free_space()
        # 0 表示客户端没有上报剩余空间
        if free_space and free_space < min_disk_size:
            logger.warning(f"Free disk space {data_format(free_space)} is below {config.min_disk_size}, skipped")
            return await manager.skip_resource(resource)

    if 0 < max_size <= (resource.size or 0):
        logger.warning(f"Resource {short_url} exceeds {config.max_size}, skipped")
        return await manager.skip_resource(resource)

    if not resource.size:
        manager.schedule_size_resolution(resource, article)
    return resource


async def run_bit_torrent_hook(
    ctx: "DispatchContext",
    hook: Hook,
    articles: List[Article],
    config: BitTorrentConfig,
    proxy_url: str | None = None,
) -> List[Resource]:
    """Submit every torrent/magnet enclosure of the matched articles."""
    torrent_articles = [article for article in articles if is_torrent_article(article)]
    if not torrent_articles:
        return []

    # 未知客户端类型在这里抛出 UnsupportedTypeError
    client: BitTorrentClient = ctx.bit_torrent_client_factory(config, None)
    manager = BitTorrentManager(ctx, client, config)
    store = ResourceStore(ctx.session_factory)
    try:
        results = await asyncio.gather(
            *(
                ctx.pools.bit_torrent.run(acquire_torrent, ctx, manager, store, article, hook.user_id, proxy_url)
                for article in torrent_articles
            ),
            return_exceptions=True,
        )
    finally:
        await client.close()

    saved: List[Resource] = []
    for article, result in zip(torrent_articles, results):
        if isinstance(result, BaseException):
            logger.error(f"Torrent {(article.enclosure_url or '')[:128]} failed: {result}")
        elif result is not None:
            saved.append(result)
    return saved
