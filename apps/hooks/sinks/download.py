# =============================================================================
# 模块: apps/hooks/sinks/download.py
# 功能: 下载钩子（下载文章正文中嵌入的资源文件）
# 架构角色: 从匹配文章的 HTML 正文中提取 src 属性里符合后缀规则的网址，
#   每个网址经 download 并发池按以下顺序处理：
#   1. 当前用户已有该 url 的资源记录：跳过
#   2. 任意用户已成功下载过该 url：为当前用户复制一条记录（不含本地路径），
#      哈希在跳过列表中时状态为 skip
#   3. 目标文件已存在于下载目录（上次运行中断）：重新计算哈希、大小与类型后记为 success
#   4. 否则流式下载并计算 MD5，哈希在跳过列表中时删除文件并记为 skip，出错记为 fail
#   第 4 步无论成功失败都会在 finally 中保存资源记录。
# 文件命名: <md5(url)><原扩展名>
# =============================================================================
"""Download sink."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, List
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from apps.feed.models import Article
from apps.hooks.configs import DownloadConfig
from apps.hooks.models import Hook
from apps.resource.models import Resource, ResourceStatus
from apps.resource.store import ResourceStore
from common.http import file_md5, guess_mime

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)


def extract_resource_urls(articles: List[Article], suffixes: str) -> List[str]:
    """Embedded ``src`` URLs whose path matches ``suffixes`` (case-insensitive).

    保持出现顺序并去重。
    """
    try:
        pattern = re.compile(suffixes, re.IGNORECASE)
    except re.error as e:
        logger.error(f"Invalid download suffix pattern {suffixes!r}: {e}")
        return []
    urls: List[str] = []
    for article in articles:
        if not article.content:
            continue
        soup = BeautifulSoup(article.content, "html.parser")
        for tag in soup.find_all(src=True):
            url = tag["src"].strip()
            if url and pattern.search(url) and url not in urls:
                urls.append(url)
    return urls


def local_filename(url: str) -> str:
    """``<md5(url)><ext>`` for a resource URL."""
    ext = Path(urlparse(url).path).suffix
    return hashlib.md5(url.encode("utf-8")).hexdigest() + ext


async def download_resource(
    ctx: "DispatchContext",
    store: ResourceStore,
    url: str,
    user_id: int,
    config: DownloadConfig,
    download_dir: Path,
    proxy_url: str | None = None,
) -> Resource | None:
    """Acquire one URL for ``user_id``; returns the saved resource or None when skipped."""
    skip_hashes = config.skip_hash_list
    filename = local_filename(url)
    filepath = download_dir / filename

    if await store.find_by_url(url, user_id):
        logger.debug(f"Resource {filename} already exists, skipped")
        return None

    existing = await store.find_success_by_url(url)
    if existing is not None:
        status = ResourceStatus.SKIP.value if (existing.hash or "").lower() in skip_hashes else existing.status
        logger.debug(f"Resource {filename} reused from user {existing.user_id}")
        return await store.clone_for_user(existing, user_id, status=status)

    if await asyncio.to_thread(filepath.exists):
        logger.debug(f"Resource {filename} found on disk, recovering")
        md5 = await asyncio.to_thread(file_md5, filepath)
        stat = await asyncio.to_thread(filepath.stat)
        return await store.save(
            Resource(
                url=url,
                name=filename,
                path=str(filepath),
                status=ResourceStatus.SUCCESS.value,
                size=stat.st_size,
                type=guess_mime(filepath),
                hash=md5,
                user_id=user_id,
            )
        )

    resource = Resource(
        url=url,
        name=filename,
        path=str(filepath),
        status=ResourceStatus.UNKNOWN.value,
        user_id=user_id,
    )
    try:
        logger.debug(f"Downloading {url}")
        result = await ctx.http.download(url, filepath, proxy_url=proxy_url, timeout=config.timeout or 60)
        resource.type = result.mime
        resource.size = result.size
        resource.hash = result.md5
        if result.md5 in skip_hashes:
            resource.status = ResourceStatus.SKIP.value
            resource.path = ""
            filepath.unlink(missing_ok=True)
            logger.info(f"Resource {filename} is in the skip list, removed")
        else:
            resource.status = ResourceStatus.SUCCESS.value
            logger.info(f"Resource {filename} downloaded")
    except Exception as e:
        resource.status = ResourceStatus.FAIL.value
        logger.error(f"Download {url} failed: {e}")
    finally:
        resource = await store.save(resource)
    return resource


async def run_download_hook(
    ctx: "DispatchContext",
    hook: Hook,
    articles: List[Article],
    config: DownloadConfig,
    proxy_url: str | None = None,
) -> List[Resource]:
    """Download every matching embedded resource; returns the saved records."""
    urls = extract_resource_urls(articles, config.suffixes)
    if not urls:
        return []
    download_dir = Path(ctx.settings.resource_download_path).resolve()
    download_dir.mkdir(parents=True, exist_ok=True)
    store = ResourceStore(ctx.session_factory)

    results = await asyncio.gather(
        *(
            ctx.pools.download.run(download_resource, ctx, store, url, hook.user_id, config, download_dir, proxy_url)
            for url in urls
        ),
        return_exceptions=True,
    )
    saved: List[Resource] = []
    for url, result in zip(urls, results):
        if isinstance(result, BaseException):
            logger.error(f"Resource {url} failed: {result}")
        elif result is not None:
            saved.append(result)
    return saved
