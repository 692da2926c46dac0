# =============================================================================
# 模块: common/http.py
# 功能: 异步 HTTP 客户端工具模块，为订阅源抓取、Webhook、推送渠道、
#   BitTorrent 种子下载和资源文件下载提供统一的请求能力
# 架构角色: 作为通用 HTTP 基础设施层，被 poller、sinks、bit_torrent 等上层模块调用。
#   提供以下核心能力：
#   1. 统一的浏览器 User-Agent 与 Accept 请求头
#   2. 可选的代理（每次请求按订阅源/钩子配置的代理创建客户端）
#   3. 非 2xx 响应与网络错误统一转换为 HttpRequestError（携带响应信息）
#   4. 流式下载文件并同时计算 MD5
#
# 设计决策:
#   - 使用 httpx.AsyncClient，所有调用都在 asyncio 事件循环中执行
#   - 重试不在本模块处理，由调用方通过 common.retry.retry_backoff 控制
#   - transport 可注入，测试中使用 httpx.MockTransport 代替真实网络
# =============================================================================
"""Async HTTP fetch helpers for FeedImpact."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from common.exceptions import HttpRequestError

logger = logging.getLogger(__name__)

# 默认浏览器 User-Agent，部分订阅源会拒绝非浏览器请求
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
# Accept 请求头变体
_ACCEPT_XML = "application/rss+xml,application/atom+xml,application/xml,text/xml;q=0.9,*/*;q=0.8"
_ACCEPT_JSON = "application/json, text/javascript, */*; q=0.01"
_ACCEPT_ANY = "*/*"

# 流式下载每次读取的块大小
_CHUNK_SIZE = 64 * 1024


@dataclass
class HttpResponse:
    """Normalized response returned by :class:`HttpFetcher`."""

    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)
    status_text: str = ""


@dataclass
class DownloadResult:
    """Outcome of a streamed file download."""

    path: Path
    size: int
    md5: str
    mime: str


def _build_headers(response_type: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Build default request headers.

    根据期望的响应类型选择 Accept 头，并合并调用方提供的额外请求头。
    """
    accept = {
        "text": _ACCEPT_XML,
        "json": _ACCEPT_JSON,
    }.get(response_type, _ACCEPT_ANY)
    headers = {
        "User-Agent": _USER_AGENT,
        "Accept": accept,
    }
    if extra:
        headers.update(extra)
    return headers


def guess_mime(path: Path, content_type: str | None = None) -> str:
    """Guess a file's MIME type.

    优先使用响应头中的 Content-Type，其次按扩展名推断。
    """
    if content_type:
        return content_type.split(";")[0].strip()
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"


def _decode_body(response: httpx.Response, response_type: str) -> Any:
    """Decode a response body according to ``response_type``."""
    if response_type == "bytes":
        return response.content
    if response_type == "json":
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return response.text
    return response.text


# =============================================================================
# HttpFetcher 类
# 职责: 封装一次 HTTP 请求 / 一次文件下载
# 设计决策:
#   - 代理是请求级别的配置，因此每次调用创建短生命周期的 AsyncClient
#   - 错误响应同样解码响应体，便于写入 WebhookLog
# =============================================================================
class HttpFetcher:
    """HTTP fetch collaborator."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        # 测试时注入 httpx.MockTransport
        self._transport = transport

    @property
    def transport(self) -> httpx.AsyncBaseTransport | None:
        return self._transport

    def _client(self, timeout: float, proxy_url: str | None) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {
            "timeout": httpx.Timeout(timeout),
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif proxy_url:
            kwargs["proxy"] = proxy_url
        return httpx.AsyncClient(**kwargs)

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        proxy_url: str | None = None,
        timeout: float = 60.0,
        response_type: str = "text",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Any = None,
    ) -> HttpResponse:
        """Perform one HTTP request.

        执行一次 HTTP 请求，非 2xx 响应或网络错误时抛出 HttpRequestError。

        Args:
            url: Target URL.
            method: HTTP method.
            proxy_url: Optional proxy URL.
            timeout: Request timeout in seconds.
            response_type: ``text``, ``json`` or ``bytes``.
            headers: Extra request headers.
            params: Query parameters.
            data: Request body; dict/list is sent as JSON.

        Returns:
            HttpResponse: Decoded response.

        Raises:
            HttpRequestError: On non-2xx status or transport failure.
        """
        request_kwargs: Dict[str, Any] = {
            "headers": _build_headers(response_type, headers),
            "params": params,
        }
        if isinstance(data, (dict, list)):
            request_kwargs["json"] = data
        elif data is not None:
            request_kwargs["content"] = data

        try:
            async with self._client(timeout, proxy_url) as client:
                response = await client.request(method.upper(), url, **request_kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"HTTP {method.upper()} {url} failed: {e}")
            raise HttpRequestError(f"{type(e).__name__}: {e}") from e

        result = HttpResponse(
            status=response.status_code,
            data=_decode_body(response, response_type),
            headers=dict(response.headers),
            status_text=response.reason_phrase,
        )
        if not response.is_success:
            raise HttpRequestError(
                f"HTTP {response.status_code} {response.reason_phrase} for {url}",
                response=result,
            )
        return result

    async def download(
        self,
        url: str,
        path: Path,
        *,
        proxy_url: str | None = None,
        timeout: float = 60.0,
        headers: Optional[Dict[str, str]] = None,
    ) -> DownloadResult:
        """Stream ``url`` to ``path`` while hashing.

        流式下载文件到指定路径，边写入边计算 MD5。
        下载失败时删除已写入的部分文件，避免下次被误认为已完成的文件。

        Returns:
            DownloadResult: Saved path, byte size, md5 hex digest and MIME type.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        md5 = hashlib.md5()
        size = 0
        try:
            async with self._client(timeout, proxy_url) as client:
                async with client.stream("GET", url, headers=_build_headers("bytes", headers)) as response:
                    if not response.is_success:
                        await response.aread()
                        raise HttpRequestError(
                            f"HTTP {response.status_code} {response.reason_phrase} for {url}",
                            response=HttpResponse(
                                status=response.status_code,
                                data=response.text,
                                headers=dict(response.headers),
                                status_text=response.reason_phrase,
                            ),
                        )
                    content_type = response.headers.get("content-type")
                    f = await asyncio.to_thread(open, path, "wb")
                    try:
                        async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                            await asyncio.to_thread(f.write, chunk)
                            md5.update(chunk)
                            size += len(chunk)
                    finally:
                        f.close()
        except httpx.HTTPError as e:
            path.unlink(missing_ok=True)
            raise HttpRequestError(f"{type(e).__name__}: {e}") from e
        except BaseException:
            # 其它错误（写盘失败、任务被取消等）同样不能留下残缺文件
            path.unlink(missing_ok=True)
            raise

        return DownloadResult(path=path, size=size, md5=md5.hexdigest(), mime=guess_mime(path, content_type))


def file_md5(path: Path) -> str:
    """Compute the md5 hex digest of a file on disk."""
    md5 = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            md5.update(chunk)
    return md5.hexdigest()
