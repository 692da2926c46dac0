# =============================================================================
# 模块: apps/bit_torrent/client.py
# 功能: BitTorrent 客户端适配层（qBittorrent WebUI API v2）
# 架构角色: BitTorrent 钩子与资源管理器通过抽象的 BitTorrentClient 调用下载器：
#   添加磁力/种子、查询磁盘剩余空间、列出种子、查询单个种子、删除种子。
# 设计决策:
#   - 使用 httpx.AsyncClient 持有 WebUI 登录后的 SID Cookie，首次调用时惰性登录
#   - 返回 403 时重新登录并重试一次
#   - 单个种子查询返回 None 表示客户端中不存在该种子
#   - qBittorrent 的原始状态归一化为 error / warning / downloading / seeding /
#     paused / queued / checking / unknown
# =============================================================================
"""BitTorrent client adapter for qBittorrent."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from apps.hooks.configs import BitTorrentConfig
from common.exceptions import HttpRequestError, UnsupportedTypeError

logger = logging.getLogger(__name__)

# BitTorrent 客户端请求超时（秒）
CLIENT_TIMEOUT = 30

# qBittorrent 原始状态 -> 归一化状态
_STATE_MAP = {
    "error": "error",
    "missingFiles": "error",
    "downloading": "downloading",
    "forcedDL": "downloading",
    "metaDL": "downloading",
    "forcedMetaDL": "downloading",
    "stalledDL": "downloading",
    "allocating": "downloading",
    "moving": "downloading",
    "uploading": "seeding",
    "forcedUP": "seeding",
    "stalledUP": "seeding",
    "pausedDL": "paused",
    "pausedUP": "paused",
    "stoppedDL": "paused",
    "stoppedUP": "paused",
    "queuedDL": "queued",
    "queuedUP": "queued",
    "checkingDL": "checking",
    "checkingUP": "checking",
    "checkingResumeData": "checking",
}


def normalize_state(raw: str | None) -> str:
    return _STATE_MAP.get(raw or "", "unknown")


@dataclass
class TorrentInfo:
    """State of one torrent inside the client."""

    hash: str
    name: str = ""
    total_size: int = 0
    downloaded: int = 0
    state: str = "unknown"
    trackers: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)


class BitTorrentClient(ABC):
    """BitTorrent client collaborator."""

    @abstractmethod
    async def add_magnet(self, magnet_uri: str, save_path: str = "") -> None:
        ...

    @abstractmethod
    async def add_torrent(self, data: bytes, filename: str, save_path: str = "") -> None:
        ...

    @abstractmethod
    async def get_free_space(self) -> int:
        """Free space on the download disk, in bytes."""

    @abstractmethod
    async def list_torrents(self, sort: str = "downloaded", reverse: bool = True) -> List[TorrentInfo]:
        ...

    @abstractmethod
    async def get_torrent(self, info_hash: str) -> Optional[TorrentInfo]:
        """Return the torrent, or ``None`` when the client does not have it."""

    @abstractmethod
    async def remove_torrent(self, info_hash: str, delete_files: bool = True) -> None:
        ...

    async def close(self) -> None:
        return None


# =============================================================================
# QBittorrentClient 类
# 职责: 通过 WebUI API v2 操作 qBittorrent
# =============================================================================
class QBittorrentClient(BitTorrentClient):
    """qBittorrent WebUI API v2 client."""

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        proxy_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        kwargs: Dict[str, Any] = {"base_url": self._base_url, "timeout": CLIENT_TIMEOUT}
        if transport is not None:
            kwargs["transport"] = transport
        elif proxy_url:
            kwargs["proxy"] = proxy_url
        self._client = httpx.AsyncClient(**kwargs)
        self._logged_in = False

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def _login(self) -> None:
        response = await self._client.post(
            "/api/v2/auth/login",
            data={"username": self._username, "password": self._password},
            headers={"Referer": self._base_url},
        )
        if response.status_code != 200 or response.text.strip() == "Fails.":
            raise HttpRequestError(f"qBittorrent login failed: HTTP {response.status_code} {response.text[:100]}")
        self._logged_in = True

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a WebUI request, logging in first and once more on 403."""
        try:
            if not self._logged_in:
                await self._login()
            response = await self._client.request(method, path, **kwargs)
            if response.status_code == 403:
                self._logged_in = False
                await self._login()
                response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise HttpRequestError(f"qBittorrent request {path} failed: {e}") from e
        return response

    async def _checked(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._request(method, path, **kwargs)
        if not response.is_success:
            raise HttpRequestError(f"qBittorrent {path} returned HTTP {response.status_code}")
        return response

    async def add_magnet(self, magnet_uri: str, save_path: str = "") -> None:
        data = {"urls": magnet_uri}
        if save_path:
            data["savepath"] = save_path
        await self._checked("POST", "/api/v2/torrents/add", data=data)

    async def add_torrent(self, data: bytes, filename: str, save_path: str = "") -> None:
        form = {"savepath": save_path} if save_path else {}
        files = {"torrents": (filename or "file.torrent", data, "application/x-bittorrent")}
        await self._checked("POST", "/api/v2/torrents/add", data=form, files=files)

    async def get_free_space(self) -> int:
        response = await self._checked("GET", "/api/v2/sync/maindata")
        return int(response.json().get("server_state", {}).get("free_space_on_disk", 0))

    @staticmethod
    def _to_info(raw: Dict[str, Any]) -> TorrentInfo:
        return TorrentInfo(
            hash=raw.get("hash", ""),
            name=raw.get("name", ""),
            total_size=int(raw.get("total_size") or raw.get("size") or 0),
            downloaded=int(raw.get("downloaded") or 0),
            state=normalize_state(raw.get("state")),
            raw=raw,
        )

    async def list_torrents(self, sort: str = "downloaded", reverse: bool = True) -> List[TorrentInfo]:
        response = await self._checked(
            "GET",
            "/api/v2/torrents/info",
            params={"sort": sort, "reverse": str(reverse).lower()},
        )
        return [self._to_info(raw) for raw in response.json()]

    async def get_torrent(self, info_hash: str) -> Optional[TorrentInfo]:
        response = await self._checked("GET", "/api/v2/torrents/info", params={"hashes": info_hash})
        items = response.json()
        if not items:
            return None
        info = self._to_info(items[0])
        trackers = await self._request("GET", "/api/v2/torrents/trackers", params={"hash": info_hash})
        if trackers.is_success:
            # 前三项是 DHT / PeX / LSD 伪 tracker，url 不以协议开头
            info.trackers = [t["url"] for t in trackers.json() if "://" in t.get("url", "")]
        return info

    async def remove_torrent(self, info_hash: str, delete_files: bool = True) -> None:
        await self._checked(
            "POST",
            "/api/v2/torrents/delete",
            data={"hashes": info_hash, "deleteFiles": str(delete_files).lower()},
        )


def create_bit_torrent_client(
    config: BitTorrentConfig,
    proxy_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BitTorrentClient:
    """Create the client for ``config.type``.

    Raises:
        UnsupportedTypeError: Unknown client type.
    """
    if config.type == "qBittorrent":
        return QBittorrentClient(
            config.base_url,
            username=config.username,
            password=config.password,
            proxy_url=proxy_url,
            transport=transport,
        )
    raise UnsupportedTypeError(f"Unsupported BitTorrent client type: {config.type}")
