# =============================================================================
# 模块: apps/bit_torrent/torrent.py
# 功能: 磁力链接与 .torrent 文件解析、规范磁力链接构建
# 架构角色: BitTorrent 钩子用它得到资源的 info-hash（去重键）、名称、大小和 tracker。
# 设计决策:
#   - .torrent 使用 bencode.py 解码，info-hash = sha1(bencode(info))
#   - 磁力链接的 base32 info-hash 统一转换为 40 位小写十六进制
#   - 规范磁力链接只保留第一个 tracker，避免链接过长
# =============================================================================
"""Magnet URI and .torrent parsing."""

from __future__ import annotations

import base64
import hashlib
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import parse_qs, quote, urlparse

import bencodepy

from common.exceptions import FeedImpactError

_BTIH_PREFIX = "urn:btih:"
_HEX_HASH = re.compile(r"^[0-9a-fA-F]{40}$")
_BASE32_HASH = re.compile(r"^[A-Za-z2-7]{32}$")


class TorrentParseError(FeedImpactError):
    """Malformed magnet URI or torrent file."""


@dataclass
class TorrentMeta:
    """Identity and metadata of a torrent."""

    info_hash: str
    name: str = ""
    length: Optional[int] = None
    trackers: List[str] = field(default_factory=list)


def is_magnet_uri(url: str | None) -> bool:
    return bool(url) and url.lower().startswith("magnet:?")


def is_http_url(url: str | None) -> bool:
    return bool(url) and urlparse(url).scheme in ("http", "https")


def _normalize_hash(value: str) -> str:
    if _HEX_HASH.match(value):
        return value.lower()
    if _BASE32_HASH.match(value):
        return base64.b32decode(value.upper()).hex()
    raise TorrentParseError(f"Invalid info hash: {value}")


def parse_magnet(uri: str) -> TorrentMeta:
    """Parse a magnet URI.

    Raises:
        TorrentParseError: No BitTorrent info hash in the URI.
    """
    if not is_magnet_uri(uri):
        raise TorrentParseError(f"Not a magnet URI: {uri[:64]}")
    params = parse_qs(uri[len("magnet:?"):])
    info_hash = ""
    for xt in params.get("xt", []):
        if xt.lower().startswith(_BTIH_PREFIX):
            info_hash = _normalize_hash(xt[len(_BTIH_PREFIX):])
            break
    if not info_hash:
        raise TorrentParseError("Magnet URI has no btih info hash")
    length = None
    if params.get("xl"):
        try:
            length = int(params["xl"][0])
        except ValueError:
            length = None
    return TorrentMeta(
        info_hash=info_hash,
        name=(params.get("dn") or [""])[0],
        length=length,
        trackers=params.get("tr", []),
    )


def _text(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def parse_torrent(data: bytes) -> TorrentMeta:
    """Parse a .torrent file.

    Raises:
        TorrentParseError: Not a valid bencoded torrent.
    """
    try:
        decoded = bencodepy.decode(data)
        info = decoded[b"info"]
    except (bencodepy.BencodeDecodeError, KeyError, TypeError) as e:
        raise TorrentParseError(f"Invalid torrent file: {e}") from e

    info_hash = hashlib.sha1(bencodepy.encode(info)).hexdigest()
    if b"length" in info:
        length = int(info[b"length"])
    else:
        length = sum(int(f.get(b"length", 0)) for f in info.get(b"files", [])) or None

    trackers: List[str] = []
    if decoded.get(b"announce"):
        trackers.append(_text(decoded[b"announce"]))
    for tier in decoded.get(b"announce-list", []):
        for tracker in tier:
            tracker = _text(tracker)
            if tracker not in trackers:
                trackers.append(tracker)

    return TorrentMeta(
        info_hash=info_hash,
        name=_text(info.get(b"name", b"")),
        length=length,
        trackers=trackers,
    )


def build_magnet_uri(info_hash: str, name: str = "", length: Optional[int] = None, trackers: Optional[List[str]] = None) -> str:
    """Build a canonical magnet URI keeping only the first tracker."""
    parts = [f"xt=urn:btih:{info_hash}"]
    if name:
        parts.append(f"dn={quote(name)}")
    if length:
        parts.append(f"xl={length}")
    if trackers:
        parts.append(f"tr={quote(trackers[0], safe='')}")
    return "magnet:?" + "&".join(parts)
