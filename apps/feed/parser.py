# =============================================================================
# 模块: apps/feed/parser.py
# 功能: 订阅源文档解析
# 架构角色: poller 抓取到原始文本后，由本模块用 feedparser 解析为统一结构：
#   条目列表 + 订阅源级别的描述、封面图、作者。
# 设计决策:
#   1. 使用 feedparser 屏蔽 RSS 0.9x / 2.0 / Atom 等格式差异
#   2. 每个字段都实现多重降级（content -> summary，author -> authors）
#   3. guid 优先取条目 id，其次 link，最后使用标题 MD5，保证每个条目都有可去重的标识
#   4. content_snippet 由 BeautifulSoup 从 HTML 中提取纯文本
# =============================================================================
"""Syndication document parsing built on feedparser."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
from bs4 import BeautifulSoup

from common.exceptions import FeedParseError

logger = logging.getLogger(__name__)


@dataclass
class ParsedFeed:
    """Parsed syndication document."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None


def html_to_text(html: str | None) -> str:
    """Extract plain text from an HTML fragment."""
    if not html:
        return ""
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)


def _entry_guid(entry: feedparser.FeedParserDict, link: str) -> str:
    """Stable identifier for a feed entry.

    优先使用条目 id（RSS 的 guid 会被 feedparser 映射为 id），
    其次使用链接，最后回退到标题哈希。
    """
    if entry.get("id"):
        return entry.id
    if link:
        return link
    title = entry.get("title", "")
    if title:
        return f"title-{hashlib.md5(title.encode('utf-8')).hexdigest()}"
    return ""


def _entry_link(entry: feedparser.FeedParserDict) -> str:
    if entry.get("link"):
        return entry.link
    for link in entry.get("links", []):
        if link.get("type", "").startswith("text/html"):
            return link.get("href", "")
    links = entry.get("links", [])
    return links[0].get("href", "") if links else ""


def _entry_enclosure(entry: feedparser.FeedParserDict) -> Dict[str, Any]:
    """First enclosure of an entry (torrent files and magnets included)."""
    for enclosure in entry.get("enclosures", []):
        href = enclosure.get("href") or enclosure.get("url")
        if not href:
            continue
        length = enclosure.get("length")
        try:
            length = int(length) if length not in (None, "") else None
        except (TypeError, ValueError):
            length = None
        return {
            "enclosure_url": href,
            "enclosure_type": enclosure.get("type") or None,
            "enclosure_length": length,
        }
    return {"enclosure_url": None, "enclosure_type": None, "enclosure_length": None}


def _entry_pub_date(entry: feedparser.FeedParserDict) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (ValueError, TypeError):
                continue
    return None


def parse_entry(entry: feedparser.FeedParserDict) -> Dict[str, Any]:
    """Map one feedparser entry to article fields.

    Args:
        entry: FeedParser entry.

    Returns:
        Dict[str, Any]: Article field dict; ``guid`` may be empty for unusable entries.
    """
    link = _entry_link(entry)

    author = ""
    if entry.get("author"):
        author = entry.author
    elif entry.get("authors"):
        author = ", ".join(a.get("name", "") for a in entry.authors if a.get("name"))

    summary = entry.get("summary", "") or entry.get("description", "")
    content = entry.content[0].get("value", "") if entry.get("content") else summary

    item = {
        "guid": _entry_guid(entry, link),
        "link": link or None,
        "title": entry.get("title") or None,
        "content": content or None,
        "content_snippet": html_to_text(content) or None,
        "summary": html_to_text(summary) or None,
        "author": author or None,
        "pub_date": _entry_pub_date(entry),
        "categories": [tag.get("term") for tag in entry.get("tags", []) if tag.get("term")],
    }
    item.update(_entry_enclosure(entry))
    return item


def parse_feed(raw: str | bytes) -> ParsedFeed:
    """Parse a raw syndication document.

    Args:
        raw: Document text or bytes.

    Returns:
        ParsedFeed: Items plus feed-level metadata.

    Raises:
        FeedParseError: When the document is not a feed at all.
    """
    parsed = feedparser.parse(raw)
    channel = parsed.get("feed", {})
    # feedparser 对格式错误非常宽容，只有既没有条目也没有频道信息时才视为失败
    if parsed.get("bozo") and not parsed.get("entries") and not channel.get("title"):
        raise FeedParseError(f"Invalid feed document: {parsed.get('bozo_exception')}")

    items = []
    for entry in parsed.get("entries", []):
        item = parse_entry(entry)
        if not item["guid"]:
            logger.debug("Skipping feed entry without id, link or title")
            continue
        items.append(item)

    image = channel.get("image", {}) or {}
    image_url = image.get("href") or image.get("url") or channel.get("logo") or channel.get("icon")
    return ParsedFeed(
        items=items,
        title=channel.get("title"),
        description=channel.get("subtitle") or channel.get("description") or None,
        image_url=image_url or None,
        author=channel.get("author") or None,
    )
