# =============================================================================
# 模块: apps/hooks/filters.py
# 功能: 钩子的文章匹配规则
# 架构角色: 分发器在把文章交给钩子之前，先用 Hook.filter 过滤出匹配的文章，
#   没有任何匹配时该钩子直接跳过（不写日志）。
# 规则格式（均为可选的正则表达式，大小写不敏感）:
#   {
#     "title": "...", "content": "...", "author": "...", "categories": "...",
#     "filterout": {"title": "...", ...}   # 命中任一排除规则的文章被剔除
#   }
# 设计决策:
#   - 空规则匹配所有文章
#   - 非法正则记录日志并视为该条规则不生效，不影响其它钩子
# =============================================================================
"""Article matching rules for hooks."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional

from apps.feed.models import Article

logger = logging.getLogger(__name__)

_FIELDS = ("title", "content", "author", "categories")


def _field_text(article: Article, name: str) -> str:
    if name == "content":
        return " ".join(filter(None, [article.content, article.content_snippet, article.summary]))
    if name == "categories":
        return " ".join(article.categories or [])
    return getattr(article, name, None) or ""


def _compile(pattern: Optional[str]) -> Optional[re.Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.error(f"Invalid hook filter pattern {pattern!r}: {e}")
        return None


def match_article(article: Article, rule: Optional[dict[str, Any]]) -> bool:
    """Whether ``article`` passes ``rule``."""
    if not rule:
        return True
    for name in _FIELDS:
        pattern = _compile(rule.get(name))
        if pattern is not None and not pattern.search(_field_text(article, name)):
            return False
    excludes = rule.get("filterout") or {}
    for name in _FIELDS:
        pattern = _compile(excludes.get(name))
        if pattern is not None and pattern.search(_field_text(article, name)):
            return False
    return True


def filter_articles(articles: Iterable[Article], rule: Optional[dict[str, Any]]) -> list[Article]:
    """Return the articles matching ``rule``, preserving order."""
    return [article for article in articles if match_article(article, rule)]
