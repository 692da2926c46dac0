"""Regex rewrite sink."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, List

from apps.feed.models import Article
from apps.hooks.configs import RegularConfig

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)


def rewrite_article(article: Article, pattern: re.Pattern, replace: str) -> bool:
    """Rewrite ``content`` and ``content_snippet`` in place; returns whether it succeeded."""
    try:
        content = pattern.sub(replace, article.content) if article.content else article.content
        snippet = pattern.sub(replace, article.content_snippet) if article.content_snippet else article.content_snippet
    except (re.error, IndexError) as e:
        # 替换串引用了不存在的分组
        logger.error(f"Rewrite article {article.id} failed: {e}")
        return False
    article.content = content
    article.content_snippet = snippet
    return True


async def run_regular_hook(ctx: "DispatchContext", articles: List[Article], config: RegularConfig) -> int:
    """Apply the case-insensitive pattern to every article and persist all of them.

    Returns:
        int: Number of rewritten articles.
    """
    rewritten = 0
    pattern = None
    if config.content_regular:
        try:
            pattern = re.compile(config.content_regular, re.IGNORECASE)
        except re.error as e:
            logger.error(f"Invalid content pattern {config.content_regular!r}: {e}")

    if pattern is not None:
        for article in articles:
            if rewrite_article(article, pattern, config.content_replace):
                rewritten += 1

    async with ctx.session_factory() as session:
        for article in articles:
            await session.merge(article)
        await session.commit()
    return rewritten
