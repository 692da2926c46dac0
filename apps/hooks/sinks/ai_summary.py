# =============================================================================
# 模块: apps/hooks/sinks/ai_summary.py
# 功能: AI 摘要钩子
# 架构角色: 为匹配文章生成 AI 摘要并写入 Article.ai_summary。
# 处理流程:
#   1. 过滤：正文短于 min_content_length 的文章跳过（0 表示不限制）；
#      is_only_summary_empty 为真时已有 summary 的文章跳过
#   2. token 预算 = max_tokens - 系统提示词 token 数，不为正数时直接报配置错误
#   3. is_split 为真时按预算切分为多个片段，否则截断到预算以内
#   4. 每篇文章在 ai 并发池内串行请求各个片段，失败的片段记录日志并视为空结果
#   5. 各片段结果以换行拼接后保存
# =============================================================================
"""AI summary sink."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List

from sqlalchemy import update

from apps.ai.provider import AIProvider
from apps.feed.models import Article
from apps.feed.parser import html_to_text
from apps.hooks.configs import DEFAULT_AI_PROMPT, AISummaryConfig
from common.exceptions import ConfigurationError
from common.tokens import estimate_tokens, limit_by_tokens, split_by_tokens

if TYPE_CHECKING:
    from apps.context import DispatchContext

logger = logging.getLogger(__name__)


def article_content(article: Article, config: AISummaryConfig) -> str:
    """Text sent to the model for ``article``."""
    if config.content_type == "text":
        content = article.content_snippet or html_to_text(article.content)
    else:
        content = article.content or article.content_snippet or ""
    if config.is_include_title and article.title:
        content = f"{article.title}\n{content}"
    return content


def select_articles(articles: List[Article], config: AISummaryConfig) -> List[Article]:
    selected = []
    for article in articles:
        if config.is_only_summary_empty and article.summary:
            continue
        if config.min_content_length and len(article_content(article, config)) < config.min_content_length:
            continue
        selected.append(article)
    return selected


def token_budget(config: AISummaryConfig) -> int:
    """Tokens left for content after the system prompt.

    Raises:
        ConfigurationError: The budget is not positive (status 400).
    """
    budget = (config.max_tokens or 2048) - estimate_tokens(config.prompt or DEFAULT_AI_PROMPT)
    if budget <= 0:
        raise ConfigurationError("max_tokens is too small for the prompt, please adjust the hook config", 400)
    return budget


async def summarize_article(
    ctx: "DispatchContext",
    provider: AIProvider,
    article: Article,
    config: AISummaryConfig,
    budget: int,
) -> str:
    """Summarize one article chunk by chunk and persist ``ai_summary``."""
    content = article_content(article, config)
    chunks = split_by_tokens(content, budget) if config.is_split else [limit_by_tokens(content, budget)]
    logger.info(f"Summarizing article {article.id} in {len(chunks)} chunk(s)")

    summaries: List[str] = []
    for chunk in chunks:
        try:
            text = await provider.complete(
                config.prompt or DEFAULT_AI_PROMPT,
                chunk,
                config.model or "gpt-3.5-turbo",
                budget,
                config.temperature,
            )
        except Exception as e:
            logger.error(f"AI summary chunk of article {article.id} failed: {e}")
            text = ""
        summaries.append(text)

    ai_summary = "\n".join(s for s in summaries if s)
    article.ai_summary = ai_summary
    async with ctx.session_factory() as session:
        await session.execute(update(Article).where(Article.id == article.id).values(ai_summary=ai_summary))
        await session.commit()
    logger.info(f"Article {article.id} summarized")
    return ai_summary


async def run_ai_summary_hook(
    ctx: "DispatchContext",
    articles: List[Article],
    config: AISummaryConfig,
    proxy_url: str | None = None,
) -> int:
    """Summarize the eligible articles; returns how many were processed."""
    selected = select_articles(articles, config)
    if not selected:
        return 0
    budget = token_budget(config)
    provider = ctx.ai_provider_factory(config, proxy_url)
    try:
        results = await asyncio.gather(
            *(ctx.pools.ai.run(summarize_article, ctx, provider, article, config, budget) for article in selected),
            return_exceptions=True,
        )
    finally:
        await provider.close()
    for article, result in zip(selected, results):
        if isinstance(result, BaseException):
            logger.error(f"AI summary of article {article.id} failed: {result}")
    return len(selected)
