# =============================================================================
# 模块: apps/hooks/formatting.py
# 功能: 通知正文与 Webhook 负载的文本格式化
# 架构角色: 通知钩子与 Webhook 钩子共用的展示层工具：
#   - 把文章渲染为纯文本或 Markdown 段落
#   - 按最大长度把正文切成若干片段（并限制片段数量）
#   - 把文章、订阅源序列化为 JSON 友好的字典
# =============================================================================
"""Text formatting for notification bodies and webhook payloads."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List

from apps.feed.models import Article
from apps.feed.parser import html_to_text
from apps.hooks.configs import NotificationConfig

# 合并推送时文章之间的分隔线
_SEPARATOR = "\n\n---\n\n"
# 正文中的网址
_LINK_PATTERN = re.compile(r"https?://[-A-Za-z0-9+&@#/%?=~_|!:,.;]+[-A-Za-z0-9+&@#/%=~_|]", re.IGNORECASE)


def markdown_safe_link(url: str) -> str:
    """Break dots in a URL with zero-width joiners.

    部分推送渠道会把正文中的网址自动识别为链接并生成预览，
    在点号两侧插入零宽连接符可以阻止这种识别。
    """
    return url.replace(".", "\u200d.\u200d")


def break_links(text: str) -> str:
    """Apply :func:`markdown_safe_link` to every URL found in ``text``."""
    return _LINK_PATTERN.sub(lambda m: markdown_safe_link(m.group()), text)


def article_text(article: Article, config: NotificationConfig) -> str:
    """Body text of one article according to the notification options."""
    if config.only_summary:
        if config.use_ai_summary and article.ai_summary:
            text = article.ai_summary
        else:
            text = article.summary or article.content_snippet or html_to_text(article.content)
    elif config.is_snippet:
        text = article.content_snippet or html_to_text(article.content)
    else:
        text = html_to_text(article.content) or article.content_snippet or ""
    if config.append_ai_summary and article.ai_summary and text != article.ai_summary:
        text = f"{text}\n\nAI 摘要：{article.ai_summary}"
    return text.strip()


def article_item_format(article: Article, config: NotificationConfig) -> str:
    """Render one article as a text or markdown block."""
    title = article.title or article.guid
    body = article_text(article, config)
    if config.is_markdown:
        heading = f"**[{title}]({article.link})**" if article.link else f"**{title}**"
        return f"{heading}\n\n{body}" if body else heading
    lines = [title]
    if article.link:
        lines.append(article.link)
    if body:
        lines.append(body)
    return "\n".join(lines)


def articles_format(articles: Iterable[Article], config: NotificationConfig) -> str:
    """Render several articles into one merged body."""
    return _SEPARATOR.join(article_item_format(article, config) for article in articles)


def cut_chunks(text: str, max_length: int, max_chunks: int) -> List[str]:
    """Split ``text`` into at most ``max_chunks`` pieces of ``max_length`` chars.

    超出 max_chunks * max_length 的部分被丢弃。
    """
    if max_length <= 0:
        return [text] if text else []
    chunks = [text[i:i + max_length] for i in range(0, len(text), max_length)]
    return chunks[:max_chunks]


def model_to_dict(obj: Any) -> Dict[str, Any]:
    """JSON-serializable view of an ORM row (columns only)."""
    data: Dict[str, Any] = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[column.key] = value
    return data


def article_to_dict(article: Article) -> Dict[str, Any]:
    return model_to_dict(article)
