# =============================================================================
# 模块: common/tokens.py
# 功能: 文本 token 数估算、截断与切分
# 架构角色: 为 AI 摘要钩子计算 token 预算（max_tokens - 系统提示词 token 数），
#   并把过长的文章内容截断或切分为多个不超过预算的片段。
#
# 设计决策:
#   - 采用离线估算而非真实分词器：中日韩字符每字计 1 token，
#     其它单词按每 4 个字符 1 token 估算，标点计 1 token
#   - 截断与切分都在原文字符位置上进行，保留原始空白与换行
# =============================================================================
"""Offline token estimation for AI prompts."""

from __future__ import annotations

import math
import re

_CJK = r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff]"
_UNIT_PATTERN = re.compile(_CJK + r"|\w+|[^\w\s]")
_CJK_PATTERN = re.compile(_CJK)


def _unit_tokens(unit: str) -> int:
    if _CJK_PATTERN.fullmatch(unit):
        return 1
    if unit[0].isalnum() or unit[0] == "_":
        return max(1, math.ceil(len(unit) / 4))
    return 1


def estimate_tokens(text: str | None) -> int:
    """Estimate the token count of ``text``."""
    if not text:
        return 0
    return sum(_unit_tokens(m.group()) for m in _UNIT_PATTERN.finditer(text))


def _cut_points(text: str, max_tokens: int) -> list[int]:
    """Character offsets where each token-bounded chunk ends."""
    points: list[int] = []
    used = 0
    for match in _UNIT_PATTERN.finditer(text):
        cost = _unit_tokens(match.group())
        if used and used + cost > max_tokens:
            points.append(match.start())
            used = 0
        used += cost
    return points


def limit_by_tokens(text: str, max_tokens: int) -> str:
    """Truncate ``text`` to at most ``max_tokens`` estimated tokens."""
    if max_tokens <= 0:
        return ""
    points = _cut_points(text, max_tokens)
    if not points:
        return text
    return text[: points[0]].rstrip()


def split_by_tokens(text: str, max_tokens: int) -> list[str]:
    """Split ``text`` into consecutive chunks of at most ``max_tokens`` tokens.

    按 token 预算把文本切分为多个连续片段，空白片段会被丢弃。
    """
    if not text:
        return []
    if max_tokens <= 0:
        return [text]
    chunks: list[str] = []
    start = 0
    for point in _cut_points(text, max_tokens):
        chunks.append(text[start:point])
        start = point
    chunks.append(text[start:])
    return [chunk.strip() for chunk in chunks if chunk.strip()]
