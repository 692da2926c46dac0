# =============================================================================
# 模块: apps/hooks/configs.py
# 功能: 各类钩子的配置结构（封闭的带标签变体）
# 架构角色: Hook.config 是按类型区分结构的 JSON，本模块用 pydantic 模型为每种类型
#   定义一种配置结构，parse_hook_config 根据 Hook.type 解析出对应的变体，
#   分发器再对变体做穷尽的 match 分支。
# 设计决策:
#   - 同时接受 snake_case 与 camelCase 字段名（如 is_markdown / isMarkdown）
#   - 未知字段忽略，缺失字段使用默认值
#   - 未知钩子类型抛出 UnsupportedTypeError，只影响这一个钩子
# =============================================================================
"""Typed hook configuration variants."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from apps.hooks.models import Hook, HookType
from common.exceptions import UnsupportedTypeError
from common.utils import parse_data_size, split_string

# AI 摘要默认系统提示词
DEFAULT_AI_PROMPT = (
    "You are a text summarization assistant. Your task is to provide a concise summary "
    "of no more than 1024 words or Chinese characters. Keep the summary in the same "
    "language as the original text. Focus on the key points and do not add any "
    "information that is not in the original text. The content to be summarized is:"
)

# 下载钩子默认匹配的资源后缀
DEFAULT_DOWNLOAD_SUFFIXES = r"\.(jpe?g|png|gif|webp|bmp|svg|mp3|mp4|m4a|flac|wav|webm|mkv|avi|mov|zip|rar|7z|pdf)$"


class _HookConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class NotificationConfig(_HookConfig):
    """Push notification sink."""

    # 推送渠道类型（ServerChanTurbo / Telegram / Discord / CustomWebhook / Email）
    type: str = "CustomWebhook"
    # 渠道专属配置（如 SCTKEY、bot token、webhook 地址）
    config: Dict[str, Any] = Field(default_factory=dict)
    is_markdown: bool = False
    is_snippet: bool = False
    only_summary: bool = False
    max_length: int = 4096
    is_merge_push: bool = False
    use_ai_summary: bool = False
    append_ai_summary: bool = False


class WebhookConfig(_HookConfig):
    """Outbound HTTP call sink."""

    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    # 超时时间（秒）
    timeout: float = 60


class DownloadConfig(_HookConfig):
    """Embedded resource download sink."""

    suffixes: str = DEFAULT_DOWNLOAD_SUFFIXES
    # 逗号分隔的 MD5 列表，命中的文件下载后删除并标记为 skip
    skip_hashes: str = ""
    timeout: float = 60

    @property
    def skip_hash_list(self) -> list[str]:
        return [h.lower() for h in split_string(self.skip_hashes)]


class BitTorrentConfig(_HookConfig):
    """BitTorrent client submission sink."""

    type: str = "qBittorrent"
    base_url: str
    username: str = ""
    password: str = ""
    download_path: str = ""
    # 磁盘空间不足时是否自动删除已下载最多的种子
    auto_remove: bool = False
    # 单个资源的最大体积，如 "10GB"，为空表示不限制
    max_size: Optional[str] = None
    # 最小剩余磁盘空间，如 "50GB"
    min_disk_size: Optional[str] = None

    @property
    def max_size_bytes(self) -> int:
        return parse_data_size(self.max_size)

    @property
    def min_disk_size_bytes(self) -> int:
        return parse_data_size(self.min_disk_size)


class AISummaryConfig(_HookConfig):
    """AI summary sink."""

    type: str = "openAI"
    api_key: str = ""
    endpoint: str = "https://api.openai.com/v1"
    model: str = "gpt-3.5-turbo"
    prompt: str = DEFAULT_AI_PROMPT
    # 超时时间（秒）
    timeout: float = 120
    is_split: bool = False
    # 内容短于此长度的文章不做摘要，0 表示不限制
    min_content_length: int = 1024
    max_tokens: int = 2048
    temperature: float = 0
    is_only_summary_empty: bool = False
    # html: 使用 content，text: 使用 content_snippet
    content_type: str = "html"
    is_include_title: bool = False


class RegularConfig(_HookConfig):
    """Regex content rewrite sink."""

    content_regular: str = ""
    content_replace: str = ""


HookConfig = Union[
    NotificationConfig,
    WebhookConfig,
    DownloadConfig,
    BitTorrentConfig,
    AISummaryConfig,
    RegularConfig,
]

_CONFIG_TYPES: dict[str, type[_HookConfig]] = {
    HookType.NOTIFICATION.value: NotificationConfig,
    HookType.WEBHOOK.value: WebhookConfig,
    HookType.DOWNLOAD.value: DownloadConfig,
    HookType.BIT_TORRENT.value: BitTorrentConfig,
    HookType.AI_SUMMARY.value: AISummaryConfig,
    HookType.REGULAR.value: RegularConfig,
}


def parse_hook_config(hook: Hook) -> HookConfig:
    """Parse ``hook.config`` into the variant for ``hook.type``.

    Raises:
        UnsupportedTypeError: Unknown hook type.
        pydantic.ValidationError: Config payload does not fit the variant.
    """
    config_type = _CONFIG_TYPES.get(hook.type)
    if config_type is None:
        raise UnsupportedTypeError(f"Unsupported hook type: {hook.type}")
    return config_type.model_validate(hook.config or {})
