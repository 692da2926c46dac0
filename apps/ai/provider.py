# =============================================================================
# AI Provider 模块
# =============================================================================
# 本模块定义 AI 摘要钩子使用的补全接口 AIProvider，以及基于 OpenAI
# Chat Completions API 的实现。
# 调用约定: complete(system_prompt, user_content, model, max_tokens, temperature) -> str
# 设计决策:
#   - 使用 httpx 而非 openai 官方 SDK，保持依赖轻量
#   - 兼容 OpenAI 协议的第三方端点通过 endpoint 配置接入
#   - 网络抖动与临时限流由 tenacity 重试，重试耗尽后异常向上抛出，
#     由 AI 摘要钩子按片段记录日志
# =============================================================================

"""AI completion providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from apps.hooks.configs import AISummaryConfig
from common.exceptions import UnsupportedTypeError

logger = logging.getLogger(__name__)

# 单次补全请求的重试次数
MAX_ATTEMPTS = 3


class AIProvider(ABC):
    """AI completion collaborator."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_content: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the completion text for one prompt."""

    async def close(self) -> None:
        return None


# -----------------------------------------------------------------------------
# OpenAI Provider 实现类
# 通过 HTTP 调用 OpenAI Chat Completions API 完成摘要。
# -----------------------------------------------------------------------------
class OpenAIProvider(AIProvider):
    """OpenAI Chat Completions provider."""

    def __init__(
        self,
        api_key: str,
        endpoint: str = "https://api.openai.com/v1",
        timeout: float = 120,
        proxy_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._base_url = endpoint.rstrip("/")
        kwargs: Dict[str, Any] = {"timeout": timeout}
        if transport is not None:
            kwargs["transport"] = transport
        elif proxy_url:
            kwargs["proxy"] = proxy_url
        self._client = httpx.AsyncClient(**kwargs)

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    @retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, max=10),
        retry=retry_if_exception_type((httpx.RequestError, httpx.HTTPStatusError)),
        reraise=True,
    )
    async def _call_api(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(
            f"{self._base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
        )
        response.raise_for_status()
        return response.json()

    async def complete(
        self,
        system_prompt: str,
        user_content: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Summarize ``user_content`` under ``system_prompt``.

        Returns:
            str: Assistant reply, stripped.
        """
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        result = await self._call_api(payload)
        choices = result.get("choices") or []
        if not choices:
            logger.warning(f"Empty completion from {self._base_url}: {result}")
            return ""
        return (choices[0].get("message", {}).get("content") or "").strip()


def create_ai_provider(
    config: AISummaryConfig,
    proxy_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AIProvider:
    """Create the provider for ``config.type``.

    Raises:
        UnsupportedTypeError: Unknown provider type.
    """
    if config.type == "openAI":
        return OpenAIProvider(
            api_key=config.api_key,
            endpoint=config.endpoint,
            timeout=config.timeout,
            proxy_url=proxy_url,
            transport=transport,
        )
    raise UnsupportedTypeError(f"Unsupported AI provider type: {config.type}")
