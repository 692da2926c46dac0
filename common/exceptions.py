# =============================================================================
# 模块: common/exceptions.py
# 功能: FeedImpact 的异常分类
# 架构角色: 各层统一使用的异常类型。
#   - 可重试的网络错误（TransientNetworkError / HttpRequestError）
#   - 重试终止错误（RetryExhaustedError / RetryIntervalExceededError），包装最后一次的原因
#   - 配置错误（ConfigurationError），不会被重试
#   - 不支持的类型（UnsupportedTypeError），只影响当前这一次操作
# 数据库唯一约束冲突直接使用 sqlalchemy.exc.IntegrityError，不再另行包装。
# =============================================================================
"""Exception taxonomy for FeedImpact."""

from __future__ import annotations

from typing import Any


class FeedImpactError(Exception):
    """Base class for all application errors."""


class TransientNetworkError(FeedImpactError):
    """A network failure that may succeed on retry."""


class HttpRequestError(TransientNetworkError):
    """Raised by the HTTP fetch collaborator on non-2xx or transport failure.

    ``response`` 在服务端有响应时携带状态码、响应体与响应头，
    纯网络错误（连接失败、超时）时为 None。
    """

    def __init__(self, message: str, response: Any = None):
        super().__init__(message)
        self.response = response


class RetryError(FeedImpactError):
    """Terminal retry failure wrapping the last cause."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class RetryExhaustedError(RetryError):
    """The attempt counter reached ``max_retries``."""


class RetryIntervalExceededError(RetryError):
    """The next backoff delay would reach ``max_interval``."""


class ConfigurationError(FeedImpactError):
    """Invalid or unresolvable configuration; never retried."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class UnsupportedTypeError(FeedImpactError):
    """Unknown hook, BitTorrent client or AI provider type."""


class FeedParseError(FeedImpactError):
    """The fetched document is not a syndication feed."""
