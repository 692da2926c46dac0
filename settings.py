# =============================================================================
# 模块: settings.py
# 功能: FeedImpact 的全局应用配置模块
# 架构角色: 作为整个应用的配置中枢，提供统一的配置管理。
#   采用分层配置优先级机制，从高到低依次为：
#   1. 环境变量（运行时覆盖，适用于容器化部署）
#   2. .env 文件（存放敏感信息如 SMTP 密码）
#   3. config/defaults.yaml（非敏感默认值）
#   4. Python 代码中的硬编码默认值（兜底方案）
#
# 设计决策:
#   - 使用 pydantic-settings 的 BaseSettings 实现类型安全的配置
#   - YAML 文件在模块加载时一次性读取并缓存到模块级变量中
#   - validation_alias 用于将大写的环境变量名映射到小写的 Python 属性名
#   - 六个并发池的容量在这里集中配置，进程启动时只读取一次
# =============================================================================
"""Global application settings for FeedImpact.

Configuration precedence (highest to lowest):
1. Environment variables (runtime override)
2. .env file (secrets)
3. config/defaults.yaml (non-sensitive defaults)
4. Hardcoded Python defaults (fallback)
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 项目根目录（settings.py 所在目录）
BASE_DIR = Path(__file__).resolve().parent
# 配置文件目录
CONFIG_DIR = BASE_DIR / "config"


def load_yaml_config() -> dict:
    """Load configuration from defaults.yaml.

    从 YAML 配置文件加载默认配置。
    如果文件不存在则返回空字典，不会抛出异常。

    返回值:
        dict: YAML 文件内容解析后的字典，文件不存在或为空时返回 {}
    """
    config_path = CONFIG_DIR / "defaults.yaml"
    if not config_path.exists():
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# 模块加载时一次性读取 YAML 配置并缓存
_yaml_config = load_yaml_config()
# 从 YAML 中提取各配置段（section）
_app_config = _yaml_config.get("app", {})                 # 应用基本配置
_db_config = _yaml_config.get("database", {})             # 数据库配置
_scheduler_config = _yaml_config.get("scheduler", {})     # 定时任务调度配置
_limits_config = _yaml_config.get("limits", {})           # 并发池容量配置
_retention_config = _yaml_config.get("retention", {})     # 数据保留策略配置
_resource_config = _yaml_config.get("resource", {})       # 资源下载配置
_hooks_config = _yaml_config.get("hooks", {})             # 钩子与订阅源抓取配置
_email_config = _yaml_config.get("email", {})             # 邮件推送渠道配置


def _resolve_path(value: str) -> Path:
    """Resolve a possibly relative path against BASE_DIR.

    相对路径基于项目根目录转换为绝对路径。
    """
    path = Path(value)
    if not path.is_absolute():
        return BASE_DIR / path
    return path


# =============================================================================
# Settings 类: 全局配置类
# 职责: 集中管理所有配置项，提供类型安全的访问方式
# 设计决策:
#   - 继承 pydantic_settings.BaseSettings，自动支持环境变量注入
#   - 每个字段使用 validation_alias 映射环境变量名（大写形式）
#   - default 值优先从 YAML 缓存中获取，找不到时使用硬编码默认值
# =============================================================================
class Settings(BaseSettings):
    """Global application settings."""

    # ======================== 应用基本配置 ========================
    app_name: str = Field(
        default=_app_config.get("name", "FeedImpact"),
        validation_alias="APP_NAME",
    )
    # 开发模式：反转钩子会携带错误堆栈，定时任务抖动时间缩短
    debug: bool = Field(
        default=_app_config.get("debug", False),
        validation_alias="DEBUG",
    )
    app_host: str = Field(
        default=_app_config.get("host", "0.0.0.0"),
        validation_alias="APP_HOST",
    )
    app_port: int = Field(
        default=_app_config.get("port", 3000),
        validation_alias="APP_PORT",
    )
    data_dir: Path = Field(
        default=_resolve_path(_app_config.get("data_dir", "./data")),
        validation_alias="DATA_DIR",
    )

    # ======================== 数据库配置 ========================
    # 为空时使用 data_dir/feed_impact.sqlite（aiosqlite 驱动）
    db_url: str = Field(
        default=_db_config.get("url", ""),
        validation_alias="DATABASE_URL",
    )
    db_echo: bool = Field(
        default=_db_config.get("echo", False),
        validation_alias="DB_ECHO",
    )

    # ======================== 定时任务调度配置 ========================
    # 订阅源 cron 与每日统计所使用的时区
    timezone: str = Field(
        default=_scheduler_config.get("timezone", "Asia/Shanghai"),
        validation_alias="TZ",
    )
    # 订阅源任务触发后的随机延迟上限（秒）
    feed_jitter_seconds: float = Field(
        default=_scheduler_config.get("jitter_seconds", 60),
        validation_alias="FEED_JITTER_SECONDS",
    )
    feed_jitter_seconds_debug: float = Field(
        default=_scheduler_config.get("jitter_seconds_debug", 1),
        validation_alias="FEED_JITTER_SECONDS_DEBUG",
    )

    # ======================== 并发池容量 ========================
    rss_limit: int = Field(
        default=_limits_config.get("rss", 5),
        validation_alias="RSS_LIMIT",
    )
    hook_limit: int = Field(
        default=_limits_config.get("hook", 5),
        validation_alias="HOOK_LIMIT",
    )
    download_limit: int = Field(
        default=_limits_config.get("download", 5),
        validation_alias="DOWNLOAD_LIMIT",
    )
    bit_torrent_limit: int = Field(
        default=_limits_config.get("bit_torrent", 1),
        validation_alias="BIT_TORRENT_LIMIT",
    )
    ai_limit: int = Field(
        default=_limits_config.get("ai", 1),
        validation_alias="AI_LIMIT",
    )
    notification_limit: int = Field(
        default=_limits_config.get("notification", 5),
        validation_alias="NOTIFICATION_LIMIT",
    )

    # ======================== 数据保留策略配置 ========================
    article_save_days: int = Field(
        default=_retention_config.get("article_save_days", 90),
        validation_alias="ARTICLE_SAVE_DAYS",
    )
    resource_save_days: int = Field(
        default=_retention_config.get("resource_save_days", 30),
        validation_alias="RESOURCE_SAVE_DAYS",
    )
    log_save_days: int = Field(
        default=_retention_config.get("log_save_days", 90),
        validation_alias="LOG_SAVE_DAYS",
    )

    # ======================== 资源下载配置 ========================
    resource_download_path: Path = Field(
        default=_resolve_path(_resource_config.get("download_path", "./data/download")),
        validation_alias="RESOURCE_DOWNLOAD_PATH",
    )

    # ======================== 钩子配置 ========================
    # 单个订阅源一小时内反转钩子日志数的上限，达到后不再触发
    reverse_trigger_limit: int = Field(
        default=_hooks_config.get("reverse_trigger_limit", 5),
        validation_alias="REVERSE_TRIGGER_LIMIT",
    )
    # 订阅源抓取的请求超时（秒）
    feed_request_timeout: float = Field(
        default=_hooks_config.get("feed_request_timeout", 60),
        validation_alias="FEED_REQUEST_TIMEOUT",
    )

    # ======================== 邮件推送渠道（SMTP） ========================
    smtp_host: str = Field(
        default=_email_config.get("smtp", {}).get("host", ""),
        validation_alias="SMTP_HOST",
    )
    smtp_port: int = Field(
        default=_email_config.get("smtp", {}).get("port", 587),
        validation_alias="SMTP_PORT",
    )
    smtp_user: str = Field(
        default="",
        validation_alias="SMTP_USER",
    )
    # 密码不在 YAML 中设默认值，必须通过环境变量或 .env 提供
    smtp_password: str = Field(
        default="",
        validation_alias="SMTP_PASSWORD",
    )
    smtp_timeout: float = Field(
        default=_email_config.get("smtp", {}).get("timeout", 10.0),
        validation_alias="SMTP_TIMEOUT",
    )
    smtp_tls: bool = Field(
        default=_email_config.get("smtp", {}).get("tls", True),
        validation_alias="SMTP_TLS",
    )
    smtp_ssl: bool = Field(
        default=_email_config.get("smtp", {}).get("ssl", False),
        validation_alias="SMTP_SSL",
    )

    # pydantic-settings 的模型配置
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "rss_limit",
        "hook_limit",
        "download_limit",
        "bit_torrent_limit",
        "ai_limit",
        "notification_limit",
    )
    @classmethod
    def limit_must_be_positive(cls, v: int) -> int:
        """Reject pool capacities below 1.

        并发池容量小于 1 会导致任务永远无法获得执行槽位，启动时直接报错。
        """
        if v < 1:
            raise ValueError("pool capacity must be >= 1")
        return v

    @property
    def database_url(self) -> str:
        """Build the async database URL.

        未显式配置 DATABASE_URL 时，使用 data_dir 下的 SQLite 文件。

        返回值:
            str: SQLAlchemy 异步连接字符串
        """
        if self.db_url:
            return self.db_url
        return f"sqlite+aiosqlite:///{self.data_dir / 'feed_impact.sqlite'}"


# 全局配置单例
settings = Settings()
