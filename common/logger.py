# =============================================================================
# 模块: common/logger.py
# 功能: 日志系统初始化的便捷封装
# 架构角色: 作为日志配置的入口，实际加载逻辑委托给
#   config_loader.setup_logging_from_yaml。
# =============================================================================
"""Logging setup for FeedImpact.

Uses YAML-based configuration from /config/logging.yaml with optional
runtime overrides for log level and log file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from common.config_loader import setup_logging_from_yaml


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Setup logging using YAML config with optional overrides.

    使用 YAML 配置文件初始化日志系统，在导入 main.py 时调用。

    Args:
        log_level: Override the root logger level (default: INFO).
        log_file: Override the file handler's filename (optional).
    """
    setup_logging_from_yaml(
        log_level_override=log_level,
        log_file_override=log_file,
    )
