# =============================================================================
# 模块: common/utils.py
# 功能: 通用工具函数集（时间、随机延迟、字符串与容量解析）
# 架构角色: 作为基础工具层，被 poller、sinks、调度任务和每日统计任务使用。
#
# 设计决策:
#   - 所有时间操作默认使用 UTC 时区，按日期统计时再换算为配置的本地时区
#   - 支持通过时区名称字符串指定本地时区（使用 zoneinfo 标准库）
#   - 函数保持简洁无状态，便于测试和复用
# =============================================================================
from __future__ import annotations

import asyncio
import random
import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return the current UTC time.

    返回带有 UTC 时区信息的 datetime 对象。

    Returns:
        datetime: Current UTC datetime with timezone info.
    """
    return datetime.now(timezone.utc)


def day_bounds(day: date, timezone_name: str) -> tuple[datetime, datetime]:
    """Return the UTC start/end of a local calendar day.

    计算本地时区某一天的起止时间（左闭右开），并换算为 UTC。

    Args:
        day: Local calendar date.
        timezone_name: Timezone name used to interpret ``day``.

    Returns:
        tuple[datetime, datetime]: ``(start_utc, end_utc)``.
    """
    tz = ZoneInfo(timezone_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def time_format(value: datetime | None = None, timezone_name: str | None = None) -> str:
    """Format a datetime as ``YYYY-MM-DD HH:MM:SS.mmm``."""
    value = value or utc_now()
    if timezone_name:
        value = value.astimezone(ZoneInfo(timezone_name))
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}"


async def random_sleep(min_seconds: float, max_seconds: float) -> None:
    """Sleep for a random duration in ``[min_seconds, max_seconds]``.

    随机延迟，用于错开同一时刻触发的大量订阅源抓取任务。
    """
    await asyncio.sleep(random.uniform(min_seconds, max(min_seconds, max_seconds)))


def split_string(value: str | None, sep: str = ",") -> list[str]:
    """Split a delimited string into trimmed non-empty parts."""
    if not value:
        return []
    return [part.strip() for part in value.split(sep) if part.strip()]


# 容量单位换算表（按 1024 进制）
_SIZE_UNITS = {
    "": 1,
    "B": 1,
    "K": 1024,
    "KB": 1024,
    "KIB": 1024,
    "M": 1024 ** 2,
    "MB": 1024 ** 2,
    "MIB": 1024 ** 2,
    "G": 1024 ** 3,
    "GB": 1024 ** 3,
    "GIB": 1024 ** 3,
    "T": 1024 ** 4,
    "TB": 1024 ** 4,
    "TIB": 1024 ** 4,
}
_SIZE_PATTERN = re.compile(r"^\s*([\d.]+)\s*([a-zA-Z]*)\s*$")


def parse_data_size(value: str | int | float | None) -> int:
    """Parse a human-readable size (``"10GB"``, ``"512 MiB"``) into bytes.

    空值或无法解析的值返回 0（表示不限制）。
    """
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    match = _SIZE_PATTERN.match(value)
    if not match:
        return 0
    number, unit = match.groups()
    multiplier = _SIZE_UNITS.get(unit.upper())
    if multiplier is None:
        return 0
    return int(float(number) * multiplier)


def data_format(size: int | float | None) -> str:
    """Format a byte count for humans, e.g. ``1.50 GiB``."""
    if not size:
        return "0 B"
    units = ["B", "KiB", "MiB", "GiB", "TiB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.2f} TiB"
