"""
时间范围解析 (Time Range Resolver)

把命名范围（1h/6h/24h/7d/30d）或自定义 ISO-8601 起止时间转换为具体的 UTC 区间。
"""
import re
from datetime import datetime, timedelta
from typing import Callable, Optional

from serverpulse.core.exceptions import InvalidRangeError
from serverpulse.schemas.metrics import UTC, TimeRange, ensure_utc

NAMED_RANGES: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_RANGE = "24h"
MAX_CUSTOM_SPAN = timedelta(days=30)
CUSTOM_RANGE = "custom"

_FRACTION_RE = re.compile(r"(?<=:\d\d)\.(\d+)")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _normalize_fraction(match: re.Match) -> str:
    # fromisoformat 只接受 3 位或 6 位小数秒，其余位数补齐或截断到微秒
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_iso8601(value: str) -> datetime:
    """解析 ISO-8601 时间，接受 Z 后缀和任意位数的小数秒；无时区视为 UTC。"""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(_normalize_fraction, text, count=1)
    return ensure_utc(datetime.fromisoformat(text))


class TimeRangeResolver:
    """时间范围解析器。now 可注入，便于测试。"""

    def __init__(self, now: Callable[[], datetime] = _utc_now):
        self._now = now

    def resolve_named(self, range_name: str) -> TimeRange:
        """命名范围 → [now - Δ, now]。"""
        delta = NAMED_RANGES.get(range_name)
        if delta is None:
            raise InvalidRangeError(
                f"Invalid range. Must be one of: {', '.join(NAMED_RANGES)}"
            )
        end = ensure_utc(self._now())
        return TimeRange(start=end - delta, end=end, range=range_name)

    def resolve_custom(self, start: str, end: str) -> TimeRange:
        """
        自定义区间：起止时间必须可解析、start < end，且跨度不超过 30 天。

        Raises:
            InvalidRangeError: 任一条件不满足
        """
        try:
            start_time = parse_iso8601(start)
            end_time = parse_iso8601(end)
        except (TypeError, ValueError, AttributeError):
            raise InvalidRangeError(
                "Invalid datetime format. Use ISO 8601 format (e.g., 2024-01-15T14:30:00Z)"
            ) from None

        if start_time >= end_time:
            raise InvalidRangeError("Start time must be before end time")
        if end_time - start_time > MAX_CUSTOM_SPAN:
            raise InvalidRangeError("Maximum range is 30 days")

        return TimeRange(start=start_time, end=end_time, range=CUSTOM_RANGE)

    def resolve(
        self,
        range_name: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> TimeRange:
        """给出 start/end 时优先使用自定义区间，否则使用命名范围（未指定时为 24h）。"""
        if start is not None or end is not None:
            if start is None or end is None:
                raise InvalidRangeError(
                    "Both start and end parameters are required when using custom range"
                )
            return self.resolve_custom(start, end)
        return self.resolve_named(DEFAULT_RANGE if range_name is None else range_name)
