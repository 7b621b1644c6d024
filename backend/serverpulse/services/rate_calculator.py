"""
累计计数器速率计算 (Rate Calculator)

把按时间排序的 (timestamp, 累计值) 序列转换为逐样本增量和速率。
服务端区间统计与图表逐点序列共用同一套规则：

- 首个样本没有前驱，增量与速率均为 0
- 增量为负（重启或计数器回绕）时按 0 处理
- 时间差 ≤ 0 时速率为 0，任何非有限结果按 0 处理
"""
import enum
import math
from datetime import datetime
from typing import Iterable, Optional

from serverpulse.schemas.metrics import RateSample

MB = 1024 ** 2
GB = 1024 ** 3

SHORT_RANGES = frozenset({"1h", "6h", "24h"})
LONG_RANGES = frozenset({"7d", "30d"})
_LONG_SPAN_SECONDS = 7 * 24 * 3600


class RateUnit(str, enum.Enum):
    BYTES_PER_SECOND = "B/s"
    MB_PER_SECOND = "MB/s"
    GB_PER_HOUR = "GB/h"


def network_unit_for(range_name: str, span_seconds: Optional[float] = None) -> RateUnit:
    """短范围用 MB/s，长范围用 GB/h；自定义范围按跨度是否达到 7 天判断。"""
    if range_name in SHORT_RANGES:
        return RateUnit.MB_PER_SECOND
    if range_name in LONG_RANGES:
        return RateUnit.GB_PER_HOUR
    if span_seconds is not None and span_seconds < _LONG_SPAN_SECONDS:
        return RateUnit.MB_PER_SECOND
    return RateUnit.GB_PER_HOUR


def counter_delta(previous: int, current: int) -> int:
    """两次读数之差，计数器重置时为 0。"""
    delta = current - previous
    return delta if delta > 0 else 0


def scale_rate(delta: int, elapsed_seconds: float, unit: RateUnit = RateUnit.BYTES_PER_SECOND) -> float:
    if elapsed_seconds <= 0:
        return 0.0
    if unit is RateUnit.MB_PER_SECOND:
        rate = (delta / MB) / elapsed_seconds
    elif unit is RateUnit.GB_PER_HOUR:
        rate = (delta / GB) * (3600 / elapsed_seconds)
    else:
        rate = delta / elapsed_seconds
    return rate if math.isfinite(rate) else 0.0


def compute_rates(
    points: Iterable[tuple[datetime, int]],
    unit: RateUnit = RateUnit.BYTES_PER_SECOND,
) -> list[RateSample]:
    """逐样本计算增量与速率，输出与输入一一对应。"""
    samples: list[RateSample] = []
    previous: Optional[tuple[datetime, int]] = None
    for timestamp, value in points:
        if previous is None:
            samples.append(RateSample(timestamp=timestamp, delta=0, rate=0.0))
        else:
            delta = counter_delta(previous[1], value)
            elapsed = (timestamp - previous[0]).total_seconds()
            samples.append(RateSample(timestamp=timestamp, delta=delta, rate=scale_rate(delta, elapsed, unit)))
        previous = (timestamp, value)
    return samples


def average_per_minute(total: int, window_seconds: float) -> float:
    """窗口内每分钟平均值，窗口不足 1 分钟按 1 分钟计。"""
    minutes = max(1.0, window_seconds / 60)
    return round(total / minutes, 2)
