"""
指标聚合 (Metrics Aggregator)

根据查询跨度选择原始数据或分桶聚合：跨度 ≥ 7 天时使用 10 分钟桶，否则返回原始快照。
桶按 floor(unix_ts / 600) * 600 对齐，恰好落在边界上的样本归入后一个桶；
空桶直接省略，不补零。
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, Optional, Union

from pydantic import BaseModel

from serverpulse.schemas.metrics import UTC, MetricSnapshot, TimeBucket, TimeRange

if TYPE_CHECKING:
    from serverpulse.services.metric_repository import MetricRepository

BUCKET_SECONDS = 600
AGGREGATION_THRESHOLD = timedelta(days=7)


class AggregationResult(BaseModel):
    data: list[Union[MetricSnapshot, TimeBucket]]
    aggregated: bool
    bucket_size_minutes: Optional[int] = None


def bucket_start_for(timestamp: datetime, bucket_seconds: int = BUCKET_SECONDS) -> datetime:
    """样本所属桶的起始时间。"""
    epoch = math.floor(timestamp.timestamp() / bucket_seconds) * bucket_seconds
    return datetime.fromtimestamp(epoch, tz=UTC)


def bucketize(snapshots: Iterable[MetricSnapshot], bucket_seconds: int = BUCKET_SECONDS) -> list[TimeBucket]:
    """
    将按时间升序的快照划分到固定宽度的桶。

    瞬时值（cpu/ram/disk）取算术平均；累计计数器取桶内最大值，近似桶结束时的状态。
    """
    groups: dict[datetime, list[MetricSnapshot]] = {}
    for snapshot in snapshots:
        groups.setdefault(bucket_start_for(snapshot.timestamp, bucket_seconds), []).append(snapshot)

    buckets = []
    for start in sorted(groups):
        members = groups[start]
        count = len(members)
        buckets.append(TimeBucket(
            bucket_start=start,
            cpu_avg=round(sum(m.cpu_usage_percent for m in members) / count, 2),
            ram_avg=round(sum(m.ram_usage_gb for m in members) / count, 2),
            disk_avg=round(sum(m.disk_usage_gb for m in members) / count, 2),
            io_read_end=max(m.io_read_bytes for m in members),
            io_write_end=max(m.io_write_bytes for m in members),
            net_sent_end=max(m.net_sent_bytes for m in members),
            net_received_end=max(m.net_received_bytes for m in members),
            sample_count=count,
        ))
    return buckets


def should_aggregate(time_range: TimeRange) -> bool:
    """跨度恰好 7 天即聚合。"""
    return time_range.end - time_range.start >= AGGREGATION_THRESHOLD


class MetricsAggregator:
    """原始/分桶检索的决策与执行。"""

    def __init__(self, repository: MetricRepository, bucket_seconds: int = BUCKET_SECONDS):
        self.repository = repository
        self.bucket_seconds = bucket_seconds

    async def fetch(self, time_range: TimeRange) -> AggregationResult:
        if should_aggregate(time_range):
            buckets = await self.repository.aggregate_by_bucket(
                time_range.start, time_range.end, self.bucket_seconds
            )
            return AggregationResult(
                data=buckets,
                aggregated=True,
                bucket_size_minutes=self.bucket_seconds // 60,
            )

        snapshots = await self.repository.find_by_time_range(time_range.start, time_range.end)
        return AggregationResult(data=snapshots, aggregated=False)
