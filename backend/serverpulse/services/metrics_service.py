"""
指标查询服务 (Metrics Query Service)

面向展示层的查询门面：时间序列、最新快照、区间统计、逐点速率和采集状态。

错误处理约定：
  - 调用方可纠正的错误（BusinessError，如 InvalidRangeError）原样抛出
  - 其他异常记录完整 traceback，并以 AggregationError 通用信息对外报告，不泄露内部细节

Query facade for the presentation layer. Caller-correctable errors propagate
unchanged; unexpected errors are logged with full context and re-raised as a
generic AggregationError.
"""
import functools
import logging
from datetime import datetime
from typing import Callable, Optional, Union

from serverpulse.core.exceptions import AggregationError, BusinessError
from serverpulse.schemas.metrics import (
    UTC,
    GaugeStats,
    IoDeltaPoint,
    IoStats,
    MetricSnapshot,
    MetricsMeta,
    MetricsResponse,
    NetworkRatePoint,
    NetworkStats,
    RatesResponse,
    StatisticsResponse,
    StatusResponse,
    TimeBucket,
    ensure_utc,
)
from serverpulse.services.metric_repository import MetricRepository
from serverpulse.services.metrics_aggregator import MetricsAggregator
from serverpulse.services.rate_calculator import (
    average_per_minute,
    compute_rates,
    counter_delta,
    network_unit_for,
)
from serverpulse.services.time_range import TimeRangeResolver

logger = logging.getLogger(__name__)

SSH_CONNECTED_WINDOW_SECONDS = 300


def guarded_query(func):
    """查询方法的统一错误边界。"""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except BusinessError:
            raise
        except Exception as e:
            logger.exception("Error in %s: %s", func.__name__, e)
            raise AggregationError("Internal server error") from e
    return wrapper


def _counter_point(item: Union[MetricSnapshot, TimeBucket]) -> tuple[datetime, int, int, int, int]:
    """统一原始快照与聚合桶的累计计数器视图：(时间, 读, 写, 发送, 接收)。"""
    if isinstance(item, TimeBucket):
        return (item.bucket_start, item.io_read_end, item.io_write_end,
                item.net_sent_end, item.net_received_end)
    return (item.timestamp, item.io_read_bytes, item.io_write_bytes,
            item.net_sent_bytes, item.net_received_bytes)


def _gauge(values: list[float], current: Optional[float]) -> GaugeStats:
    return GaugeStats(
        min=min(values),
        max=max(values),
        avg=round(sum(values) / len(values), 2),
        current=current,
    )


class MetricsService:
    """指标查询业务逻辑。"""

    def __init__(
        self,
        repository: MetricRepository,
        resolver: Optional[TimeRangeResolver] = None,
        collection_interval_seconds: int = 60,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self._now = now or (lambda: datetime.now(UTC))
        self.resolver = resolver or TimeRangeResolver(now=self._now)
        self.aggregator = MetricsAggregator(repository)
        self.collection_interval_seconds = collection_interval_seconds

    @guarded_query
    async def get_metrics(
        self,
        range_name: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> MetricsResponse:
        """
        时间序列查询，跨度 ≥ 7 天时自动按 10 分钟聚合。

        Args:
            range_name: 命名范围 1h/6h/24h/7d/30d，默认 24h
            start: 自定义起始时间（ISO-8601），与 end 同时给出时覆盖 range_name
            end: 自定义结束时间（ISO-8601）
        """
        time_range = self.resolver.resolve(range_name, start, end)
        result = await self.aggregator.fetch(time_range)
        return MetricsResponse(
            data=result.data,
            meta=MetricsMeta(
                range=time_range.range,
                count=len(result.data),
                aggregated=result.aggregated,
                bucket_size_minutes=result.bucket_size_minutes,
                start_time=time_range.start,
                end_time=time_range.end,
            ),
        )

    @guarded_query
    async def get_latest(self) -> Optional[MetricSnapshot]:
        """最新一条快照，采集失败时用于展示最后已知值。"""
        return await self.repository.find_latest()

    @guarded_query
    async def get_statistics(
        self,
        range_name: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> StatisticsResponse:
        """
        区间统计：瞬时值的 min/max/avg，累计计数器的区间总量与每分钟平均。

        区间总量 = 末样本 - 首样本（计数器重置时为 0），每分钟平均按窗口长度计算。
        """
        time_range = self.resolver.resolve(range_name, start, end)
        snapshots = await self.repository.find_by_time_range(time_range.start, time_range.end)
        latest = await self.repository.find_latest()
        last_update = latest.timestamp if latest else None

        if not snapshots:
            return StatisticsResponse(last_update=last_update, record_count=0)

        first, last = snapshots[0], snapshots[-1]
        window = time_range.span_seconds

        read_total = counter_delta(first.io_read_bytes, last.io_read_bytes)
        write_total = counter_delta(first.io_write_bytes, last.io_write_bytes)
        sent_total = counter_delta(first.net_sent_bytes, last.net_sent_bytes)
        received_total = counter_delta(first.net_received_bytes, last.net_received_bytes)

        return StatisticsResponse(
            cpu=_gauge([s.cpu_usage_percent for s in snapshots], latest.cpu_usage_percent if latest else None),
            ram=_gauge([s.ram_usage_gb for s in snapshots], latest.ram_usage_gb if latest else None),
            disk=_gauge([s.disk_usage_gb for s in snapshots], latest.disk_usage_gb if latest else None),
            io=IoStats(
                read_total=read_total,
                write_total=write_total,
                read_avg_per_minute=average_per_minute(read_total, window),
                write_avg_per_minute=average_per_minute(write_total, window),
            ),
            network=NetworkStats(
                sent_total=sent_total,
                received_total=received_total,
                sent_avg_per_minute=average_per_minute(sent_total, window),
                received_avg_per_minute=average_per_minute(received_total, window),
            ),
            last_update=last_update,
            record_count=len(snapshots),
        )

    @guarded_query
    async def get_rates(
        self,
        range_name: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> RatesResponse:
        """
        逐点速率序列：网络按范围选择 MB/s 或 GB/h，I/O 为每个样本间的原始字节增量。

        与 get_metrics 使用相同的原始/聚合决策，图表点与序列数据一一对应。
        """
        time_range = self.resolver.resolve(range_name, start, end)
        result = await self.aggregator.fetch(time_range)
        unit = network_unit_for(time_range.range, time_range.span_seconds)

        points = [_counter_point(item) for item in result.data]
        timestamps = [p[0] for p in points]
        read = compute_rates(zip(timestamps, (p[1] for p in points)))
        write = compute_rates(zip(timestamps, (p[2] for p in points)))
        sent = compute_rates(zip(timestamps, (p[3] for p in points)), unit)
        received = compute_rates(zip(timestamps, (p[4] for p in points)), unit)

        return RatesResponse(
            unit=unit.value,
            aggregated=result.aggregated,
            network=[
                NetworkRatePoint(timestamp=ts, sent_rate=s.rate, received_rate=r.rate)
                for ts, s, r in zip(timestamps, sent, received)
            ],
            io=[
                IoDeltaPoint(timestamp=ts, read_delta=rd.delta, write_delta=wd.delta)
                for ts, rd, wd in zip(timestamps, read, write)
            ],
        )

    @guarded_query
    async def get_status(self) -> StatusResponse:
        """
        采集状态：最近一次快照距今 ≤ 2 个采集间隔为 success，≤ 5 个为 delayed，
        否则为 failed；无数据为 unknown。5 分钟内有快照视为 SSH 连通。
        """
        info = await self.repository.get_time_range_info()
        latest = await self.repository.find_latest()

        status = StatusResponse(
            data_available=info.total > 0,
            oldest_record=info.oldest,
            newest_record=info.newest,
            total_records=info.total,
        )
        if latest is None:
            return status

        age = (ensure_utc(self._now()) - latest.timestamp).total_seconds()
        if age <= self.collection_interval_seconds * 2:
            status.last_collection_status = "success"
        elif age <= self.collection_interval_seconds * 5:
            status.last_collection_status = "delayed"
        else:
            status.last_collection_status = "failed"
        status.last_collection = latest.timestamp
        status.ssh_connected = age <= SSH_CONNECTED_WINDOW_SECONDS
        return status
