"""
指标相关数据模型

定义采集结果、快照、聚合桶、速率样本以及各查询接口的响应结构。
所有时间戳统一为带时区的 UTC，序列化为 ISO-8601。
"""
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

UTC = timezone.utc


def ensure_utc(value: datetime) -> datetime:
    """无时区的时间视为 UTC，有时区的转换为 UTC。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CollectedMetrics(BaseModel):
    """一次采集周期得到的七项指标，缺一不可。"""
    cpu_usage_percent: float = Field(ge=0.0, le=100.0)
    ram_usage_gb: float = Field(ge=0.0)
    disk_usage_gb: float = Field(ge=0.0)
    io_read_bytes: int = Field(ge=0)
    io_write_bytes: int = Field(ge=0)
    net_sent_bytes: int = Field(ge=0)
    net_received_bytes: int = Field(ge=0)


class MetricSnapshot(CollectedMetrics):
    """已持久化的快照。"""
    id: Optional[int] = None
    timestamp: datetime

    model_config = {"from_attributes": True}

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TimeBucket(BaseModel):
    """10 分钟聚合桶：瞬时值取平均，累计计数器取桶内最大值。"""
    bucket_start: datetime
    cpu_avg: float
    ram_avg: float
    disk_avg: float
    io_read_end: int
    io_write_end: int
    net_sent_end: int
    net_received_end: int
    sample_count: int = 0

    @field_validator("bucket_start")
    @classmethod
    def normalize_bucket_start(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TimeRange(BaseModel):
    """解析后的查询区间。range 为命名范围或 "custom"。"""
    start: datetime
    end: datetime
    range: str = "custom"

    @property
    def span_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


class RateSample(BaseModel):
    """相邻两个样本之间的增量与速率。"""
    timestamp: datetime
    delta: int = 0
    rate: float = 0.0


# ── 查询响应 ─────────────────────────────────────────────────────────

class MetricsMeta(BaseModel):
    range: str
    count: int
    aggregated: bool
    bucket_size_minutes: Optional[int] = None
    start_time: datetime
    end_time: datetime


class MetricsResponse(BaseModel):
    data: list[Union[MetricSnapshot, TimeBucket]]
    meta: MetricsMeta


class GaugeStats(BaseModel):
    """瞬时指标统计；区间内无数据时全部为 None。"""
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None
    current: Optional[float] = None


class IoStats(BaseModel):
    read_total: Optional[int] = None
    write_total: Optional[int] = None
    read_avg_per_minute: Optional[float] = None
    write_avg_per_minute: Optional[float] = None


class NetworkStats(BaseModel):
    sent_total: Optional[int] = None
    received_total: Optional[int] = None
    sent_avg_per_minute: Optional[float] = None
    received_avg_per_minute: Optional[float] = None


class StatisticsResponse(BaseModel):
    cpu: GaugeStats = Field(default_factory=GaugeStats)
    ram: GaugeStats = Field(default_factory=GaugeStats)
    disk: GaugeStats = Field(default_factory=GaugeStats)
    io: IoStats = Field(default_factory=IoStats)
    network: NetworkStats = Field(default_factory=NetworkStats)
    last_update: Optional[datetime] = None
    record_count: int = 0


class NetworkRatePoint(BaseModel):
    timestamp: datetime
    sent_rate: float
    received_rate: float


class IoDeltaPoint(BaseModel):
    timestamp: datetime
    read_delta: int
    write_delta: int


class RatesResponse(BaseModel):
    """逐样本速率序列，供图表直接使用。"""
    unit: str
    network: list[NetworkRatePoint] = Field(default_factory=list)
    io: list[IoDeltaPoint] = Field(default_factory=list)
    aggregated: bool = False


class StatusResponse(BaseModel):
    last_collection: Optional[datetime] = None
    last_collection_status: str = "unknown"
    ssh_connected: bool = False
    data_available: bool = False
    oldest_record: Optional[datetime] = None
    newest_record: Optional[datetime] = None
    total_records: int = 0


class CleanupResult(BaseModel):
    total_deleted: int = 0
    batch_count: int = 0
    retention_days: int
    cutoff: datetime
