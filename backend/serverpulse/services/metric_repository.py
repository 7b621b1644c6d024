"""
快照存储仓库 (Snapshot Repository)

查询与清理逻辑只依赖 MetricRepository 协议，与具体存储无关；
SqlAlchemyMetricRepository 是基于 SQLAlchemy 异步会话的默认实现。

Query and retention logic depend only on the MetricRepository protocol;
SqlAlchemyMetricRepository is the default implementation on an async
SQLAlchemy session.
"""
from datetime import datetime, timezone
from typing import NamedTuple, Optional, Protocol

from sqlalchemy import Select, delete, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from serverpulse.models.server_metric import ServerMetric
from serverpulse.schemas.metrics import CollectedMetrics, MetricSnapshot, TimeBucket, ensure_utc
from serverpulse.services.metrics_aggregator import bucketize


class StoreInfo(NamedTuple):
    oldest: Optional[datetime]
    newest: Optional[datetime]
    total: int


def bucket_statement(start: datetime, end: datetime, bucket_seconds: int) -> Select:
    """PostgreSQL 分桶查询：瞬时值取平均，累计计数器取最大值，空桶不出现。"""
    bucket_epoch = (
        func.floor(extract("epoch", ServerMetric.timestamp) / bucket_seconds) * bucket_seconds
    ).label("bucket_epoch")
    return (
        select(
            bucket_epoch,
            func.avg(ServerMetric.cpu_usage_percent).label("cpu_avg"),
            func.avg(ServerMetric.ram_usage_gb).label("ram_avg"),
            func.avg(ServerMetric.disk_usage_gb).label("disk_avg"),
            func.max(ServerMetric.io_read_bytes).label("io_read_end"),
            func.max(ServerMetric.io_write_bytes).label("io_write_end"),
            func.max(ServerMetric.net_sent_bytes).label("net_sent_end"),
            func.max(ServerMetric.net_received_bytes).label("net_received_end"),
            func.count(ServerMetric.id).label("sample_count"),
        )
        .where(ServerMetric.timestamp >= start, ServerMetric.timestamp <= end)
        .group_by(bucket_epoch)
        .order_by(bucket_epoch)
    )


def bucket_from_row(row) -> TimeBucket:
    return TimeBucket(
        bucket_start=datetime.fromtimestamp(float(row.bucket_epoch), tz=timezone.utc),
        cpu_avg=round(float(row.cpu_avg), 2),
        ram_avg=round(float(row.ram_avg), 2),
        disk_avg=round(float(row.disk_avg), 2),
        io_read_end=int(row.io_read_end),
        io_write_end=int(row.io_write_end),
        net_sent_end=int(row.net_sent_end),
        net_received_end=int(row.net_received_end),
        sample_count=int(row.sample_count),
    )


class MetricRepository(Protocol):
    """快照存储接口。时间区间均为闭区间 [start, end]。"""

    async def add(self, metrics: CollectedMetrics, timestamp: datetime) -> MetricSnapshot: ...

    async def find_by_time_range(self, start: datetime, end: datetime) -> list[MetricSnapshot]: ...

    async def find_latest(self) -> Optional[MetricSnapshot]: ...

    async def aggregate_by_bucket(
        self, start: datetime, end: datetime, bucket_seconds: int
    ) -> list[TimeBucket]: ...

    async def delete_older_than_batch(self, cutoff: datetime, limit: int) -> int: ...

    async def get_time_range_info(self) -> StoreInfo: ...


class SqlAlchemyMetricRepository:
    """基于 AsyncSession 的快照仓库。写操作各自提交事务。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, metrics: CollectedMetrics, timestamp: datetime) -> MetricSnapshot:
        row = ServerMetric(timestamp=ensure_utc(timestamp), **metrics.model_dump())
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return MetricSnapshot.model_validate(row)

    async def find_by_time_range(self, start: datetime, end: datetime) -> list[MetricSnapshot]:
        query = (
            select(ServerMetric)
            .where(ServerMetric.timestamp >= start, ServerMetric.timestamp <= end)
            .order_by(ServerMetric.timestamp.asc(), ServerMetric.id.asc())
        )
        result = await self.db.execute(query)
        return [MetricSnapshot.model_validate(row) for row in result.scalars().all()]

    async def find_latest(self) -> Optional[MetricSnapshot]:
        query = select(ServerMetric).order_by(ServerMetric.timestamp.desc(), ServerMetric.id.desc()).limit(1)
        row = (await self.db.execute(query)).scalar_one_or_none()
        return MetricSnapshot.model_validate(row) if row is not None else None

    async def aggregate_by_bucket(
        self, start: datetime, end: datetime, bucket_seconds: int
    ) -> list[TimeBucket]:
        """
        按 floor(epoch / bucket_seconds) 分桶聚合。

        PostgreSQL 上直接 GROUP BY，其他数据库（如测试用的 SQLite）在应用层分桶，
        两条路径的桶边界与取值规则一致。
        """
        if self.db.get_bind().dialect.name == "postgresql":
            result = await self.db.execute(bucket_statement(start, end, bucket_seconds))
            return [bucket_from_row(row) for row in result.all()]
        return bucketize(await self.find_by_time_range(start, end), bucket_seconds)

    async def delete_older_than_batch(self, cutoff: datetime, limit: int) -> int:
        """删除至多 limit 条早于 cutoff 的快照并提交，返回删除行数。"""
        batch_ids = (
            select(ServerMetric.id)
            .where(ServerMetric.timestamp < cutoff)
            .order_by(ServerMetric.timestamp.asc())
            .limit(limit)
        )
        result = await self.db.execute(
            delete(ServerMetric)
            .where(ServerMetric.id.in_(batch_ids))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def get_time_range_info(self) -> StoreInfo:
        query = select(
            func.min(ServerMetric.timestamp),
            func.max(ServerMetric.timestamp),
            func.count(ServerMetric.id),
        )
        oldest, newest, total = (await self.db.execute(query)).one()
        return StoreInfo(
            oldest=ensure_utc(oldest) if oldest is not None else None,
            newest=ensure_utc(newest) if newest is not None else None,
            total=int(total or 0),
        )
