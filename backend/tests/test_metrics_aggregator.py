"""分桶聚合与原始/聚合决策测试。"""
from datetime import datetime, timedelta, timezone

import pytest

from serverpulse.schemas.metrics import MetricSnapshot, TimeRange
from serverpulse.services.metrics_aggregator import (
    MetricsAggregator,
    bucket_start_for,
    bucketize,
    should_aggregate,
)
from tests.conftest import make_metric

UTC = timezone.utc
T0 = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


def _snapshot(ts, **overrides):
    values = dict(
        timestamp=ts, cpu_usage_percent=10.0, ram_usage_gb=4.0, disk_usage_gb=50.0,
        io_read_bytes=1000, io_write_bytes=2000, net_sent_bytes=3000, net_received_bytes=4000,
    )
    values.update(overrides)
    return MetricSnapshot(**values)


class TestBucketize:
    def test_boundary_sample_starts_next_bucket(self):
        buckets = bucketize([
            _snapshot(T0, cpu_usage_percent=10.0),
            _snapshot(T0 + timedelta(minutes=5), cpu_usage_percent=21.0),
            _snapshot(T0 + timedelta(seconds=600), cpu_usage_percent=50.0),
        ])
        assert [b.bucket_start for b in buckets] == [T0, T0 + timedelta(minutes=10)]
        assert buckets[0].sample_count == 2
        assert buckets[0].cpu_avg == 15.5
        assert buckets[1].sample_count == 1
        assert buckets[1].cpu_avg == 50.0

    def test_counters_take_bucket_maximum(self):
        buckets = bucketize([
            _snapshot(T0 + timedelta(minutes=1), net_sent_bytes=5000, io_read_bytes=100),
            _snapshot(T0 + timedelta(minutes=2), net_sent_bytes=7000, io_read_bytes=900),
            _snapshot(T0 + timedelta(minutes=3), net_sent_bytes=6000, io_read_bytes=300),
        ])
        assert len(buckets) == 1
        assert buckets[0].net_sent_end == 7000
        assert buckets[0].io_read_end == 900

    def test_averages_rounded(self):
        buckets = bucketize([
            _snapshot(T0, ram_usage_gb=1.0),
            _snapshot(T0 + timedelta(minutes=1), ram_usage_gb=1.0),
            _snapshot(T0 + timedelta(minutes=2), ram_usage_gb=2.0),
        ])
        assert buckets[0].ram_avg == 1.33

    def test_empty_buckets_are_omitted(self):
        buckets = bucketize([_snapshot(T0), _snapshot(T0 + timedelta(hours=2))])
        assert len(buckets) == 2

    def test_bucket_start_alignment(self):
        assert bucket_start_for(T0 + timedelta(minutes=19, seconds=59)) == T0 + timedelta(minutes=10)


class TestShouldAggregate:
    def test_exactly_seven_days_aggregates(self):
        assert should_aggregate(TimeRange(start=T0 - timedelta(days=7), end=T0))

    def test_just_under_seven_days_is_raw(self):
        assert not should_aggregate(TimeRange(start=T0 - timedelta(days=7) + timedelta(seconds=1), end=T0))


class TestMetricsAggregator:
    @pytest.mark.asyncio
    async def test_short_span_returns_raw_snapshots(self, repository, seed_metrics):
        await seed_metrics([make_metric(T0 - timedelta(minutes=m)) for m in (1, 2, 3)])
        result = await MetricsAggregator(repository).fetch(TimeRange(start=T0 - timedelta(hours=1), end=T0))
        assert result.aggregated is False
        assert result.bucket_size_minutes is None
        assert len(result.data) == 3
        assert all(isinstance(item, MetricSnapshot) for item in result.data)
        assert [s.timestamp for s in result.data] == sorted(s.timestamp for s in result.data)

    @pytest.mark.asyncio
    async def test_long_span_returns_buckets(self, repository, seed_metrics):
        await seed_metrics([
            make_metric(T0 - timedelta(days=3), cpu_usage_percent=20.0),
            make_metric(T0 - timedelta(days=3) + timedelta(minutes=1), cpu_usage_percent=40.0),
            make_metric(T0 - timedelta(days=1)),
        ])
        result = await MetricsAggregator(repository).fetch(TimeRange(start=T0 - timedelta(days=7), end=T0))
        assert result.aggregated is True
        assert result.bucket_size_minutes == 10
        assert len(result.data) == 2
        assert result.data[0].cpu_avg == 30.0
        assert result.data[0].sample_count == 2

    @pytest.mark.asyncio
    async def test_bounds_are_inclusive(self, repository, seed_metrics):
        start = T0 - timedelta(hours=1)
        await seed_metrics([
            make_metric(start),
            make_metric(T0),
            make_metric(start - timedelta(seconds=1)),
            make_metric(T0 + timedelta(seconds=1)),
        ])
        result = await MetricsAggregator(repository).fetch(TimeRange(start=start, end=T0))
        assert [s.timestamp for s in result.data] == [start, T0]
