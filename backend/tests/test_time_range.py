"""时间范围解析测试。"""
from datetime import datetime, timedelta, timezone

import pytest

from serverpulse.core.exceptions import InvalidRangeError, ValidationError
from serverpulse.services.time_range import NAMED_RANGES, TimeRangeResolver, parse_iso8601

UTC = timezone.utc
NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def resolver():
    return TimeRangeResolver(now=lambda: NOW)


class TestNamedRanges:
    @pytest.mark.parametrize("name,delta", list(NAMED_RANGES.items()))
    def test_named_range_ends_now(self, resolver, name, delta):
        tr = resolver.resolve_named(name)
        assert tr.end == NOW
        assert tr.start == NOW - delta
        assert tr.range == name

    def test_default_is_24h(self, resolver):
        tr = resolver.resolve()
        assert tr.range == "24h"
        assert tr.span_seconds == 86400

    def test_unknown_name_rejected(self, resolver):
        with pytest.raises(InvalidRangeError) as exc_info:
            resolver.resolve("2w")
        assert exc_info.value.message == "Invalid range. Must be one of: 1h, 6h, 24h, 7d, 30d"
        assert exc_info.value.status_code == 400

    def test_empty_name_rejected(self, resolver):
        """空字符串不是合法范围名，不回退到默认 24h。"""
        with pytest.raises(InvalidRangeError, match="Invalid range"):
            resolver.resolve("")

    def test_fractional_custom_bounds(self, resolver):
        tr = resolver.resolve(None, "2024-06-01T00:00:00.5Z", "2024-06-01T01:00:00.25Z")
        assert tr.start.microsecond == 500000
        assert tr.end.microsecond == 250000


class TestCustomRanges:
    def test_custom_overrides_name(self, resolver):
        tr = resolver.resolve("1h", "2024-06-01T00:00:00Z", "2024-06-02T00:00:00Z")
        assert tr.range == "custom"
        assert tr.start == datetime(2024, 6, 1, tzinfo=UTC)
        assert tr.end == datetime(2024, 6, 2, tzinfo=UTC)

    def test_offsets_are_converted_to_utc(self, resolver):
        tr = resolver.resolve_custom("2024-06-01T08:00:00+08:00", "2024-06-01T12:00:00+08:00")
        assert tr.start == datetime(2024, 6, 1, 0, 0, tzinfo=UTC)
        assert tr.start.utcoffset() == timedelta(0)

    def test_exactly_30_days_allowed(self, resolver):
        tr = resolver.resolve_custom("2024-05-01T00:00:00Z", "2024-05-31T00:00:00Z")
        assert tr.end - tr.start == timedelta(days=30)

    def test_over_30_days_rejected(self, resolver):
        with pytest.raises(InvalidRangeError, match="Maximum range is 30 days"):
            resolver.resolve_custom("2024-05-01T00:00:00Z", "2024-05-31T00:00:01Z")

    @pytest.mark.parametrize("start,end", [
        ("2024-06-02T00:00:00Z", "2024-06-01T00:00:00Z"),
        ("2024-06-01T00:00:00Z", "2024-06-01T00:00:00Z"),
    ])
    def test_start_must_precede_end(self, resolver, start, end):
        with pytest.raises(InvalidRangeError, match="Start time must be before end time"):
            resolver.resolve_custom(start, end)

    def test_unparseable_datetime(self, resolver):
        with pytest.raises(InvalidRangeError, match="Invalid datetime format"):
            resolver.resolve_custom("yesterday", "2024-06-01T00:00:00Z")

    @pytest.mark.parametrize("start,end", [("2024-06-01T00:00:00Z", None), (None, "2024-06-01T00:00:00Z")])
    def test_both_bounds_required(self, resolver, start, end):
        with pytest.raises(InvalidRangeError, match="Both start and end"):
            resolver.resolve(None, start, end)

    def test_invalid_range_is_a_validation_error(self, resolver):
        with pytest.raises(ValidationError):
            resolver.resolve("forever")


def test_parse_iso8601_naive_is_utc():
    assert parse_iso8601("2024-01-15T14:30:00") == datetime(2024, 1, 15, 14, 30, tzinfo=UTC)
    assert parse_iso8601("2024-01-15T14:30:00Z") == datetime(2024, 1, 15, 14, 30, tzinfo=UTC)


@pytest.mark.parametrize("value,expected", [
    ("2024-01-15T14:30:00.5Z", datetime(2024, 1, 15, 14, 30, 0, 500000, tzinfo=UTC)),
    ("2024-01-15T14:30:00.12Z", datetime(2024, 1, 15, 14, 30, 0, 120000, tzinfo=UTC)),
    ("2024-01-15T14:30:00.1234567+00:00", datetime(2024, 1, 15, 14, 30, 0, 123456, tzinfo=UTC)),
])
def test_parse_iso8601_any_fraction_length(value, expected):
    assert parse_iso8601(value) == expected
