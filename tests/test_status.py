"""
Unit tests for status bar bucketing.

Tests bucket placement, classification, filters and window edges.
"""

from datetime import datetime, timedelta, timezone

import pytest

from usage_telemetry.core.models import UsageEvent
from usage_telemetry.core.status import (
    StatusBucket,
    StatusWindow,
    calculate_status_bar,
    classify_bucket,
    empty_status_bar,
    status_bars_by_auth_index,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _event(minutes_ago, failed=False, source="t:a", auth_index=None):
    return UsageEvent(
        timestamp=NOW - timedelta(minutes=minutes_ago),
        source=source,
        model_name="gpt-x",
        failed=failed,
        auth_index=auth_index,
    )


class TestClassifyBucket:
    """Test per-bucket state."""

    def test_states(self):
        assert classify_bucket(0, 0) == StatusBucket.IDLE
        assert classify_bucket(3, 0) == StatusBucket.SUCCESS
        assert classify_bucket(0, 2) == StatusBucket.FAILURE
        assert classify_bucket(1, 1) == StatusBucket.MIXED

    def test_values_are_strings(self):
        assert StatusBucket.MIXED.value == "mixed"


class TestStatusWindow:
    """Test bucket layout validation."""

    def test_defaults(self):
        window = StatusWindow()
        assert window.bucket_count == 20
        assert window.duration == timedelta(minutes=200)

    def test_invalid_layout_raises_error(self):
        with pytest.raises(ValueError, match="bucket_count must be > 0"):
            StatusWindow(bucket_count=0)
        with pytest.raises(ValueError, match="bucket_minutes must be > 0"):
            StatusWindow(bucket_minutes=-1)


class TestCalculateStatusBar:
    """Test bucketing of recent events."""

    def test_always_twenty_buckets(self):
        bar = calculate_status_bar([], now=NOW)
        assert len(bar.buckets) == 20
        assert all(bucket == StatusBucket.IDLE for bucket in bar.buckets)
        assert bar.success_rate == 100.0
        assert not bar.has_data

    def test_newest_bucket_is_last(self):
        bar = calculate_status_bar([_event(5), _event(15, failed=True)], now=NOW)
        assert bar.buckets[-1] == StatusBucket.SUCCESS
        assert bar.buckets[-2] == StatusBucket.FAILURE
        assert bar.buckets[:-2] == (StatusBucket.IDLE,) * 18
        assert bar.total_success == 1
        assert bar.total_failure == 1
        assert bar.success_rate == 50.0

    def test_mixed_bucket(self):
        bar = calculate_status_bar([_event(1), _event(2, failed=True)], now=NOW)
        assert bar.buckets[-1] == StatusBucket.MIXED

    def test_window_edges(self):
        """Events at now count; older than the window or in the future do not."""
        bar = calculate_status_bar([_event(0), _event(199), _event(201), _event(-5)], now=NOW)
        assert bar.buckets[-1] == StatusBucket.SUCCESS
        assert bar.buckets[0] == StatusBucket.SUCCESS
        assert bar.total_success == 2

    def test_event_exactly_at_window_start_is_dropped(self):
        bar = calculate_status_bar([_event(200)], now=NOW)
        assert bar.total == 0

    def test_source_filter(self):
        events = [_event(1, source="t:a"), _event(2, source="t:b", failed=True)]
        bar = calculate_status_bar(events, source_filter="t:a", now=NOW)
        assert bar.total_success == 1
        assert bar.total_failure == 0

    def test_auth_index_filter_normalizes(self):
        """Numeric filters match their string form."""
        events = [_event(1, auth_index="3"), _event(2, auth_index="4")]
        bar = calculate_status_bar(events, auth_index_filter=3, now=NOW)
        assert bar.total_success == 1

    def test_blank_auth_index_filter_matches_nothing(self):
        events = [_event(1, auth_index="3"), _event(2)]
        assert calculate_status_bar(events, auth_index_filter="  ", now=NOW).total == 0

    def test_custom_window(self):
        window = StatusWindow(bucket_count=6, bucket_minutes=1)
        bar = calculate_status_bar([_event(0.5), _event(3), _event(10)], now=NOW, window=window)
        assert len(bar.buckets) == 6
        assert bar.buckets[-1] == StatusBucket.SUCCESS
        assert bar.buckets[-4] == StatusBucket.SUCCESS
        assert bar.total_success == 2

    def test_success_rate_rounding(self):
        bar = calculate_status_bar([_event(1), _event(2), _event(3, failed=True)], now=NOW)
        assert bar.success_rate == pytest.approx(66.67, abs=0.01)


class TestStatusBarsByAuthIndex:
    """Test grouped status bars."""

    def test_groups_by_auth_index(self):
        events = [_event(1, auth_index="1"), _event(2, auth_index="1", failed=True), _event(3, auth_index="2")]
        bars = status_bars_by_auth_index(events, [1, "2", "9", "  "], now=NOW)

        assert set(bars) == {"1", "2", "9"}
        assert bars["1"].buckets[-1] == StatusBucket.MIXED
        assert bars["2"].total_success == 1
        assert bars["9"] == empty_status_bar()
