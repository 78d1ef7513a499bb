"""
Status bar bucketing.

Summarizes recent success/failure activity into a fixed number of
time buckets (newest last) plus an overall success rate.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .collector import normalize_auth_index, resolve_now
from .models import UsageEvent


class StatusBucket(str, Enum):
    """State of one status bar bucket."""
    SUCCESS = "success"
    FAILURE = "failure"
    MIXED = "mixed"
    IDLE = "idle"


@dataclass(frozen=True)
class StatusWindow:
    """Bucket layout of the status bar."""
    bucket_count: int = 20
    bucket_minutes: int = 10

    def __post_init__(self):
        """Validate the layout is non-empty."""
        if self.bucket_count <= 0:
            raise ValueError("bucket_count must be > 0")
        if self.bucket_minutes <= 0:
            raise ValueError("bucket_minutes must be > 0")

    @property
    def bucket_duration(self) -> timedelta:
        return timedelta(minutes=self.bucket_minutes)

    @property
    def duration(self) -> timedelta:
        return self.bucket_duration * self.bucket_count


DEFAULT_WINDOW = StatusWindow()


@dataclass(frozen=True)
class StatusBarData:
    """Render-ready status bar summary."""
    buckets: Tuple[StatusBucket, ...]
    success_rate: float
    total_success: int
    total_failure: int

    @property
    def total(self) -> int:
        return self.total_success + self.total_failure

    @property
    def has_data(self) -> bool:
        return self.total > 0


def classify_bucket(success: int, failure: int) -> StatusBucket:
    """Classify a bucket from its success and failure counts."""
    if success == 0 and failure == 0:
        return StatusBucket.IDLE
    if failure == 0:
        return StatusBucket.SUCCESS
    if success == 0:
        return StatusBucket.FAILURE
    return StatusBucket.MIXED


def _success_rate(total_success: int, total_failure: int) -> float:
    # No traffic reads as healthy rather than 0%
    total = total_success + total_failure
    if total == 0:
        return 100.0
    return total_success / total * 100


def empty_status_bar(window: StatusWindow = DEFAULT_WINDOW) -> StatusBarData:
    """Status bar for a channel with no recent events."""
    return StatusBarData(
        buckets=tuple(StatusBucket.IDLE for _ in range(window.bucket_count)),
        success_rate=100.0,
        total_success=0,
        total_failure=0,
    )


def calculate_status_bar(
    events: Iterable[UsageEvent],
    source_filter: Optional[str] = None,
    auth_index_filter: Optional[object] = None,
    now: Optional[datetime] = None,
    window: StatusWindow = DEFAULT_WINDOW,
) -> StatusBarData:
    """Bucket recent events into a status bar.

    Only events with ``now - window <= timestamp <= now`` are counted;
    future timestamps (clock skew) are dropped.

    Args:
        events: Collected usage events
        source_filter: Keep only events with exactly this source identity
        auth_index_filter: Keep only events with this auth index
        now: Reference time (defaults to the current time)
        window: Bucket layout

    Returns:
        StatusBarData with exactly ``window.bucket_count`` buckets
    """
    now = resolve_now(now)
    window_start = now - window.duration
    bucket_ms = window.bucket_duration / timedelta(milliseconds=1)
    auth_key = normalize_auth_index(auth_index_filter) if auth_index_filter is not None else None

    success_counts = [0] * window.bucket_count
    failure_counts = [0] * window.bucket_count
    total_success = 0
    total_failure = 0

    for event in events:
        if event.timestamp < window_start or event.timestamp > now:
            continue
        if source_filter is not None and event.source != source_filter:
            continue
        if auth_index_filter is not None and (auth_key is None or event.auth_index != auth_key):
            continue

        age_ms = (now - event.timestamp) / timedelta(milliseconds=1)
        index = window.bucket_count - 1 - int(age_ms // bucket_ms)
        if not 0 <= index < window.bucket_count:
            continue

        if event.failed:
            failure_counts[index] += 1
            total_failure += 1
        else:
            success_counts[index] += 1
            total_success += 1

    return StatusBarData(
        buckets=tuple(classify_bucket(s, f) for s, f in zip(success_counts, failure_counts)),
        success_rate=_success_rate(total_success, total_failure),
        total_success=total_success,
        total_failure=total_failure,
    )


def status_bars_by_auth_index(
    events: Iterable[UsageEvent],
    auth_index_keys: Iterable[object],
    now: Optional[datetime] = None,
    window: StatusWindow = DEFAULT_WINDOW,
) -> Dict[str, StatusBarData]:
    """Compute one status bar per auth index with a single grouping pass.

    Keys that normalize to nothing are ignored; keys without events get
    an all-idle bar.
    """
    now = resolve_now(now)
    wanted = {key for key in (normalize_auth_index(raw) for raw in auth_index_keys) if key}

    grouped: Dict[str, List[UsageEvent]] = {key: [] for key in wanted}
    for event in events:
        if event.auth_index in grouped:
            grouped[event.auth_index].append(event)

    return {
        key: calculate_status_bar(key_events, now=now, window=window) if key_events else empty_status_bar(window)
        for key, key_events in grouped.items()
    }
