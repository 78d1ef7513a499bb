"""
Time series for usage charts.

Builds hourly, daily and last-hour series as plain data. Labels use
local time.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from .collector import resolve_now
from .models import UsageEvent

METRIC_REQUESTS = "requests"
METRIC_TOKENS = "tokens"
UNKNOWN_MODEL = "Unknown"

HOURS_IN_SERIES = 24
MINUTES_IN_SPARKLINE = 60


@dataclass(frozen=True)
class TimeSeries:
    """Values per model aligned with ``labels``."""
    labels: List[str] = field(default_factory=list)
    data_by_model: Dict[str, List[int]] = field(default_factory=dict)
    has_data: bool = False


@dataclass(frozen=True)
class Sparkline:
    """A single unlabeled-by-model series."""
    labels: List[str] = field(default_factory=list)
    data: List[int] = field(default_factory=list)


def _local(timestamp: datetime) -> Optional[datetime]:
    try:
        return timestamp.astimezone()
    except (OverflowError, ValueError, OSError):
        return None


def _increment(event: UsageEvent, metric: str) -> int:
    if metric == METRIC_TOKENS:
        return event.total_tokens
    if metric == METRIC_REQUESTS:
        return 1
    raise ValueError(f"Unsupported metric: {metric}")


def build_hourly_series(
    events: Iterable[UsageEvent],
    metric: str = METRIC_REQUESTS,
    now: Optional[datetime] = None,
) -> TimeSeries:
    """Bucket events into the last 24 local hours, current hour last.

    Events with no local-time equivalent are left out.

    Args:
        events: Collected usage events
        metric: ``"requests"`` or ``"tokens"``
        now: Reference time (defaults to the current time)

    Returns:
        TimeSeries labelled ``MM-DD HH:00``
    """
    if metric not in (METRIC_REQUESTS, METRIC_TOKENS):
        raise ValueError(f"Unsupported metric: {metric}")

    hour = timedelta(hours=1)
    current_hour = resolve_now(now).astimezone().replace(minute=0, second=0, microsecond=0)
    earliest = current_hour - hour * (HOURS_IN_SERIES - 1)
    labels = [(earliest + hour * i).strftime("%m-%d %H:00") for i in range(HOURS_IN_SERIES)]

    data_by_model: Dict[str, List[int]] = {}
    has_data = False
    for event in events:
        local = _local(event.timestamp)
        if local is None:
            continue
        event_hour = local.replace(minute=0, second=0, microsecond=0)
        index = int((event_hour - earliest) // hour)
        if not 0 <= index < HOURS_IN_SERIES:
            continue

        model = event.model_name or UNKNOWN_MODEL
        values = data_by_model.setdefault(model, [0] * HOURS_IN_SERIES)
        values[index] += _increment(event, metric)
        has_data = True

    return TimeSeries(labels=labels, data_by_model=data_by_model, has_data=has_data)


def build_daily_series(events: Iterable[UsageEvent], metric: str = METRIC_REQUESTS) -> TimeSeries:
    """Bucket events per local calendar day.

    Returns:
        TimeSeries with one sorted ``YYYY-MM-DD`` label per day with data
    """
    if metric not in (METRIC_REQUESTS, METRIC_TOKENS):
        raise ValueError(f"Unsupported metric: {metric}")

    by_model: Dict[str, Dict[str, int]] = {}
    for event in events:
        local = _local(event.timestamp)
        if local is None:
            continue
        day = local.strftime("%Y-%m-%d")
        model = event.model_name or UNKNOWN_MODEL
        day_values = by_model.setdefault(model, {})
        day_values[day] = day_values.get(day, 0) + _increment(event, metric)

    labels = sorted({day for day_values in by_model.values() for day in day_values})
    data_by_model = {
        model: [day_values.get(label, 0) for label in labels]
        for model, day_values in by_model.items()
    }
    return TimeSeries(labels=labels, data_by_model=data_by_model, has_data=bool(labels))


def build_last_hour_series(
    events: Iterable[UsageEvent],
    metric: str = METRIC_REQUESTS,
    now: Optional[datetime] = None,
) -> Sparkline:
    """Per-minute series over the last hour, for sparklines.

    Events newer than ``now`` fall into the last minute bucket.
    """
    if metric not in (METRIC_REQUESTS, METRIC_TOKENS):
        raise ValueError(f"Unsupported metric: {metric}")

    minute = timedelta(minutes=1)
    window_start = resolve_now(now) - minute * MINUTES_IN_SPARKLINE
    data = [0] * MINUTES_IN_SPARKLINE

    for event in events:
        if event.timestamp < window_start:
            continue
        index = min(MINUTES_IN_SPARKLINE - 1, int((event.timestamp - window_start) // minute))
        data[index] += _increment(event, metric)

    labels = [
        (window_start + minute * (i + 1)).astimezone().strftime("%H:%M")
        for i in range(MINUTES_IN_SPARKLINE)
    ]
    return Sparkline(labels=labels, data=data)


def sum_series(series: TimeSeries) -> List[int]:
    """Sum all models into one "all models" series."""
    summed = [0] * len(series.labels)
    for values in series.data_by_model.values():
        for index, value in enumerate(values):
            summed[index] += value
    return summed
