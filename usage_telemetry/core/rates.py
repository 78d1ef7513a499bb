"""
Request and token rates.

Derives requests-per-minute and tokens-per-minute over a trailing
window, plus the cached/reasoning token breakdown.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .collector import resolve_now
from .models import UsageEvent

DEFAULT_RATE_WINDOW_MINUTES = 30


@dataclass(frozen=True)
class RateStats:
    """Per-minute rates over a trailing window."""
    rpm: float
    tpm: float
    window_minutes: float
    request_count: int
    token_count: int


@dataclass(frozen=True)
class TokenBreakdown:
    """Cached and reasoning token totals."""
    cached_tokens: int = 0
    reasoning_tokens: int = 0


def effective_window(window_minutes: Optional[float]) -> float:
    """Fall back to the default window for zero, negative or non-finite values."""
    if window_minutes is None or isinstance(window_minutes, bool):
        return DEFAULT_RATE_WINDOW_MINUTES
    if not math.isfinite(window_minutes) or window_minutes <= 0:
        return DEFAULT_RATE_WINDOW_MINUTES
    return window_minutes


def calculate_recent_rates(
    events: Iterable[UsageEvent],
    window_minutes: Optional[float] = DEFAULT_RATE_WINDOW_MINUTES,
    now: Optional[datetime] = None,
) -> RateStats:
    """Calculate RPM and TPM over the last ``window_minutes``.

    Events with ``now - window <= timestamp <= now`` are counted. A window
    reaching past the earliest representable time starts there instead.

    Args:
        events: Collected usage events
        window_minutes: Trailing window length in minutes
        now: Reference time (defaults to the current time)

    Returns:
        RateStats; all values are zero when nothing falls in the window
    """
    window = effective_window(window_minutes)
    now = resolve_now(now)
    try:
        window_start = now - timedelta(minutes=window)
    except OverflowError:
        window_start = datetime.min.replace(tzinfo=timezone.utc)

    request_count = 0
    token_count = 0
    for event in events:
        if event.timestamp < window_start or event.timestamp > now:
            continue
        request_count += 1
        token_count += event.total_tokens

    return RateStats(
        rpm=request_count / window,
        tpm=token_count / window,
        window_minutes=window,
        request_count=request_count,
        token_count=token_count,
    )


def calculate_token_breakdown(events: Iterable[UsageEvent]) -> TokenBreakdown:
    """Sum cached and reasoning tokens across all events."""
    cached = 0
    reasoning = 0
    for event in events:
        cached += event.tokens.cached_tokens
        reasoning += event.tokens.reasoning_tokens
    return TokenBreakdown(cached_tokens=cached, reasoning_tokens=reasoning)
