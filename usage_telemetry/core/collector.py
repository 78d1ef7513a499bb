"""
Usage payload collection.

Flattens the nested usage payload
``{apis: {endpoint: {models: {model: {details: [...]}}}}}`` into a flat
list of normalized events. Malformed branches are skipped and reported
rather than raised.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

import structlog

from .identity import SourceIdentityNormalizer, get_default_normalizer
from .models import EndpointSummary, ModelSummary, ParsedUsage, SkippedEntry, UsageDetail, UsageEvent
from .token_counter import TokenUsage, coerce_token_count

logger = structlog.get_logger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an event timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (``Z`` suffix and nanosecond fractions
    included) and datetime objects. Naive values are read as local time.

    Values with no local-time equivalent are rejected.

    Returns:
        Aware UTC datetime, or None when the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text[-1] in "Zz":
            text = text[:-1] + "+00:00"
        # fromisoformat only takes 3 or 6 fractional digits on older Pythons
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    try:
        result = parsed.astimezone(timezone.utc)
        result.astimezone()
    except (OverflowError, ValueError, OSError):
        return None
    return result


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """Return ``now`` as an aware UTC datetime, defaulting to the current time."""
    if now is None:
        return datetime.now(timezone.utc)
    return now.astimezone(timezone.utc)


def normalize_auth_index(value: Any) -> Optional[str]:
    """Normalize an auth index: numbers to their string form, strings trimmed.

    Returns:
        The index key, or None for blanks and unsupported types
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return None


def _optional_count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return coerce_token_count(value)


def parse_usage_payload(
    payload: Any,
    normalizer: Optional[SourceIdentityNormalizer] = None,
) -> ParsedUsage:
    """Validate and flatten a raw usage payload.

    A ``{"usage": {...}}`` wrapper is unwrapped. Every detail that
    survives gets a normalized source identity, auth index and token
    record, and is tagged with its endpoint and model name. Every mapping
    detail, timestamped or not, is also kept as a UsageDetail for billing
    and per-model success counts.

    Args:
        payload: Raw usage payload (as decoded from JSON)
        normalizer: Source identity normalizer (defaults to the shared one)

    Returns:
        ParsedUsage with events, per-model/per-endpoint counters and the
        list of skipped entries
    """
    if not isinstance(payload, Mapping):
        return ParsedUsage()
    if "apis" not in payload and isinstance(payload.get("usage"), Mapping):
        payload = payload["usage"]

    normalizer = normalizer or get_default_normalizer()
    events: List[UsageEvent] = []
    models: List[ModelSummary] = []
    endpoints: List[EndpointSummary] = []
    skipped: List[SkippedEntry] = []
    usage_details: List[UsageDetail] = []

    apis = payload.get("apis") or {}
    if not isinstance(apis, Mapping):
        skipped.append(SkippedEntry("", "", "apis is not a mapping"))
        apis = {}

    for endpoint, api_entry in apis.items():
        endpoint = str(endpoint)
        if not isinstance(api_entry, Mapping):
            skipped.append(SkippedEntry(endpoint, "", "endpoint entry is not a mapping"))
            continue

        endpoints.append(EndpointSummary(
            endpoint=endpoint,
            total_requests=coerce_token_count(api_entry.get("total_requests")),
            total_tokens=coerce_token_count(api_entry.get("total_tokens")),
        ))

        model_entries = api_entry.get("models") or {}
        if not isinstance(model_entries, Mapping):
            skipped.append(SkippedEntry(endpoint, "", "models is not a mapping"))
            continue

        for model_name, model_entry in model_entries.items():
            model_name = str(model_name)
            if not isinstance(model_entry, Mapping):
                skipped.append(SkippedEntry(endpoint, model_name, "model entry is not a mapping"))
                continue

            models.append(ModelSummary(
                endpoint=endpoint,
                model_name=model_name,
                total_requests=coerce_token_count(model_entry.get("total_requests")),
                total_tokens=coerce_token_count(model_entry.get("total_tokens")),
                success_count=_optional_count(model_entry.get("success_count")),
                failure_count=_optional_count(model_entry.get("failure_count")),
            ))

            details = model_entry.get("details")
            if details is None:
                continue
            if not isinstance(details, list):
                skipped.append(SkippedEntry(endpoint, model_name, "details is not a list"))
                continue

            for detail in details:
                if not isinstance(detail, Mapping):
                    skipped.append(SkippedEntry(endpoint, model_name, "detail is not a mapping"))
                    continue

                failed = detail.get("failed") is True
                tokens = TokenUsage.from_raw(detail.get("tokens"))
                usage_details.append(UsageDetail(endpoint, model_name, failed, tokens))

                if not detail.get("timestamp"):
                    skipped.append(SkippedEntry(endpoint, model_name, "missing timestamp"))
                    continue
                timestamp = parse_timestamp(detail.get("timestamp"))
                if timestamp is None:
                    skipped.append(SkippedEntry(endpoint, model_name, "unparseable timestamp"))
                    continue

                events.append(UsageEvent(
                    timestamp=timestamp,
                    source=normalizer.normalize(detail.get("source")),
                    model_name=model_name,
                    failed=failed,
                    auth_index=normalize_auth_index(detail.get("auth_index")),
                    endpoint=endpoint,
                    tokens=tokens,
                ))

    if skipped:
        logger.debug("Skipped usage entries", skipped=len(skipped), collected=len(events))

    return ParsedUsage(
        events=events,
        models=models,
        skipped=skipped,
        endpoints=endpoints,
        details=usage_details,
    )


def collect_usage_events(
    payload: Any,
    normalizer: Optional[SourceIdentityNormalizer] = None,
) -> List[UsageEvent]:
    """Collect normalized events from a raw payload (order not guaranteed)."""
    return parse_usage_payload(payload, normalizer).events


def get_model_names(payload: Any) -> List[str]:
    """Get the sorted distinct model names present in a payload."""
    parsed = parse_usage_payload(payload)
    return sorted({summary.model_name for summary in parsed.models if summary.model_name})


def sort_events(events: List[UsageEvent], newest_first: bool = False) -> List[UsageEvent]:
    """Return events ordered by timestamp."""
    return sorted(events, key=lambda e: e.timestamp, reverse=newest_first)


def latest_events(events: List[UsageEvent], limit: int = 10) -> List[UsageEvent]:
    """Return the ``limit`` most recent events, oldest first."""
    if limit <= 0:
        return []
    return sort_events(events)[-limit:]
