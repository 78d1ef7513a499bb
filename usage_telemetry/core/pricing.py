"""
Pricing calculations and rate management.

Handles cost computations from token counts and a user-maintained
price table, plus per-model and per-endpoint usage statistics.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import structlog

from .identity import Masker, mask_api_key
from .models import ParsedUsage, UsageDetail, UsageEvent
from .secrets import mask_sensitive_value

logger = structlog.get_logger(__name__)

TOKENS_PER_PRICE_UNIT = 1_000_000


@dataclass(frozen=True)
class ModelPrice:
    """Prices per 1M tokens for a specific model."""
    prompt: float = 0.0      # Uncached input tokens
    completion: float = 0.0  # Output tokens
    cache: float = 0.0       # Cached input tokens

    def to_dict(self) -> Dict[str, float]:
        return {"prompt": self.prompt, "completion": self.completion, "cache": self.cache}


@dataclass(frozen=True)
class ModelStats:
    """Usage and cost of one model across all endpoints."""
    model: str
    requests: int
    success_count: int
    failure_count: int
    tokens: int
    cost: float


@dataclass(frozen=True)
class ModelCounters:
    requests: int = 0
    tokens: int = 0


@dataclass(frozen=True)
class ApiStats:
    """Usage and cost of one endpoint."""
    endpoint: str
    total_requests: int
    total_tokens: int
    total_cost: float
    models: Dict[str, ModelCounters]


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _non_negative(value: Optional[float]) -> Optional[float]:
    return value if value is not None and value >= 0 else None


def normalize_model_prices(raw: Any) -> Dict[str, ModelPrice]:
    """Build a price table from persisted data, skipping malformed entries.

    An entry is skipped when its model name is empty, it is not a mapping,
    or none of its three prices is a finite number. Negative or invalid
    prices become 0; a missing cache price falls back to the prompt price.

    Args:
        raw: Decoded JSON object ``{model: {prompt, completion, cache}}``

    Returns:
        Mapping of model name to ModelPrice
    """
    if not isinstance(raw, Mapping):
        return {}

    prices: Dict[str, ModelPrice] = {}
    for model, entry in raw.items():
        if not model or not isinstance(entry, Mapping):
            logger.debug("Skipping malformed price entry", model=model)
            continue

        prompt_raw = _finite(entry.get("prompt"))
        completion_raw = _finite(entry.get("completion"))
        cache_raw = _finite(entry.get("cache"))
        if prompt_raw is None and completion_raw is None and cache_raw is None:
            logger.debug("Skipping price entry without numbers", model=model)
            continue

        prompt = _non_negative(prompt_raw) or 0.0
        completion = _non_negative(completion_raw) or 0.0
        cache = _non_negative(cache_raw)
        if cache is None:
            cache = prompt

        prices[str(model)] = ModelPrice(prompt=prompt, completion=completion, cache=cache)
    return prices


def calculate_cost(event: Union[UsageEvent, UsageDetail], prices: Mapping[str, ModelPrice]) -> float:
    """Calculate the cost of one request.

    Cached input tokens are billed at the cache rate only, never again at
    the prompt rate. Models without a price cost nothing.

    Args:
        event: Collected usage event or untimestamped usage detail
        prices: Price table keyed by model name

    Returns:
        Cost in price-table currency, never negative
    """
    price = prices.get(event.model_name or "")
    if price is None:
        return 0.0

    tokens = event.tokens
    prompt_cost = tokens.prompt_tokens / TOKENS_PER_PRICE_UNIT * (_finite(price.prompt) or 0.0)
    cached_cost = tokens.cached_tokens / TOKENS_PER_PRICE_UNIT * (_finite(price.cache) or 0.0)
    completion_cost = tokens.output_tokens / TOKENS_PER_PRICE_UNIT * (_finite(price.completion) or 0.0)

    total = prompt_cost + cached_cost + completion_cost
    return total if math.isfinite(total) and total > 0 else 0.0


def calculate_total_cost(events: Iterable[UsageEvent], prices: Mapping[str, ModelPrice]) -> float:
    """Sum the cost of all events."""
    if not prices:
        return 0.0
    return sum(calculate_cost(detail, prices) for detail in events)


def _group_details(details: Iterable[UsageDetail]) -> Dict[Tuple[str, str], List[UsageDetail]]:
    grouped: Dict[Tuple[str, str], List[UsageDetail]] = {}
    for detail in details:
        grouped.setdefault((detail.endpoint, detail.model_name), []).append(detail)
    return grouped


def get_model_stats(parsed: ParsedUsage, prices: Mapping[str, ModelPrice]) -> List[ModelStats]:
    """Aggregate usage per model across endpoints.

    Success and failure counts come from the payload's own counters when
    it reports them, otherwise they are counted from every usage detail,
    including details without a timestamp.

    Returns:
        ModelStats sorted by request count, highest first
    """
    grouped = _group_details(parsed.details)
    totals: Dict[str, Dict[str, float]] = {}

    for summary in parsed.models:
        entry = totals.setdefault(
            summary.model_name,
            {"requests": 0, "success": 0, "failure": 0, "tokens": 0, "cost": 0.0},
        )
        entry["requests"] += summary.total_requests
        entry["tokens"] += summary.total_tokens

        details = grouped.get((summary.endpoint, summary.model_name), [])
        if summary.has_explicit_counts:
            entry["success"] += summary.success_count or 0
            entry["failure"] += summary.failure_count or 0
        else:
            failures = sum(1 for detail in details if detail.failed)
            entry["failure"] += failures
            entry["success"] += len(details) - failures

        if summary.model_name in prices:
            entry["cost"] += sum(calculate_cost(detail, prices) for detail in details)

    stats = [
        ModelStats(
            model=model,
            requests=int(entry["requests"]),
            success_count=int(entry["success"]),
            failure_count=int(entry["failure"]),
            tokens=int(entry["tokens"]),
            cost=entry["cost"],
        )
        for model, entry in totals.items()
    ]
    return sorted(stats, key=lambda s: s.requests, reverse=True)


def get_api_stats(
    parsed: ParsedUsage,
    prices: Mapping[str, ModelPrice],
    masker: Masker = mask_api_key,
) -> List[ApiStats]:
    """Aggregate usage and cost per endpoint.

    Endpoint labels are passed through sensitive-value masking since
    endpoint keys may embed credentials.
    """
    grouped = _group_details(parsed.details)
    models_by_endpoint: Dict[str, Dict[str, ModelCounters]] = {}
    cost_by_endpoint: Dict[str, float] = {}

    for summary in parsed.models:
        models_by_endpoint.setdefault(summary.endpoint, {})[summary.model_name] = ModelCounters(
            requests=summary.total_requests,
            tokens=summary.total_tokens,
        )
        if summary.model_name in prices:
            details = grouped.get((summary.endpoint, summary.model_name), [])
            cost_by_endpoint[summary.endpoint] = cost_by_endpoint.get(summary.endpoint, 0.0) + sum(
                calculate_cost(detail, prices) for detail in details
            )

    return [
        ApiStats(
            endpoint=mask_sensitive_value(endpoint.endpoint, masker) or endpoint.endpoint,
            total_requests=endpoint.total_requests,
            total_tokens=endpoint.total_tokens,
            total_cost=cost_by_endpoint.get(endpoint.endpoint, 0.0),
            models=models_by_endpoint.get(endpoint.endpoint, {}),
        )
        for endpoint in parsed.endpoints
    ]
