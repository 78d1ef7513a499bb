"""
Data models for collected usage.

Defines the canonical event shape produced by the collector and
consumed by every aggregation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .token_counter import TokenUsage


@dataclass(frozen=True)
class UsageEvent:
    """One logged request after normalization.

    ``source`` is always a tagged identity (or empty), never the raw
    value from the payload. ``timestamp`` is timezone-aware UTC.
    """
    timestamp: datetime
    source: str
    model_name: str
    failed: bool = False
    auth_index: Optional[str] = None
    endpoint: str = ""
    tokens: TokenUsage = field(default_factory=TokenUsage)

    @property
    def total_tokens(self) -> int:
        return self.tokens.total_tokens


@dataclass(frozen=True)
class ModelSummary:
    """Counters the payload pre-aggregates per endpoint and model."""
    endpoint: str
    model_name: str
    total_requests: int = 0
    total_tokens: int = 0
    success_count: Optional[int] = None
    failure_count: Optional[int] = None

    @property
    def has_explicit_counts(self) -> bool:
        return self.success_count is not None or self.failure_count is not None


@dataclass(frozen=True)
class EndpointSummary:
    """Counters the payload pre-aggregates per endpoint."""
    endpoint: str
    total_requests: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class UsageDetail:
    """Billing view of one detail, kept whether or not it has a timestamp."""
    endpoint: str
    model_name: str
    failed: bool = False
    tokens: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class SkippedEntry:
    """A payload branch or detail the collector could not use."""
    endpoint: str
    model_name: str
    reason: str


@dataclass(frozen=True)
class ParsedUsage:
    """Validated view of a raw usage payload."""
    events: List[UsageEvent] = field(default_factory=list)
    models: List[ModelSummary] = field(default_factory=list)
    skipped: List[SkippedEntry] = field(default_factory=list)
    endpoints: List[EndpointSummary] = field(default_factory=list)
    details: List[UsageDetail] = field(default_factory=list)
