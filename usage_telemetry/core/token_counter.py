"""
Token counting and usage tracking.

Resolves the raw token fields of a usage detail (including legacy
aliases) into one canonical record before any aggregation runs.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional


def coerce_token_count(value: Any) -> int:
    """Convert a raw token field to a non-negative integer.

    Booleans, non-numeric strings, NaN and infinities count as zero.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
    if not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(int(value), 0)


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for one request.

    ``cached_tokens`` already merges the ``cached_tokens`` and legacy
    ``cache_tokens`` fields. All counts are non-negative.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    cached_tokens: int = 0
    explicit_total: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        """Total tokens: the reported total, else the sum of all parts."""
        if self.explicit_total is not None:
            return self.explicit_total
        return self.input_tokens + self.output_tokens + self.reasoning_tokens + self.cached_tokens

    @property
    def prompt_tokens(self) -> int:
        """Input tokens billed at the prompt rate (cached tokens excluded)."""
        return max(self.input_tokens - self.cached_tokens, 0)

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Any]]) -> "TokenUsage":
        """Build a TokenUsage from a raw ``tokens`` mapping.

        Args:
            raw: Raw tokens object from a usage detail (may be None)

        Returns:
            Canonical TokenUsage
        """
        if not isinstance(raw, Mapping):
            return cls()

        cached = max(
            coerce_token_count(raw.get("cached_tokens")),
            coerce_token_count(raw.get("cache_tokens")),
        )

        total = raw.get("total_tokens")
        explicit_total = None
        if isinstance(total, (int, float)) and not isinstance(total, bool) and math.isfinite(total):
            explicit_total = coerce_token_count(total)

        return cls(
            input_tokens=coerce_token_count(raw.get("input_tokens")),
            output_tokens=coerce_token_count(raw.get("output_tokens")),
            reasoning_tokens=coerce_token_count(raw.get("reasoning_tokens")),
            cached_tokens=cached,
            explicit_total=explicit_total,
        )
