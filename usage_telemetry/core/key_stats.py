"""
Key and channel statistics.

Folds collected events into success/failure counts keyed by source
identity and by auth index, and joins stored credential records to
those counts.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from .collector import normalize_auth_index
from .identity import (
    Masker,
    SourceIdentityNormalizer,
    build_candidate_source_ids,
    get_default_normalizer,
    mask_api_key,
)
from .models import UsageEvent

_EXTENSION = re.compile(r"\.[^/.]+$")


@dataclass(frozen=True)
class KeyStatBucket:
    """Success and failure counts for one key or channel."""
    success: int = 0
    failure: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failure

    def __add__(self, other: "KeyStatBucket") -> "KeyStatBucket":
        return KeyStatBucket(self.success + other.success, self.failure + other.failure)


EMPTY_BUCKET = KeyStatBucket()


@dataclass(frozen=True)
class KeyStats:
    """Snapshot of per-identity and per-auth-index counts."""
    by_source: Dict[str, KeyStatBucket] = field(default_factory=dict)
    by_auth_index: Dict[str, KeyStatBucket] = field(default_factory=dict)


class _Counter:
    """Mutable accumulator used while building a KeyStats snapshot."""

    def __init__(self):
        self.by_source: Dict[str, list] = {}
        self.by_auth_index: Dict[str, list] = {}

    def add(self, source: str, auth_index: Optional[str], failed: bool) -> None:
        slot = 1 if failed else 0
        if source:
            self.by_source.setdefault(source, [0, 0])[slot] += 1
        if auth_index:
            self.by_auth_index.setdefault(auth_index, [0, 0])[slot] += 1

    def freeze(self) -> KeyStats:
        return KeyStats(
            by_source={key: KeyStatBucket(*counts) for key, counts in self.by_source.items()},
            by_auth_index={key: KeyStatBucket(*counts) for key, counts in self.by_auth_index.items()},
        )


def compute_key_stats(events: Iterable[UsageEvent]) -> KeyStats:
    """Count successes and failures per source identity and per auth index.

    An event contributes to each mapping whose key it carries, so it can
    land in both, either or neither.
    """
    counter = _Counter()
    for event in events:
        counter.add(event.source, event.auth_index, event.failed)
    return counter.freeze()


def compute_key_stats_from_payload(payload: Any, masker: Masker = mask_api_key) -> KeyStats:
    """Compute key stats straight from a raw payload.

    Unlike the collector this counts every detail, including those
    without a timestamp, and applies ``masker`` to masked-token sources.
    """
    counter = _Counter()
    if not isinstance(payload, Mapping):
        return counter.freeze()
    if "apis" not in payload and isinstance(payload.get("usage"), Mapping):
        payload = payload["usage"]

    normalizer = get_default_normalizer()
    apis = payload.get("apis")
    for api_entry in (apis.values() if isinstance(apis, Mapping) else ()):
        models = api_entry.get("models") if isinstance(api_entry, Mapping) else None
        for model_entry in (models.values() if isinstance(models, Mapping) else ()):
            details = model_entry.get("details") if isinstance(model_entry, Mapping) else None
            for detail in (details if isinstance(details, list) else ()):
                if not isinstance(detail, Mapping):
                    continue
                counter.add(
                    normalizer.normalize(detail.get("source"), masker),
                    normalize_auth_index(detail.get("auth_index")),
                    detail.get("failed") is True,
                )
    return counter.freeze()


def resolve_auth_file_stats(
    name: Optional[str],
    auth_index: Any,
    stats: KeyStats,
    normalizer: Optional[SourceIdentityNormalizer] = None,
) -> KeyStatBucket:
    """Find the stats of a stored credential file.

    Lookup order: the auth index, then the identity of the file name,
    then the identity of the file name without its extension. Name-based
    matches only count when they are non-zero.

    Args:
        name: Credential file name (e.g. ``gemini-user.json``)
        auth_index: Raw auth index of the record
        stats: Key stats snapshot
        normalizer: Source identity normalizer (defaults to the shared one)

    Returns:
        Matching bucket, or an empty bucket
    """
    normalizer = normalizer or get_default_normalizer()

    auth_key = normalize_auth_index(auth_index)
    if auth_key and auth_key in stats.by_auth_index:
        return stats.by_auth_index[auth_key]

    raw_name = name or ""
    if not raw_name:
        return EMPTY_BUCKET

    from_name = stats.by_source.get(normalizer.normalize(raw_name))
    if from_name and from_name.total > 0:
        return from_name

    name_without_ext = _EXTENSION.sub("", raw_name)
    if name_without_ext and name_without_ext != raw_name:
        identity = normalizer.normalize(name_without_ext)
        from_stem = stats.by_source.get(identity) if identity else None
        if from_stem and from_stem.total > 0:
            return from_stem

    return EMPTY_BUCKET


def get_stats_by_source(
    api_key: Optional[str],
    stats: KeyStats,
    prefix: Optional[str] = None,
    normalizer: Optional[SourceIdentityNormalizer] = None,
) -> KeyStatBucket:
    """Sum the stats of every identity a provider key may appear as."""
    total = EMPTY_BUCKET
    for candidate in build_candidate_source_ids(api_key=api_key, prefix=prefix, normalizer=normalizer):
        total = total + stats.by_source.get(candidate, EMPTY_BUCKET)
    return total


def get_provider_stats(
    api_keys: Iterable[Optional[str]],
    stats: KeyStats,
    prefix: Optional[str] = None,
    normalizer: Optional[SourceIdentityNormalizer] = None,
) -> KeyStatBucket:
    """Sum the stats of a provider across its prefix and all of its keys.

    Each identity is counted once even if several keys share it.
    """
    identities = dict.fromkeys(build_candidate_source_ids(prefix=prefix, normalizer=normalizer))
    for api_key in api_keys:
        identities.update(dict.fromkeys(build_candidate_source_ids(api_key=api_key, normalizer=normalizer)))

    total = EMPTY_BUCKET
    for identity in identities:
        total = total + stats.by_source.get(identity, EMPTY_BUCKET)
    return total
