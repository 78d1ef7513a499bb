"""
Source identity normalization.

Turns any raw "source" value into a tagged, privacy-safe identity:

- ``k:<16 hex>`` fingerprint of a detected raw secret
- ``m:<masked>`` an already-masked token, re-masked for display
- ``t:<text>``   free-text label, kept verbatim

A raw secret is never part of a returned identity.
"""

import re
from typing import Callable, Iterable, List, Optional

from .fingerprint import FingerprintCache, get_default_cache
from .secrets import DEFAULT_THRESHOLDS, SecretThresholds, extract_raw_secret_from_text

KEY_PREFIX = "k:"
MASKED_PREFIX = "m:"
TEXT_PREFIX = "t:"

MASKED_TOKEN_PATTERN = re.compile(r"^\S{1,24}(\*{2,}|\.{3}|…)\S{1,24}$")

MASKED_LENGTH = 10

Masker = Callable[[str], str]


def mask_api_key(key: str) -> str:
    """Hide the middle of a key, keeping two boundary characters on each side.

    Keys shorter than four characters keep one character on each side.
    """
    trimmed = str(key or "").strip()
    if not trimmed:
        return ""

    visible_chars = 1 if len(trimmed) < 4 else 2
    start = trimmed[:visible_chars]
    end = trimmed[-visible_chars:]
    masked_length = max(MASKED_LENGTH - visible_chars * 2, 1)
    return f"{start}{'*' * masked_length}{end}"


class SourceIdentityNormalizer:
    """Maps raw source values to tagged identities.

    The fingerprint cache is an explicit dependency so callers (and tests)
    can isolate or bound it; by default the process-wide cache is shared.
    """

    def __init__(
        self,
        cache: Optional[FingerprintCache] = None,
        masker: Masker = mask_api_key,
        thresholds: SecretThresholds = DEFAULT_THRESHOLDS,
    ):
        self.cache = cache if cache is not None else get_default_cache()
        self.masker = masker
        self.thresholds = thresholds

    def normalize(self, value: object, masker: Optional[Masker] = None) -> str:
        """Normalize a raw source value.

        Args:
            value: Raw source (any type; None means no identity)
            masker: Optional override of the display masker

        Returns:
            Tagged identity, or an empty string when the value is blank
        """
        if value is None:
            return ""
        raw = value if isinstance(value, str) else str(value)
        trimmed = raw.strip()
        if not trimmed:
            return ""

        secret = extract_raw_secret_from_text(trimmed, self.thresholds)
        if secret:
            return f"{KEY_PREFIX}{self.cache.fingerprint(secret)}"

        if MASKED_TOKEN_PATTERN.match(trimmed):
            return f"{MASKED_PREFIX}{(masker or self.masker)(trimmed)}"

        return f"{TEXT_PREFIX}{trimmed}"

    def build_candidates(self, api_key: Optional[str] = None, prefix: Optional[str] = None) -> List[str]:
        """Enumerate every identity a provider configuration may appear as.

        A configuration can be logged under its label, its raw key or its
        masked key, so all three forms are returned (deduplicated, in a
        stable order).
        """
        candidates: List[str] = []

        trimmed_prefix = (prefix or "").strip()
        if trimmed_prefix:
            candidates.append(f"{TEXT_PREFIX}{trimmed_prefix}")

        trimmed_key = (api_key or "").strip()
        if trimmed_key:
            candidates.append(f"{KEY_PREFIX}{self.cache.fingerprint(trimmed_key)}")
            candidates.append(f"{MASKED_PREFIX}{self.masker(trimmed_key)}")

        return list(dict.fromkeys(candidates))


_default_normalizer = SourceIdentityNormalizer()


def get_default_normalizer() -> SourceIdentityNormalizer:
    """Get the normalizer bound to the process-wide fingerprint cache."""
    return _default_normalizer


def normalize_source_id(value: object, masker: Masker = mask_api_key) -> str:
    """Normalize a raw source value with the default normalizer."""
    return _default_normalizer.normalize(value, masker)


def build_candidate_source_ids(
    api_key: Optional[str] = None,
    prefix: Optional[str] = None,
    normalizer: Optional[SourceIdentityNormalizer] = None,
) -> List[str]:
    """Build the candidate identities for a stored provider configuration."""
    return (normalizer or _default_normalizer).build_candidates(api_key=api_key, prefix=prefix)


def is_key_identity(identity: str) -> bool:
    return identity.startswith(KEY_PREFIX)


def is_masked_identity(identity: str) -> bool:
    return identity.startswith(MASKED_PREFIX)


def is_text_identity(identity: str) -> bool:
    return identity.startswith(TEXT_PREFIX)


def unique_identities(identities: Iterable[str]) -> List[str]:
    """Drop blanks and duplicates while keeping first-seen order."""
    return list(dict.fromkeys(identity for identity in identities if identity))
