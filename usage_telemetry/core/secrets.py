"""
Heuristic secret detection.

Decides whether a free-text "source" value is, or contains, a raw
credential. This is a classifier for telemetry grouping, not a
secret-strength validator: false positives and negatives are expected.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class SecretThresholds:
    """Length bands used to classify bare tokens as secrets."""
    short_min_length: int = 16  # Short band needs letters AND digits
    long_min_length: int = 32   # Anything in the long band is a secret
    long_max_length: int = 512

    def __post_init__(self):
        """Validate the bands are ordered and positive."""
        if self.short_min_length <= 0:
            raise ValueError("short_min_length must be > 0")
        if self.short_min_length > self.long_min_length:
            raise ValueError("short_min_length must be <= long_min_length")
        if self.long_min_length > self.long_max_length:
            raise ValueError("long_min_length must be <= long_max_length")


DEFAULT_THRESHOLDS = SecretThresholds()

KEY_LIKE_TOKEN_PATTERN = re.compile(
    r"(sk-[A-Za-z0-9_-]{6,}"
    r"|sk-ant-[A-Za-z0-9_-]{6,}"
    r"|AIza[0-9A-Za-z_-]{8,}"
    r"|AI[a-zA-Z0-9_-]{6,}"
    r"|hf_[A-Za-z0-9]{6,}"
    r"|pk_[A-Za-z0-9]{6,}"
    r"|rk_[A-Za-z0-9]{6,})"
)

QUERY_PARAM_PATTERN = re.compile(
    r"(?:[?&])(api[-_]?key|key|token|access_token|authorization)=([^&#\s]+)",
    re.IGNORECASE,
)

HEADER_ASSIGNMENT_PATTERN = re.compile(
    r"(api[-_]?key|key|token|access[-_]?token|authorization)\s*[:=]\s*([A-Za-z0-9._=-]+)",
    re.IGNORECASE,
)

BEARER_PATTERN = re.compile(r"\bBearer\s+([A-Za-z0-9._=-]{6,})", re.IGNORECASE)

_WHITESPACE = re.compile(r"\s")
_PATH_SEPARATOR = re.compile(r"[\\/]")
_SHORT_TOKEN_CHARSET = re.compile(r"^[A-Za-z0-9._=-]+$")
_HAS_LETTER = re.compile(r"[A-Za-z]")
_HAS_DIGIT = re.compile(r"\d")

# Patterns used only for display masking; they intentionally differ from the
# detection patterns above (no "_" or "-" inside sk- tokens).
_MASK_QUERY_PATTERN = re.compile(
    r"([?&])(api[-_]?key|key|token|access_token|authorization)=([^&#\s]+)",
    re.IGNORECASE,
)
_MASK_HEADER_PATTERN = re.compile(
    r"(api[-_]?key|key|token|access[-_]?token|authorization)\s*([:=])\s*([A-Za-z0-9._-]+)",
    re.IGNORECASE,
)
_MASK_KEY_LIKE_PATTERN = re.compile(
    r"(sk-[A-Za-z0-9]{6,}|AI[a-zA-Z0-9_-]{6,}|AIza[0-9A-Za-z_-]{8,}"
    r"|hf_[A-Za-z0-9]{6,}|pk_[A-Za-z0-9]{6,}|rk_[A-Za-z0-9]{6,})"
)
_MASK_KEY_PREFIX = re.compile(r"^(sk-|AI|hf_|pk_|rk_)", re.IGNORECASE)


def looks_like_raw_secret(text: str, thresholds: SecretThresholds = DEFAULT_THRESHOLDS) -> bool:
    """Return True when the whole string looks like a bare credential.

    Filenames, URLs and anything containing whitespace or a path separator
    are rejected before any length or prefix rule is applied.
    """
    if not text or _WHITESPACE.search(text):
        return False

    lower = text.lower()
    if lower.endswith(".json"):
        return False
    if lower.startswith("http://") or lower.startswith("https://"):
        return False
    if _PATH_SEPARATOR.search(text):
        return False

    if KEY_LIKE_TOKEN_PATTERN.search(text):
        return True

    length = len(text)
    if thresholds.long_min_length <= length <= thresholds.long_max_length:
        return True

    if thresholds.short_min_length <= length < thresholds.long_min_length and _SHORT_TOKEN_CHARSET.match(text):
        return bool(_HAS_LETTER.search(text) and _HAS_DIGIT.search(text))

    return False


def extract_raw_secret_from_text(
    text: str,
    thresholds: SecretThresholds = DEFAULT_THRESHOLDS,
) -> Optional[str]:
    """Find a credential inside a source string.

    Checked in order: the whole string, a vendor-prefixed token, a
    ``key=``-style query parameter, a ``key:``-style header assignment and
    finally a ``Bearer`` token. The first secret-shaped match wins.

    Args:
        text: Source string (already trimmed)
        thresholds: Length bands for bare tokens

    Returns:
        The secret substring, or None if nothing secret-shaped was found
    """
    if not text:
        return None
    if looks_like_raw_secret(text, thresholds):
        return text

    key_like = KEY_LIKE_TOKEN_PATTERN.search(text)
    if key_like:
        return key_like.group(0)

    for pattern, group in (
        (QUERY_PARAM_PATTERN, 2),
        (HEADER_ASSIGNMENT_PATTERN, 2),
        (BEARER_PATTERN, 1),
    ):
        match = pattern.search(text)
        if match and looks_like_raw_secret(match.group(group), thresholds):
            return match.group(group)

    return None


def mask_sensitive_value(value: object, masker: Callable[[str], str]) -> str:
    """Mask credentials embedded in a display string such as an endpoint.

    Query parameter values, header-style values and vendor-prefixed tokens
    are replaced in place. When none of those matched and the whole value
    still looks like a key, the entire value is masked.
    """
    if value is None:
        return ""
    raw = value if isinstance(value, str) else str(value)
    if not raw:
        return ""

    masked = _MASK_QUERY_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}={masker(m.group(3))}", raw
    )
    masked = _MASK_HEADER_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}{masker(m.group(3))}", masked
    )
    masked = _MASK_KEY_LIKE_PATTERN.sub(lambda m: masker(m.group(0)), masked)

    if masked == raw:
        trimmed = raw.strip()
        if trimmed and not _WHITESPACE.search(trimmed):
            looks_like_key = (
                bool(_MASK_KEY_PREFIX.match(trimmed))
                or (
                    not _PATH_SEPARATOR.search(trimmed)
                    and (bool(_HAS_DIGIT.search(trimmed)) or len(trimmed) >= 10)
                )
                or len(trimmed) >= 24
            )
            if looks_like_key:
                return masker(trimmed)

    return masked
