"""
Deterministic fingerprints for detected secrets.

FNV-1a 64-bit is used as an identity tag, not as a security boundary:
the same secret always yields the same 16-hex-char fingerprint across
runs and platforms, and nothing maps a fingerprint back to its input.
"""

import threading
from collections import OrderedDict
from typing import Optional

FNV_OFFSET_BASIS = 0xCBF29CE484222325
FNV_PRIME = 0x100000001B3
_MASK_64 = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(value: str) -> str:
    """Hash the UTF-8 bytes of ``value`` with FNV-1a 64-bit.

    Returns:
        Zero-padded lowercase hex string of exactly 16 characters
    """
    hash_value = FNV_OFFSET_BASIS
    for byte in value.encode("utf-8"):
        hash_value ^= byte
        hash_value = (hash_value * FNV_PRIME) & _MASK_64
    return f"{hash_value:016x}"


class FingerprintCache:
    """Memoized fingerprints keyed by the exact input string.

    Unbounded by default, matching a process-lifetime cache. Passing
    ``max_entries`` turns it into a least-recently-used bounded cache.
    Inserts are lock-guarded so one instance can be shared across threads.
    """

    def __init__(self, max_entries: Optional[int] = None):
        """Initialize an empty cache.

        Args:
            max_entries: Optional capacity; None means never evict

        Raises:
            ValueError: If max_entries is not positive
        """
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self._lock = threading.Lock()

    def fingerprint(self, value: str) -> str:
        """Return the fingerprint of ``value``, computing it at most once."""
        with self._lock:
            cached = self._entries.get(value)
            if cached is not None:
                if self.max_entries is not None:
                    self._entries.move_to_end(value)
                return cached

        digest = fnv1a_64(value)

        with self._lock:
            self._entries.setdefault(value, digest)
            if self.max_entries is not None:
                self._entries.move_to_end(value)
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
        return digest

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, value: object) -> bool:
        return value in self._entries


# Process-wide cache shared by the module-level helpers
_default_cache = FingerprintCache()


def get_default_cache() -> FingerprintCache:
    """Get the process-wide fingerprint cache."""
    return _default_cache


def fingerprint(value: str) -> str:
    """Fingerprint ``value`` using the process-wide cache."""
    return _default_cache.fingerprint(value)
