"""
Local Cache Tier

In-process fallback store used whenever the shared backend is unreachable.
Values are kept as JSON text, the same representation Redis holds, so both
tiers hand back equal values and callers never share mutable objects with
the cache.
"""

from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Callable, Dict, Optional, Tuple

from ...constants import now_ms


@dataclass
class CacheEntry:
    """A single local cache entry."""

    value: str
    expires_at_ms: int

    def is_expired(self, current_ms: int) -> bool:
        return self.expires_at_ms <= current_ms


class LocalCacheStore:
    """
    Dictionary-backed cache tier with per-entry expiry.

    Every method runs without awaiting, so under asyncio each call is atomic
    with respect to other requests.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None

        return entry.value

    def set(self, key: str, value: str, ttl_ms: int) -> None:
        self._entries[key] = CacheEntry(
            value=value, expires_at_ms=self._clock() + ttl_ms
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_matching(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns the count."""
        matched = [key for key in self._entries if fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    def increment(self, key: str, window_ms: int) -> Tuple[int, int]:
        """
        Increment a counter, starting a new window when absent or expired.

        Returns:
            Tuple of (count, expires_at_ms)
        """
        current = self._clock()
        entry = self._entries.get(key)

        if entry is None or entry.is_expired(current):
            entry = CacheEntry(value="1", expires_at_ms=current + window_ms)
            self._entries[key] = entry
            return 1, entry.expires_at_ms

        count = int(entry.value) + 1
        entry.value = str(count)
        return count, entry.expires_at_ms

    def cleanup(self) -> int:
        """Evict expired entries; returns how many were removed."""
        current = self._clock()
        expired = [
            key for key, entry in self._entries.items() if entry.is_expired(current)
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
