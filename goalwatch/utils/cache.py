"""Keyed TTL cache for short-lived upstream responses.

Replaces the repetitive dict pattern:
    _cache = {key: {"data": ..., "timestamp": ...}}

Usage:
    cache = TTLCache(ttl=10)

    hit, data = cache.get("odds_123")
    if hit:
        return data

    data = await fetch()
    cache.set("odds_123", data)
"""

import time
from typing import Callable, Hashable


class TTLCache:
    """TTL-based keyed cache. Expired entries are evicted lazily on read."""

    __slots__ = ("ttl", "_entries", "_clock")

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._entries: dict = {}
        self._clock = clock

    def get(self, key: Hashable) -> tuple[bool, object]:
        """Return (hit, data)."""
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        timestamp, data = entry
        if self._clock() - timestamp >= self.ttl:
            del self._entries[key]
            return False, None
        return True, data

    def set(self, key: Hashable, data: object) -> None:
        """Store data with current timestamp."""
        self._entries[key] = (self._clock(), data)

    def invalidate(self, key: Hashable = None) -> None:
        """Drop one key, or everything when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
