"""Bounded TTL + LRU mapping used by the in-memory backends.

Mirrors what the Redis backends get from the server: per-key expiry and
least-recently-used eviction once ``max_items`` is reached. Not thread-safe;
every operation completes without awaiting, which is enough for a single
event loop.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLLRUCache(Generic[V]):
    """Dict-like store with per-entry TTL and LRU eviction."""

    def __init__(
        self,
        max_items: int,
        default_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.max_items = max_items
        self.default_ttl = default_ttl
        self._clock = clock
        self._data: OrderedDict[str, tuple[V, float | None]] = OrderedDict()
        self.evictions = 0

    def get(self, key: str) -> V | None:
        """Return the live value for key and mark it most recently used."""
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    def set(self, key: str, value: V, ttl: float | None = None) -> None:
        """Store value, evicting least recently used entries beyond max_items."""
        ttl = ttl if ttl is not None else self.default_ttl
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (value, expires_at)
        self._data.move_to_end(key)
        while len(self._data) > self.max_items:
            self._data.popitem(last=False)
            self.evictions += 1

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [
            key
            for key, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._data[key]
        return len(expired)

    def items(self) -> list[tuple[str, V]]:
        """Live (key, value) pairs, least recently used first. Does not touch recency."""
        now = self._clock()
        return [
            (key, value)
            for key, (value, expires_at) in self._data.items()
            if expires_at is None or now < expires_at
        ]

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
