"""Tests for the in-process TTL + LRU mapping."""

import pytest

from semcache.cache.lru import TTLLRUCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestTTLLRUCache:
    def test_get_set(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=3, clock=clock)

        cache.set("a", "1")

        assert cache.get("a") == "1"
        assert cache.get("missing") is None

    def test_expiry(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=3, default_ttl=10, clock=clock)
        cache.set("a", "1")

        clock.now += 9
        assert cache.get("a") == "1"

        clock.now += 1
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_per_entry_ttl_overrides_default(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=3, default_ttl=10, clock=clock)
        cache.set("short", "1", ttl=1)
        cache.set("long", "2")

        clock.now += 5

        assert cache.get("short") is None
        assert cache.get("long") == "2"

    def test_evicts_least_recently_used(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=2, clock=clock)
        cache.set("a", "1")
        cache.set("b", "2")
        cache.get("a")  # b is now least recently used

        cache.set("c", "3")

        assert cache.get("b") is None
        assert cache.get("a") == "1"
        assert cache.get("c") == "3"
        assert cache.evictions == 1

    def test_overwrite_does_not_grow(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=2, clock=clock)
        cache.set("a", "1")
        cache.set("a", "2")

        assert len(cache) == 1
        assert cache.get("a") == "2"

    def test_purge_expired(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=5, default_ttl=10, clock=clock)
        cache.set("a", "1")
        cache.set("b", "2", ttl=100)

        clock.now += 20

        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_items_skips_expired(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=5, default_ttl=10, clock=clock)
        cache.set("a", "1")
        cache.set("b", "2", ttl=100)
        clock.now += 20

        assert cache.items() == [("b", "2")]

    def test_delete(self, clock):
        cache: TTLLRUCache[str] = TTLLRUCache(max_items=5, clock=clock)
        cache.set("a", "1")

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.get("a") is None

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            TTLLRUCache(max_items=0)
