"""Integration tests for the Redis exact-match store and embedding cache.

Note: These tests require a running Redis instance at redis://localhost:6379
      Skip if Redis is unavailable using: pytest -m "not redis"
"""

import asyncio

import pytest
from redis.asyncio import Redis
from redis.exceptions import ConnectionError

from conftest import FakeAnalyzer, FakeEmbeddingProvider, make_result
from semcache.cache import (
    CacheConfig,
    InMemorySimilarityStore,
    RedisEmbeddingCache,
    RedisExactMatchStore,
    SemanticFeedbackCache,
)
from semcache.core.fingerprint import content_fingerprint
from semcache.core.models import CachedFeedbackEntry, CacheSource, FeedbackType, TierOutcome
from semcache.embeddings import CachedEmbeddingProvider

pytestmark = pytest.mark.redis

REDIS_URL = "redis://localhost:6379/15"  # DB 15 for testing


@pytest.fixture
async def redis_available():
    """Check if Redis is available for testing."""
    try:
        redis = Redis.from_url(REDIS_URL, socket_connect_timeout=1)
        await redis.ping()
        await redis.aclose()
        return True
    except (ConnectionError, OSError):
        pytest.skip("Redis not available at localhost:6379")


@pytest.fixture
def redis_config():
    return CacheConfig(
        redis_url=REDIS_URL,
        key_prefix="semcache-test",
        max_items=3,
        feedback_cache_ttl=60,
        embedding_cache_ttl=120,
        population_retry_delay=0.0,
    )


@pytest.fixture
async def exact_store(redis_available, redis_config):
    store = RedisExactMatchStore(redis_config)
    await store.redis.flushdb()
    yield store
    await store.redis.flushdb()
    await store.close()


def entry_for(text: str, feedback_type: FeedbackType = FeedbackType.UNSOURCED):
    fp = content_fingerprint(text)
    return fp, CachedFeedbackEntry.create(make_result(feedback_type), fp, feedback_type)


class TestRedisExactMatchStoreIntegration:
    async def test_miss_set_hit(self, exact_store):
        fp, entry = entry_for("Studies show that X is true.")

        assert (await exact_store.probe(fp, FeedbackType.UNSOURCED)).outcome is TierOutcome.MISS
        assert await exact_store.set(fp, FeedbackType.UNSOURCED, entry) is True

        probe = await exact_store.probe(fp, FeedbackType.UNSOURCED)
        assert probe.hit is True
        assert probe.entry == entry

    async def test_ttl_applied(self, exact_store):
        fp, entry = entry_for("ttl check")
        await exact_store.set(fp, FeedbackType.UNSOURCED, entry)

        ttl = await exact_store.redis.ttl(exact_store._key(fp, FeedbackType.UNSOURCED))

        assert 0 < ttl <= 60

    async def test_short_ttl_expires(self, exact_store):
        fp, entry = entry_for("expires quickly")
        await exact_store.set(fp, FeedbackType.UNSOURCED, entry, ttl=1)

        await asyncio.sleep(1.5)

        assert await exact_store.get(fp, FeedbackType.UNSOURCED) is None

    async def test_type_isolation(self, exact_store):
        fp, entry = entry_for("isolated")
        await exact_store.set(fp, FeedbackType.TONE, entry)

        assert await exact_store.get(fp, FeedbackType.BIAS) is None

    async def test_lru_eviction(self, exact_store):
        entries = [entry_for(f"text {i}") for i in range(4)]
        for fp, entry in entries[:3]:
            await exact_store.set(fp, FeedbackType.UNSOURCED, entry)
            await asyncio.sleep(0.01)
        # touch the oldest so the second becomes least recently used
        await exact_store.get(entries[0][0], FeedbackType.UNSOURCED)
        await asyncio.sleep(0.01)

        fp, entry = entries[3]
        await exact_store.set(fp, FeedbackType.UNSOURCED, entry)

        assert await exact_store.count() == 3
        assert await exact_store.get(entries[1][0], FeedbackType.UNSOURCED) is None
        assert await exact_store.get(entries[0][0], FeedbackType.UNSOURCED) is not None

    async def test_clear(self, exact_store):
        for i in range(2):
            fp, entry = entry_for(f"clear {i}")
            await exact_store.set(fp, FeedbackType.UNSOURCED, entry)

        assert await exact_store.clear() == 2
        assert await exact_store.count() == 0


class TestRedisEmbeddingCacheIntegration:
    async def test_roundtrip_shared_client(self, exact_store, redis_config):
        cache = RedisEmbeddingCache(redis_config, redis=exact_store.redis)
        vector = [0.1, -0.2, 0.3]

        assert await cache.set("model", "f" * 64, vector) is True

        assert await cache.get("model", "f" * 64) == pytest.approx(vector)
        assert await cache.get("other", "f" * 64) is None


class TestOrchestratorWithRedis:
    async def test_stampede_and_exact_hit(self, exact_store, redis_config):
        embedder = CachedEmbeddingProvider(
            FakeEmbeddingProvider(), RedisEmbeddingCache(redis_config, redis=exact_store.redis)
        )
        cache = SemanticFeedbackCache(
            exact_store, InMemorySimilarityStore.from_config(redis_config), embedder, redis_config
        )
        analyzer = FakeAnalyzer(result=make_result(), delay=0.05)

        outcomes = await asyncio.gather(
            *[
                cache.resolve("Studies show that X is true.", "UNSOURCED", None, analyzer.analyze)
                for _ in range(10)
            ]
        )
        again = await cache.resolve(
            "studies show that x is true.", "UNSOURCED", None, analyzer.analyze
        )

        assert len(analyzer.calls) == 1
        assert all(o.result == outcomes[0].result for o in outcomes)
        assert again.source is CacheSource.EXACT
        await cache.drain()
