"""Unit tests for embedding caches."""

from unittest.mock import AsyncMock

import msgpack
import pytest
from redis.exceptions import ConnectionError, RedisError

from semcache.cache.circuit_breaker import CacheCircuitBreaker
from semcache.cache.embedding_cache import InMemoryEmbeddingCache, RedisEmbeddingCache
from semcache.cache.models import CacheConfig

FP = "b" * 64
VECTOR = [0.25, -0.5, 0.75]


@pytest.fixture
def config():
    return CacheConfig(embedding_cache_ttl=604800, circuit_breaker_threshold=2)


@pytest.fixture
def redis_cache(config):
    return RedisEmbeddingCache(config, redis=AsyncMock())


class TestRedisEmbeddingCache:
    async def test_miss(self, redis_cache):
        redis_cache.redis.get = AsyncMock(return_value=None)

        assert await redis_cache.get("text-embedding-3-small", FP) is None
        redis_cache.redis.get.assert_awaited_once_with(
            f"semcache:embedding:text-embedding-3-small:{FP}"
        )

    async def test_hit(self, redis_cache):
        redis_cache.redis.get = AsyncMock(return_value=msgpack.packb(VECTOR))

        assert await redis_cache.get("m", FP) == VECTOR

    async def test_set_uses_embedding_ttl(self, redis_cache):
        assert await redis_cache.set("m", FP, VECTOR) is True

        args, kwargs = redis_cache.redis.set.call_args
        assert args[0] == f"semcache:embedding:m:{FP}"
        assert msgpack.unpackb(args[1]) == VECTOR
        assert kwargs["ex"] == 604800

    async def test_connection_error_reads_as_miss(self, redis_cache):
        redis_cache.redis.get = AsyncMock(side_effect=ConnectionError("refused"))

        assert await redis_cache.get("m", FP) is None
        assert redis_cache.circuit_breaker.failure_count == 1

    async def test_write_error_returns_false(self, redis_cache):
        redis_cache.redis.set = AsyncMock(side_effect=RedisError("READONLY"))

        assert await redis_cache.set("m", FP, VECTOR) is False

    async def test_open_circuit_skips_backend(self, redis_cache):
        redis_cache.redis.get = AsyncMock(side_effect=ConnectionError("refused"))
        await redis_cache.get("m", FP)
        await redis_cache.get("m", FP)

        assert await redis_cache.get("m", FP) is None
        assert await redis_cache.set("m", FP, VECTOR) is False
        assert redis_cache.redis.get.await_count == 2

    async def test_corrupt_value_reads_as_miss(self, redis_cache):
        redis_cache.redis.get = AsyncMock(return_value=msgpack.packb({"not": "a vector"}))

        assert await redis_cache.get("m", FP) is None

    async def test_shared_client_not_closed(self, config):
        client = AsyncMock()
        cache = RedisEmbeddingCache(
            config, redis=client, circuit_breaker=CacheCircuitBreaker("redis")
        )

        await cache.close()

        client.aclose.assert_not_awaited()


class TestInMemoryEmbeddingCache:
    async def test_roundtrip(self):
        cache = InMemoryEmbeddingCache()

        await cache.set("m", FP, VECTOR)

        assert await cache.get("m", FP) == VECTOR
        assert await cache.get("other-model", FP) is None

    async def test_ttl(self):
        now = [0.0]
        cache = InMemoryEmbeddingCache(default_ttl=10, clock=lambda: now[0])
        await cache.set("m", FP, VECTOR)

        now[0] = 10.0

        assert await cache.get("m", FP) is None

    async def test_stored_copy_is_independent(self):
        cache = InMemoryEmbeddingCache()
        vector = list(VECTOR)
        await cache.set("m", FP, vector)

        vector[0] = 99.0

        assert await cache.get("m", FP) == VECTOR
