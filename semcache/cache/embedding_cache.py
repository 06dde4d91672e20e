"""Embedding cache: fingerprint -> embedding vector.

Keys include the embedding model but not the feedback type, so one
embedding serves every feedback type analysed for the same content. TTL is
the (longer) embedding TTL.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import msgpack
from redis.asyncio import Redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from semcache.cache.circuit_breaker import CacheCircuitBreaker
from semcache.cache.lru import TTLLRUCache
from semcache.cache.models import CacheConfig

logger = logging.getLogger(__name__)


class EmbeddingCache(ABC):
    """Abstract embedding cache. Failures read as misses."""

    @abstractmethod
    async def get(self, model: str, fingerprint: str) -> list[float] | None:
        """Return the cached vector or None."""

    @abstractmethod
    async def set(
        self, model: str, fingerprint: str, vector: list[float], ttl: int | None = None
    ) -> bool:
        """Store a vector. Returns False if the write did not happen."""

    async def close(self) -> None:
        """Release backend resources."""


class RedisEmbeddingCache(EmbeddingCache):
    """Embedding cache in Redis, stored as msgpack float arrays.

    Key: {prefix}:embedding:{model}:{fingerprint}
    """

    def __init__(
        self,
        config: CacheConfig,
        redis: "Redis[bytes] | None" = None,
        circuit_breaker: CacheCircuitBreaker | None = None,
    ):
        self.config = config
        self._owns_client = redis is None
        self.redis: Redis[bytes] = redis or Redis.from_url(
            config.redis_url,
            socket_timeout=config.redis_timeout,
            socket_connect_timeout=config.redis_timeout,
            retry_on_timeout=True,
            decode_responses=False,
        )
        self.circuit_breaker = circuit_breaker or CacheCircuitBreaker(
            "redis-embeddings",
            failure_threshold=config.circuit_breaker_threshold,
            timeout=config.circuit_breaker_timeout,
        )

    def _key(self, model: str, fingerprint: str) -> str:
        return f"{self.config.key_prefix}:embedding:{model}:{fingerprint}"

    async def get(self, model: str, fingerprint: str) -> list[float] | None:
        if not self.circuit_breaker.can_attempt():
            return None

        try:
            data = await self.redis.get(self._key(model, fingerprint))
            self.circuit_breaker.on_success()
            if data is None:
                return None
            vector = msgpack.unpackb(data, raw=False)
            return [float(x) for x in vector]

        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Embedding cache read failed (connection): {e}")
            self.circuit_breaker.on_failure()
        except RedisError as e:
            logger.warning(f"Embedding cache read failed (redis): {e}")
        except (ValueError, TypeError) as e:
            logger.error(f"Discarding unreadable cached embedding: {e}")
        return None

    async def set(
        self, model: str, fingerprint: str, vector: list[float], ttl: int | None = None
    ) -> bool:
        if not self.circuit_breaker.can_attempt():
            return False

        try:
            await self.redis.set(
                self._key(model, fingerprint),
                msgpack.packb(list(vector), use_bin_type=True),
                ex=ttl or self.config.embedding_cache_ttl,
            )
            self.circuit_breaker.on_success()
            return True

        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Embedding cache write failed (connection): {e}")
            self.circuit_breaker.on_failure()
        except RedisError as e:
            logger.warning(f"Embedding cache write failed (redis): {e}")
        return False

    async def close(self) -> None:
        # A client shared with the exact-match store is closed by that store
        if self._owns_client:
            await self.redis.aclose()


class InMemoryEmbeddingCache(EmbeddingCache):
    """In-process embedding cache for development and testing."""

    def __init__(
        self,
        max_items: int = 10_000,
        default_ttl: int = 604800,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._vectors: TTLLRUCache[list[float]] = TTLLRUCache(
            max_items=max_items, default_ttl=default_ttl, clock=clock
        )

    async def get(self, model: str, fingerprint: str) -> list[float] | None:
        return self._vectors.get(f"{model}:{fingerprint}")

    async def set(
        self, model: str, fingerprint: str, vector: list[float], ttl: int | None = None
    ) -> bool:
        self._vectors.set(f"{model}:{fingerprint}", list(vector), ttl=ttl)
        return True

    def __len__(self) -> int:
        return len(self._vectors)
