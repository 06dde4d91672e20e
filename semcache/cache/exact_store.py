"""Exact-match tier: fingerprint -> cached feedback entry.

The tier is bounded by ``max_items`` with least-recently-used eviction, so
entries may disappear before their TTL under load. Reads and writes never
raise on backend trouble: reads report the tier as unavailable (seen by
callers as a miss) and writes report failure through their return value.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import msgpack
from redis.asyncio import Redis
from redis.exceptions import ConnectionError, RedisError, ResponseError, TimeoutError

from semcache.cache.circuit_breaker import CacheCircuitBreaker
from semcache.cache.lru import TTLLRUCache
from semcache.cache.models import CacheConfig, TierStats
from semcache.core.models import CachedFeedbackEntry, FeedbackType, TierOutcome, TierProbe

logger = logging.getLogger(__name__)


class ExactMatchStore(ABC):
    """Abstract exact-match store keyed by (fingerprint, feedback type)."""

    tier_name = "exact"

    def __init__(self) -> None:
        self.stats = TierStats()

    @abstractmethod
    async def probe(self, fingerprint: str, feedback_type: FeedbackType) -> TierProbe:
        """Look up an entry, distinguishing miss from unavailable.

        Returns:
            TierProbe with outcome HIT (entry set), MISS or UNAVAILABLE
        """

    @abstractmethod
    async def set(
        self,
        fingerprint: str,
        feedback_type: FeedbackType,
        entry: CachedFeedbackEntry,
        ttl: int | None = None,
    ) -> bool:
        """Store an entry with TTL (default: feedback TTL).

        Returns:
            True if the backend accepted the write, False otherwise
        """

    @abstractmethod
    async def clear(self) -> int:
        """Remove every feedback entry (admin/test operation).

        Returns:
            Number of entries removed
        """

    @abstractmethod
    async def count(self) -> int:
        """Number of entries currently held (approximate for remote backends)."""

    async def get(
        self, fingerprint: str, feedback_type: FeedbackType
    ) -> CachedFeedbackEntry | None:
        """Return the cached entry, or None on miss or unavailable backend."""
        probe = await self.probe(fingerprint, feedback_type)
        return probe.entry

    async def close(self) -> None:
        """Release backend resources."""

    def get_stats(self) -> TierStats:
        return self.stats

    def _record(self, probe: TierProbe) -> TierProbe:
        if probe.outcome is TierOutcome.HIT:
            self.stats.hits += 1
        elif probe.outcome is TierOutcome.MISS:
            self.stats.misses += 1
        else:
            self.stats.unavailable += 1
        return probe


class RedisExactMatchStore(ExactMatchStore):
    """Redis-backed exact-match store with fail-safe design.

    Features:
        - MessagePack serialization for compact storage
        - Native Redis TTL per entry
        - max_items bound via a recency-scored sorted set (client-side LRU)
        - Optional server-side allkeys-lru policy
        - Circuit breaker for automatic failure recovery

    Key layout:
        {prefix}:feedback:{FEEDBACK_TYPE}:{fingerprint} -> msgpack entry
        {prefix}:feedback-lru                           -> zset key -> last use
    """

    def __init__(self, config: CacheConfig, redis: "Redis[bytes] | None" = None):
        """Initialize store.

        Args:
            config: Cache configuration
            redis: Pre-built client (tests, shared pools). Created from
                config.redis_url when omitted.
        """
        super().__init__()
        self.config = config
        self.redis: Redis[bytes] = redis or Redis.from_url(
            config.redis_url,
            socket_timeout=config.redis_timeout,
            socket_connect_timeout=config.redis_timeout,
            retry_on_timeout=True,
            max_connections=20,
            decode_responses=False,  # We handle bytes for msgpack
        )
        self.circuit_breaker = CacheCircuitBreaker(
            "redis",
            failure_threshold=config.circuit_breaker_threshold,
            timeout=config.circuit_breaker_timeout,
        )
        self._lru_key = f"{config.key_prefix}:feedback-lru"

    def _key(self, fingerprint: str, feedback_type: FeedbackType) -> str:
        return f"{self.config.key_prefix}:feedback:{feedback_type.value}:{fingerprint}"

    async def probe(self, fingerprint: str, feedback_type: FeedbackType) -> TierProbe:
        if not self.circuit_breaker.can_attempt():
            logger.debug("Circuit breaker open, skipping exact-match lookup")
            return self._record(
                TierProbe(TierOutcome.UNAVAILABLE, error="circuit open")
            )

        key = self._key(fingerprint, feedback_type)
        try:
            data = await self.redis.get(key)
            if data is None:
                self.circuit_breaker.on_success()  # A miss is a healthy answer
                return self._record(TierProbe(TierOutcome.MISS))

            entry = CachedFeedbackEntry.from_payload(msgpack.unpackb(data, raw=False))
            await self.redis.zadd(self._lru_key, {key: time.time()})
            self.circuit_breaker.on_success()
            logger.debug(f"Exact-match hit for {feedback_type.value}:{fingerprint[:8]}")
            return self._record(TierProbe(TierOutcome.HIT, entry=entry))

        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Exact-match lookup failed (connection): {e}")
            self.circuit_breaker.on_failure()
            return self._record(TierProbe(TierOutcome.UNAVAILABLE, error=str(e)))

        except RedisError as e:
            logger.warning(f"Exact-match lookup failed (redis): {e}")
            return self._record(TierProbe(TierOutcome.UNAVAILABLE, error=str(e)))

        except (ValueError, TypeError) as e:
            # Undecodable or schema-incompatible payload
            logger.error(f"Discarding unreadable exact-match entry {key}: {e}")
            return self._record(TierProbe(TierOutcome.MISS, error=str(e)))

    async def set(
        self,
        fingerprint: str,
        feedback_type: FeedbackType,
        entry: CachedFeedbackEntry,
        ttl: int | None = None,
    ) -> bool:
        if not self.circuit_breaker.can_attempt():
            logger.debug("Circuit breaker open, skipping exact-match write")
            self.stats.write_failures += 1
            return False

        key = self._key(fingerprint, feedback_type)
        ttl = ttl or self.config.feedback_cache_ttl
        try:
            data = msgpack.packb(entry.to_payload(), use_bin_type=True)

            pipe = self.redis.pipeline(transaction=True)
            pipe.set(key, data, ex=ttl)
            pipe.zadd(self._lru_key, {key: time.time()})
            pipe.zcard(self._lru_key)
            results = await pipe.execute()

            overflow = int(results[-1]) - self.config.max_items
            if overflow > 0:
                await self._evict(overflow)

            self.circuit_breaker.on_success()
            logger.debug(f"Cached exact-match entry {feedback_type.value}:{fingerprint[:8]}")
            return True

        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Exact-match write failed (connection): {e}")
            self.circuit_breaker.on_failure()

        except RedisError as e:
            logger.warning(f"Exact-match write failed (redis): {e}")

        except (ValueError, TypeError) as e:
            # Don't trigger circuit breaker for serialization errors
            logger.error(f"Exact-match write failed (serialization): {e}")

        self.stats.write_failures += 1
        return False

    async def _evict(self, count: int) -> None:
        """Drop the ``count`` least recently used entries."""
        evicted = await self.redis.zpopmin(self._lru_key, count)
        keys = [member for member, _score in evicted]
        if keys:
            await self.redis.delete(*keys)
            logger.debug(f"Evicted {len(keys)} least recently used exact-match entries")

    async def count(self) -> int:
        """Entries tracked in the LRU index (expired keys linger until evicted)."""
        try:
            return int(await self.redis.zcard(self._lru_key))
        except RedisError as e:
            logger.warning(f"Exact-match count failed: {e}")
            return 0

    async def ensure_eviction_policy(self) -> bool:
        """Ask Redis to evict with allkeys-lru under memory pressure.

        Managed Redis offerings often forbid CONFIG; failure is logged and
        the client-side max_items bound still applies.

        Returns:
            True if the policy was applied
        """
        try:
            await self.redis.config_set("maxmemory-policy", "allkeys-lru")
            logger.info("Redis maxmemory-policy set to allkeys-lru")
            return True
        except ResponseError as e:
            logger.warning(f"Could not set Redis eviction policy: {e}")
        except (ConnectionError, TimeoutError) as e:
            logger.warning(f"Could not reach Redis to set eviction policy: {e}")
        return False

    async def clear(self) -> int:
        """Delete all feedback keys matching our namespace.

        Note:
            Expensive (SCAN over the keyspace); maintenance and tests only.
            Normal operation relies on TTL expiry and LRU eviction.
        """
        removed = 0
        try:
            cursor = 0
            pattern = f"{self.config.key_prefix}:feedback:*"
            while True:
                cursor, keys = await self.redis.scan(cursor=cursor, match=pattern, count=100)
                if keys:
                    removed += await self.redis.delete(*keys)
                if cursor == 0:
                    break
            await self.redis.delete(self._lru_key)
            logger.info(f"Exact-match tier cleared ({removed} entries)")
        except RedisError as e:
            logger.error(f"Exact-match clear failed: {e}")
        return removed

    async def close(self) -> None:
        """Close Redis connection gracefully."""
        await self.redis.aclose()
        logger.info("Exact-match store closed")

    def get_stats(self) -> TierStats:
        self.stats.circuit_state = self.circuit_breaker.state
        return self.stats


class InMemoryExactMatchStore(ExactMatchStore):
    """In-process exact-match store for development and testing.

    Same TTL and LRU semantics as the Redis store. Not shared across
    processes and not persistent.
    """

    def __init__(
        self,
        max_items: int = 10_000,
        default_ttl: int = 172800,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.default_ttl = default_ttl
        self._entries: TTLLRUCache[CachedFeedbackEntry] = TTLLRUCache(
            max_items=max_items, default_ttl=default_ttl, clock=clock
        )

    @classmethod
    def from_config(cls, config: CacheConfig) -> "InMemoryExactMatchStore":
        return cls(max_items=config.max_items, default_ttl=config.feedback_cache_ttl)

    @staticmethod
    def _key(fingerprint: str, feedback_type: FeedbackType) -> str:
        return f"{feedback_type.value}:{fingerprint}"

    async def probe(self, fingerprint: str, feedback_type: FeedbackType) -> TierProbe:
        entry = self._entries.get(self._key(fingerprint, feedback_type))
        if entry is None:
            return self._record(TierProbe(TierOutcome.MISS))
        return self._record(TierProbe(TierOutcome.HIT, entry=entry))

    async def set(
        self,
        fingerprint: str,
        feedback_type: FeedbackType,
        entry: CachedFeedbackEntry,
        ttl: int | None = None,
    ) -> bool:
        self._entries.set(self._key(fingerprint, feedback_type), entry, ttl=ttl)
        return True

    async def count(self) -> int:
        return len(self._entries.items())

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed

    def __len__(self) -> int:
        return len(self._entries)
