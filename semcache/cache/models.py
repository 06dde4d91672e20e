"""Cache configuration and statistics models."""

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:
    from semcache.core.config import Settings


class CacheConfig(BaseModel):
    """Immutable configuration for the semantic feedback cache.

    Passed to the orchestrator and the store factories at construction.
    Build from application settings with ``CacheConfig.from_settings()``.

    Attributes:
        similarity_threshold: Minimum cosine similarity for a semantic hit
        similarity_top_k: Neighbours requested per similarity probe
        feedback_cache_ttl: TTL of cached feedback entries (seconds)
        embedding_cache_ttl: TTL of cached embeddings (seconds)
        max_items: Exact-match entries kept before LRU eviction
        key_prefix: Namespace for Redis keys
        redis_url: Redis connection URL
        redis_timeout: Redis socket timeout (seconds)
        redis_configure_lru: Set allkeys-lru eviction on the Redis server
        qdrant_url: Qdrant endpoint
        qdrant_api_key: Qdrant credential (None = unauthenticated)
        qdrant_collection: Collection holding feedback vectors
        qdrant_timeout: Qdrant request timeout (seconds)
        embedding_timeout: Bound on one embedding call (seconds)
        analysis_timeout: Bound on one fallback analysis (seconds)
        circuit_breaker_threshold: Failures before opening circuit
        circuit_breaker_timeout: Seconds before attempting recovery
        population_retry_delay: Delay before the single background retry
    """

    model_config = ConfigDict(frozen=True)

    similarity_threshold: float = Field(default=0.95, gt=0.0, le=1.0)
    similarity_top_k: int = Field(default=3, ge=1, le=50)
    feedback_cache_ttl: int = Field(default=172800, ge=1, description="48 hours")
    embedding_cache_ttl: int = Field(default=604800, ge=1, description="7 days")
    max_items: int = Field(default=100_000, ge=1)
    key_prefix: str = Field(default="semcache", min_length=1)

    redis_url: str = "redis://localhost:6379"
    redis_timeout: float = Field(default=2.0, gt=0.0)
    redis_configure_lru: bool = False

    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    qdrant_collection: str = "feedback_cache"
    qdrant_timeout: float = Field(default=5.0, gt=0.0)

    embedding_timeout: float = Field(default=5.0, gt=0.0)
    analysis_timeout: float = Field(default=30.0, gt=0.0)

    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_timeout: int = Field(default=60, ge=1)
    population_retry_delay: float = Field(default=1.0, ge=0.0)

    @model_validator(mode="after")
    def validate_ttls(self) -> "CacheConfig":
        """Embedding TTL must be at least the feedback TTL."""
        if self.embedding_cache_ttl < self.feedback_cache_ttl:
            raise ValueError(
                f"embedding_cache_ttl ({self.embedding_cache_ttl}) must be >= "
                f"feedback_cache_ttl ({self.feedback_cache_ttl})"
            )
        return self

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CacheConfig":
        """Snapshot the cache-related application settings."""
        return cls(
            similarity_threshold=settings.similarity_threshold,
            similarity_top_k=settings.similarity_top_k,
            feedback_cache_ttl=settings.feedback_cache_ttl,
            embedding_cache_ttl=settings.embedding_cache_ttl,
            max_items=settings.max_items,
            key_prefix=settings.key_prefix,
            redis_url=settings.redis_url,
            redis_timeout=settings.redis_timeout,
            redis_configure_lru=settings.redis_configure_lru,
            qdrant_url=settings.qdrant_url,
            qdrant_api_key=settings.qdrant_api_key or None,
            qdrant_collection=settings.qdrant_collection,
            qdrant_timeout=settings.qdrant_timeout,
            embedding_timeout=settings.embedding_timeout,
            analysis_timeout=settings.analysis_timeout,
            circuit_breaker_threshold=settings.circuit_breaker_threshold,
            circuit_breaker_timeout=settings.circuit_breaker_timeout,
            population_retry_delay=settings.population_retry_delay,
        )


class TierStats(BaseModel):
    """Counters for a single cache tier.

    Attributes:
        hits: Probes that found an entry
        misses: Probes that found nothing
        unavailable: Probes skipped or failed because the backend was down
        write_failures: Writes that did not reach the backend
        circuit_state: Circuit breaker state (closed/open/half_open)
    """

    hits: int = 0
    misses: int = 0
    unavailable: int = 0
    write_failures: int = 0
    circuit_state: str = "closed"


class CacheStats(BaseModel):
    """Orchestrator performance statistics.

    Attributes:
        lookups: Total lookup_or_compute calls
        exact_hits: Lookups answered by the exact-match tier
        similarity_hits: Lookups answered by the similarity tier
        fresh: Lookups answered by a fresh computation
        computations: Fallback analyzer invocations
        null_results: Computations that returned no feedback
        coalesced: Callers that joined another caller's computation
        embedding_failures: Embedding calls that failed or timed out
        population_failures: Cache writes that failed after one retry
        hit_rate: Percentage of lookups answered by either tier
    """

    lookups: int = Field(default=0, description="Total lookups")
    exact_hits: int = Field(default=0, description="Exact-match hits")
    similarity_hits: int = Field(default=0, description="Similarity hits")
    fresh: int = Field(default=0, description="Fresh computations returned")
    computations: int = Field(default=0, description="Analyzer invocations")
    null_results: int = Field(default=0, description="Analyzer returned no feedback")
    coalesced: int = Field(default=0, description="Callers coalesced onto a flight")
    embedding_failures: int = Field(default=0, description="Embedding failures")
    population_failures: int = Field(default=0, description="Population failures")
    hit_rate: float = Field(default=0.0, description="Hit rate percentage")

    exact_tier: TierStats = Field(default_factory=TierStats)
    similarity_tier: TierStats = Field(default_factory=TierStats)

    def update_hit_rate(self) -> None:
        """Recalculate hit rate based on current stats."""
        hits = self.exact_hits + self.similarity_hits
        self.hit_rate = (hits / self.lookups * 100) if self.lookups > 0 else 0.0
