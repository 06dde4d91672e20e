"""Two-tier semantic feedback cache.

Exact-match tier (Redis, keyed by content fingerprint) in front of a
similarity tier (Qdrant, keyed by embedding), with a fallback analyzer
behind both. Backends fail safe: an unreachable Redis or Qdrant turns
lookups into misses, never into errors.

Usage:
    >>> from semcache.cache import SemanticFeedbackCache
    >>> from semcache.utils.service_factory import create_feedback_cache
    >>>
    >>> cache = await create_feedback_cache()
    >>> result = await cache.lookup_or_compute(text, "FALLACY", topic_id, analyzer.analyze)
    >>> cache.last_source  # exact / similarity / fresh
"""

from semcache.cache.circuit_breaker import CacheCircuitBreaker
from semcache.cache.embedding_cache import (
    EmbeddingCache,
    InMemoryEmbeddingCache,
    RedisEmbeddingCache,
)
from semcache.cache.exact_store import (
    ExactMatchStore,
    InMemoryExactMatchStore,
    RedisExactMatchStore,
)
from semcache.cache.models import CacheConfig, CacheStats, TierStats
from semcache.cache.orchestrator import ComputeFn, SemanticFeedbackCache
from semcache.cache.similarity_store import (
    InMemorySimilarityStore,
    QdrantSimilarityStore,
    SimilarityStore,
)

__all__ = [
    "SemanticFeedbackCache",
    "ComputeFn",
    "CacheConfig",
    "CacheStats",
    "TierStats",
    "CacheCircuitBreaker",
    "ExactMatchStore",
    "RedisExactMatchStore",
    "InMemoryExactMatchStore",
    "SimilarityStore",
    "QdrantSimilarityStore",
    "InMemorySimilarityStore",
    "EmbeddingCache",
    "RedisEmbeddingCache",
    "InMemoryEmbeddingCache",
]
