"""Factory for creating SemanticFeedbackCache instances from settings."""

import logging

from pydantic import ValidationError

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
from semcache.cache.models import CacheConfig
from semcache.cache.orchestrator import SemanticFeedbackCache
from semcache.cache.similarity_store import (
    InMemorySimilarityStore,
    QdrantSimilarityStore,
    SimilarityStore,
)
from semcache.core.config import Settings
from semcache.core.config import settings as default_settings
from semcache.core.exceptions import ConfigurationError
from semcache.embeddings.base import EmbeddingProvider
from semcache.embeddings.cached import CachedEmbeddingProvider
from semcache.embeddings.factory import create_embedding_provider

logger = logging.getLogger(__name__)


def build_cache_config(settings: Settings | None = None) -> CacheConfig:
    """Snapshot settings into an immutable CacheConfig.

    Raises:
        ConfigurationError: If the settings violate cache constraints
    """
    settings = settings or default_settings
    try:
        return CacheConfig.from_settings(settings)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid cache configuration: {e}") from e


async def create_feedback_cache(
    settings: Settings | None = None,
    embedding_provider: EmbeddingProvider | None = None,
) -> SemanticFeedbackCache:
    """Create a SemanticFeedbackCache with all dependencies.

    Args:
        settings: Application settings (module-level settings if None)
        embedding_provider: Pre-built provider. Created from
            settings.embedding_provider when None; "none" disables the
            similarity tier.

    Returns:
        Configured SemanticFeedbackCache

    Raises:
        ConfigurationError: Invalid settings or no usable embedding provider
    """
    settings = settings or default_settings
    config = build_cache_config(settings)

    exact_store: ExactMatchStore
    embedding_cache: EmbeddingCache
    if settings.exact_backend == "redis":
        redis_store = RedisExactMatchStore(config)
        if config.redis_configure_lru:
            await redis_store.ensure_eviction_policy()
        exact_store = redis_store
        embedding_cache = RedisEmbeddingCache(config, redis=redis_store.redis)
    else:
        exact_store = InMemoryExactMatchStore.from_config(config)
        embedding_cache = InMemoryEmbeddingCache(
            max_items=config.max_items, default_ttl=config.embedding_cache_ttl
        )

    similarity_store: SimilarityStore
    if settings.similarity_backend == "qdrant":
        similarity_store = QdrantSimilarityStore(config)
    else:
        similarity_store = InMemorySimilarityStore.from_config(config)

    embedder: CachedEmbeddingProvider | None = None
    if embedding_provider is None and settings.embedding_provider.lower() != "none":
        embedding_provider = create_embedding_provider(
            settings.embedding_provider,
            model=settings.embedding_model,
            api_key=settings.embedding_api_key or None,
            dimensions=settings.embedding_dimensions,
        )
    if embedding_provider is not None:
        embedder = CachedEmbeddingProvider(
            embedding_provider,
            embedding_cache,
            timeout=config.embedding_timeout,
            ttl=config.embedding_cache_ttl,
        )
    else:
        logger.warning("No embedding provider configured, similarity tier disabled")

    logger.info(
        f"Feedback cache ready: exact={settings.exact_backend}, "
        f"similarity={settings.similarity_backend}, "
        f"embeddings={embedder.provider_name if embedder else 'none'}, "
        f"threshold={config.similarity_threshold}"
    )
    return SemanticFeedbackCache(exact_store, similarity_store, embedder, config)
