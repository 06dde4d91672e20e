"""semcache - semantic feedback cache.

Caches AI feedback for user-submitted text in two tiers: an exact-match
tier keyed on a content fingerprint and a vector-similarity tier keyed on
embeddings. The fallback analyzer only runs when neither tier has a
sufficiently similar prior result.

Basic usage:
    >>> from semcache import FeedbackType
    >>> from semcache.utils.service_factory import create_feedback_cache
    >>> cache = await create_feedback_cache()
    >>> result = await cache.lookup_or_compute(
    ...     "Studies show that X is true.", FeedbackType.UNSOURCED, None, analyzer.analyze
    ... )
    >>> cache.last_source
    <CacheSource.FRESH: 'fresh'>
"""

from dotenv import load_dotenv

load_dotenv()

from semcache.cache import CacheConfig, CacheStats, SemanticFeedbackCache  # noqa: E402
from semcache.core import (  # noqa: E402
    AnalysisError,
    AnalysisResult,
    AnalysisTimeoutError,
    CachedFeedbackEntry,
    CacheLookupResult,
    CacheSource,
    ConfigurationError,
    EmbeddingError,
    FeedbackType,
    ProviderError,
    SemcacheError,
    Settings,
    StoreUnavailableError,
    TierOutcome,
    content_fingerprint,
    fingerprint,
    normalize,
    settings,
)

__version__ = "0.1.0"

__all__ = [
    # Main interface
    "SemanticFeedbackCache",
    "CacheConfig",
    "CacheStats",
    # Models
    "AnalysisResult",
    "CachedFeedbackEntry",
    "CacheLookupResult",
    "CacheSource",
    "FeedbackType",
    "TierOutcome",
    # Fingerprinting
    "normalize",
    "fingerprint",
    "content_fingerprint",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "SemcacheError",
    "AnalysisError",
    "AnalysisTimeoutError",
    "EmbeddingError",
    "ProviderError",
    "StoreUnavailableError",
    "ConfigurationError",
    # Version
    "__version__",
]
