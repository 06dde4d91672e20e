"""Core types, configuration and errors for semcache."""

from semcache.core.config import Settings, load_yaml_config, settings
from semcache.core.exceptions import (
    AnalysisError,
    AnalysisTimeoutError,
    ConfigurationError,
    EmbeddingError,
    EmbeddingTimeoutError,
    ProviderError,
    SemcacheError,
    StoreUnavailableError,
)
from semcache.core.fingerprint import content_fingerprint, fingerprint, normalize
from semcache.core.models import (
    AnalysisResult,
    CachedFeedbackEntry,
    CacheLookupResult,
    CacheSource,
    ContentFingerprint,
    EmbeddingVector,
    FeedbackMetadata,
    FeedbackType,
    SimilarityMatch,
    TierOutcome,
    TierProbe,
)

__all__ = [
    # Config
    "Settings",
    "settings",
    "load_yaml_config",
    # Exceptions
    "SemcacheError",
    "AnalysisError",
    "AnalysisTimeoutError",
    "EmbeddingError",
    "EmbeddingTimeoutError",
    "ProviderError",
    "StoreUnavailableError",
    "ConfigurationError",
    # Fingerprinting
    "normalize",
    "fingerprint",
    "content_fingerprint",
    # Models
    "AnalysisResult",
    "CachedFeedbackEntry",
    "CacheLookupResult",
    "CacheSource",
    "ContentFingerprint",
    "EmbeddingVector",
    "FeedbackMetadata",
    "FeedbackType",
    "SimilarityMatch",
    "TierOutcome",
    "TierProbe",
]
