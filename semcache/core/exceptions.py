"""Exception hierarchy for the semantic feedback cache.

Failures in optimization paths (cache tiers, embeddings) are absorbed by the
orchestrator and only degrade caching. Failures in the path that produces the
actual answer (the fallback analyzer) are surfaced to callers as
AnalysisError.
"""

from typing import Any


class SemcacheError(Exception):
    """Base exception for all semcache errors."""

    code: str = "SEMCACHE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AnalysisError(SemcacheError):
    """Fallback analyzer failed; there is nothing further to fall back to."""

    code: str = "ANALYSIS_FAILED"


class AnalysisTimeoutError(AnalysisError):
    """Fallback analyzer exceeded its time budget."""

    code: str = "ANALYSIS_TIMEOUT"


class EmbeddingError(SemcacheError):
    """Embedding provider failed (API error, empty or zero vector)."""

    code: str = "EMBEDDING_FAILED"


class EmbeddingTimeoutError(EmbeddingError):
    """Embedding provider exceeded its time budget."""

    code: str = "EMBEDDING_TIMEOUT"


# Name used by the provider contract: embed(text) -> vector | ProviderError
ProviderError = EmbeddingError


class StoreUnavailableError(SemcacheError):
    """Cache backend (Redis, Qdrant) unreachable or circuit open."""

    code: str = "STORE_UNAVAILABLE"


class ConfigurationError(SemcacheError):
    """Configuration error (missing env vars, invalid settings)."""

    code: str = "CONFIGURATION_ERROR"
