"""Embedding adapter used by the cache: timeout, validation and caching.

Wraps any EmbeddingProvider. Vectors are cached by content fingerprint
(and model) for the embedding TTL, so content analysed for several feedback
types, or resubmitted within a week, is embedded once.
"""

import asyncio
import logging
import math

from semcache.cache.embedding_cache import EmbeddingCache
from semcache.core.exceptions import EmbeddingError, EmbeddingTimeoutError
from semcache.core.fingerprint import fingerprint as compute_fingerprint
from semcache.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)


class CachedEmbeddingProvider(EmbeddingProvider):
    """Fingerprint-keyed caching front for an embedding provider."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: EmbeddingCache,
        timeout: float = 5.0,
        ttl: int | None = None,
    ):
        """Initialize the adapter.

        Args:
            provider: Backend that actually computes embeddings
            cache: Embedding cache (Redis or in-memory)
            timeout: Bound on one provider call, in seconds
            ttl: Embedding cache TTL (cache default when None)
        """
        self.provider = provider
        self.cache = cache
        self.timeout = timeout
        self.ttl = ttl
        self.cache_hits = 0
        self.cache_misses = 0

    async def embed(self, text: str, fingerprint: str | None = None) -> list[float]:
        """Embed already-normalized text, using the cache when possible.

        Args:
            text: Canonical text (output of ``normalize``)
            fingerprint: Precomputed fingerprint of ``text``

        Returns:
            Non-empty, non-zero embedding vector

        Raises:
            EmbeddingTimeoutError: Provider call exceeded the timeout
            EmbeddingError: Provider failed or returned an unusable vector
        """
        fp = fingerprint or compute_fingerprint(text)
        model = self.provider.model_name

        cached = await self.cache.get(model, fp)
        if cached:
            self.cache_hits += 1
            return cached
        self.cache_misses += 1

        try:
            vector = await asyncio.wait_for(self.provider.embed(text), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                f"{self.provider.provider_name} embedding timed out after {self.timeout}s"
            )
            raise EmbeddingTimeoutError(
                f"Embedding timed out after {self.timeout}s",
                details={"provider": self.provider.provider_name, "model": model},
            ) from e
        except EmbeddingError:
            raise
        except Exception as e:
            logger.warning(f"{self.provider.provider_name} embedding failed: {e}")
            raise EmbeddingError(
                f"Embedding failed: {e}",
                details={"provider": self.provider.provider_name, "model": model},
            ) from e

        self._validate(vector, model)
        await self.cache.set(model, fp, vector, ttl=self.ttl)
        return vector

    def _validate(self, vector: list[float], model: str) -> None:
        details = {"provider": self.provider.provider_name, "model": model}
        if not vector:
            raise EmbeddingError("Provider returned an empty embedding", details=details)
        if not all(math.isfinite(x) for x in vector):
            raise EmbeddingError("Provider returned a non-finite embedding", details=details)
        if not any(vector):
            raise EmbeddingError("Provider returned a zero embedding", details=details)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    @property
    def provider_name(self) -> str:
        return self.provider.provider_name

    async def close(self) -> None:
        await self.cache.close()
