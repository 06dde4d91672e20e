"""Pytest configuration and fixtures for semcache tests."""

import asyncio
import hashlib

import pytest

from semcache.cache import (
    CacheConfig,
    InMemoryEmbeddingCache,
    InMemoryExactMatchStore,
    InMemorySimilarityStore,
    SemanticFeedbackCache,
)
from semcache.core.fingerprint import normalize
from semcache.core.models import AnalysisResult, FeedbackType
from semcache.embeddings import CachedEmbeddingProvider, EmbeddingProvider


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic embeddings for tests.

    Texts registered in ``vectors`` (keyed by normalized text) get that exact
    vector; anything else gets a pseudo-random vector derived from its hash,
    which is far below any realistic similarity threshold to other texts.
    """

    def __init__(self, dimension: int = 16):
        self._dimension = dimension
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self.fail_with: Exception | None = None
        self.delay = 0.0

    def register(self, text: str, vector: list[float]) -> None:
        self.vectors[normalize(text)] = vector

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [digest[i] / 127.5 - 1.0 for i in range(self._dimension)]

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "fake-embedding"

    @property
    def provider_name(self) -> str:
        return "fake"


class FakeAnalyzer:
    """Fallback analyzer double that counts invocations."""

    def __init__(self, result: AnalysisResult | None = None, delay: float = 0.0):
        self.result = result
        self.delay = delay
        self.calls: list[str] = []
        self.fail_with: Exception | None = None

    async def analyze(self, content: str) -> AnalysisResult | None:
        self.calls.append(content)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return self.result


def make_result(
    feedback_type: FeedbackType = FeedbackType.UNSOURCED,
    suggestion_text: str = "Consider citing the studies you refer to.",
    confidence_score: float = 0.85,
) -> AnalysisResult:
    return AnalysisResult(
        type=feedback_type,
        subtype=None,
        suggestion_text=suggestion_text,
        reasoning="The claim references studies without a source.",
        confidence_score=confidence_score,
    )


@pytest.fixture
def cache_config() -> CacheConfig:
    """Cache configuration for testing (no retry delay)."""
    return CacheConfig(
        similarity_threshold=0.95,
        similarity_top_k=3,
        max_items=100,
        embedding_timeout=1.0,
        analysis_timeout=2.0,
        population_retry_delay=0.0,
    )


@pytest.fixture
def sample_result() -> AnalysisResult:
    return make_result()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def exact_store(cache_config: CacheConfig) -> InMemoryExactMatchStore:
    return InMemoryExactMatchStore.from_config(cache_config)


@pytest.fixture
def similarity_store(cache_config: CacheConfig) -> InMemorySimilarityStore:
    return InMemorySimilarityStore.from_config(cache_config)


@pytest.fixture
def embedder(
    embedding_provider: FakeEmbeddingProvider, cache_config: CacheConfig
) -> CachedEmbeddingProvider:
    return CachedEmbeddingProvider(
        embedding_provider,
        InMemoryEmbeddingCache(),
        timeout=cache_config.embedding_timeout,
    )


@pytest.fixture
def analyzer(sample_result: AnalysisResult) -> FakeAnalyzer:
    return FakeAnalyzer(result=sample_result)


@pytest.fixture
async def feedback_cache(
    exact_store: InMemoryExactMatchStore,
    similarity_store: InMemorySimilarityStore,
    embedder: CachedEmbeddingProvider,
    cache_config: CacheConfig,
):
    """Orchestrator wired to in-memory backends."""
    cache = SemanticFeedbackCache(exact_store, similarity_store, embedder, cache_config)
    yield cache
    await cache.close()
