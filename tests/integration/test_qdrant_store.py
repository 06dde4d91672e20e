"""Integration tests for the Qdrant similarity store.

Note: These tests require a running Qdrant instance at http://localhost:6333
      Skip if Qdrant is unavailable using: pytest -m "not qdrant"
"""

import math

import pytest
from qdrant_client import AsyncQdrantClient

from conftest import make_result
from semcache.cache import CacheConfig, QdrantSimilarityStore
from semcache.core.fingerprint import content_fingerprint
from semcache.core.models import CachedFeedbackEntry, FeedbackType, TierOutcome

pytestmark = pytest.mark.qdrant

QDRANT_URL = "http://localhost:6333"


def unit(cosine: float, dimension: int = 8) -> list[float]:
    return [cosine, math.sqrt(1.0 - cosine * cosine)] + [0.0] * (dimension - 2)


def entry_for(text: str, feedback_type: FeedbackType = FeedbackType.UNSOURCED):
    fp = content_fingerprint(text)
    return fp, CachedFeedbackEntry.create(make_result(feedback_type), fp, feedback_type)


@pytest.fixture
async def similarity_store():
    """Store on a throwaway collection; skipped without a Qdrant server."""
    client = AsyncQdrantClient(url=QDRANT_URL, timeout=2)
    try:
        await client.get_collections()
    except Exception:
        await client.close()
        pytest.skip("Qdrant not available at localhost:6333")

    config = CacheConfig(
        qdrant_url=QDRANT_URL,
        qdrant_collection="semcache_integration_test",
        feedback_cache_ttl=60,
        embedding_cache_ttl=60,
    )
    store = QdrantSimilarityStore(config, client=client)
    await store.clear()
    yield store
    await store.clear()
    await store.close()


class TestQdrantSimilarityStoreIntegration:
    async def test_upsert_and_query(self, similarity_store):
        fp, entry = entry_for("Studies show that X is true.")

        assert await similarity_store.upsert(fp, unit(1.0), entry) is True
        probe = await similarity_store.search(unit(0.97), FeedbackType.UNSOURCED)

        assert probe.hit is True
        assert probe.similarity == pytest.approx(0.97, abs=1e-4)
        assert probe.entry.result == entry.result

    async def test_below_threshold_is_miss(self, similarity_store):
        fp, entry = entry_for("Studies show that X is true.")
        await similarity_store.upsert(fp, unit(1.0), entry)

        probe = await similarity_store.search(unit(0.90), FeedbackType.UNSOURCED)

        assert probe.outcome is TierOutcome.MISS

    async def test_partitioned_by_type(self, similarity_store):
        fp, entry = entry_for("Studies show that X is true.", FeedbackType.TONE)
        await similarity_store.upsert(fp, unit(1.0), entry)

        probe = await similarity_store.search(unit(1.0), FeedbackType.FALLACY)

        assert probe.outcome is TierOutcome.MISS

    async def test_expired_points_ignored_and_purged(self, similarity_store):
        fp, entry = entry_for("already expired")
        await similarity_store.upsert(fp, unit(1.0), entry, ttl=-1)

        probe = await similarity_store.search(unit(1.0), FeedbackType.UNSOURCED)
        assert probe.outcome is TierOutcome.MISS

        await similarity_store.purge_expired()
        assert await similarity_store.count() == 0

    async def test_upsert_is_idempotent(self, similarity_store):
        fp, entry = entry_for("same content")
        await similarity_store.upsert(fp, unit(1.0), entry)
        await similarity_store.upsert(fp, unit(1.0), entry)

        assert await similarity_store.count() == 1
