"""Caching - exact, similarity and fresh lookups side by side.

Runs a slow fake analyzer behind the feedback cache and shows which tier
answered each submission. Uses Redis and Qdrant when reachable, in-memory
backends otherwise. The similarity tier needs an embedding provider
(OPENAI_API_KEY or `pip install fastembed`); without one only exact hits
are possible.
"""

import asyncio
import time

from semcache import AnalysisResult, FeedbackType, Settings
from semcache.core.exceptions import ConfigurationError
from semcache.utils.service_factory import create_feedback_cache


async def slow_analyzer(content: str) -> AnalysisResult:
    """Stand-in for an LLM call."""
    await asyncio.sleep(1.0)
    return AnalysisResult(
        type=FeedbackType.UNSOURCED,
        suggestion_text="Consider citing the studies you refer to.",
        reasoning="The claim references research without a source.",
        confidence_score=0.85,
    )


async def backends_available(settings: Settings) -> bool:
    try:
        from qdrant_client import AsyncQdrantClient
        from redis.asyncio import Redis

        redis = Redis.from_url(settings.redis_url, socket_connect_timeout=1)
        await redis.ping()
        await redis.aclose()
        qdrant = AsyncQdrantClient(url=settings.qdrant_url, timeout=1)
        await qdrant.get_collections()
        await qdrant.close()
        return True
    except Exception as e:
        print(f"⚠️  Redis/Qdrant unavailable, using in-memory backends: {e}\n")
        return False


async def main():
    print("Semantic Feedback Cache Demo\n")

    settings = Settings()
    if not await backends_available(settings):
        settings = Settings(exact_backend="memory", similarity_backend="memory")

    try:
        cache = await create_feedback_cache(settings)
    except ConfigurationError as e:
        print(f"⚠️  {e.message}\n   Continuing without the similarity tier.\n")
        settings = settings.model_copy(update={"embedding_provider": "none"})
        cache = await create_feedback_cache(settings)

    submissions = [
        "Studies show that X is true.",
        "Studies show that X is true.",  # Duplicate - exact hit
        "  studies SHOW that x is true. ",  # Same after normalization
        "Research shows that X is true.",  # Paraphrase - similarity hit
        "The weather was lovely yesterday.",  # Unrelated - fresh
    ]

    print("=" * 60)
    async with cache:
        for i, text in enumerate(submissions, 1):
            start = time.time()
            outcome = await cache.resolve(text, FeedbackType.UNSOURCED, "demo-topic", slow_analyzer)
            elapsed = (time.time() - start) * 1000
            similarity = f" (similarity {outcome.similarity:.3f})" if outcome.similarity else ""
            print(f"{i}. {outcome.source.value:<10} {elapsed:7.1f}ms  {text!r}{similarity}")

        stats = cache.get_stats()
        print("=" * 60)
        print(f"\nLookups: {stats.lookups}, analyzer calls: {stats.computations}")
        print(f"Hit rate: {stats.hit_rate:.0f}%")

        # Concurrent identical submissions share one analyzer call
        print("\n10 concurrent submissions of new content...")
        start = time.time()
        outcomes = await asyncio.gather(
            *[
                cache.resolve("Everyone knows Y is false.", "UNSOURCED", None, slow_analyzer)
                for _ in range(10)
            ]
        )
        elapsed = (time.time() - start) * 1000
        coalesced = sum(o.coalesced for o in outcomes)
        print(f"Done in {elapsed:.0f}ms, {coalesced} callers coalesced onto one analysis")

        await cache.clear()


if __name__ == "__main__":
    asyncio.run(main())
