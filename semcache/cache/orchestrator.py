"""Semantic feedback cache orchestrator.

Lookup order for ``resolve`` / ``lookup_or_compute``:
    1. Normalize + fingerprint the content (pure, never fails)
    2. Exact-match tier: hit returns immediately (source=exact)
    3. Similarity tier: embed the canonical text, query nearest neighbours of
       the same feedback type above the threshold. A hit returns the cached
       entry (source=similarity) and back-fills the exact tier under the
       current fingerprint.
    4. Miss: run the fallback analyzer. Non-null results are written to both
       tiers before the result is returned (source=fresh). Null results are
       never cached.

Steps 3 and 4 run inside a per-(fingerprint, feedback type) flight: while a
flight is in progress, other callers for the same key wait for it instead of
starting their own analysis. Exact hits never wait on a flight.

Cache tiers and embeddings only ever degrade the lookup to a miss. The only
error a caller can see is AnalysisError, raised when the fallback analyzer
itself fails or times out.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from semcache.cache.exact_store import ExactMatchStore
from semcache.cache.models import CacheConfig, CacheStats
from semcache.cache.similarity_store import SimilarityStore
from semcache.core.exceptions import AnalysisError, AnalysisTimeoutError, EmbeddingError
from semcache.core.fingerprint import fingerprint, normalize
from semcache.core.models import (
    AnalysisResult,
    CachedFeedbackEntry,
    CacheLookupResult,
    CacheSource,
    FeedbackType,
    TierOutcome,
)
from semcache.embeddings.cached import CachedEmbeddingProvider
from semcache.observability import metrics
from semcache.observability.logging import LogEvents, get_logger
from semcache.observability.tracing import trace_operation

logger = get_logger(__name__)

ComputeFn = Callable[[str], Awaitable[AnalysisResult | None] | AnalysisResult | None]
FlightKey = tuple[str, FeedbackType]


@dataclass(frozen=True)
class _SimilarityProbe:
    """Similarity step result: a hit, and the embedding when one was obtained."""

    outcome: TierOutcome
    hit: CacheLookupResult | None = None
    vector: list[float] | None = None


class SemanticFeedbackCache:
    """Two-tier feedback cache with stampede protection.

    Example:
        >>> cache = SemanticFeedbackCache(exact_store, similarity_store, embedder, config)
        >>> result = await cache.lookup_or_compute(
        ...     "Studies show that X is true.", FeedbackType.UNSOURCED, None, analyzer.analyze
        ... )
        >>> cache.last_source
        <CacheSource.FRESH: 'fresh'>
    """

    def __init__(
        self,
        exact_store: ExactMatchStore,
        similarity_store: SimilarityStore,
        embedder: CachedEmbeddingProvider | None,
        config: CacheConfig | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            exact_store: Exact-match tier
            similarity_store: Similarity tier
            embedder: Caching embedding adapter. None disables the
                similarity tier (every probe reports it unavailable).
            config: Immutable cache configuration (defaults when None)
        """
        self.exact_store = exact_store
        self.similarity_store = similarity_store
        self.embedder = embedder
        self.config = config or CacheConfig()
        self.stats = CacheStats()

        self._flights: dict[FlightKey, asyncio.Task[CacheLookupResult]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._last: CacheLookupResult | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def lookup_or_compute(
        self,
        content: str,
        feedback_type: FeedbackType | str,
        topic_id: str | None,
        compute_fn: ComputeFn,
    ) -> AnalysisResult | None:
        """Return cached or freshly computed feedback for content.

        Returns:
            AnalysisResult, or None when the analyzer found nothing to report

        Raises:
            AnalysisError: Fallback analyzer failed
            AnalysisTimeoutError: Fallback analyzer exceeded analysis_timeout
        """
        outcome = await self.resolve(content, feedback_type, topic_id, compute_fn)
        return outcome.result

    @trace_operation("semcache.resolve")
    async def resolve(
        self,
        content: str,
        feedback_type: FeedbackType | str,
        topic_id: str | None,
        compute_fn: ComputeFn,
    ) -> CacheLookupResult:
        """Like lookup_or_compute, but returns the tagged lookup result.

        Use this when the caller needs to know whether the feedback was
        computed for this exact text (``source``) or borrowed from a
        near-duplicate (``source=similarity`` with ``similarity`` set).
        """
        start = time.perf_counter()
        feedback_type = FeedbackType(feedback_type)
        canonical = normalize(content)
        fp = fingerprint(canonical)

        exact = await self.exact_store.probe(fp, feedback_type)
        self._note_unavailable(exact.outcome, "exact", fp)

        if exact.hit and exact.entry is not None:
            outcome = CacheLookupResult(
                hit=True,
                source=CacheSource.EXACT,
                result=exact.entry.result,
                entry=exact.entry,
                fingerprint=fp,
                feedback_type=feedback_type,
                exact_tier=TierOutcome.HIT,
            )
            return self._finish(outcome, start)

        key: FlightKey = (fp, feedback_type)
        flight = self._flights.get(key)
        coalesced = flight is not None

        if flight is None:
            flight = asyncio.create_task(
                self._fly(content, canonical, fp, feedback_type, topic_id, compute_fn)
            )
            self._flights[key] = flight
            flight.add_done_callback(lambda task: self._land(key, task))
        else:
            self.stats.coalesced += 1
            metrics.record_coalesced(feedback_type.value)
            logger.debug(
                LogEvents.COMPUTATION_COALESCED,
                feedback_type=feedback_type.value,
                fingerprint=fp[:12],
            )

        # shield: a cancelled caller must not cancel the shared flight
        outcome = await asyncio.shield(flight)
        outcome = outcome.model_copy(update={"coalesced": coalesced, "exact_tier": exact.outcome})
        return self._finish(outcome, start)

    async def lookup(self, content: str, feedback_type: FeedbackType | str) -> CacheLookupResult:
        """Read-only probe of both tiers. Never computes or writes feedback.

        Returns:
            CacheLookupResult with source exact, similarity or none
        """
        start = time.perf_counter()
        feedback_type = FeedbackType(feedback_type)
        canonical = normalize(content)
        fp = fingerprint(canonical)

        exact = await self.exact_store.probe(fp, feedback_type)
        self._note_unavailable(exact.outcome, "exact", fp)
        if exact.hit and exact.entry is not None:
            return self._finish(
                CacheLookupResult(
                    hit=True,
                    source=CacheSource.EXACT,
                    result=exact.entry.result,
                    entry=exact.entry,
                    fingerprint=fp,
                    feedback_type=feedback_type,
                    exact_tier=TierOutcome.HIT,
                ),
                start,
            )

        similar = await self._probe_similarity(canonical, fp, feedback_type)
        if similar.hit is not None:
            return self._finish(similar.hit.model_copy(update={"exact_tier": exact.outcome}), start)

        return self._finish(
            CacheLookupResult(
                hit=False,
                source=CacheSource.NONE,
                fingerprint=fp,
                feedback_type=feedback_type,
                exact_tier=exact.outcome,
                similarity_tier=similar.outcome,
            ),
            start,
        )

    @property
    def last_lookup(self) -> CacheLookupResult | None:
        """Most recently completed lookup on this instance.

        With concurrent callers this is whichever lookup finished last; use
        the return value of ``resolve`` for per-call attribution.
        """
        return self._last

    @property
    def last_source(self) -> CacheSource | None:
        """Which tier satisfied the most recent lookup."""
        return self._last.source if self._last else None

    @property
    def in_flight(self) -> int:
        """Number of computations currently in progress."""
        return len(self._flights)

    def get_stats(self) -> CacheStats:
        """Snapshot of orchestrator and per-tier statistics."""
        self.stats.exact_tier = self.exact_store.get_stats().model_copy()
        self.stats.similarity_tier = self.similarity_store.get_stats().model_copy()
        self.stats.update_hit_rate()
        return self.stats.model_copy(deep=True)

    async def drain(self) -> None:
        """Wait for in-flight computations, then background retries and back-fills.

        Includes flights whose callers were all cancelled.
        """
        while self._flights or self._background:
            if self._flights:
                await asyncio.gather(*list(self._flights.values()), return_exceptions=True)
            else:
                await asyncio.gather(*list(self._background), return_exceptions=True)

    async def clear(self) -> dict[str, int]:
        """Empty both tiers. Maintenance and tests only.

        Returns:
            Entries removed per tier
        """
        await self.drain()
        removed = {
            "exact": await self.exact_store.clear(),
            "similarity": await self.similarity_store.clear(),
        }
        logger.info(LogEvents.CACHE_CLEARED, **removed)
        return removed

    async def purge_expired(self) -> int:
        """Delete expired points from the similarity tier."""
        removed = await self.similarity_store.purge_expired()
        logger.info(LogEvents.EXPIRED_PURGED, removed=removed)
        return removed

    async def close(self) -> None:
        """Drain background work, then release backend connections."""
        await self.drain()
        await self.exact_store.close()
        await self.similarity_store.close()
        if self.embedder is not None:
            await self.embedder.close()
        logger.info(LogEvents.CACHE_CLOSED)

    async def __aenter__(self) -> "SemanticFeedbackCache":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Flight: similarity probe -> compute -> populate
    # ------------------------------------------------------------------

    async def _fly(
        self,
        content: str,
        canonical: str,
        fp: str,
        feedback_type: FeedbackType,
        topic_id: str | None,
        compute_fn: ComputeFn,
    ) -> CacheLookupResult:
        similar = await self._probe_similarity(canonical, fp, feedback_type)
        if similar.hit is not None and similar.hit.entry is not None:
            # Near-duplicate text: make an identical resubmission an exact hit
            await self._write_exact(fp, feedback_type, similar.hit.entry)
            return similar.hit

        similarity_tier = similar.outcome
        result = await self._compute(content, feedback_type, compute_fn)

        if result is None:
            self.stats.null_results += 1
            logger.debug(LogEvents.NULL_RESULT, feedback_type=feedback_type.value, fingerprint=fp[:12])
            return CacheLookupResult(
                hit=False,
                source=CacheSource.FRESH,
                fingerprint=fp,
                feedback_type=feedback_type,
                similarity_tier=similarity_tier,
            )

        entry = CachedFeedbackEntry.create(result, fp, feedback_type, topic_id)
        await self._populate(canonical, fp, feedback_type, entry, similar.vector)
        return CacheLookupResult(
            hit=False,
            source=CacheSource.FRESH,
            result=result,
            entry=entry,
            fingerprint=fp,
            feedback_type=feedback_type,
            similarity_tier=similarity_tier,
        )

    def _land(self, key: FlightKey, task: asyncio.Task[CacheLookupResult]) -> None:
        if self._flights.get(key) is task:
            del self._flights[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves
            task.exception()

    async def _probe_similarity(
        self, canonical: str, fp: str, feedback_type: FeedbackType
    ) -> _SimilarityProbe:
        """Embed the canonical text and query the similarity tier."""
        if self.embedder is None:
            return _SimilarityProbe(TierOutcome.UNAVAILABLE)

        try:
            vector = await self.embedder.embed(canonical, fingerprint=fp)
        except EmbeddingError as e:
            self.stats.embedding_failures += 1
            metrics.record_tier_unavailable("embedding")
            logger.warning(
                LogEvents.EMBEDDING_FAILED,
                feedback_type=feedback_type.value,
                fingerprint=fp[:12],
                error=e.message,
                code=e.code,
            )
            return _SimilarityProbe(TierOutcome.UNAVAILABLE)

        probe = await self.similarity_store.search(
            vector,
            feedback_type,
            k=self.config.similarity_top_k,
            min_similarity=self.config.similarity_threshold,
        )
        self._note_unavailable(probe.outcome, "similarity", fp)

        if not probe.hit or probe.entry is None or probe.similarity is None:
            return _SimilarityProbe(probe.outcome, vector=vector)

        metrics.record_similarity_score(probe.similarity, feedback_type.value)
        hit = CacheLookupResult(
            hit=True,
            source=CacheSource.SIMILARITY,
            similarity=probe.similarity,
            result=probe.entry.result,
            entry=probe.entry,
            fingerprint=fp,
            feedback_type=feedback_type,
            similarity_tier=TierOutcome.HIT,
        )
        return _SimilarityProbe(TierOutcome.HIT, hit=hit, vector=vector)

    async def _compute(
        self, content: str, feedback_type: FeedbackType, compute_fn: ComputeFn
    ) -> AnalysisResult | None:
        self.stats.computations += 1
        logger.debug(LogEvents.COMPUTATION_STARTED, feedback_type=feedback_type.value)
        started = time.perf_counter()

        try:
            raw = await asyncio.wait_for(
                _call_compute(compute_fn, content), timeout=self.config.analysis_timeout
            )
        except asyncio.TimeoutError as e:
            metrics.record_computation(feedback_type.value, "timeout")
            logger.error(
                LogEvents.COMPUTATION_FAILED,
                feedback_type=feedback_type.value,
                reason="timeout",
                timeout=self.config.analysis_timeout,
            )
            raise AnalysisTimeoutError(
                f"Fallback analysis timed out after {self.config.analysis_timeout}s",
                details={"feedback_type": feedback_type.value},
            ) from e
        except AnalysisError:
            metrics.record_computation(feedback_type.value, "error")
            raise
        except Exception as e:
            metrics.record_computation(feedback_type.value, "error")
            logger.error(
                LogEvents.COMPUTATION_FAILED,
                feedback_type=feedback_type.value,
                reason=type(e).__name__,
                error=str(e),
            )
            raise AnalysisError(
                f"Fallback analysis failed: {e}", details={"feedback_type": feedback_type.value}
            ) from e

        if raw is None:
            metrics.record_computation(feedback_type.value, "null")
            return None

        try:
            result = raw if isinstance(raw, AnalysisResult) else AnalysisResult.model_validate(raw)
        except ValidationError as e:
            metrics.record_computation(feedback_type.value, "error")
            raise AnalysisError(
                f"Fallback analyzer returned an invalid result: {e}",
                details={"feedback_type": feedback_type.value},
            ) from e

        metrics.record_computation(feedback_type.value, "result")
        logger.debug(
            LogEvents.COMPUTATION_COMPLETED,
            feedback_type=feedback_type.value,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    async def _populate(
        self,
        canonical: str,
        fp: str,
        feedback_type: FeedbackType,
        entry: CachedFeedbackEntry,
        vector: list[float] | None,
    ) -> None:
        if vector is not None:
            await asyncio.gather(
                self._write_exact(fp, feedback_type, entry),
                self._write_similarity(fp, vector, entry),
            )
            return

        await self._write_exact(fp, feedback_type, entry)
        if self.embedder is not None:
            # Embedding failed during the probe; retry it off the request path
            self._spawn(self._embed_and_write_similarity(self.embedder, canonical, fp, entry))

    async def _write_exact(
        self, fp: str, feedback_type: FeedbackType, entry: CachedFeedbackEntry
    ) -> None:
        if await self.exact_store.set(fp, feedback_type, entry):
            return
        self._spawn(
            self._retry_write("exact", fp, lambda: self.exact_store.set(fp, feedback_type, entry))
        )

    async def _write_similarity(
        self, fp: str, vector: list[float], entry: CachedFeedbackEntry
    ) -> None:
        if await self.similarity_store.upsert(fp, vector, entry):
            return
        self._spawn(
            self._retry_write(
                "similarity", fp, lambda: self.similarity_store.upsert(fp, vector, entry)
            )
        )

    async def _embed_and_write_similarity(
        self,
        embedder: CachedEmbeddingProvider,
        canonical: str,
        fp: str,
        entry: CachedFeedbackEntry,
    ) -> None:
        try:
            vector = await embedder.embed(canonical, fingerprint=fp)
        except EmbeddingError as e:
            logger.warning(
                LogEvents.BACKFILL_FAILED, tier="similarity", fingerprint=fp[:12], error=e.message
            )
            return
        await self._write_similarity(fp, vector, entry)

    async def _retry_write(
        self, tier: str, fp: str, write: Callable[[], Coroutine[Any, Any, bool]]
    ) -> None:
        """Single delayed retry of a failed cache write."""
        logger.warning(LogEvents.POPULATION_RETRIED, tier=tier, fingerprint=fp[:12])
        await asyncio.sleep(self.config.population_retry_delay)
        if await write():
            return
        self.stats.population_failures += 1
        metrics.record_population_failure(tier)
        logger.error(LogEvents.POPULATION_FAILED, tier=tier, fingerprint=fp[:12])

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _note_unavailable(self, outcome: TierOutcome, tier: str, fp: str) -> None:
        if outcome is not TierOutcome.UNAVAILABLE:
            return
        metrics.record_tier_unavailable(tier)
        logger.warning(LogEvents.TIER_UNAVAILABLE, tier=tier, fingerprint=fp[:12])

    def _finish(self, outcome: CacheLookupResult, start: float) -> CacheLookupResult:
        latency_ms = (time.perf_counter() - start) * 1000
        outcome = outcome.model_copy(update={"latency_ms": latency_ms})

        self.stats.lookups += 1
        if outcome.source is CacheSource.EXACT:
            self.stats.exact_hits += 1
        elif outcome.source is CacheSource.SIMILARITY:
            self.stats.similarity_hits += 1
        elif outcome.source is CacheSource.FRESH:
            self.stats.fresh += 1
        self.stats.update_hit_rate()

        metrics.record_lookup(outcome.source.value, outcome.feedback_type.value, latency_ms)
        logger.debug(
            LogEvents.CACHE_HIT if outcome.hit else LogEvents.CACHE_MISS,
            source=outcome.source.value,
            feedback_type=outcome.feedback_type.value,
            similarity=outcome.similarity,
            coalesced=outcome.coalesced,
            latency_ms=round(latency_ms, 2),
        )

        self._last = outcome
        return outcome


async def _call_compute(compute_fn: ComputeFn, content: str) -> Any:
    """Invoke the analyzer; sync callables run in a worker thread."""
    if inspect.iscoroutinefunction(compute_fn):
        return await compute_fn(content)
    result = await asyncio.to_thread(compute_fn, content)
    if inspect.isawaitable(result):
        result = await result
    return result
