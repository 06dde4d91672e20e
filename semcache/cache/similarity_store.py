"""Similarity tier: embedding vector -> cached feedback entry.

Every query is partitioned by feedback type through a payload filter and
enforces the minimum similarity inside the store query. Expiry is modelled
with an ``expiresAt`` payload field (epoch seconds) because vector stores
have no per-point TTL; queries ignore expired points and ``purge_expired``
removes them.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import numpy as np
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ApiException, ResponseHandlingException
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    Range,
    VectorParams,
)

from semcache.cache.circuit_breaker import CacheCircuitBreaker
from semcache.cache.models import CacheConfig, TierStats
from semcache.core.exceptions import StoreUnavailableError
from semcache.core.models import (
    CachedFeedbackEntry,
    FeedbackType,
    SimilarityMatch,
    TierOutcome,
    TierProbe,
)

logger = logging.getLogger(__name__)

FEEDBACK_TYPE_FIELD = "feedbackType"
CONTENT_HASH_FIELD = "contentHash"
EXPIRES_AT_FIELD = "expiresAt"

# Only connectivity loss trips the breaker; a 4xx (e.g. vector size mismatch)
# fails the single call.
CONNECTIVITY_ERRORS = (ResponseHandlingException, OSError, TimeoutError)


def point_id(fingerprint: str, feedback_type: FeedbackType) -> str:
    """Deterministic point id, so re-upserting the same content overwrites."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{feedback_type.value}:{fingerprint}"))


class SimilarityStore(ABC):
    """Abstract nearest-neighbour store over feedback embeddings."""

    tier_name = "similarity"

    def __init__(self, default_ttl: int, default_k: int = 3, min_similarity: float = 0.95):
        self.default_ttl = default_ttl
        self.default_k = default_k
        self.min_similarity = min_similarity
        self.stats = TierStats()

    @abstractmethod
    async def upsert(
        self,
        fingerprint: str,
        vector: list[float],
        entry: CachedFeedbackEntry,
        ttl: int | None = None,
    ) -> bool:
        """Insert or replace the point for (fingerprint, entry feedback type).

        Returns:
            True if the backend accepted the write, False otherwise
        """

    @abstractmethod
    async def query_nearest(
        self,
        vector: list[float],
        feedback_type: FeedbackType,
        k: int,
        min_similarity: float,
    ) -> list[SimilarityMatch]:
        """Return up to k matches with similarity >= min_similarity.

        Results are ordered by similarity, highest first, and restricted to
        unexpired points of ``feedback_type``.

        Raises:
            StoreUnavailableError: Backend unreachable or circuit open
        """

    @abstractmethod
    async def count(self) -> int:
        """Number of points currently stored (including not yet purged expired ones)."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Delete expired points. Returns the number removed (-1 if unknown)."""

    @abstractmethod
    async def clear(self) -> int:
        """Delete every point (admin/test operation)."""

    async def search(
        self,
        vector: list[float],
        feedback_type: FeedbackType,
        k: int | None = None,
        min_similarity: float | None = None,
    ) -> TierProbe:
        """Probe the tier for the best match above the threshold.

        Never raises: backend trouble is reported as UNAVAILABLE.
        """
        threshold = self.min_similarity if min_similarity is None else min_similarity
        try:
            matches = await self.query_nearest(
                vector, feedback_type, k or self.default_k, threshold
            )
        except StoreUnavailableError as e:
            self.stats.unavailable += 1
            return TierProbe(TierOutcome.UNAVAILABLE, error=e.message)

        if not matches:
            self.stats.misses += 1
            return TierProbe(TierOutcome.MISS)

        best = matches[0]
        self.stats.hits += 1
        return TierProbe(TierOutcome.HIT, entry=best.entry, similarity=best.similarity)

    async def close(self) -> None:
        """Release backend resources."""

    def get_stats(self) -> TierStats:
        return self.stats


class QdrantSimilarityStore(SimilarityStore):
    """Similarity store backed by a Qdrant collection (cosine distance).

    The collection is created on first write, sized from the first vector,
    with a keyword index on ``feedbackType`` and a float index on
    ``expiresAt``.
    """

    def __init__(self, config: CacheConfig, client: AsyncQdrantClient | None = None):
        super().__init__(
            default_ttl=config.feedback_cache_ttl,
            default_k=config.similarity_top_k,
            min_similarity=config.similarity_threshold,
        )
        self.config = config
        self.collection = config.qdrant_collection
        self.client = client or AsyncQdrantClient(
            url=config.qdrant_url,
            api_key=config.qdrant_api_key,
            timeout=max(1, int(config.qdrant_timeout)),
        )
        self.circuit_breaker = CacheCircuitBreaker(
            "qdrant",
            failure_threshold=config.circuit_breaker_threshold,
            timeout=config.circuit_breaker_timeout,
        )
        self._collection_ready = False

    def _record_error(self, e: Exception) -> None:
        if isinstance(e, CONNECTIVITY_ERRORS):
            self.circuit_breaker.on_failure()

    async def _collection_exists(self) -> bool:
        if not self._collection_ready:
            self._collection_ready = await self.client.collection_exists(self.collection)
        return self._collection_ready

    async def ensure_collection(self, dimension: int) -> None:
        """Create the collection and payload indexes if missing."""
        if await self._collection_exists():
            return

        await self.client.create_collection(
            collection_name=self.collection,
            vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
        )
        await self.client.create_payload_index(
            collection_name=self.collection,
            field_name=FEEDBACK_TYPE_FIELD,
            field_schema=PayloadSchemaType.KEYWORD,
        )
        await self.client.create_payload_index(
            collection_name=self.collection,
            field_name=EXPIRES_AT_FIELD,
            field_schema=PayloadSchemaType.FLOAT,
        )
        self._collection_ready = True
        logger.info(f"Created Qdrant collection {self.collection} (dim={dimension})")

    async def upsert(
        self,
        fingerprint: str,
        vector: list[float],
        entry: CachedFeedbackEntry,
        ttl: int | None = None,
    ) -> bool:
        if not self.circuit_breaker.can_attempt():
            logger.debug("Circuit breaker open, skipping similarity upsert")
            self.stats.write_failures += 1
            return False

        feedback_type = entry.metadata.feedback_type
        payload: dict[str, Any] = entry.to_payload()
        payload[FEEDBACK_TYPE_FIELD] = feedback_type.value
        payload[CONTENT_HASH_FIELD] = fingerprint
        payload[EXPIRES_AT_FIELD] = time.time() + (ttl or self.default_ttl)

        try:
            await self.ensure_collection(len(vector))
            await self.client.upsert(
                collection_name=self.collection,
                points=[
                    PointStruct(
                        id=point_id(fingerprint, feedback_type),
                        vector=list(vector),
                        payload=payload,
                    )
                ],
            )
            self.circuit_breaker.on_success()
            logger.debug(f"Upserted similarity point {feedback_type.value}:{fingerprint[:8]}")
            return True

        except (ApiException, OSError, TimeoutError) as e:
            logger.warning(f"Similarity upsert failed: {e}")
            self._record_error(e)
            self.stats.write_failures += 1
            return False

    async def query_nearest(
        self,
        vector: list[float],
        feedback_type: FeedbackType,
        k: int,
        min_similarity: float,
    ) -> list[SimilarityMatch]:
        if not self.circuit_breaker.can_attempt():
            raise StoreUnavailableError("Qdrant circuit open", details={"tier": "similarity"})

        query_filter = Filter(
            must=[
                FieldCondition(key=FEEDBACK_TYPE_FIELD, match=MatchValue(value=feedback_type.value)),
                FieldCondition(key=EXPIRES_AT_FIELD, range=Range(gt=time.time())),
            ]
        )
        try:
            if not await self._collection_exists():
                self.circuit_breaker.on_success()
                return []
            response = await self.client.query_points(
                collection_name=self.collection,
                query=list(vector),
                query_filter=query_filter,
                limit=k,
                score_threshold=min_similarity,
                with_payload=True,
            )
        except (ApiException, OSError, TimeoutError) as e:
            logger.warning(f"Similarity query failed: {e}")
            self._record_error(e)
            raise StoreUnavailableError(
                f"Qdrant query failed: {e}", details={"tier": "similarity"}
            ) from e

        self.circuit_breaker.on_success()

        matches: list[SimilarityMatch] = []
        for point in response.points:
            score = float(point.score) if point.score is not None else 0.0
            if score < min_similarity:
                continue
            payload = point.payload or {}
            try:
                entry = CachedFeedbackEntry.from_payload(payload)
            except ValueError as e:
                logger.error(f"Skipping unreadable similarity point {point.id}: {e}")
                continue
            matches.append(
                SimilarityMatch(
                    entry=entry,
                    similarity=score,
                    fingerprint=payload.get(CONTENT_HASH_FIELD),
                )
            )

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches

    async def count(self) -> int:
        try:
            if not await self._collection_exists():
                return 0
            result = await self.client.count(collection_name=self.collection, exact=True)
            return result.count
        except (ApiException, OSError, TimeoutError) as e:
            logger.warning(f"Similarity count failed: {e}")
            self._record_error(e)
            return 0

    async def purge_expired(self) -> int:
        """Delete points whose expiresAt has passed.

        Qdrant does not report how many points a filter delete removed,
        so this returns -1 on success and 0 when nothing was purged.
        """
        try:
            if not await self._collection_exists():
                return 0
            await self.client.delete(
                collection_name=self.collection,
                points_selector=FilterSelector(
                    filter=Filter(
                        must=[FieldCondition(key=EXPIRES_AT_FIELD, range=Range(lte=time.time()))]
                    )
                ),
            )
        except (ApiException, OSError, TimeoutError) as e:
            logger.error(f"Similarity purge failed: {e}")
            self._record_error(e)
            return 0
        logger.info(f"Purged expired points from {self.collection}")
        return -1

    async def clear(self) -> int:
        """Drop the collection. It is recreated on the next upsert."""
        try:
            if not await self._collection_exists():
                return 0
            removed = await self.count()
            await self.client.delete_collection(self.collection)
        except (ApiException, OSError, TimeoutError) as e:
            logger.error(f"Similarity clear failed: {e}")
            self._record_error(e)
            return 0
        self._collection_ready = False
        logger.info(f"Similarity tier cleared ({removed} points)")
        return removed

    async def close(self) -> None:
        await self.client.close()
        logger.info("Similarity store closed")

    def get_stats(self) -> TierStats:
        self.stats.circuit_state = self.circuit_breaker.state
        return self.stats


class InMemorySimilarityStore(SimilarityStore):
    """Brute-force cosine similarity over in-process vectors.

    For development and tests. Same filtering rules as the Qdrant store:
    feedback type partition, expiry, and a ``>=`` similarity floor.
    """

    def __init__(
        self,
        default_ttl: int = 172800,
        default_k: int = 3,
        min_similarity: float = 0.95,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(default_ttl=default_ttl, default_k=default_k, min_similarity=min_similarity)
        self._clock = clock
        # point id -> (feedback type, vector, entry, fingerprint, expires at)
        self._points: dict[
            str, tuple[FeedbackType, np.ndarray, CachedFeedbackEntry, str, float]
        ] = {}

    @classmethod
    def from_config(cls, config: CacheConfig) -> "InMemorySimilarityStore":
        return cls(
            default_ttl=config.feedback_cache_ttl,
            default_k=config.similarity_top_k,
            min_similarity=config.similarity_threshold,
        )

    async def upsert(
        self,
        fingerprint: str,
        vector: list[float],
        entry: CachedFeedbackEntry,
        ttl: int | None = None,
    ) -> bool:
        feedback_type = entry.metadata.feedback_type
        expires_at = self._clock() + (ttl or self.default_ttl)
        self._points[point_id(fingerprint, feedback_type)] = (
            feedback_type,
            np.asarray(vector, dtype=np.float64),
            entry,
            fingerprint,
            expires_at,
        )
        return True

    async def query_nearest(
        self,
        vector: list[float],
        feedback_type: FeedbackType,
        k: int,
        min_similarity: float,
    ) -> list[SimilarityMatch]:
        query = np.asarray(vector, dtype=np.float64)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        now = self._clock()
        matches: list[SimilarityMatch] = []
        for stored_type, stored, entry, fingerprint, expires_at in self._points.values():
            if stored_type is not feedback_type or expires_at <= now:
                continue
            if stored.shape != query.shape:
                continue
            stored_norm = np.linalg.norm(stored)
            if stored_norm == 0:
                continue
            similarity = float(np.dot(query, stored) / (query_norm * stored_norm))
            if similarity >= min_similarity:
                matches.append(
                    SimilarityMatch(entry=entry, similarity=similarity, fingerprint=fingerprint)
                )

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:k]

    async def count(self) -> int:
        return len(self._points)

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [pid for pid, point in self._points.items() if point[4] <= now]
        for pid in expired:
            del self._points[pid]
        return len(expired)

    async def clear(self) -> int:
        removed = len(self._points)
        self._points.clear()
        return removed

    def __len__(self) -> int:
        return len(self._points)
