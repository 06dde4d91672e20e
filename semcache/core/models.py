"""Core data models for the semantic feedback cache.

This module defines Pydantic models for analysis results, cached feedback
entries, similarity matches and the tagged lookup result handed to callers.
Payload models serialize with camelCase aliases so entries written by other
services in the platform stay readable.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ContentFingerprint = NewType("ContentFingerprint", str)
"""SHA-256 hex digest of normalized content text (64 lowercase chars)."""

EmbeddingVector = list[float]


class FeedbackType(str, Enum):
    """Kind of feedback produced by the analyzers.

    Also the partition key of both cache tiers: an entry cached for one
    feedback type is never returned for another.
    """

    FALLACY = "FALLACY"
    INFLAMMATORY = "INFLAMMATORY"
    UNSOURCED = "UNSOURCED"
    BIAS = "BIAS"
    AFFIRMATION = "AFFIRMATION"
    TONE = "TONE"
    CLARITY = "CLARITY"


class CacheSource(str, Enum):
    """Which tier satisfied a lookup."""

    EXACT = "exact"
    SIMILARITY = "similarity"
    FRESH = "fresh"
    NONE = "none"


class TierOutcome(str, Enum):
    """Outcome of probing a single cache tier.

    UNAVAILABLE is kept distinct from MISS for observability; callers see
    both as a miss.
    """

    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


class _PayloadModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class AnalysisResult(_PayloadModel):
    """Feedback produced by the fallback analyzer for a piece of content."""

    type: FeedbackType = Field(..., description="Feedback type of the result")
    subtype: str | None = Field(None, description="Finer classification (e.g. straw_man)")
    suggestion_text: str = Field(..., description="Suggestion shown to the author")
    reasoning: str = Field(..., description="Why the analyzer produced this feedback")
    confidence_score: float = Field(
        ..., description="Analyzer confidence (0.0-1.0)", ge=0.0, le=1.0
    )
    educational_resources: dict[str, Any] | list[Any] | None = Field(
        None, description="Optional links or material for the author"
    )


class FeedbackMetadata(_PayloadModel):
    """Metadata stored next to every cached result."""

    content_hash: str = Field(..., description="Fingerprint of the normalized content")
    feedback_type: FeedbackType = Field(..., description="Partition key of the entry")
    subtype: str | None = None
    suggestion_text: str
    reasoning: str
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    topic_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CachedFeedbackEntry(_PayloadModel):
    """Unit stored in both cache tiers. Immutable once written."""

    result: AnalysisResult
    metadata: FeedbackMetadata

    @classmethod
    def create(
        cls,
        result: AnalysisResult,
        fingerprint: str,
        feedback_type: FeedbackType,
        topic_id: str | None = None,
    ) -> "CachedFeedbackEntry":
        """Build an entry for a freshly computed result.

        confidence_score is copied from the analysis and never adjusted
        afterwards.
        """
        metadata = FeedbackMetadata(
            content_hash=fingerprint,
            feedback_type=feedback_type,
            subtype=result.subtype,
            suggestion_text=result.suggestion_text,
            reasoning=result.reasoning,
            confidence_score=result.confidence_score,
            topic_id=topic_id,
        )
        return cls(result=result, metadata=metadata)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CachedFeedbackEntry":
        return cls.model_validate(payload)


class SimilarityMatch(BaseModel):
    """Nearest-neighbour candidate returned by the similarity store."""

    model_config = ConfigDict(frozen=True)

    entry: CachedFeedbackEntry
    similarity: float = Field(..., description="Cosine similarity of the match")
    fingerprint: str | None = Field(None, description="Fingerprint the entry was stored under")


@dataclass(frozen=True)
class TierProbe:
    """Result of probing one tier: hit, miss or unavailable."""

    outcome: TierOutcome
    entry: CachedFeedbackEntry | None = None
    similarity: float | None = None
    error: str | None = None

    @property
    def hit(self) -> bool:
        return self.outcome is TierOutcome.HIT


class CacheLookupResult(BaseModel):
    """Tagged outcome of a lookup.

    Built by SemanticFeedbackCache only. Callers must branch on ``source``
    and ``similarity`` rather than assume a hit means exact content.

    Sources:
    - exact: exact-match tier hit for this fingerprint
    - similarity: near-duplicate hit, ``similarity`` always set
    - fresh: computed by the fallback analyzer (``result`` may be None)
    - none: read-only probe found nothing
    """

    hit: bool
    source: CacheSource
    similarity: float | None = None
    result: AnalysisResult | None = None
    entry: CachedFeedbackEntry | None = None
    fingerprint: str
    feedback_type: FeedbackType
    coalesced: bool = Field(
        False, description="Result came from another caller's in-flight computation"
    )
    exact_tier: TierOutcome | None = None
    similarity_tier: TierOutcome | None = None
    latency_ms: float = 0.0

    @model_validator(mode="after")
    def validate_source(self) -> "CacheLookupResult":
        """Keep hit, source and similarity consistent."""
        if self.source is CacheSource.SIMILARITY and self.similarity is None:
            raise ValueError("similarity-sourced results must carry a similarity score")
        if self.hit != (self.source in (CacheSource.EXACT, CacheSource.SIMILARITY)):
            raise ValueError(f"hit={self.hit} is inconsistent with source={self.source.value}")
        return self
