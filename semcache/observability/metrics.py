"""OpenTelemetry metrics for the semantic feedback cache.

Metrics:
    - semcache.lookups: Counter of lookups by source and feedback type
    - semcache.tier.unavailable: Counter of tier probes that hit a down backend
    - semcache.computations: Counter of fallback analyzer runs (by outcome)
    - semcache.coalesced: Counter of callers that joined an in-flight computation
    - semcache.population.failures: Counter of cache writes lost after retry
    - semcache.lookup.latency: Histogram of lookup latency in milliseconds
    - semcache.similarity.score: Histogram of accepted similarity scores

All recorders are no-ops unless otel_enabled and otel_metrics_enabled.
"""

from opentelemetry import metrics

from semcache.core.config import settings

_meter: metrics.Meter | None = None

# Instruments created on first use
_counters: dict[str, metrics.Counter] = {}
_histograms: dict[str, metrics.Histogram] = {}

_COUNTERS = {
    "semcache.lookups": "Number of cache lookups",
    "semcache.tier.unavailable": "Tier probes answered as unavailable",
    "semcache.computations": "Fallback analyzer invocations",
    "semcache.coalesced": "Callers coalesced onto an in-flight computation",
    "semcache.population.failures": "Cache writes that failed after retry",
}

_HISTOGRAMS = {
    "semcache.lookup.latency": ("Lookup latency", "ms"),
    "semcache.similarity.score": ("Similarity score of accepted semantic hits", "1"),
}


def get_meter(name: str = "semcache") -> metrics.Meter:
    """Get the meter (no-op if no provider is installed)."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter(name)
    return _meter


def _enabled() -> bool:
    return settings.otel_enabled and settings.otel_metrics_enabled


def _ensure_instruments() -> None:
    """Lazy initialization of metric instruments."""
    meter = get_meter()
    for name, description in _COUNTERS.items():
        if name not in _counters:
            _counters[name] = meter.create_counter(name=name, description=description, unit="1")
    for name, (description, unit) in _HISTOGRAMS.items():
        if name not in _histograms:
            _histograms[name] = meter.create_histogram(
                name=name, description=description, unit=unit
            )


def _add(name: str, attributes: dict[str, str] | None = None) -> None:
    if not _enabled():
        return
    _ensure_instruments()
    _counters[name].add(1, attributes or {})


def _record(name: str, value: float, attributes: dict[str, str] | None = None) -> None:
    if not _enabled():
        return
    _ensure_instruments()
    _histograms[name].record(value, attributes or {})


def record_lookup(source: str, feedback_type: str, latency_ms: float) -> None:
    """Record a completed lookup and its latency."""
    attributes = {"source": source, "feedback_type": feedback_type}
    _add("semcache.lookups", attributes)
    _record("semcache.lookup.latency", latency_ms, attributes)


def record_tier_unavailable(tier: str) -> None:
    _add("semcache.tier.unavailable", {"tier": tier})


def record_computation(feedback_type: str, outcome: str) -> None:
    """Record a fallback analyzer run (outcome: result, null, error, timeout)."""
    _add("semcache.computations", {"feedback_type": feedback_type, "outcome": outcome})


def record_coalesced(feedback_type: str) -> None:
    _add("semcache.coalesced", {"feedback_type": feedback_type})


def record_population_failure(tier: str) -> None:
    _add("semcache.population.failures", {"tier": tier})


def record_similarity_score(score: float, feedback_type: str) -> None:
    _record("semcache.similarity.score", score, {"feedback_type": feedback_type})
