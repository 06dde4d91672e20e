"""Observability for semcache: structlog logging and OpenTelemetry.

Exports to OTLP-compatible backends (Jaeger, Tempo, Prometheus, etc.).

Instrumented Components:
    - Redis operations (auto-instrumentation)
    - Lookup outcomes by tier, latency and similarity scores
    - Fallback computations, coalesced callers, population failures
"""

from semcache.observability.logging import (
    LogEvents,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from semcache.observability.metrics import get_meter
from semcache.observability.setup import setup_telemetry, shutdown_telemetry
from semcache.observability.tracing import get_tracer, trace_operation

__all__ = [
    "LogEvents",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_meter",
    "get_tracer",
    "setup_telemetry",
    "shutdown_telemetry",
    "trace_operation",
]
