"""Structured logging configuration for semcache.

Uses structlog. Logs are JSON in production and colored console output in
development.

Configuration (environment variables):
    - LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - LOG_FORMAT: json, console (default: json in production, console in dev)
    - ENVIRONMENT: development, production (affects format default)

Usage:
    >>> from semcache.observability.logging import get_logger, LogEvents
    >>> logger = get_logger(__name__)
    >>> logger.info(LogEvents.CACHE_HIT, source="exact", feedback_type="TONE")
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import Processor

_configured = False


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
    is_production: bool | None = None,
) -> None:
    """Configure structured logging for the application.

    Call once at startup. Subsequent calls are no-ops.

    Args:
        level: Log level. Default from LOG_LEVEL env.
        log_format: json or console. Default based on environment.
        is_production: Override production detection. Default from ENVIRONMENT env.
    """
    global _configured
    if _configured:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    if is_production is None:
        is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"

    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "json" if is_production else "console")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring logging on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context variables (e.g. request_id) to subsequent log calls."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


class LogEvents:
    """Standard event names for structured logging.

    Example:
        >>> logger.info(LogEvents.CACHE_MISS, feedback_type="FALLACY")
    """

    # Lookup events
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    TIER_UNAVAILABLE = "tier_unavailable"
    EMBEDDING_FAILED = "embedding_failed"

    # Computation events
    COMPUTATION_STARTED = "computation_started"
    COMPUTATION_COMPLETED = "computation_completed"
    COMPUTATION_COALESCED = "computation_coalesced"
    COMPUTATION_FAILED = "computation_failed"
    NULL_RESULT = "null_result"

    # Population events
    POPULATION_FAILED = "population_failed"
    POPULATION_RETRIED = "population_retried"
    BACKFILL_FAILED = "backfill_failed"

    # Maintenance events
    CACHE_CLEARED = "cache_cleared"
    EXPIRED_PURGED = "expired_purged"
    CACHE_CLOSED = "cache_closed"
