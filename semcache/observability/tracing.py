"""OpenTelemetry tracing utilities."""

import asyncio
import functools
from collections.abc import Callable
from typing import Any, TypeVar

from opentelemetry import trace

from semcache.core.config import settings

F = TypeVar("F", bound=Callable[..., Any])


def get_tracer(name: str = "semcache") -> trace.Tracer:
    """Get a tracer (no-op if no provider is installed)."""
    return trace.get_tracer(name)


def trace_operation(
    operation_name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[F], F]:
    """Decorator to trace a coroutine or function.

    Returns the function unchanged when tracing is disabled.

    Example:
        >>> @trace_operation("semcache.resolve")
        ... async def resolve(self, content: str) -> CacheLookupResult:
        ...     ...
    """

    def decorator(func: F) -> F:
        if not settings.otel_enabled or not settings.otel_traces_enabled:
            return func

        span_name = operation_name or func.__name__

        def _start(span: trace.Span) -> None:
            for key, value in (attributes or {}).items():
                span.set_attribute(key, value)
            span.set_attribute("function.name", func.__name__)
            span.set_attribute("function.module", func.__module__)

        def _fail(span: trace.Span, e: Exception) -> None:
            span.set_status(trace.Status(trace.StatusCode.ERROR, description=str(e)))
            span.record_exception(e)

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with get_tracer(func.__module__).start_as_current_span(span_name) as span:
                _start(span)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _fail(span, e)
                    raise
                span.set_status(trace.Status(trace.StatusCode.OK))
                return result

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with get_tracer(func.__module__).start_as_current_span(span_name) as span:
                _start(span)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    _fail(span, e)
                    raise
                span.set_status(trace.Status(trace.StatusCode.OK))
                return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator
