"""Circuit breaker shared by the Redis and Qdrant adapters."""

import logging
import time

logger = logging.getLogger(__name__)


class CacheCircuitBreaker:
    """Circuit breaker for cache backend failures with automatic recovery.

    States:
        closed: Normal operation, backend requests allowed
        open: Circuit tripped, tier reported unavailable without a request
        half_open: Testing recovery, requests allowed until one succeeds or fails

    Pattern:
        closed -> (consecutive failures >= threshold) -> open
        open -> (timeout expired) -> half_open
        half_open -> (success) -> closed
        half_open -> (failure) -> open
    """

    def __init__(self, name: str, failure_threshold: int = 5, timeout: float = 60):
        """Initialize circuit breaker.

        Args:
            name: Backend name used in log messages (e.g. "redis", "qdrant")
            failure_threshold: Consecutive failures before opening circuit
            timeout: Seconds before attempting recovery from open state
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.state = "closed"
        self.last_failure_time: float | None = None

    def on_success(self) -> None:
        """Record successful operation."""
        if self.state == "half_open":
            logger.info(f"Circuit breaker for {self.name} recovered, closing circuit")
            self.state = "closed"
        self.failure_count = 0

    def on_failure(self) -> None:
        """Record failed operation and potentially open circuit."""
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            if self.state != "open":
                logger.warning(
                    f"Circuit breaker for {self.name} opened after "
                    f"{self.failure_count} failures"
                )
            self.state = "open"

    def can_attempt(self) -> bool:
        """Check if a backend operation should be attempted.

        Returns:
            True if operation should proceed, False if circuit open
        """
        if self.state == "closed":
            return True

        if self.state == "open":
            if (
                self.last_failure_time is not None
                and time.monotonic() - self.last_failure_time > self.timeout
            ):
                logger.info(
                    f"Circuit breaker for {self.name} timeout expired, entering half-open state"
                )
                self.state = "half_open"
                return True
            return False

        return True

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        self.state = "closed"
        self.failure_count = 0
        self.last_failure_time = None
