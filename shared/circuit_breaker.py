"""
Circuit breaker guarding calls to the persistent backing store.
"""

import time
from enum import Enum
from typing import Dict, Any, Callable, Awaitable, Optional, Tuple

from shared.errors import BackingStoreUnavailable
from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, calls blocked
    HALF_OPEN = "half_open"  # Probing whether the store recovered


class CircuitBreakerOpenException(BackingStoreUnavailable):
    """Raised instead of calling the store while the circuit is open."""

    def __init__(self, name: str):
        super().__init__(name, "circuit breaker is open")


class CircuitBreaker:
    """Circuit breaker implementation."""

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 30.0,
                 name: str = "default",
                 ignored_exceptions: Tuple[type, ...] = (),
                 clock: Optional[Callable[[], float]] = None):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self.ignored_exceptions = ignored_exceptions
        self.logger = get_logger(f"permissions.circuit_breaker.{name}")
        self._clock = clock or time.monotonic

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    def _should_attempt_call(self) -> bool:
        if self._state != CircuitBreakerState.OPEN:
            return True
        if (self._clock() - self._last_failure_time) >= self.recovery_timeout:
            self._state = CircuitBreakerState.HALF_OPEN
            self.logger.info("Circuit breaker transitioning to half-open")
            return True
        return False

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute func with circuit breaker protection."""
        if not self._should_attempt_call():
            raise CircuitBreakerOpenException(self.name)

        try:
            result = await func(*args, **kwargs)
        except self.ignored_exceptions:
            # Caller errors, not store health
            raise
        except Exception:
            self._record_failure()
            raise

        if self._state == CircuitBreakerState.HALF_OPEN:
            self.logger.info("Circuit breaker reset to CLOSED after successful call")
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        return result

    def _record_failure(self):
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitBreakerState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitBreakerState.OPEN
            self.logger.warning(
                "Circuit breaker opened due to failures",
                failure_count=self._failure_count,
                threshold=self.failure_threshold
            )

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "last_failure_time": self._last_failure_time,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout
        }
