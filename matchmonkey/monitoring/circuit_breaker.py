"""Circuit breaker for external service families"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str):
        super().__init__(f"Circuit breaker {name} is OPEN")
        self.name = name


class CircuitBreaker:
    """Stops calling a service after repeated failures.

    After failure_threshold consecutive failures the circuit opens and
    calls are rejected for timeout seconds; the next call then runs as a
    half-open probe that either closes or re-opens the circuit.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        timeout: float = 60,
        half_open_attempts: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            name: Name of the circuit for logging
            failure_threshold: Number of failures before opening circuit
            timeout: Seconds to wait before attempting recovery
            half_open_attempts: Number of successful calls needed to close circuit
            clock: Time source
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.half_open_attempts = half_open_attempts
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await a coroutine function through the circuit breaker.

        Args:
            func: Coroutine function to call
            *args: Positional arguments for function
            **kwargs: Keyword arguments for function

        Returns:
            Function result

        Raises:
            CircuitOpenError: If the circuit is open
            Exception: Whatever func raises
        """
        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to_half_open()
            else:
                raise CircuitOpenError(self.name)

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt reset"""
        if self.last_failure_time is None:
            return False
        return self._clock() - self.last_failure_time >= self.timeout

    def _transition_to_half_open(self) -> None:
        logger.info(f"Circuit breaker {self.name}: OPEN -> HALF_OPEN (attempting recovery)")
        self.state = CircuitState.HALF_OPEN
        self.success_count = 0

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.half_open_attempts:
                self._transition_to_closed()
        elif self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            self._transition_to_open()
        elif self.state == CircuitState.CLOSED:
            if self.failure_count >= self.failure_threshold:
                self._transition_to_open()

    def _transition_to_open(self) -> None:
        logger.warning(
            f"Circuit breaker {self.name}: {self.state.value} -> OPEN "
            f"({self.failure_count} failures)"
        )
        self.state = CircuitState.OPEN

    def _transition_to_closed(self) -> None:
        logger.info(f"Circuit breaker {self.name}: HALF_OPEN -> CLOSED (recovered)")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state"""
        logger.info(f"Circuit breaker {self.name}: Manual reset to CLOSED")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
