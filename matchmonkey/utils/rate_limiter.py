"""Minimum-interval throttle for outbound service calls"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional


logger = logging.getLogger(__name__)


class RateLimiter:
    """Enforces a minimum spacing between consecutive calls.

    Callers await ``wait()`` immediately before each outbound request.
    The lock makes concurrent waiters queue up so spacing holds even when
    several coroutines share one limiter.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between two calls
            clock: Monotonic time source
            sleep: Coroutine used to pause
        """
        if min_interval < 0:
            raise ValueError("min_interval must not be negative")

        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock: Optional[asyncio.Lock] = None
        self.last_call: Optional[float] = None
        self.total_waits = 0
        self.total_wait_time = 0.0

    async def wait(self) -> None:
        """Pause until min_interval has elapsed since the previous call."""
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            if self.last_call is not None:
                elapsed = self._clock() - self.last_call
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    self.total_waits += 1
                    self.total_wait_time += delay
                    await self._sleep(delay)
            self.last_call = self._clock()

    def reset(self) -> None:
        self.last_call = None
        self.total_waits = 0
        self.total_wait_time = 0.0

    def get_stats(self) -> Dict[str, float]:
        """Get statistics about throttling.

        Returns:
            Dict with total_waits, total_wait_time and avg_wait_time
        """
        return {
            "total_waits": self.total_waits,
            "total_wait_time": self.total_wait_time,
            "avg_wait_time": self.total_wait_time / self.total_waits if self.total_waits else 0.0,
        }
