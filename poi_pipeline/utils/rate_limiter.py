"""
Minimum-interval rate limiter for API calls.

One limiter instance is one clock: every request that goes through it,
whatever endpoint it targets, is spaced at least `min_interval` seconds
after the previous one. Thread-safe using a simple lock.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Serializes requests behind a single last-request timestamp."""

    def __init__(
        self,
        min_interval: float,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            min_interval: Minimum seconds between two requests.
            name: Human-readable name for logging.
            clock: Monotonic time source (injectable for tests).
            sleep: Sleep function (injectable for tests).
        """
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self.min_interval = min_interval
        self.name = name or f"limiter({min_interval}s)"
        self._clock = clock
        self._sleep = sleep
        self._last_request_time: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def last_request_time(self) -> Optional[float]:
        return self._last_request_time

    def wait(self) -> float:
        """
        Block until the next request is allowed.

        Returns:
            Seconds waited.
        """
        with self._lock:
            wait_time = 0.0
            if self._last_request_time is not None:
                elapsed = self._clock() - self._last_request_time
                wait_time = max(0.0, self.min_interval - elapsed)

            if wait_time > 0:
                logger.debug(f"[{self.name}] Rate limiting: waiting {wait_time:.2f}s")
                self._sleep(wait_time)

            self._last_request_time = self._clock()
            return wait_time

    def __enter__(self):
        self.wait()
        return self

    def __exit__(self, *args):
        pass
