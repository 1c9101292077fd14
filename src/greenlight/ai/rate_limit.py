"""Fixed-interval pacing for bursts of language-model calls."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class FixedIntervalLimiter:
    """Spaces successive ``wait()`` returns at least *interval* seconds apart.

    Cooperative: callers invoke ``wait()`` before each paced call. Safe to
    share between threads.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._next_allowed: float | None = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """Block until the next slot is available. Returns the seconds slept."""
        with self._lock:
            now = self._clock()
            delay = 0.0
            if self._next_allowed is not None and now < self._next_allowed:
                delay = self._next_allowed - now
                self._sleep(delay)
                now += delay
            self._next_allowed = now + self.interval
            return delay
