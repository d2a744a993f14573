"""Minimum-interval pacing between successive outbound requests."""
from __future__ import annotations

import time
from typing import Callable

DEFAULT_MIN_REQUEST_INTERVAL = 0.4


class RateLimiter:
    """Block until ``min_interval`` seconds have elapsed since a request began.

    The interval is measured from the start of the request, so slow responses
    eat into the wait and the total period per request never drops below
    ``min_interval``. ``clock`` must be monotonic; ``sleep`` may return early
    (the extractor passes ``threading.Event.wait`` so cancellation wakes it).
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_REQUEST_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep

    def now(self) -> float:
        return self._clock()

    def remaining(self, started_at: float, min_interval: float | None = None) -> float:
        interval = self.min_interval if min_interval is None else min_interval
        return max(0.0, interval - (self._clock() - started_at))

    def wait(self, started_at: float, min_interval: float | None = None) -> float:
        """Sleep out the rest of the interval and return the requested delay."""

        delay = self.remaining(started_at, min_interval)
        if delay > 0:
            self._sleep(delay)
        return delay
