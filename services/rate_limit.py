"""
Fixed-interval rate limiter used to debounce form submissions.
"""

import time
from typing import Callable, Optional

from services.errors import RateLimitedError


class SubmitRateLimiter:
    """
    Enforces a minimum gap between consecutive triggers of one control.

    A rejected attempt is not recorded, so the window is measured from the
    last accepted attempt.
    """

    def __init__(self, min_interval: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self._clock = clock
        self._last: Optional[float] = None

    def try_acquire(self) -> bool:
        now = self._clock()
        if self._last is not None and now - self._last < self.min_interval:
            return False
        self._last = now
        return True

    def acquire(self) -> None:
        """Record an attempt or raise RateLimitedError if it is premature."""
        if not self.try_acquire():
            raise RateLimitedError()

    def reset(self) -> None:
        self._last = None
