from __future__ import annotations

import time
from collections.abc import Callable

from devfusion.exceptions import RateLimitError


class AIRateLimiter:
    """Process-wide cooldown between consecutive AI invocations.

    A rejected call does not move the window; only accepted calls do.
    """

    def __init__(self, min_interval: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self._clock = clock
        self._last_call: float | None = None

    def acquire(self) -> None:
        now = self._clock()
        if self._last_call is not None:
            elapsed = now - self._last_call
            if elapsed < self.min_interval:
                raise RateLimitError(retry_after=self.min_interval - elapsed)
        self._last_call = now

    def reset(self) -> None:
        self._last_call = None
