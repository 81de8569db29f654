from __future__ import annotations

import threading
import time
from typing import Callable, Protocol


class RateLimiter(Protocol):
    def acquire(self) -> float: ...


class NoopRateLimiter:
    def acquire(self) -> float:
        return 0.0


class MinIntervalRateLimiter:
    """Token bucket of size one: at most one call per ``min_interval_seconds``.

    The first call passes immediately. ``acquire`` returns the time slept.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep_fn = sleep_fn
        self._last_acquired: float | None = None
        self._lock = threading.Lock()

    def acquire(self) -> float:
        with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_acquired is not None:
                ready_at = self._last_acquired + self.min_interval_seconds
                if now < ready_at:
                    waited = ready_at - now
                    self._sleep_fn(waited)
                    now = max(self._clock(), ready_at)
            self._last_acquired = now
            return waited
