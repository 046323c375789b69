"""Per-client fixed-window request limiting for public endpoints.

Counters live in process memory, so with several instances the effective
limit is approximate; that is acceptable for abuse mitigation and never
touches inventory state.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

_PURGE_THRESHOLD = 10_000


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: float  # epoch seconds when the current window ends

    def retry_after(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(1, math.ceil(self.reset - now))


class FixedWindowRateLimiter:
    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.time):
        if limit < 1 or window_seconds <= 0:
            raise ValueError("limit and window must be positive")
        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        # { client_key: (window_start, count) }
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self._window]
        for k in expired:
            del self._windows[k]

    def limit(self, client_key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            if len(self._windows) > _PURGE_THRESHOLD:
                self._purge(now)
            start, count = self._windows.get(client_key, (now, 0))
            if now - start >= self._window:
                start, count = now, 0
            reset = start + self._window
            if count >= self._limit:
                return RateLimitResult(False, self._limit, 0, reset)
            count += 1
            self._windows[client_key] = (start, count)
            return RateLimitResult(True, self._limit, self._limit - count, reset)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
