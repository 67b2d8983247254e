"""
In-Memory Rate Limiter
======================
Fixed-window request counter per client for single-process deployments
and tests.
"""

import threading
import time
from typing import Callable, Dict, Tuple

from .models import RateLimitInfo


class InMemoryRateLimiter:
    """
    Fixed-window rate limiter held in process memory.

    The increment and the comparison happen under one lock, so concurrent
    callers can never both take the last slot. Use RedisRateLimiter when
    more than one process serves traffic.
    """

    def __init__(self, rate: int = 10, window: int = 600, timer: Callable[[], float] = time.time):
        """
        Args:
            rate: Number of requests allowed per window
            window: Window size in seconds
            timer: Time source (seconds since epoch)
        """
        self.rate = rate
        self.window = window
        self._timer = timer
        self._buckets: Dict[str, Tuple[int, int]] = {}
        self._lock = threading.Lock()

    async def check(self, key: str) -> RateLimitInfo:
        """
        Count a request and decide whether it is allowed.

        Args:
            key: Unique identifier (e.g., client IP)

        Returns:
            RateLimitInfo with decision and quota
        """
        now = self._timer()
        window_start = int(now // self.window) * self.window
        reset_at = window_start + self.window

        with self._lock:
            saved_window, count = self._buckets.get(key, (window_start, 0))
            if saved_window < window_start:
                count = 0

            if count >= self.rate:
                self._buckets[key] = (window_start, count)
                return RateLimitInfo(
                    allowed=False,
                    remaining=0,
                    limit=self.rate,
                    reset_at=reset_at,
                    retry_after=max(1, reset_at - int(now)),
                )

            count += 1
            self._buckets[key] = (window_start, count)
            self._prune(window_start)

        return RateLimitInfo(
            allowed=True,
            remaining=self.rate - count,
            limit=self.rate,
            reset_at=reset_at,
        )

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def _prune(self, window_start: int) -> None:
        """Drop buckets from past windows (caller holds the lock)."""
        if len(self._buckets) < 1024:
            return
        stale = [k for k, (w, _) in self._buckets.items() if w < window_start]
        for k in stale:
            del self._buckets[k]
