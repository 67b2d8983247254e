"""
Rate Limiting Module
====================
Fixed-window per-client limiters with in-memory and Redis backends.
"""

from typing import Protocol

from .models import RateLimitResult, RateLimitInfo, rate_limit_key
from .in_memory import InMemoryRateLimiter
from .redis_limiter import RedisRateLimiter, FIXED_WINDOW_SCRIPT


class RateLimiter(Protocol):
    async def check(self, key: str) -> RateLimitInfo:
        ...


__all__ = [
    # Models
    "RateLimitResult",
    "RateLimitInfo",
    "rate_limit_key",
    # Limiters
    "RateLimiter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    # Scripts
    "FIXED_WINDOW_SCRIPT",
]
