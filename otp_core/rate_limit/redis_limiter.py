"""
Redis Rate Limiter
==================
Redis-backed fixed-window rate limiter using a Lua script so the increment
and the comparison are a single atomic step.
"""

import time
from typing import Callable, Optional
import structlog
from redis.asyncio import Redis
from redis.exceptions import NoScriptError

from .models import RateLimitInfo

logger = structlog.get_logger(__name__)

# Lua script for an atomic fixed-window counter
FIXED_WINDOW_SCRIPT = """
local key = KEYS[1]
local rate = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local window_start = math.floor(now / window) * window
local reset_at = window_start + window
local bucket = key .. ':' .. window_start

local count = redis.call('INCR', bucket)
if count == 1 then
    redis.call('EXPIRE', bucket, window * 2)
end

if count > rate then
    return {0, 0, rate, reset_at, reset_at - now}
end

return {1, rate - count, rate, reset_at, 0}
"""


class RedisRateLimiter:
    """
    Redis-backed fixed-window rate limiter.

    Uses Lua scripts for atomic operations.
    """

    def __init__(
        self,
        redis_client: Redis,
        rate: int = 10,
        window: int = 600,
        fail_open: bool = True,
        timer: Callable[[], float] = time.time,
    ):
        """
        Args:
            redis_client: Async Redis client (redis.asyncio.Redis)
            rate: Requests per window
            window: Window size in seconds
            fail_open: Allow requests when Redis is unreachable
            timer: Time source (seconds since epoch)
        """
        self.redis = redis_client
        self.rate = rate
        self.window = window
        self.fail_open = fail_open
        self._timer = timer
        self._script_sha: Optional[str] = None

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimiter":
        """Build a limiter with its own client from a redis:// URL."""
        return cls(Redis.from_url(url), **kwargs)

    async def close(self) -> None:
        """Release the Redis connection pool."""
        await self.redis.aclose()

    async def _ensure_script(self) -> str:
        """Load Lua script into Redis if needed."""
        if self._script_sha is None:
            self._script_sha = await self.redis.script_load(FIXED_WINDOW_SCRIPT)
        return self._script_sha

    async def _run_script(self, key: str, now: int):
        script_sha = await self._ensure_script()
        try:
            return await self.redis.evalsha(script_sha, 1, key, self.rate, self.window, now)
        except NoScriptError:
            # Script cache was flushed (restart, failover, SCRIPT FLUSH)
            logger.warning("Rate limit script missing, reloading")
            self._script_sha = None
            script_sha = await self._ensure_script()
            return await self.redis.evalsha(script_sha, 1, key, self.rate, self.window, now)

    async def check(self, key: str) -> RateLimitInfo:
        """
        Count a request and decide whether it is allowed.

        Args:
            key: Rate limit key

        Returns:
            RateLimitInfo with decision
        """
        now = int(self._timer())

        try:
            result = await self._run_script(key, now)

            allowed, remaining, limit, reset_at, retry_after = result

            return RateLimitInfo(
                allowed=bool(int(allowed)),
                remaining=int(remaining),
                limit=int(limit),
                reset_at=int(reset_at),
                retry_after=int(retry_after) if int(retry_after) else None,
            )
        except Exception as e:
            logger.error("Rate limit check failed", error=str(e), fail_open=self.fail_open)
            window_start = (now // self.window) * self.window
            return RateLimitInfo(
                allowed=self.fail_open,
                remaining=self.rate if self.fail_open else 0,
                limit=self.rate,
                reset_at=window_start + self.window,
                retry_after=None if self.fail_open else self.window,
            )
