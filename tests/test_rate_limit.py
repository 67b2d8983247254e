"""
Tests for rate limiting
=======================
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import NoScriptError

from otp_core.rate_limit import (
    FIXED_WINDOW_SCRIPT,
    InMemoryRateLimiter,
    RateLimitResult,
    RedisRateLimiter,
    rate_limit_key,
)


class FakeTimer:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestInMemoryRateLimiter:
    @pytest.mark.asyncio
    async def test_in_memory_rate_limiter(self):
        """Should enforce rate limits."""
        limiter = InMemoryRateLimiter(rate=5, window=60)

        # First 5 should pass
        for i in range(5):
            result = await limiter.check("user1")
            assert result.allowed is True
            assert result.remaining == 4 - i

        # 6th should fail
        result = await limiter.check("user1")
        assert result.allowed is False
        assert result.result is RateLimitResult.BLOCKED
        assert result.retry_after >= 1

    @pytest.mark.asyncio
    async def test_rate_limit_separate_keys(self):
        """Different keys should have separate limits."""
        limiter = InMemoryRateLimiter(rate=2, window=60)

        await limiter.check("user1")
        await limiter.check("user1")

        # user1 is at limit
        assert (await limiter.check("user1")).allowed is False

        # user2 should still be allowed
        assert (await limiter.check("user2")).allowed is True

    @pytest.mark.asyncio
    async def test_window_rollover_resets_count(self):
        timer = FakeTimer(600.0)
        limiter = InMemoryRateLimiter(rate=1, window=600, timer=timer)

        assert (await limiter.check("ip")).allowed is True
        assert (await limiter.check("ip")).allowed is False

        timer.now += 600
        assert (await limiter.check("ip")).allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_checks_never_exceed_rate(self):
        limiter = InMemoryRateLimiter(rate=10, window=60)

        results = await asyncio.gather(*(limiter.check("hot") for _ in range(50)))

        assert sum(1 for r in results if r.allowed) == 10

    @pytest.mark.asyncio
    async def test_reset(self):
        limiter = InMemoryRateLimiter(rate=1, window=60)
        await limiter.check("k")
        limiter.reset("k")

        assert (await limiter.check("k")).allowed is True


class TestRedisRateLimiter:
    def _redis(self, evalsha_result=None, evalsha_error=None):
        redis = AsyncMock()
        redis.script_load.return_value = "sha-1"
        if evalsha_error:
            redis.evalsha.side_effect = evalsha_error
        else:
            redis.evalsha.return_value = evalsha_result
        return redis

    @pytest.mark.asyncio
    async def test_allowed(self):
        redis = self._redis([1, 9, 10, 1200, 0])
        limiter = RedisRateLimiter(redis, rate=10, window=600, timer=FakeTimer(1000))

        info = await limiter.check("ratelimit:otp:ip")

        assert info.allowed is True
        assert info.remaining == 9
        assert info.retry_after is None
        redis.script_load.assert_awaited_once_with(FIXED_WINDOW_SCRIPT)
        redis.evalsha.assert_awaited_once_with("sha-1", 1, "ratelimit:otp:ip", 10, 600, 1000)

    @pytest.mark.asyncio
    async def test_blocked(self):
        redis = self._redis([0, 0, 10, 1200, 200])
        limiter = RedisRateLimiter(redis, rate=10, window=600)

        info = await limiter.check("k")

        assert info.allowed is False
        assert info.retry_after == 200

    @pytest.mark.asyncio
    async def test_script_loaded_once(self):
        redis = self._redis([1, 9, 10, 1200, 0])
        limiter = RedisRateLimiter(redis)

        await limiter.check("k")
        await limiter.check("k")

        assert redis.script_load.await_count == 1

    @pytest.mark.asyncio
    async def test_fail_open_on_redis_error(self):
        limiter = RedisRateLimiter(self._redis(evalsha_error=ConnectionError("down")), rate=10)

        assert (await limiter.check("k")).allowed is True

    @pytest.mark.asyncio
    async def test_fail_closed_when_configured(self):
        limiter = RedisRateLimiter(
            self._redis(evalsha_error=ConnectionError("down")), rate=10, window=60, fail_open=False
        )

        info = await limiter.check("k")

        assert info.allowed is False
        assert info.retry_after == 60


def test_rate_limit_key():
    assert rate_limit_key("otp", "203.0.113.7") == "ratelimit:otp:203.0.113.7"


class TestRedisScriptReload:
    @pytest.mark.asyncio
    async def test_reloads_script_after_cache_flush(self):
        redis = AsyncMock()
        redis.script_load.side_effect = ["sha-1", "sha-2"]
        redis.evalsha.side_effect = [
            [1, 0, 1, 1200, 0],
            NoScriptError("No matching script"),
            [0, 0, 1, 1200, 200],
        ]
        limiter = RedisRateLimiter(redis, rate=1, window=600, timer=FakeTimer(1000))

        assert (await limiter.check("k")).allowed is True
        info = await limiter.check("k")

        assert info.allowed is False
        assert info.retry_after == 200
        assert redis.script_load.await_count == 2
        assert redis.evalsha.await_args.args[0] == "sha-2"

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        redis = AsyncMock()
        limiter = RedisRateLimiter(redis)

        await limiter.close()

        redis.aclose.assert_awaited_once()
