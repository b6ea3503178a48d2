"""
Tests for the fixed-window rate limiter.

Tests cover:
- Allow up to the limit, reject beyond it, reset after the window
- First hit establishes the window expiry, a lost expiry is re-armed
- Fail-open on a broken backend
"""
from flowhaven_session.cache.backends import CacheBackend, MemoryBackend
from flowhaven_session.cache.config import RateLimitRule
from flowhaven_session.cache.ratelimit import (
    RateLimitResult,
    check_rate_limit,
    check_rule,
    ip_key,
    user_key,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ExplodingBackend(CacheBackend):
    async def _boom(self, *args, **kwargs):
        raise ConnectionError("backend down")

    get = set = delete = keys = incr = expire = ttl = _boom


class RecordingBackend(MemoryBackend):
    def __init__(self):
        super().__init__()
        self.expires = []

    async def expire(self, key, seconds):
        self.expires.append((key, seconds))
        return await super().expire(key, seconds)


class ExpireFailsOnce(MemoryBackend):
    def __init__(self, clock):
        super().__init__(clock=clock)
        self.failed = False

    async def expire(self, key, seconds):
        if not self.failed:
            self.failed = True
            raise TimeoutError("expire timed out")
        return await super().expire(key, seconds)


class TestWindow:

    async def test_limit_then_reset(self):
        clock = FakeClock()
        cache = MemoryBackend(clock=clock)
        results = [await check_rate_limit(cache, "rl:test", 3, 60) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

        clock.now += 60
        result = await check_rate_limit(cache, "rl:test", 3, 60)
        assert result == RateLimitResult(allowed=True, remaining=2)

    async def test_expiry_set_once(self):
        cache = RecordingBackend()
        for _ in range(5):
            await check_rate_limit(cache, "rl:once", 10, 30)
        assert cache.expires == [("rl:once", 30)]

    async def test_lost_expiry_is_rearmed(self):
        clock = FakeClock()
        cache = ExpireFailsOnce(clock)
        results = [await check_rate_limit(cache, "rl:lost", 3, 60) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert await cache.ttl("rl:lost") == 60

        clock.now += 60
        result = await check_rate_limit(cache, "rl:lost", 3, 60)
        assert result == RateLimitResult(allowed=True, remaining=2)

    async def test_keys_are_independent(self):
        cache = MemoryBackend()
        await check_rate_limit(cache, ip_key("tasks", "1.2.3.4"), 1, 60)
        assert (await check_rate_limit(cache, ip_key("tasks", "1.2.3.4"), 1, 60)).allowed is False
        assert (await check_rate_limit(cache, ip_key("tasks", "5.6.7.8"), 1, 60)).allowed is True
        assert (await check_rate_limit(cache, user_key("tasks", "U"), 1, 60)).allowed is True

    async def test_check_rule(self):
        cache = MemoryBackend()
        rule = RateLimitRule(limit=1, window=10)
        assert (await check_rule(cache, "rl:r", rule)).allowed is True
        assert (await check_rule(cache, "rl:r", rule)).allowed is False


class TestFailOpen:

    async def test_broken_backend_allows(self, caplog):
        cache = ExplodingBackend()
        for _ in range(10):
            result = await check_rate_limit(cache, "rl:test", 3, 60)
            assert result == RateLimitResult(allowed=True, remaining=3)
        assert "Rate limit backend error" in caplog.text


class TestKeys:

    def test_key_scheme(self):
        assert ip_key("auth", "10.0.0.1") == "rl:auth:ip:10.0.0.1"
        assert user_key("tasks", "U") == "rl:tasks:user:U"
