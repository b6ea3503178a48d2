"""Fixed-window rate limiting on top of the cache backend.

Keys follow ``rl:<scope>:ip:<ip>`` and ``rl:<scope>:user:<user_id>``.
The limiter fails open: a broken backend never blocks a request.
"""
import logging
from typing import NamedTuple

from .backends import CacheBackend
from .config import RateLimitRule

logger = logging.getLogger("flowhaven.cache")


class RateLimitResult(NamedTuple):
    allowed: bool
    remaining: int


def ip_key(scope: str, ip: str) -> str:
    return f"rl:{scope}:ip:{ip}"


def user_key(scope: str, user_id: str) -> str:
    return f"rl:{scope}:user:{user_id}"


async def check_rate_limit(
    cache: CacheBackend,
    key: str,
    limit: int,
    window: int,
) -> RateLimitResult:
    """Count one hit for ``key`` and decide whether it is allowed.

    The first hit of a window sets the expiry to ``window`` seconds. A
    counter left without expiry (its first EXPIRE failed) is re-armed on
    the next hit.
    """
    try:
        current = await cache.incr(key)
        if current == 1 or await cache.ttl(key) == -1:
            await cache.expire(key, window)
    except Exception as err:
        logger.error("Rate limit backend error for %s: %s", key, err)
        return RateLimitResult(allowed=True, remaining=limit)
    return RateLimitResult(
        allowed=current <= limit,
        remaining=max(0, limit - current),
    )


async def check_rule(cache: CacheBackend, key: str, rule: RateLimitRule) -> RateLimitResult:
    return await check_rate_limit(cache, key, rule.limit, rule.window)
