"""Per-user read-through cache and rate limiting."""

from .config import CacheConfig, RateLimitRule, ENTITIES, DEFAULT_TTL
from .backends import (
    CacheBackend,
    MemoryBackend,
    RedisBackend,
    FallbackCache,
    ConnectionState,
    create_cache,
)
from .query import cache_key, cached_query, invalidate_entity
from .ratelimit import RateLimitResult, check_rate_limit

__all__ = [
    "CacheConfig",
    "RateLimitRule",
    "ENTITIES",
    "DEFAULT_TTL",
    "CacheBackend",
    "MemoryBackend",
    "RedisBackend",
    "FallbackCache",
    "ConnectionState",
    "create_cache",
    "cache_key",
    "cached_query",
    "invalidate_entity",
    "RateLimitResult",
    "check_rate_limit",
]
