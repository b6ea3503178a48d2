"""
Read-through cache for per-user entity queries.

Keys:
    <entity>:<user_id>                      non-paginated entities
    <entity>:<user_id>:<limit>:<offset>     paginated entities

A cache failure is a cache miss, never an error; the query function is the
source of truth and its errors propagate untouched.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import orjson

from .backends import CacheBackend
from .config import CacheConfig, ENTITIES

logger = logging.getLogger("flowhaven.cache")


def cache_key(
    entity: str,
    user_id: str,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> str:
    if limit is None:
        return f"{entity}:{user_id}"
    return f"{entity}:{user_id}:{limit}:{offset or 0}"


async def cached_query(
    cache: CacheBackend,
    entity: str,
    key: str,
    query_fn: Callable[[], Awaitable[list[Any]]],
    config: Optional[CacheConfig] = None,
) -> list[Any]:
    """Return cached rows for ``key``, or run ``query_fn`` and cache its result.

    Args:
        cache: Cache backend.
        entity: Entity name, selects the TTL.
        key: Full cache key.
        query_fn: Coroutine function returning fresh rows.
        config: Cache configuration (TTLs).

    Returns:
        Rows from cache or from ``query_fn``.
    """
    config = config or CacheConfig()
    try:
        cached = await cache.get(key)
        if cached:
            return orjson.loads(cached)
    except Exception as err:
        logger.error("Cache read error (%s): %s", entity, err)

    result = await query_fn()

    try:
        await cache.set(key, orjson.dumps(result).decode("utf-8"), config.ttl_for(entity))
    except Exception as err:
        logger.error("Cache write error (%s): %s", entity, err)
    return result


async def invalidate_entity(cache: CacheBackend, entity: str, user_id: str) -> int:
    """Drop every cached page of ``entity`` for ``user_id``.

    Returns:
        Number of keys removed (0 when the cache is unavailable).
    """
    if entity not in ENTITIES:
        raise ValueError(f"Unknown entity: {entity}")
    try:
        keys = set(await cache.keys(f"{entity}:{user_id}:*"))
        keys.add(cache_key(entity, user_id))
        removed = await cache.delete(*sorted(keys))
    except Exception as err:
        logger.error("Cache invalidation error (%s): %s", entity, err)
        return 0
    logger.debug("Invalidated %d %s key(s) for user=%s", removed, entity, user_id)
    return removed
