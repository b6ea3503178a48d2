"""
Cache backends: one async key-value interface, two stores, one breaker.

- ``MemoryBackend``: in-process store, lives as long as the process
- ``RedisBackend``: shared store over ``redis.asyncio``
- ``FallbackCache``: wraps a primary backend and demotes to an in-process
  store after a bounded number of connect attempts or consecutive failures

Callers only ever see ``CacheBackend``; a dead Redis must not make them throw.
"""
import re
import math
import time
import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional

from redis import asyncio as aioredis

from .config import CacheConfig

logger = logging.getLogger("flowhaven.cache")


class CacheBackend(ABC):
    """Minimal async key-value contract used by the cache and rate limiter."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        ...

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        ...

    @abstractmethod
    async def incr(self, key: str) -> int:
        ...

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> bool:
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Seconds left on ``key``; -1 without expiry, -2 if missing."""
        ...

    async def close(self) -> None:
        return None


def _glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a ``*``-only glob into an anchored regex."""
    return re.compile(
        "^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$"
    )


class MemoryBackend(CacheBackend):
    """In-process store with lazy expiry.

    Args:
        clock: Monotonic time source in seconds; injectable for tests.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._store: dict[str, tuple[str, Optional[float]]] = {}

    def _alive(self, key: str) -> Optional[tuple[str, Optional[float]]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._store[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        entry = self._alive(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        self._store[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def keys(self, pattern: str) -> list[str]:
        regex = _glob_to_regex(pattern)
        return [
            key for key in list(self._store)
            if self._alive(key) and regex.match(key)
        ]

    async def incr(self, key: str) -> int:
        entry = self._alive(key)
        try:
            current = int(entry[0]) if entry else 0
        except ValueError as err:
            raise ValueError(f"value at {key} is not an integer") from err
        expires_at = entry[1] if entry else None
        self._store[key] = (str(current + 1), expires_at)
        return current + 1

    async def expire(self, key: str, seconds: int) -> bool:
        entry = self._alive(key)
        if entry is None:
            return False
        self._store[key] = (entry[0], self._clock() + seconds)
        return True

    async def ttl(self, key: str) -> int:
        entry = self._alive(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return max(1, math.ceil(entry[1] - self._clock()))

    def __len__(self) -> int:
        return len(self._store)


class RedisBackend(CacheBackend):
    """Shared store over ``redis.asyncio``."""

    name = "redis"

    def __init__(self, url: str, socket_timeout: float = 1.0, client: Any = None):
        self._url = url
        self._redis = client or aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            await self._redis.set(key, value, ex=ttl)
        else:
            await self._redis.set(key, value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._redis.delete(*keys))

    async def keys(self, pattern: str) -> list[str]:
        return [key async for key in self._redis.scan_iter(match=pattern)]

    async def incr(self, key: str) -> int:
        return int(await self._redis.incr(key))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._redis.expire(key, seconds))

    async def ttl(self, key: str) -> int:
        return int(await self._redis.ttl(key))

    async def close(self) -> None:
        await self._redis.aclose()


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FALLBACK = "fallback"


# Answers for a failed primary operation while still connected.
_UNAVAILABLE: dict[str, Callable[[], Any]] = {
    "get": lambda: None,
    "set": lambda: None,
    "keys": list,
    "delete": int,
    "expire": bool,
}


class FallbackCache(CacheBackend):
    """Circuit breaker in front of a shared backend.

    While connected, a failing operation is counted and answered as a miss
    (``get`` returns None, ``set`` is dropped). The in-process store is only
    read or written after demotion.
    ``max_failures`` consecutive failures, or a failed ``connect()``, demote
    the cache to the in-process store for the rest of the process lifetime.
    Counter operations (``incr``, ``ttl``) re-raise instead.
    """

    name = "fallback"

    def __init__(
        self,
        primary: CacheBackend,
        fallback: Optional[CacheBackend] = None,
        max_failures: int = 3,
        reconnect_attempts: int = 3,
        backoff: Callable[[int], float] = lambda n: min(n * 0.2, 2.0),
    ):
        self._primary = primary
        self._fallback = fallback or MemoryBackend()
        self._max_failures = max_failures
        self._reconnect_attempts = reconnect_attempts
        self._backoff = backoff
        self._failures = 0
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def active(self) -> CacheBackend:
        if self._state is ConnectionState.CONNECTED:
            return self._primary
        return self._fallback

    def _demote(self, reason: str) -> None:
        if self._state is not ConnectionState.FALLBACK:
            logger.error(
                "Cache backend %s unavailable (%s), falling back to in-memory store",
                self._primary.name, reason,
            )
        self._state = ConnectionState.FALLBACK

    async def connect(self) -> ConnectionState:
        """Ping the primary up to ``reconnect_attempts`` times."""
        if self._state in (ConnectionState.CONNECTED, ConnectionState.FALLBACK):
            return self._state
        self._state = ConnectionState.CONNECTING
        ping = getattr(self._primary, "ping", None)
        for attempt in range(1, self._reconnect_attempts + 1):
            try:
                if ping is not None:
                    await ping()
                self._state = ConnectionState.CONNECTED
                self._failures = 0
                logger.info("Cache backend %s connected", self._primary.name)
                return self._state
            except Exception as err:
                logger.warning(
                    "Cache connect attempt %d/%d failed: %s",
                    attempt, self._reconnect_attempts, err,
                )
                if attempt < self._reconnect_attempts:
                    await asyncio.sleep(self._backoff(attempt))
        self._demote(f"{self._reconnect_attempts} connect attempts failed")
        return self._state

    async def _call(self, method: str, *args, **kwargs):
        if self._state is ConnectionState.DISCONNECTED:
            await self.connect()
        if self._state is not ConnectionState.CONNECTED:
            return await getattr(self._fallback, method)(*args, **kwargs)
        try:
            result = await getattr(self._primary, method)(*args, **kwargs)
        except Exception as err:
            self._failures += 1
            logger.warning(
                "Cache %s failed (%d/%d): %s",
                method, self._failures, self._max_failures, err,
            )
            if self._failures >= self._max_failures:
                self._demote(f"{self._failures} consecutive failures")
                return await getattr(self._fallback, method)(*args, **kwargs)
            if method not in _UNAVAILABLE:
                raise
            return _UNAVAILABLE[method]()
        self._failures = 0
        return result

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._call("set", key, value, ttl)

    async def delete(self, *keys: str) -> int:
        return await self._call("delete", *keys)

    async def keys(self, pattern: str) -> list[str]:
        return await self._call("keys", pattern)

    async def incr(self, key: str) -> int:
        return await self._call("incr", key)

    async def expire(self, key: str, seconds: int) -> bool:
        return await self._call("expire", key, seconds)

    async def ttl(self, key: str) -> int:
        return await self._call("ttl", key)

    async def close(self) -> None:
        try:
            await self._primary.close()
        except Exception as err:
            logger.warning("Error closing cache backend: %s", err)


def create_cache(config: Optional[CacheConfig] = None) -> CacheBackend:
    """Build the cache backend for ``config``.

    Redis behind a breaker when ``redis_url`` is set, in-process otherwise.
    """
    config = config or CacheConfig.from_env()
    if not config.redis_url:
        logger.info("REDIS_URL not set, using in-memory cache")
        return MemoryBackend()
    return FallbackCache(
        RedisBackend(config.redis_url, socket_timeout=config.socket_timeout),
        max_failures=config.max_failures,
        reconnect_attempts=config.reconnect_attempts,
    )
