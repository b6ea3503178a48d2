"""
EntityRepository — Per-user reads and writes for FlowHaven entities.

Every read is composed as:
    user resolution (auth rate limit) → read-burst check → cached query

Writes hit the persistence layer first and invalidate the user's cached
pages for that entity afterwards. Rows come back exactly as stored;
field decryption happens on the client side with a FieldCodec.
"""
import asyncio
import logging
from typing import Any, Optional

from aiohttp import web

from .cache.backends import CacheBackend
from .cache.config import CacheConfig, ENTITIES
from .cache.query import cache_key, cached_query, invalidate_entity
from .cache.ratelimit import check_rule, ip_key, user_key
from .identity import RequestIdentity
from .persistence import Persistence, TABLES

logger = logging.getLogger("flowhaven.data")

EMPTY_DASHBOARD = ("tasks", "habits", "pomodoro_sessions")
EMPTY_GRAPH = ("tasks", "habits", "goals")
EMPTY_ANALYTICS = ("tasks", "habits", "goals", "journal_entries", "pomodoro_sessions")


class EntityRepository:
    """Cached, rate-limited access to a user's entities."""

    def __init__(
        self,
        cache: CacheBackend,
        persistence: Persistence,
        identity: Optional[RequestIdentity] = None,
        config: Optional[CacheConfig] = None,
    ):
        self._cache = cache
        self._db = persistence
        self._identity = identity or RequestIdentity()
        self._config = config or CacheConfig()

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    async def get_user_id(self, request: web.Request) -> Optional[str]:
        """Resolve the caller, behind the per-IP auth limit."""
        ip = self._identity.get_ip(request)
        guard = await check_rule(self._cache, ip_key("auth", ip), self._config.auth_ip)
        if not guard.allowed:
            logger.warning("Auth rate limit exceeded for ip=%s", ip)
            return None
        return await self._identity.get_user_id(request)

    async def allow_read_burst(self, request: web.Request, scope: str, user_id: Optional[str]) -> bool:
        ip = self._identity.get_ip(request)
        ip_guard = await check_rule(self._cache, ip_key(scope, ip), self._config.read_ip)
        if not ip_guard.allowed:
            logger.warning("Read rate limit exceeded: scope=%s ip=%s", scope, ip)
            return False
        if user_id:
            user_guard = await check_rule(
                self._cache, user_key(scope, user_id), self._config.read_user,
            )
            if not user_guard.allowed:
                logger.warning("Read rate limit exceeded: scope=%s user=%s", scope, user_id)
                return False
        return True

    async def _authorize(self, request: web.Request, scope: str) -> Optional[str]:
        user_id = await self.get_user_id(request)
        if not user_id:
            return None
        if not await self.allow_read_burst(request, scope, user_id):
            return None
        return user_id

    # ------------------------------------------------------------------
    # Core queries (user already resolved)
    # ------------------------------------------------------------------

    def _query(self, entity: str, user_id: str, limit: Optional[int] = None, offset: int = 0):
        table, order_by = TABLES[entity]
        key = cache_key(entity, user_id, limit, offset)

        async def query_fn() -> list[dict]:
            return await self._db.select(table, user_id, order_by, offset, limit)

        return cached_query(self._cache, entity, key, query_fn, self._config)

    # ------------------------------------------------------------------
    # Public reads
    # ------------------------------------------------------------------

    async def fetch_tasks(self, request: web.Request, limit: int = 50, offset: int = 0) -> list[dict]:
        user_id = await self._authorize(request, "tasks")
        if not user_id:
            return []
        return await self._query("tasks", user_id, limit, offset)

    async def fetch_habits(self, request: web.Request) -> list[dict]:
        user_id = await self._authorize(request, "habits")
        if not user_id:
            return []
        return await self._query("habits", user_id)

    async def fetch_goals(self, request: web.Request) -> list[dict]:
        user_id = await self._authorize(request, "goals")
        if not user_id:
            return []
        return await self._query("goals", user_id)

    async def fetch_journal(self, request: web.Request, limit: int = 30, offset: int = 0) -> list[dict]:
        user_id = await self._authorize(request, "journal")
        if not user_id:
            return []
        return await self._query("journal", user_id, limit, offset)

    async def fetch_pomodoro(self, request: web.Request, limit: int = 50, offset: int = 0) -> list[dict]:
        user_id = await self._authorize(request, "pomodoro")
        if not user_id:
            return []
        return await self._query("pomodoro", user_id, limit, offset)

    async def fetch_dashboard(self, request: web.Request) -> dict[str, list]:
        user_id = await self._authorize(request, "dashboard")
        if not user_id:
            return {name: [] for name in EMPTY_DASHBOARD}
        tasks, habits, sessions = await asyncio.gather(
            self._query("tasks", user_id, 25, 0),
            self._query("habits", user_id),
            self._query("pomodoro", user_id, 50, 0),
        )
        return {"tasks": tasks, "habits": habits, "pomodoro_sessions": sessions}

    async def fetch_graph(self, request: web.Request) -> dict[str, list]:
        user_id = await self._authorize(request, "graph")
        if not user_id:
            return {name: [] for name in EMPTY_GRAPH}
        tasks, habits, goals = await asyncio.gather(
            self._query("tasks", user_id, 50, 0),
            self._query("habits", user_id),
            self._query("goals", user_id),
        )
        return {"tasks": tasks, "habits": habits, "goals": goals}

    async def fetch_analytics(self, request: web.Request) -> dict[str, list]:
        user_id = await self._authorize(request, "analytics")
        if not user_id:
            return {name: [] for name in EMPTY_ANALYTICS}
        tasks, habits, goals, journal, sessions = await asyncio.gather(
            self._query("tasks", user_id, 25, 0),
            self._query("habits", user_id),
            self._query("goals", user_id),
            self._query("journal", user_id, 20, 0),
            self._query("pomodoro", user_id, 50, 0),
        )
        return {
            "tasks": tasks,
            "habits": habits,
            "goals": goals,
            "journal_entries": journal,
            "pomodoro_sessions": sessions,
        }

    # ------------------------------------------------------------------
    # Writes: persist first, then invalidate
    # ------------------------------------------------------------------

    async def _writer(self, request: web.Request, entity: str) -> str:
        if entity not in ENTITIES:
            raise ValueError(f"Unknown entity: {entity}")
        user_id = await self.get_user_id(request)
        if not user_id:
            raise web.HTTPUnauthorized(reason="Not authenticated")
        return user_id

    async def create(self, request: web.Request, entity: str, row: dict[str, Any]) -> dict:
        user_id = await self._writer(request, entity)
        created = await self._db.insert(TABLES[entity][0], {**row, "user_id": user_id})
        await invalidate_entity(self._cache, entity, user_id)
        return created

    async def update(self, request: web.Request, entity: str, row_id: str, changes: dict[str, Any]) -> Optional[dict]:
        user_id = await self._writer(request, entity)
        updated = await self._db.update(TABLES[entity][0], row_id, user_id, changes)
        await invalidate_entity(self._cache, entity, user_id)
        return updated

    async def delete(self, request: web.Request, entity: str, row_id: str) -> bool:
        user_id = await self._writer(request, entity)
        deleted = await self._db.delete(TABLES[entity][0], row_id, user_id)
        await invalidate_entity(self._cache, entity, user_id)
        return deleted

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate_entity(self, request: web.Request, entity: str) -> None:
        user_id = await self.get_user_id(request)
        if not user_id:
            return
        await invalidate_entity(self._cache, entity, user_id)

    async def invalidate_cache(self, request: web.Request) -> None:
        user_id = await self.get_user_id(request)
        if not user_id:
            return
        await asyncio.gather(
            *(invalidate_entity(self._cache, entity, user_id) for entity in ENTITIES)
        )
