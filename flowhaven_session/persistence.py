"""
Per-entity CRUD over an asyncpg-compatible pool.

The relational store is the source of truth. Nothing here swallows errors:
a failed query propagates to the repository and on to the caller.
"""
import logging
from typing import Any, Optional, Protocol

logger = logging.getLogger("flowhaven.data")

# entity -> (table, default ordering column)
TABLES: dict[str, tuple[str, str]] = {
    "tasks": ("tasks", "created_at"),
    "habits": ("habits", "created_at"),
    "goals": ("goals", "created_at"),
    "journal": ("journal_entries", "date"),
    "pomodoro": ("pomodoro_sessions", "started_at"),
}

# Writable columns per table; anything else is rejected before reaching SQL.
COLUMNS: dict[str, frozenset[str]] = {
    "tasks": frozenset({
        "title", "notes", "priority", "due_date", "completed",
        "completed_at", "linked_goal_id",
    }),
    "habits": frozenset({
        "name", "icon", "frequency", "streak", "longest_streak",
        "completions", "linked_goal_id",
    }),
    "goals": frozenset({
        "title", "description", "category", "target_date", "progress",
        "completed",
    }),
    "journal_entries": frozenset({"content", "mood", "date"}),
    "pomodoro_sessions": frozenset({"duration", "task_name", "completed", "started_at"}),
}


class Persistence(Protocol):
    async def select(
        self,
        table: str,
        user_id: str,
        order_by: str,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        ...

    async def insert(self, table: str, row: dict) -> dict:
        ...

    async def update(self, table: str, row_id: str, user_id: str, changes: dict) -> Optional[dict]:
        ...

    async def delete(self, table: str, row_id: str, user_id: str) -> bool:
        ...


def _check_columns(table: str, names: Any) -> list[str]:
    if table not in COLUMNS:
        raise ValueError(f"Unknown table: {table}")
    names = list(names)
    invalid = set(names) - COLUMNS[table] - {"user_id", "id"}
    if invalid:
        raise ValueError(f"Invalid columns for {table}: {sorted(invalid)}")
    return names


class PostgresPersistence:
    """Persistence over an asyncpg-compatible connection pool."""

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def select(
        self,
        table: str,
        user_id: str,
        order_by: str,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        _check_columns(table, [])
        if order_by not in {"created_at", "date", "started_at"}:
            raise ValueError(f"Invalid ordering column: {order_by}")
        sql = f"SELECT * FROM {table} WHERE user_id = $1 ORDER BY {order_by} DESC"
        args: list[Any] = [user_id]
        if limit is not None:
            sql += f" LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}"
            args.extend([limit, offset or 0])
        async with self._db.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [dict(row) for row in rows]

    async def insert(self, table: str, row: dict) -> dict:
        columns = _check_columns(table, row.keys())
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        async with self._db.acquire() as conn:
            created = await conn.fetchrow(sql, *[row[c] for c in columns])
        logger.debug("Inserted into %s for user=%s", table, row.get("user_id"))
        return dict(created)

    async def update(self, table: str, row_id: str, user_id: str, changes: dict) -> Optional[dict]:
        columns = [c for c in _check_columns(table, changes.keys()) if c not in ("id", "user_id")]
        if not columns:
            raise ValueError("Nothing to update")
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=3))
        sql = (
            f"UPDATE {table} SET {assignments} "
            f"WHERE id = $1 AND user_id = $2 RETURNING *"
        )
        async with self._db.acquire() as conn:
            updated = await conn.fetchrow(sql, row_id, user_id, *[changes[c] for c in columns])
        return dict(updated) if updated is not None else None

    async def delete(self, table: str, row_id: str, user_id: str) -> bool:
        _check_columns(table, [])
        sql = f"DELETE FROM {table} WHERE id = $1 AND user_id = $2"
        async with self._db.acquire() as conn:
            status = await conn.execute(sql, row_id, user_id)
        return str(status).endswith(" 1")
