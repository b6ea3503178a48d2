"""Which columns of each entity are encrypted, and helpers to map rows."""
import asyncio
from typing import Any

from .vault.codec import FieldCodec

ENCRYPTED_FIELDS: dict[str, tuple[str, ...]] = {
    "tasks": ("title", "notes"),
    "habits": ("name",),
    "goals": ("title", "description"),
    "journal": ("content",),
    "pomodoro": ("task_name",),
}


def _fields(entity: str) -> tuple[str, ...]:
    try:
        return ENCRYPTED_FIELDS[entity]
    except KeyError:
        raise ValueError(f"Unknown entity: {entity}") from None


async def encrypt_record(codec: FieldCodec, entity: str, row: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``row`` with its sensitive columns encrypted."""
    result = dict(row)
    for name in _fields(entity):
        value = result.get(name)
        if isinstance(value, str) and value:
            result[name] = await codec.encrypt_field(value)
    return result


async def decrypt_record(codec: FieldCodec, entity: str, row: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``row`` with its sensitive columns decrypted."""
    result = dict(row)
    for name in _fields(entity):
        value = result.get(name)
        if isinstance(value, str) and value:
            result[name] = await codec.decrypt_field(value)
    return result


async def decrypt_records(codec: FieldCodec, entity: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return list(await asyncio.gather(*(decrypt_record(codec, entity, r) for r in rows)))
