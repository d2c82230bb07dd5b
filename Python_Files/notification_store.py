"""
Notification Mapping Store.

PostgreSQL persistence for `NotificationMapping` records, built on an
asyncpg connection pool. Every method is a single statement, so each call is
independently consistent without explicit transactions.

Filters are plain dicts keyed by mapping field names:
- ``{"guild_id": "123"}``            -> ``guild_id = $1``
- ``{"updated_at__lt": some_dt}``    -> ``updated_at < $1``
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from notification_models import DuplicateError, NotificationMapping

log = logging.getLogger(__name__)

TABLE = "public.youtube_notification_mappings"

_COLUMNS = NotificationMapping.field_names()
_OPERATORS = {"__lt": "<"}
_SYSTEM_FIELDS = {"id", "created_at", "updated_at"}

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id BIGSERIAL PRIMARY KEY,
    source_channel_id TEXT NOT NULL,
    source_channel_name TEXT NOT NULL,
    guild_id TEXT NOT NULL,
    target_channel_id TEXT NOT NULL,
    custom_template TEXT,
    last_seen_entry_id TEXT,
    last_checked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_by TEXT NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT youtube_notification_mappings_triple_key
        UNIQUE (source_channel_id, guild_id, target_channel_id)
);
CREATE INDEX IF NOT EXISTS youtube_notification_mappings_source_idx
    ON {TABLE} (source_channel_id);
CREATE INDEX IF NOT EXISTS youtube_notification_mappings_guild_idx
    ON {TABLE} (guild_id);
"""


def build_where(filters: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """
    Compile a filter dict into a WHERE clause and its positional arguments.

    Parameters
    ----------
    filters : dict
        Field name (optionally with an operator suffix such as `__lt`) to value.

    Returns
    -------
    tuple[str, list]
        `("WHERE ...", args)`, or `("", [])` for an empty filter.

    Raises
    ------
    ValueError
        If a key does not name a mapping field.
    """
    clauses = []
    args = []
    for key, value in filters.items():
        column, operator = key, "="
        for suffix, sql_op in _OPERATORS.items():
            if key.endswith(suffix):
                column, operator = key[: -len(suffix)], sql_op
                break
        if column not in _COLUMNS:
            raise ValueError(f"Unknown filter field: {key}")
        args.append(value)
        clauses.append(f"{column} {operator} ${len(args)}")

    if not clauses:
        return "", []
    return "WHERE " + " AND ".join(clauses), args


def _deleted_count(status: str) -> int:
    # asyncpg returns the command tag, e.g. "DELETE 3"
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class NotificationStore:
    """
    CRUD over the `youtube_notification_mappings` table.

    The (source_channel_id, guild_id, target_channel_id) triple is enforced
    by a unique constraint; `insert` reports violations as `DuplicateError`.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def ensure_schema(self):
        """Create the table and its indexes if they do not exist yet."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        log.info("✅ Notification mapping schema verified.")

    async def find(self, filters: Dict[str, Any]) -> List[NotificationMapping]:
        """Return every matching mapping in creation order."""
        where, args = build_where(filters)
        rows = await self.pool.fetch(
            f"SELECT * FROM {TABLE} {where} ORDER BY created_at, id", *args
        )
        return [NotificationMapping.from_record(row) for row in rows]

    async def find_one(self, filters: Dict[str, Any]) -> Optional[NotificationMapping]:
        where, args = build_where(filters)
        row = await self.pool.fetchrow(
            f"SELECT * FROM {TABLE} {where} ORDER BY created_at, id LIMIT 1", *args
        )
        return NotificationMapping.from_record(row) if row else None

    async def insert(self, mapping: NotificationMapping) -> NotificationMapping:
        """
        Persist a new mapping and return it with its system fields filled in.

        Raises
        ------
        DuplicateError
            If the triple is already mapped.
        """
        columns = [name for name in _COLUMNS if name not in _SYSTEM_FIELDS]
        values = [getattr(mapping, name) for name in columns]
        placeholders = []
        for index, name in enumerate(columns, start=1):
            if name == "last_checked_at":
                placeholders.append(f"COALESCE(${index}, NOW())")
            else:
                placeholders.append(f"${index}")

        try:
            row = await self.pool.fetchrow(
                f"""INSERT INTO {TABLE} ({', '.join(columns)})
                VALUES ({', '.join(placeholders)})
                RETURNING *""",
                *values,
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateError(
                f"Channel {mapping.source_channel_id} is already mapped to "
                f"channel {mapping.target_channel_id} in guild {mapping.guild_id}"
            ) from e

        return NotificationMapping.from_record(row)

    async def delete_one(self, filters: Dict[str, Any]) -> Optional[NotificationMapping]:
        """Delete the oldest matching mapping and return it, or None."""
        where, args = build_where(filters)
        if not where:
            raise ValueError("delete_one requires at least one filter")
        row = await self.pool.fetchrow(
            f"""DELETE FROM {TABLE}
            WHERE id = (SELECT id FROM {TABLE} {where} ORDER BY created_at, id LIMIT 1)
            RETURNING *""",
            *args,
        )
        return NotificationMapping.from_record(row) if row else None

    async def update_by_id(self, mapping_id: int, changes: Dict[str, Any]):
        """Apply a partial update and bump `updated_at`."""
        if not changes:
            return
        assignments = []
        args = []
        for name, value in changes.items():
            if name not in _COLUMNS or name in _SYSTEM_FIELDS:
                raise ValueError(f"Field cannot be updated: {name}")
            args.append(value)
            assignments.append(f"{name} = ${len(args)}")
        args.append(mapping_id)

        await self.pool.execute(
            f"""UPDATE {TABLE}
            SET {', '.join(assignments)}, updated_at = NOW()
            WHERE id = ${len(args)}""",
            *args,
        )

    async def delete_many(self, filters: Dict[str, Any]) -> int:
        """Delete every matching mapping and return how many were removed."""
        where, args = build_where(filters)
        if not where:
            raise ValueError("delete_many requires at least one filter")
        status = await self.pool.execute(f"DELETE FROM {TABLE} {where}", *args)
        return _deleted_count(status)
