"""Tests for the asyncpg-backed notification store."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from conftest import CHANNEL_A, make_mapping
from notification_models import DuplicateError, NotificationMapping
from notification_store import TABLE, NotificationStore, build_where

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def make_row(**overrides):
    row = dict(
        id=1,
        source_channel_id=CHANNEL_A,
        source_channel_name="Test Channel",
        guild_id="100",
        target_channel_id="200",
        custom_template=None,
        last_seen_entry_id="v1",
        last_checked_at=NOW,
        created_by="300",
        is_active=True,
        created_at=NOW,
        updated_at=NOW,
    )
    row.update(overrides)
    return row


@pytest.fixture
def pool():
    pool = MagicMock()
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchrow = AsyncMock(return_value=None)
    pool.execute = AsyncMock(return_value="UPDATE 1")
    return pool


@pytest.fixture
def db(pool):
    return NotificationStore(pool)


class TestBuildWhere:
    def test_empty(self):
        assert build_where({}) == ("", [])

    def test_equality_and_less_than(self):
        where, args = build_where({"is_active": False, "updated_at__lt": NOW})
        assert where == "WHERE is_active = $1 AND updated_at < $2"
        assert args == [False, NOW]

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            build_where({"guild_id; DROP TABLE x": "1"})

    def test_unknown_field_with_operator_rejected(self):
        with pytest.raises(ValueError):
            build_where({"nope__lt": 1})


class TestNotificationStore:
    @pytest.mark.asyncio
    async def test_find_maps_rows_in_creation_order(self, db, pool):
        pool.fetch.return_value = [make_row(id=1), make_row(id=2, target_channel_id="201")]

        found = await db.find({"guild_id": "100"})

        assert [m.id for m in found] == [1, 2]
        assert isinstance(found[0], NotificationMapping)
        query, *args = pool.fetch.await_args.args
        assert f"FROM {TABLE} WHERE guild_id = $1" in query
        assert "ORDER BY created_at, id" in query
        assert args == ["100"]

    @pytest.mark.asyncio
    async def test_find_one_none(self, db):
        assert await db.find_one({"guild_id": "100"}) is None

    @pytest.mark.asyncio
    async def test_insert_returns_stored_record(self, db, pool):
        pool.fetchrow.return_value = make_row(id=7)

        stored = await db.insert(make_mapping(last_seen_entry_id="v1"))

        assert stored.id == 7
        query, *args = pool.fetchrow.await_args.args
        assert query.startswith(f"INSERT INTO {TABLE}")
        assert "RETURNING *" in query
        assert "COALESCE(" in query
        assert CHANNEL_A in args
        assert len(args) == 9

    @pytest.mark.asyncio
    async def test_insert_unique_violation_is_duplicate(self, db, pool):
        pool.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(DuplicateError):
            await db.insert(make_mapping())

    @pytest.mark.asyncio
    async def test_delete_one_returns_deleted(self, db, pool):
        pool.fetchrow.return_value = make_row(id=3)

        deleted = await db.delete_one({"guild_id": "100", "target_channel_id": "200"})

        assert deleted.id == 3
        query = pool.fetchrow.await_args.args[0]
        assert query.strip().startswith(f"DELETE FROM {TABLE}")
        assert "RETURNING *" in query

    @pytest.mark.asyncio
    async def test_delete_one_requires_filter(self, db):
        with pytest.raises(ValueError):
            await db.delete_one({})

    @pytest.mark.asyncio
    async def test_update_bumps_updated_at(self, db, pool):
        await db.update_by_id(5, {"last_seen_entry_id": "v2", "last_checked_at": NOW})

        query, *args = pool.execute.await_args.args
        assert "last_seen_entry_id = $1" in query
        assert "last_checked_at = $2" in query
        assert "updated_at = NOW()" in query
        assert "WHERE id = $3" in query
        assert args == ["v2", NOW, 5]

    @pytest.mark.asyncio
    async def test_update_rejects_system_fields(self, db):
        with pytest.raises(ValueError):
            await db.update_by_id(5, {"created_at": NOW})

    @pytest.mark.asyncio
    async def test_update_without_changes_is_a_no_op(self, db, pool):
        await db.update_by_id(5, {})
        pool.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_many_counts(self, db, pool):
        pool.execute.return_value = "DELETE 3"

        deleted = await db.delete_many({"is_active": False, "updated_at__lt": NOW})

        assert deleted == 3

    @pytest.mark.asyncio
    async def test_delete_many_refuses_unfiltered(self, db):
        with pytest.raises(ValueError):
            await db.delete_many({})

    @pytest.mark.asyncio
    async def test_ensure_schema(self, db, pool):
        conn = MagicMock()
        conn.execute = AsyncMock()
        pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
        pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)

        await db.ensure_schema()

        schema = conn.execute.await_args.args[0]
        assert "UNIQUE (source_channel_id, guild_id, target_channel_id)" in schema
        assert "CREATE INDEX IF NOT EXISTS" in schema
