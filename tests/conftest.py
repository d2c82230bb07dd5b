"""Shared test fixtures."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from bot_config import BotSettings
from notification_models import (
    ChannelFeed,
    DuplicateError,
    FeedEntry,
    NotificationMapping,
)

CHANNEL_A = "UCaaaaaaaaaaaaaaaaaaaaaa"
CHANNEL_B = "UCbbbbbbbbbbbbbbbbbbbbbb"
CHANNEL_C = "UCcccccccccccccccccccccc"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class InMemoryStore:
    """Dict-backed stand-in for NotificationStore with the same contract."""

    def __init__(self, clock):
        self.clock = clock
        self.rows = {}
        self._next_id = 1

    @staticmethod
    def _matches(mapping, filters):
        for key, value in filters.items():
            if key.endswith("__lt"):
                if not getattr(mapping, key[:-4]) < value:
                    return False
            elif getattr(mapping, key) != value:
                return False
        return True

    def _ordered(self):
        return sorted(self.rows.values(), key=lambda m: (m.created_at, m.id))

    async def find(self, filters):
        return [replace(m) for m in self._ordered() if self._matches(m, filters)]

    async def find_one(self, filters):
        found = await self.find(filters)
        return found[0] if found else None

    async def insert(self, mapping):
        if any(m.triple == mapping.triple for m in self.rows.values()):
            raise DuplicateError("duplicate triple")
        now = self.clock()
        stored = replace(
            mapping,
            id=self._next_id,
            created_at=now,
            updated_at=now,
            last_checked_at=mapping.last_checked_at or now,
        )
        self.rows[stored.id] = stored
        self._next_id += 1
        return replace(stored)

    async def delete_one(self, filters):
        for mapping in self._ordered():
            if self._matches(mapping, filters):
                del self.rows[mapping.id]
                return mapping
        return None

    async def update_by_id(self, mapping_id, changes):
        mapping = self.rows[mapping_id]
        for name, value in changes.items():
            setattr(mapping, name, value)
        mapping.updated_at = self.clock()

    async def delete_many(self, filters):
        doomed = [m.id for m in self.rows.values() if self._matches(m, filters)]
        for mapping_id in doomed:
            del self.rows[mapping_id]
        return len(doomed)


class FakeFeedClient:
    """Serves canned feeds; a value that is an exception is raised instead."""

    def __init__(self):
        self.feeds = {}
        self.calls = []

    def set_entries(self, channel_id, *entry_ids, title="Test Channel"):
        self.feeds[channel_id] = ChannelFeed(
            channel_id=channel_id,
            title=title,
            entries=[make_entry(entry_id) for entry_id in entry_ids],
        )

    async def fetch_feed(self, channel_id):
        self.calls.append(channel_id)
        result = self.feeds[channel_id]
        if isinstance(result, Exception):
            raise result
        return replace(result, entries=list(result.entries))

    async def fetch_latest(self, channel_id):
        return (await self.fetch_feed(channel_id)).entries


class FakeSender:
    def __init__(self):
        self.sent = []
        self.error = None

    async def send(self, channel_id, content, embed):
        if self.error is not None:
            raise self.error
        self.sent.append((channel_id, content, embed))


def make_entry(entry_id, title=None):
    return FeedEntry(
        entry_id=entry_id,
        title=title or f"Video {entry_id}",
        url=f"https://www.youtube.com/watch?v={entry_id}",
        published_at=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
        summary=f"About {entry_id}",
    )


def make_mapping(source=CHANNEL_A, guild="100", target="200", **kwargs):
    values = dict(
        source_channel_id=source,
        source_channel_name="Test Channel",
        guild_id=guild,
        target_channel_id=target,
        created_by="300",
    )
    values.update(kwargs)
    return NotificationMapping(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock)


@pytest.fixture
def feed_client():
    return FakeFeedClient()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def settings():
    return BotSettings(
        discord_token="token",
        database_url="postgresql://localhost/test",
        default_message="New: {{video_title}} {{video_url}}",
        embed_color=0x123456,
    )
