"""
Notification Records & Errors.

Typed records shared by the store, the feed client, the admin commands and the
poller, plus the exception taxonomy used across the notification system.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import List, Optional

YOUTUBE_CHANNEL_PREFIX = "UC"
YOUTUBE_CHANNEL_ID_LENGTH = 24
LIST_PAGE_SIZE = 25


# ==========================
# Error Taxonomy
# ==========================


class NotificationError(Exception):
    """Base class for every error raised by the notification system."""


class ValidationError(NotificationError):
    """Bad user input. Reported back to the user, never retried."""


class NotFoundError(NotificationError):
    """A feed or a mapping does not exist."""


class DuplicateError(NotificationError):
    """A mapping with the same (source, guild, target) triple already exists."""


class FetchError(NotificationError):
    """Transient network or parse failure while reading a feed."""


class SendError(NotificationError):
    """A notification message could not be delivered to Discord."""


# ==========================
# Records
# ==========================


@dataclass
class NotificationMapping:
    """
    Binds one YouTube channel feed to one Discord text channel in one guild.

    `last_seen_entry_id` and `last_checked_at` are only written by the poller;
    `created_at` / `updated_at` are managed by the store.
    """

    source_channel_id: str
    source_channel_name: str
    guild_id: str
    target_channel_id: str
    created_by: str
    custom_template: Optional[str] = None
    last_seen_entry_id: Optional[str] = None
    last_checked_at: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_record(cls, record) -> "NotificationMapping":
        """Build a mapping from an asyncpg.Record (or any mapping-like row)."""
        return cls(**{name: record[name] for name in cls.field_names()})

    @property
    def channel_url(self) -> str:
        return f"https://www.youtube.com/channel/{self.source_channel_id}"

    @property
    def triple(self):
        return (self.source_channel_id, self.guild_id, self.target_channel_id)


@dataclass
class FeedEntry:
    """One video from a channel feed."""

    entry_id: str
    title: str
    url: str
    published_at: Optional[datetime] = None
    summary: str = ""

    @property
    def thumbnail_url(self) -> str:
        return f"https://img.youtube.com/vi/{self.entry_id}/maxresdefault.jpg"


@dataclass
class ChannelFeed:
    """A parsed channel feed. `entries` are ordered newest first."""

    channel_id: str
    title: Optional[str]
    entries: List[FeedEntry] = field(default_factory=list)

    @property
    def latest(self) -> Optional[FeedEntry]:
        return self.entries[0] if self.entries else None


@dataclass
class MappingPage:
    """A display page of mappings plus how many were left out."""

    mappings: List[NotificationMapping]
    total: int

    @property
    def remainder(self) -> int:
        return max(self.total - len(self.mappings), 0)


def validate_channel_id(channel_id: str) -> str:
    """
    Check a YouTube channel id against the `UC` + 22 characters format.

    Returns
    -------
    str
        The stripped channel id.

    Raises
    ------
    ValidationError
        If the id has the wrong prefix or length.
    """
    channel_id = (channel_id or "").strip()
    if (
        not channel_id.startswith(YOUTUBE_CHANNEL_PREFIX)
        or len(channel_id) != YOUTUBE_CHANNEL_ID_LENGTH
    ):
        raise ValidationError(
            f"Invalid YouTube channel ID `{channel_id}`. It must start with "
            f"`{YOUTUBE_CHANNEL_PREFIX}` and be {YOUTUBE_CHANNEL_ID_LENGTH} characters long."
        )
    return channel_id
