"""
Notification Administration.

The operations behind the `/notification` commands: create, remove and list
per-guild mappings. Discord-free so the rules can be exercised directly.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from notification_models import (
    LIST_PAGE_SIZE,
    ChannelFeed,
    DuplicateError,
    MappingPage,
    NotFoundError,
    NotificationMapping,
    ValidationError,
    validate_channel_id,
)

log = logging.getLogger(__name__)

MAX_TEMPLATE_LENGTH = 1500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationAdmin:
    """
    Creates, removes and lists notification mappings.

    Parameters
    ----------
    store : NotificationStore
        Mapping persistence.
    feed_client : YouTubeFeedClient
        Used to confirm a channel exists and to seed its latest video.
    clock : callable, optional
        Returns the current UTC time.
    """

    def __init__(self, store, feed_client, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.feed_client = feed_client
        self.clock = clock

    async def setup(
        self,
        source_channel_id: str,
        guild_id: str,
        target_channel_id: str,
        custom_template: Optional[str],
        requested_by: str,
    ) -> NotificationMapping:
        """
        Map a YouTube channel to a Discord channel.

        The current newest video is stored as `last_seen_entry_id`, so the
        first poll after setup does not announce a video that already existed.

        Raises
        ------
        ValidationError
            Malformed channel id or oversized template. Nothing is fetched.
        NotFoundError
            The channel feed does not exist.
        FetchError
            YouTube could not be reached.
        DuplicateError
            The same channel is already mapped to this target channel.
        """
        source_channel_id = validate_channel_id(source_channel_id)

        if custom_template is not None:
            custom_template = custom_template.strip() or None
        if custom_template and len(custom_template) > MAX_TEMPLATE_LENGTH:
            raise ValidationError(
                f"Custom message is too long ({len(custom_template)} characters, "
                f"maximum {MAX_TEMPLATE_LENGTH})."
            )

        feed = await self.feed_client.fetch_feed(source_channel_id)
        if not feed.title:
            raise NotFoundError(f"YouTube channel {source_channel_id} could not be resolved")

        key = {
            "source_channel_id": source_channel_id,
            "guild_id": guild_id,
            "target_channel_id": target_channel_id,
        }
        if await self.store.find_one(key):
            raise DuplicateError(
                f"{feed.title} is already set up for channel {target_channel_id}"
            )

        latest = feed.latest
        mapping = NotificationMapping(
            source_channel_id=source_channel_id,
            source_channel_name=feed.title,
            guild_id=guild_id,
            target_channel_id=target_channel_id,
            created_by=requested_by,
            custom_template=custom_template,
            last_seen_entry_id=latest.entry_id if latest else None,
            last_checked_at=self.clock(),
        )
        mapping = await self.store.insert(mapping)

        log.info(
            f"✅ Mapping created: {feed.title} ({source_channel_id}) -> "
            f"channel {target_channel_id} in guild {guild_id} by {requested_by}, "
            f"seeded with {mapping.last_seen_entry_id}"
        )
        return mapping

    async def remove(
        self, source_channel_id: str, guild_id: str, target_channel_id: str
    ) -> NotificationMapping:
        """Delete a mapping and return it. Raises `NotFoundError` if absent."""
        deleted = await self.store.delete_one(
            {
                "source_channel_id": source_channel_id.strip(),
                "guild_id": guild_id,
                "target_channel_id": target_channel_id,
            }
        )
        if deleted is None:
            raise NotFoundError(
                f"No notification for {source_channel_id} in channel {target_channel_id}"
            )

        log.info(
            f"🗑️ Mapping removed: {deleted.source_channel_name} ({source_channel_id}) "
            f"from channel {target_channel_id} in guild {guild_id}"
        )
        return deleted

    async def list(self, guild_id: str) -> MappingPage:
        """Mappings of a guild in creation order, at most one page of them."""
        mappings = await self.store.find({"guild_id": guild_id})
        return MappingPage(mappings=mappings[:LIST_PAGE_SIZE], total=len(mappings))

    async def preview(self, source_channel_id: str, limit: int = 5) -> ChannelFeed:
        """Fetch a feed and keep only its `limit` newest entries."""
        source_channel_id = validate_channel_id(source_channel_id)
        feed = await self.feed_client.fetch_feed(source_channel_id)
        feed.entries = feed.entries[:limit]
        return feed
