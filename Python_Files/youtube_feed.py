"""
YouTube Feed Client.

Fetches a channel's public upload feed
(`https://www.youtube.com/feeds/videos.xml?channel_id=...`) with aiohttp and
parses it with feedparser into `ChannelFeed` / `FeedEntry` records.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

import aiohttp
import feedparser

from notification_models import ChannelFeed, FeedEntry, FetchError, NotFoundError

log = logging.getLogger(__name__)

RSS_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
NOT_FOUND_STATUSES = (404, 410)


def _parse_published(entry) -> Optional[datetime]:
    published_str = entry.get("published")
    if published_str:
        try:
            return datetime.strptime(published_str, "%Y-%m-%dT%H:%M:%S%z")
        except ValueError:
            pass
    parsed = entry.get("published_parsed")
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return None


def extract_entry(entry) -> Optional[FeedEntry]:
    """
    Turn one feedparser entry into a `FeedEntry`.

    The video id comes from `yt:videoId`, falling back to the Atom id
    (`yt:video:<id>`). Entries without any id are skipped (None).
    """
    video_id = entry.get("yt_videoid")
    if not video_id:
        parts = (entry.get("id") or "").split(":")
        video_id = parts[2] if len(parts) >= 3 else None
    if not video_id:
        return None

    return FeedEntry(
        entry_id=video_id,
        title=entry.get("title") or "Untitled",
        url=entry.get("link") or WATCH_URL.format(video_id=video_id),
        published_at=_parse_published(entry),
        summary=entry.get("summary") or "",
    )


def parse_feed(channel_id: str, xml_content: str) -> ChannelFeed:
    """
    Parse feed XML into a `ChannelFeed`, keeping the feed's newest-first order.

    Raises
    ------
    FetchError
        If the document is not a readable feed at all.
    """
    parsed = feedparser.parse(xml_content)
    title = parsed.feed.get("title")

    if parsed.bozo and not title and not parsed.entries:
        raise FetchError(
            f"Unreadable feed for channel {channel_id}: {parsed.get('bozo_exception')}"
        )

    entries = [e for e in (extract_entry(raw) for raw in parsed.entries) if e]
    return ChannelFeed(channel_id=channel_id, title=title, entries=entries)


class YouTubeFeedClient:
    """
    Reads YouTube channel feeds.

    Raises `NotFoundError` when YouTube reports the feed missing (deleted or
    private channel) and `FetchError` for anything that may succeed on a later
    attempt. Each request is bounded by `timeout` seconds.
    """

    def __init__(self, timeout: float = 10.0, session: aiohttp.ClientSession = None):
        self.timeout = timeout
        self.session = session
        self._owns_session = session is None

    async def start(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True

    async def close(self):
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def _download(self, channel_id: str) -> str:
        if self.session is None:
            raise FetchError("Feed client is not started")

        rss_url = RSS_URL.format(channel_id=channel_id)
        try:
            async with self.session.get(
                rss_url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status in NOT_FOUND_STATUSES:
                    raise NotFoundError(
                        f"YouTube feed not found ({response.status}) for {channel_id}"
                    )
                if response.status != 200:
                    raise FetchError(
                        f"YouTube RSS returned status {response.status} for {channel_id}"
                    )
                return await response.text()
        except asyncio.TimeoutError as e:
            raise FetchError(f"Timed out fetching feed for {channel_id}") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Network error fetching feed for {channel_id}: {e}") from e

    async def fetch_feed(self, channel_id: str) -> ChannelFeed:
        """
        Fetch and parse a channel feed.

        Parameters
        ----------
        channel_id : str
            The YouTube channel ID (starts with 'UC').
        """
        xml_content = await self._download(channel_id)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, parse_feed, channel_id, xml_content)

    async def fetch_latest(self, channel_id: str) -> List[FeedEntry]:
        """Return the channel's entries, newest first."""
        feed = await self.fetch_feed(channel_id)
        return feed.entries
