"""
YouTube Upload Checker.

The polling side of the notification system:
- `YouTubeChecker.run_cycle()` scans every active mapping, detects a new top
  video by comparing ids, sends the notification and records the new id.
- `YouTubeChecker.run_cleanup()` purges mappings deactivated longer than the
  retention window.
- `IntervalScheduler` drives both on fixed periods with `discord.ext.tasks`.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

import discord
from discord.ext import tasks

from notification_models import (
    FeedEntry,
    FetchError,
    NotFoundError,
    NotificationMapping,
    SendError,
)

log = logging.getLogger(__name__)

RETENTION_WINDOW = timedelta(days=7)
CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60
DESCRIPTION_LIMIT = 300
YOUTUBE_ICON_URL = "https://www.youtube.com/s/desktop/d743f786/img/favicon_96x96.png"
PLACEHOLDER_PATTERN = re.compile(r"\{\{(video_title|video_url|channel_name|channel_url)\}\}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===========================
# Message rendering
# ===========================


def render_template(
    template: str, video_title: str, video_url: str, channel_name: str, channel_url: str
) -> str:
    """
    Substitute the supported placeholders with literal values.

    Supported: {{video_title}}, {{video_url}}, {{channel_name}}, {{channel_url}}.
    Every occurrence is replaced in a single pass, so substituted values are
    never expanded again. Unknown placeholders are left as they are.
    """
    values = {
        "video_title": video_title,
        "video_url": video_url,
        "channel_name": channel_name,
        "channel_url": channel_url,
    }
    return PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(1)], template)


def build_video_embed(
    mapping: NotificationMapping, entry: FeedEntry, color: int, now: datetime
) -> discord.Embed:
    """Rich embed for one new video."""
    summary = entry.summary.strip()
    if len(summary) > DESCRIPTION_LIMIT:
        summary = summary[:DESCRIPTION_LIMIT] + "..."

    embed = discord.Embed(
        title=entry.title,
        url=entry.url,
        description=summary or None,
        color=color,
        timestamp=entry.published_at or now,
    )
    embed.set_author(
        name=mapping.source_channel_name,
        url=mapping.channel_url,
        icon_url=YOUTUBE_ICON_URL,
    )
    embed.set_thumbnail(url=entry.thumbnail_url)
    embed.set_footer(text=f"YouTube Notification • {mapping.source_channel_name}")
    return embed


# ===========================
# Discord delivery
# ===========================


class DiscordSender:
    """
    Sends a text + embed message to a Discord channel id.

    Every Discord failure (unknown channel, missing permissions, rate limit,
    timeout) is reported as `SendError`.
    """

    def __init__(self, bot: discord.Client, timeout: float = 15.0):
        self.bot = bot
        self.timeout = timeout

    async def _deliver(self, channel_id: int, content: str, embed: discord.Embed):
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            raise SendError(f"Channel {channel_id} cannot receive messages")
        await channel.send(content=content, embed=embed)

    async def send(self, channel_id: str, content: str, embed: discord.Embed):
        try:
            target_id = int(channel_id)
        except (TypeError, ValueError):
            raise SendError(f"Invalid Discord channel id {channel_id!r}") from None

        try:
            await asyncio.wait_for(
                self._deliver(target_id, content, embed), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise SendError(f"Timed out sending to channel {channel_id}") from e
        except discord.NotFound as e:
            raise SendError(f"Discord channel {channel_id} not found") from e
        except discord.Forbidden as e:
            raise SendError(f"Missing permissions to send in channel {channel_id}") from e
        except discord.HTTPException as e:
            raise SendError(
                f"Discord rejected the message for channel {channel_id} ({e.status})"
            ) from e


# ===========================
# Scheduling
# ===========================


class IntervalScheduler:
    """
    Runs an async callback every `seconds` using `discord.ext.tasks`.

    `tasks.Loop` awaits each run before sleeping again, so one scheduler never
    runs its callback concurrently with itself.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable],
        seconds: float,
        before_start: Optional[Callable[[], Awaitable]] = None,
    ):
        self.name = name
        self._loop = tasks.loop(seconds=seconds)(callback)
        if before_start is not None:
            self._loop.before_loop(before_start)

    def start(self):
        if not self._loop.is_running():
            self._loop.start()
            log.info(f"⏱️ Scheduler '{self.name}' started.")

    def stop(self):
        if self._loop.is_running():
            self._loop.cancel()
            log.info(f"Scheduler '{self.name}' stopped.")

    def is_running(self) -> bool:
        return self._loop.is_running()


# ===========================
# Polling
# ===========================


class CheckOutcome(Enum):
    UNCHANGED = "unchanged"
    EMPTY = "empty"
    NOTIFIED = "notified"
    DEACTIVATED = "deactivated"
    FETCH_FAILED = "fetch_failed"
    SEND_FAILED = "send_failed"


@dataclass
class CycleReport:
    """Tally of one poll cycle."""

    checked: int = 0
    unchanged: int = 0
    notified: int = 0
    deactivated: int = 0
    fetch_failed: int = 0
    send_failed: int = 0
    errors: int = 0

    def record(self, outcome: CheckOutcome):
        if outcome in (CheckOutcome.UNCHANGED, CheckOutcome.EMPTY):
            self.unchanged += 1
        elif outcome is CheckOutcome.NOTIFIED:
            self.notified += 1
        elif outcome is CheckOutcome.DEACTIVATED:
            self.deactivated += 1
        elif outcome is CheckOutcome.FETCH_FAILED:
            self.fetch_failed += 1
        elif outcome is CheckOutcome.SEND_FAILED:
            self.send_failed += 1


class YouTubeChecker:
    """
    Detects new uploads for every active mapping and announces them.

    State rules per mapping:
    - `NotFoundError` from the feed: mapping deactivated, no message.
    - `FetchError`: nothing changes, the next cycle retries.
    - Same top video as last time: nothing changes (not even `last_checked_at`).
    - New top video: message sent, then `last_seen_entry_id` advanced. If the
      send fails the id is not advanced and the next cycle retries.

    Parameters
    ----------
    store : NotificationStore
    feed_client : YouTubeFeedClient
    sender : DiscordSender
    settings : BotSettings
        Provides the default message template and the embed color.
    clock : callable, optional
        Returns the current UTC time.
    """

    def __init__(
        self,
        store,
        feed_client,
        sender,
        settings,
        clock: Callable[[], datetime] = _utcnow,
        retention: timedelta = RETENTION_WINDOW,
    ):
        self.store = store
        self.feed_client = feed_client
        self.sender = sender
        self.settings = settings
        self.clock = clock
        self.retention = retention
        self._cycle_lock = asyncio.Lock()

    @property
    def cycle_running(self) -> bool:
        return self._cycle_lock.locked()

    async def run_cycle(self) -> Optional[CycleReport]:
        """
        Check every active mapping once.

        Returns None when the previous cycle is still in flight (the tick is
        skipped), otherwise the cycle's report.
        """
        if self._cycle_lock.locked():
            log.warning("⏭️ Previous YouTube check still running, skipping this tick.")
            return None

        async with self._cycle_lock:
            report = CycleReport()
            log.info("🔍 Running YouTube RSS notification check...")

            try:
                mappings = await self.store.find({"is_active": True})
            except Exception as e:
                log.error(f"❌ Could not load notification mappings: {e}", exc_info=True)
                return report

            if not mappings:
                log.info("ℹ️ No active YouTube notification mappings found")
                return report

            log.info(f"📊 Checking {len(mappings)} YouTube notification mapping(s)")

            for mapping in mappings:
                report.checked += 1
                try:
                    outcome = await self.check_mapping(mapping)
                except Exception as e:
                    report.errors += 1
                    log.error(
                        f"❌ Error processing YouTube channel {mapping.source_channel_id} "
                        f"for guild {mapping.guild_id}: {e}",
                        exc_info=True,
                    )
                    continue
                report.record(outcome)

            log.info(
                f"✅ YouTube check complete: {report.checked} checked, "
                f"{report.notified} notified, {report.deactivated} deactivated, "
                f"{report.fetch_failed + report.send_failed + report.errors} failed"
            )
            return report

    async def check_mapping(self, mapping: NotificationMapping) -> CheckOutcome:
        """Run the fetch, compare and notify steps for a single mapping."""
        try:
            entries = await self.feed_client.fetch_latest(mapping.source_channel_id)
        except NotFoundError as e:
            log.warning(
                f"⚠️ YouTube channel {mapping.source_channel_name} "
                f"({mapping.source_channel_id}) is gone or private, disabling "
                f"notifications for guild {mapping.guild_id}: {e}"
            )
            await self.store.update_by_id(
                mapping.id, {"is_active": False, "last_checked_at": self.clock()}
            )
            return CheckOutcome.DEACTIVATED
        except FetchError as e:
            log.warning(f"YouTube RSS temporary failure for {mapping.source_channel_id}: {e}")
            return CheckOutcome.FETCH_FAILED

        if not entries:
            log.debug(f"No entries in RSS feed for channel {mapping.source_channel_id}")
            return CheckOutcome.EMPTY

        latest = entries[0]
        if latest.entry_id == mapping.last_seen_entry_id:
            log.debug(f"📺 No new video for {mapping.source_channel_name}")
            return CheckOutcome.UNCHANGED

        log.info(
            f"🆕 New video detected for guild {mapping.guild_id} on channel "
            f"{mapping.source_channel_name}: {latest.title}"
        )

        content = render_template(
            mapping.custom_template or self.settings.default_message,
            video_title=latest.title,
            video_url=latest.url,
            channel_name=mapping.source_channel_name,
            channel_url=mapping.channel_url,
        )
        embed = build_video_embed(mapping, latest, self.settings.embed_color, self.clock())

        try:
            await self.sender.send(mapping.target_channel_id, content, embed)
        except SendError as e:
            log.warning(
                f"⚠️ Failed to send YouTube notification for {latest.entry_id} "
                f"to channel {mapping.target_channel_id}: {e}"
            )
            return CheckOutcome.SEND_FAILED

        await self.store.update_by_id(
            mapping.id,
            {"last_seen_entry_id": latest.entry_id, "last_checked_at": self.clock()},
        )
        log.info(
            f"✅ Sent notification for video {latest.entry_id} "
            f"to channel {mapping.target_channel_id} in guild {mapping.guild_id}"
        )
        return CheckOutcome.NOTIFIED

    async def run_cleanup(self) -> int:
        """Delete mappings that have been inactive longer than the retention window."""
        cutoff = self.clock() - self.retention
        try:
            deleted = await self.store.delete_many(
                {"is_active": False, "updated_at__lt": cutoff}
            )
        except Exception as e:
            log.error(f"❌ Error while purging inactive mappings: {e}", exc_info=True)
            return 0

        if deleted:
            log.info(f"🧹 Purged {deleted} inactive notification mapping(s)")
        return deleted
