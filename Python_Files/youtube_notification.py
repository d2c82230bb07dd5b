# v1.0.0
import discord
from discord import app_commands
from discord.ext import commands
from datetime import datetime, timezone
from typing import Optional
import asyncio
import logging

from notification_admin import NotificationAdmin
from notification_models import (
    ChannelFeed,
    DuplicateError,
    FetchError,
    MappingPage,
    NotFoundError,
    NotificationMapping,
    ValidationError,
)
from youtube_checker import CLEANUP_INTERVAL_SECONDS, IntervalScheduler, YouTubeChecker

log = logging.getLogger(__name__)

FIRST_CHECK_DELAY = 5
PREVIEW_SIZE = 5
# Discord rejects embeds over 6000 characters; the rest is left for the footer
LIST_EMBED_BUDGET = 5800
LIST_FIELD_NAME_LIMIT = 80
PLACEHOLDER_HELP = "{{video_title}}, {{video_url}}, {{channel_name}}, {{channel_url}}"


# ===========================
# Reply embeds
# ===========================


def build_setup_embed(mapping: NotificationMapping, interval_seconds: float) -> discord.Embed:
    embed = discord.Embed(
        title="✅ Notification set up!",
        color=0x00FF00,
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(
        name="YouTube Channel",
        value=f"[{mapping.source_channel_name}]({mapping.channel_url})",
        inline=True,
    )
    embed.add_field(
        name="Notification Channel", value=f"<#{mapping.target_channel_id}>", inline=True
    )
    embed.add_field(
        name="Custom Message",
        value=mapping.custom_template or "Using the default message template",
        inline=False,
    )
    embed.set_footer(
        text=f"New videos are checked every {interval_seconds:g} seconds"
    )
    return embed


def build_removed_embed(mapping: NotificationMapping) -> discord.Embed:
    embed = discord.Embed(
        title="🗑️ Notification removed",
        color=0xFF9900,
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(
        name="YouTube Channel",
        value=f"[{mapping.source_channel_name}]({mapping.channel_url})",
        inline=True,
    )
    embed.add_field(
        name="Notification Channel", value=f"<#{mapping.target_channel_id}>", inline=True
    )
    embed.set_footer(text=f"Created by: {mapping.created_by}")
    return embed


def build_list_embed(page: MappingPage) -> discord.Embed:
    """
    One field per mapping, in page order.

    Fields stop being added once the embed would pass `LIST_EMBED_BUDGET`
    characters; the footer counts every mapping that was not shown.
    """
    embed = discord.Embed(
        title="📋 YouTube Notifications",
        description=f"Found {page.total} notification(s)",
        color=0x0099FF,
        timestamp=datetime.now(timezone.utc),
    )

    shown = 0
    for index, mapping in enumerate(page.mappings, start=1):
        status = "✅ Active" if mapping.is_active else "❌ Disabled"
        created = (
            discord.utils.format_dt(mapping.created_at, "R")
            if mapping.created_at
            else "unknown"
        )
        name = f"{index}. {mapping.source_channel_name}"[:LIST_FIELD_NAME_LIMIT]
        value = (
            f"<#{mapping.target_channel_id}> • `{mapping.source_channel_id}`\n"
            f"By <@{mapping.created_by}> {created} • {status}"
        )
        if len(embed) + len(name) + len(value) > LIST_EMBED_BUDGET:
            break
        embed.add_field(name=name, value=value, inline=False)
        shown += 1

    hidden = page.total - shown
    if hidden:
        embed.set_footer(
            text=f"Showing the first {shown} of {page.total} ({hidden} more not shown)"
        )
    else:
        embed.set_footer(text=f"{page.total} notification(s) in total")
    return embed


def build_preview_embed(feed: ChannelFeed) -> discord.Embed:
    embed = discord.Embed(
        title=f"🎬 RSS Feed Test: {feed.title or 'Unknown Channel'}",
        description=f"Showing the {len(feed.entries)} most recent video(s):",
        color=0xFF0000,
    )
    for index, entry in enumerate(feed.entries, start=1):
        published = (
            discord.utils.format_dt(entry.published_at, "R")
            if entry.published_at
            else "unknown"
        )
        embed.add_field(
            name=f"{index}. {entry.title[:250]}",
            value=f"**Published:** {published}\n**Link:** [Watch Video]({entry.url})",
            inline=False,
        )
    return embed


def missing_send_permissions(channel: discord.TextChannel, member: discord.Member):
    """Names of the permissions the bot lacks to post notifications in `channel`."""
    permissions = channel.permissions_for(member)
    missing = []
    if not permissions.send_messages:
        missing.append("Send Messages")
    if not permissions.embed_links:
        missing.append("Embed Links")
    return missing


class YouTubeManager:
    """
    Discord-facing side of YouTube upload notifications.

    Key responsibilities:
    - Register the `/notification` slash-command group (setup, remove, list, preview).
    - Own the poll and cleanup schedulers that drive `YouTubeChecker`.
    - Translate notification errors into user-facing replies.
    """

    def __init__(
        self,
        bot: commands.Bot,
        admin: NotificationAdmin,
        checker: YouTubeChecker,
        interval_seconds: float,
    ):
        """
        Parameters
        ----------
        bot : commands.Bot
            The Discord bot instance.
        admin : NotificationAdmin
            Mapping administration used by the commands.
        checker : YouTubeChecker
            Poller run by the schedulers.
        interval_seconds : float
            Poll period.
        """
        self.bot = bot
        self.admin = admin
        self.checker = checker
        self.interval_seconds = interval_seconds

        self.poll_scheduler = IntervalScheduler(
            "youtube-poll",
            self.poll_tick,
            seconds=interval_seconds,
            before_start=self.before_first_poll,
        )
        self.cleanup_scheduler = IntervalScheduler(
            "youtube-cleanup",
            self.cleanup_tick,
            seconds=CLEANUP_INTERVAL_SECONDS,
            before_start=self.before_cleanup,
        )
        log.info("YouTube Notification system (RSS) has been initialized.")

    async def start(self):
        """Start the poll and cleanup loops."""
        self.poll_scheduler.start()
        self.cleanup_scheduler.start()

    async def stop(self):
        """Stop both loops. In-flight network calls are abandoned."""
        self.poll_scheduler.stop()
        self.cleanup_scheduler.stop()
        log.info("YouTubeManager stopped.")

    # ===========================
    # Background loops
    # ===========================
    async def before_first_poll(self):
        await self.bot.wait_until_ready()
        await asyncio.sleep(FIRST_CHECK_DELAY)

    async def before_cleanup(self):
        await self.bot.wait_until_ready()

    async def poll_tick(self):
        if self.bot.is_closed():
            return
        await self.checker.run_cycle()

    async def cleanup_tick(self):
        if self.bot.is_closed():
            return
        await self.checker.run_cleanup()

    # ===========================
    # Slash command registration
    # ===========================
    def register_commands(self):
        """
        Register the `/notification` command group.

        Commands
        --------
        /notification setup
            Announce new uploads of a YouTube channel in a text channel.
        /notification remove
            Stop announcing a YouTube channel in a text channel.
        /notification list
            List this server's notifications.
        /notification preview
            Show the latest videos of a channel feed.
        """
        group = app_commands.Group(
            name="notification",
            description="YouTube upload notifications",
            guild_only=True,
            default_permissions=discord.Permissions(manage_guild=True),
        )

        @group.command(name="setup", description="Set up YouTube channel notifications.")
        @app_commands.checks.has_permissions(manage_guild=True)
        @app_commands.describe(
            channel_id="YouTube channel ID (e.g. UCxxxxxx)",
            target_channel="Discord channel to post notifications in",
            custom_message=f"Custom message template (supports {PLACEHOLDER_HELP})",
        )
        async def setup_notification(
            interaction: discord.Interaction,
            channel_id: str,
            target_channel: discord.TextChannel,
            custom_message: Optional[str] = None,
        ):
            """
            Create a mapping after validating the id, confirming the channel
            exists and checking for duplicates. The current newest video is
            recorded so it is not announced.
            """
            await interaction.response.defer(ephemeral=True)

            missing = missing_send_permissions(target_channel, interaction.guild.me)
            if missing:
                await interaction.followup.send(
                    f"❌ I need the {', '.join(missing)} permission(s) in "
                    f"{target_channel.mention} to post notifications there."
                )
                return

            try:
                mapping = await self.admin.setup(
                    channel_id,
                    str(interaction.guild_id),
                    str(target_channel.id),
                    custom_message,
                    str(interaction.user.id),
                )
            except ValidationError as e:
                await interaction.followup.send(f"❌ {e}")
                return
            except NotFoundError:
                await interaction.followup.send(
                    "❌ Could not find that YouTube channel! Please double-check the channel ID."
                )
                return
            except DuplicateError:
                await interaction.followup.send(
                    f"❌ Notifications for that YouTube channel are already set up in "
                    f"{target_channel.mention}!"
                )
                return
            except FetchError as e:
                log.warning(f"Feed unavailable during setup of {channel_id}: {e}")
                await interaction.followup.send(
                    "⚠️ YouTube could not be reached right now. Please try again in a moment."
                )
                return
            except Exception as e:
                log.error(f"Error in /notification setup: {e}", exc_info=True)
                await interaction.followup.send(
                    "❌ An error occurred while setting up the notification. Please try again later."
                )
                return

            await interaction.followup.send(
                embed=build_setup_embed(mapping, self.interval_seconds)
            )

        @group.command(name="remove", description="Remove YouTube channel notifications.")
        @app_commands.checks.has_permissions(manage_guild=True)
        @app_commands.describe(
            channel_id="YouTube channel ID (e.g. UCxxxxxx)",
            target_channel="Discord channel the notifications are posted in",
        )
        async def remove_notification(
            interaction: discord.Interaction,
            channel_id: str,
            target_channel: discord.TextChannel,
        ):
            await interaction.response.defer(ephemeral=True)

            try:
                mapping = await self.admin.remove(
                    channel_id, str(interaction.guild_id), str(target_channel.id)
                )
            except NotFoundError:
                await interaction.followup.send(
                    f"❌ No notification for that YouTube channel was found in "
                    f"{target_channel.mention}."
                )
                return
            except Exception as e:
                log.error(f"Error in /notification remove: {e}", exc_info=True)
                await interaction.followup.send(
                    "❌ An error occurred while removing the notification. Please try again later."
                )
                return

            await interaction.followup.send(embed=build_removed_embed(mapping))

        @group.command(name="list", description="List this server's YouTube notifications.")
        @app_commands.checks.has_permissions(manage_guild=True)
        async def list_notifications(interaction: discord.Interaction):
            await interaction.response.defer(ephemeral=True)

            try:
                page = await self.admin.list(str(interaction.guild_id))
            except Exception as e:
                log.error(f"Error in /notification list: {e}", exc_info=True)
                await interaction.followup.send(
                    "❌ An error occurred while listing notifications. Please try again later."
                )
                return

            if not page.total:
                await interaction.followup.send(
                    "📭 No YouTube notifications are set up in this server."
                )
                return

            await interaction.followup.send(embed=build_list_embed(page))

        @group.command(
            name="preview", description="Show the latest videos of a YouTube channel feed."
        )
        @app_commands.checks.has_permissions(manage_guild=True)
        @app_commands.describe(channel_id="YouTube channel ID (e.g. UCxxxxxx)")
        async def preview_feed(interaction: discord.Interaction, channel_id: str):
            await interaction.response.defer(ephemeral=True)

            try:
                feed = await self.admin.preview(channel_id, limit=PREVIEW_SIZE)
            except ValidationError as e:
                await interaction.followup.send(f"❌ {e}")
                return
            except NotFoundError:
                await interaction.followup.send(
                    "❌ Could not find that YouTube channel! Please double-check the channel ID."
                )
                return
            except FetchError:
                await interaction.followup.send(
                    "⚠️ YouTube could not be reached right now. Please try again in a moment."
                )
                return
            except Exception as e:
                log.error(f"Error in /notification preview: {e}", exc_info=True)
                await interaction.followup.send(
                    "❌ An error occurred while reading the feed. Please try again later."
                )
                return

            if not feed.entries:
                await interaction.followup.send(
                    f"📭 **{feed.title or channel_id}** has no public videos in its feed."
                )
                return

            await interaction.followup.send(embed=build_preview_embed(feed))

        self.bot.tree.add_command(group)
        log.info("💻 YouTube Notification commands registered.")
