# v1.0.0
"""
Help System Manager.

This module registers the bot's help command. It explains the notification
commands, who may use them and which placeholders a custom message supports.
"""

import discord
from discord.ext import commands
from datetime import datetime, timezone
import logging

log = logging.getLogger(__name__)


def build_help_embed(interval_seconds: float) -> discord.Embed:
    """Help card listing the notification commands and template placeholders."""
    embed = discord.Embed(
        title="🤖 TubeWatch Help",
        description=(
            "I post a message whenever a YouTube channel you follow uploads a new video. "
            "All `/notification` commands require the **Manage Server** permission."
        ),
        color=discord.Color.from_rgb(88, 101, 242),
        timestamp=datetime.now(timezone.utc),
    )

    embed.add_field(
        name="📢 YouTube Notifications (4 commands)",
        value=(
            "`/notification setup` → Announce a YouTube channel's uploads in a text channel\n"
            "`/notification remove` → Stop announcing a YouTube channel in a text channel\n"
            "`/notification list` → List this server's notifications\n"
            "`/notification preview` → Show the latest videos of a channel feed"
        ),
        inline=False,
    )

    embed.add_field(
        name="📝 Custom Message Placeholders",
        value=(
            "`{{video_title}}` → Title of the new video\n"
            "`{{video_url}}` → Link to the video\n"
            "`{{channel_name}}` → YouTube channel name\n"
            "`{{channel_url}}` → Link to the YouTube channel"
        ),
        inline=False,
    )

    embed.add_field(
        name="🔎 Channel IDs",
        value=(
            "Channel IDs start with `UC` and are 24 characters long. "
            "You can find one in the channel's URL: `youtube.com/channel/UC...`"
        ),
        inline=False,
    )

    embed.set_footer(text=f"Feeds are checked every {interval_seconds:g} seconds")
    return embed


class HelpManager:
    """
    Manages the help command for the bot.

    Responsibilities
    ----------------
    - Register the `/help` slash command in the bot's command tree.
    - Describe the notification commands and message placeholders.
    """

    def __init__(self, bot: commands.Bot, interval_seconds: float):
        """
        Initialize the HelpManager.

        Parameters
        ----------
        bot : commands.Bot
            The Discord bot instance.
        interval_seconds : float
            Poll period shown in the help footer.
        """
        self.bot = bot
        self.interval_seconds = interval_seconds
        log.info("Help system has been initialized.")

    def register_commands(self):
        """Register the /help slash command with the bot's command tree."""

        @self.bot.tree.command(
            name="help",
            description="Show how to set up YouTube upload notifications.",
        )
        async def help_command(interaction: discord.Interaction):
            await interaction.response.send_message(
                embed=build_help_embed(self.interval_seconds), ephemeral=True
            )

        log.info("💻 Help command registered.")
