"""
Main Bot Entry Point.

This module defines the Discord bot, which doubles as the application context:
it owns the database pool, the mapping store, the feed client and the feature
managers, creates them on startup and tears them down on shutdown.
"""

import discord
from discord.ext import commands
import logging
import asyncpg
import asyncio

from bot_config import BotSettings, load_settings
from help import HelpManager
from notification_admin import NotificationAdmin
from notification_store import NotificationStore
from youtube_checker import DiscordSender, YouTubeChecker
from youtube_feed import YouTubeFeedClient
from youtube_notification import YouTubeManager

log = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s]  %(message)s"


class TubeWatchCommandTree(discord.app_commands.CommandTree):
    """
    CommandTree with a global error handler for application commands.

    Provides user-friendly error messages for:
    - MissingPermissions
    - NoPrivateMessage
    - CheckFailure
    and falls back to a generic message for unexpected errors.
    """

    async def on_error(
        self,
        interaction: discord.Interaction,
        error: discord.app_commands.AppCommandError,
    ):
        command_name = interaction.command.qualified_name if interaction.command else "unknown"

        message = "❌ An unexpected error occurred. Please try again later."
        if isinstance(error, discord.app_commands.MissingPermissions):
            message = "🚫 You need the Manage Server permission to run this command."
        elif isinstance(error, discord.app_commands.NoPrivateMessage):
            message = "🚫 This command can only be used in a server."
        elif isinstance(error, discord.app_commands.CheckFailure):
            message = "🚫 You are not allowed to use this command."
        else:
            log.error(
                f"Slash command error for '/{command_name}': {error}",
                exc_info=error,
            )

        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException as e:
            log.warning(f"Could not report error for '/{command_name}': {e}")


class TubeWatchBot(commands.Bot):
    """
    YouTube upload notification bot.

    Responsibilities
    ----------------
    - Manage the database connection pool and the mapping store.
    - Own the feed client and the feature managers.
    - Keep the process alive on unhandled task errors by logging them.
    - Coordinate clean shutdown of background loops and resources.
    """

    def __init__(self, settings: BotSettings):
        intents = discord.Intents.default()
        intents.guilds = True
        super().__init__(
            command_prefix="!",
            intents=intents,
            help_command=None,
            tree_cls=TubeWatchCommandTree,
        )
        self.settings = settings
        self.pool = None
        self.store = None
        self.feed_client = None
        self.youtube_manager = None
        self.help_manager = None

    async def setup_hook(self):
        """
        Asynchronous setup hook executed before the bot connects to Discord.

        This method:
        - Creates the asyncpg connection pool and verifies the schema.
        - Starts the feed client.
        - Instantiates the feature managers and registers their commands.
        - Starts the poll and cleanup loops.
        """
        log.info("Bot is setting up...")
        asyncio.get_running_loop().set_exception_handler(self._log_loop_exception)

        # --- Database Connection ---
        try:
            self.pool = await asyncpg.create_pool(
                self.settings.database_url,
                min_size=1,
                max_size=10,
                max_inactive_connection_lifetime=300,
                command_timeout=60,
            )
            self.store = NotificationStore(self.pool)
            await self.store.ensure_schema()
            log.info("✅ Successfully connected to the PostgreSQL database.")
        except Exception as e:
            log.critical(f"❌ CRITICAL: Could not connect to the database: {e}")
            await self.close()
            return

        # --- Feed Client ---
        self.feed_client = YouTubeFeedClient(timeout=self.settings.feed_timeout)
        await self.feed_client.start()

        # --- Initialize Feature Managers ---
        log.info("Initializing feature managers...")
        admin = NotificationAdmin(self.store, self.feed_client)
        checker = YouTubeChecker(
            self.store,
            self.feed_client,
            DiscordSender(self, timeout=self.settings.send_timeout),
            self.settings,
        )
        self.youtube_manager = YouTubeManager(
            self, admin, checker, self.settings.check_interval_seconds
        )
        self.help_manager = HelpManager(self, self.settings.check_interval_seconds)

        self.youtube_manager.register_commands()
        self.help_manager.register_commands()

        await self.youtube_manager.start()
        log.info("All managers have been initialized.")

    def _log_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict):
        exception = context.get("exception")
        log.error(
            f"Unhandled error in event loop: {context.get('message')}",
            exc_info=exception,
        )

    async def on_ready(self):
        """Sync application commands and log the guilds the bot is in."""
        log.info("=" * 50)
        log.info(f"✅ Logged in as {self.user} (ID: {self.user.id})")

        try:
            synced = await self.tree.sync()
            log.info(f"✅ Synced {len(synced)} slash commands globally.")
        except discord.HTTPException as e:
            log.error(f"❌ Failed to sync slash commands: {e}")

        log.info(f"🚀 Bot is connected to {len(self.guilds)} server(s):")
        for guild in self.guilds:
            log.info(f"   - {guild.name} (ID: {guild.id})")
        log.info("=" * 50)

    async def close(self):
        """
        Gracefully shut down the bot.

        This method:
        - Stops the poll and cleanup loops.
        - Closes the feed client's HTTP session.
        - Closes the PostgreSQL connection pool.
        - Calls the parent class `close()` to terminate the connection to Discord.
        """
        log.info("🛑 Shutting down feature managers...")

        if self.youtube_manager:
            await self.youtube_manager.stop()
        if self.feed_client:
            await self.feed_client.close()

        if self.pool:
            try:
                await asyncio.wait_for(self.pool.close(), timeout=5.0)
                log.info("🔌 Database connection pool closed.")
            except asyncio.TimeoutError:
                log.warning("⚠️ Database pool closure timed out.")
            except Exception as e:
                log.error(f"⚠️ Error closing database pool: {e}")
            self.pool = None

        await super().close()


def run_bot():
    """
    Load configuration, validate it and start the bot.

    Ensures that both DISCORD_TOKEN and DATABASE_URL are present before
    calling `bot.run()`.
    """
    try:
        settings = load_settings()
    except ValueError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        log.critical(f"❌ Invalid configuration: {e}")
        return

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    if not settings.discord_token:
        log.critical("❌ Error: DISCORD_TOKEN not found in .env file!")
        return
    if not settings.database_url:
        log.critical("❌ Error: DATABASE_URL not found in .env file!")
        return

    bot = TubeWatchBot(settings)
    bot.run(settings.discord_token, log_handler=None)


if __name__ == "__main__":
    run_bot()
