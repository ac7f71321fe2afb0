import asyncio
import logging
from functools import partial

import discord
from discord import app_commands
from discord.ext import commands

from core.dispatcher import CommandDispatcher
from core.engine import PlaybackEngine
from core.health import HealthServer
from core.pipeline import PipelineHandle
from core.registry import GuildStateRegistry
from core.resolver import MediaResolver
from core.sink import DiscordVoiceSink
from core.updater import ResolverUpdater
from utils.config import load_config
from utils.constants import MESSAGES
from utils.embeds import error

logger = logging.getLogger(__name__)


class MusicBot(commands.Bot):
    """
    Bot Discord spécialisé dans la lecture de musique.

    Cette classe étend discord.ext.commands.Bot et assemble les composants
    de lecture: résolveur yt-dlp, un moteur de lecture par serveur,
    le dispatcher de commandes, la mise à jour de yt-dlp et le serveur HTTP
    de santé.

    Attributes:
        config (dict): Configuration du bot
        resolver (MediaResolver): Résolution des requêtes via yt-dlp
        registry (GuildStateRegistry): Moteurs de lecture par serveur
        dispatcher (CommandDispatcher): Exécution des commandes
        updater (ResolverUpdater): Mise à jour quotidienne de yt-dlp
        health (HealthServer): Endpoint HTTP de santé
    """

    def __init__(self, config: dict = None):
        self.config = config or load_config()

        # Slash commands and voice only: no message content needed
        intents = discord.Intents.default()
        intents.voice_states = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None
        )

        self.resolver = MediaResolver(self.config)
        self.registry = GuildStateRegistry(self.create_engine)
        self.updater = ResolverUpdater(
            self.config['data_dir'],
            timezone_offset_hours=self.config['timezone_offset_hours'],
        )
        self.dispatcher = CommandDispatcher(self.registry, self.resolver, self.updater)
        self.health = HealthServer(self.config['port'])
        self._boot_done = False
        self._boot_update = None

    def create_engine(self, guild_id: int) -> PlaybackEngine:
        """Factory used by the registry: one engine, one voice sink per guild."""
        return PlaybackEngine(
            guild_id,
            self.resolver,
            DiscordVoiceSink(self, guild_id),
            self.notify,
            pipeline_factory=partial(PipelineHandle, self.config['ffmpeg_path']),
            default_volume=self.config['default_volume'],
            default_loop=self.config['default_loop'],
        )

    async def notify(self, channel_id: int, message: str):
        """Send an engine notification to a text channel."""
        channel = self.get_channel(channel_id)
        if channel is None:
            channel = await self.fetch_channel(channel_id)
        await channel.send(message)

    async def setup_hook(self):
        """Configure bot extensions on startup"""
        asyncio.get_running_loop().set_exception_handler(self._loop_exception_handler)
        self.tree.error(self.on_app_command_error)

        await self.load_extension('cogs.music')
        await self.health.start()

    async def on_ready(self):
        """Called when the bot is ready and connected"""
        logger.info(f"Bot connected as {self.user} (ID: {self.user.id})")

        await self.change_presence(activity=discord.Activity(
            type=discord.ActivityType.listening,
            name="/play"
        ))

        # on_ready fires again after every reconnect
        if self._boot_done:
            return
        self._boot_done = True

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"register error: {e}")

        if self.config['auto_update']:
            self.updater.start()
            if self.updater.should_update_on_boot():
                self._boot_update = asyncio.create_task(self.updater.run_update())

    async def on_app_command_error(self, interaction: discord.Interaction, err: app_commands.AppCommandError):
        """Global slash command error handler"""
        original = getattr(err, 'original', err)
        logger.error(f"Error in /{interaction.command.name if interaction.command else '?'}: {original}",
                     exc_info=original)
        embed = error(MESSAGES['COMMAND_FAILED'].format(error=original))
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.warning(f"Could not report command error: {e}")

    async def on_error(self, event_method: str, *args, **kwargs):
        """Global event error handler"""
        logger.exception(f"Error in {event_method}")

    def _loop_exception_handler(self, loop, context):
        exc = context.get('exception')
        logger.error(f"Unhandled error: {context.get('message')}", exc_info=exc)

    async def close(self):
        """Clean shutdown of the bot"""
        logger.info("Bot shutdown initiated...")
        await self.updater.stop()
        await self.registry.shutdown()
        await self.health.stop()
        self.resolver.close()
        await super().close()
        logger.info("Bot shutdown completed")

    def run(self):
        """Run the bot with the configured token"""
        super().run(self.config['bot_token'], log_handler=None)
