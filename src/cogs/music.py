import discord
import logging
from typing import Optional
from discord.ext import commands
from discord import app_commands

from core.dispatcher import CommandInvocation, Reply, ReplyKind
from utils.constants import MESSAGES
from utils.embeds import render_reply, error

logger = logging.getLogger(__name__)

# Read-only or maintenance commands usable from anywhere in the guild
NO_VOICE_CHECK = frozenset({'ping', 'botupdate', 'np', 'queue'})

LOOP_CHOICES = [
    app_commands.Choice(name="Off", value="off"),
    app_commands.Choice(name="Current track", value="track"),
    app_commands.Choice(name="Whole queue", value="queue"),
]


class Music(commands.Cog):
    """
    Slash commands de musique.

    Le cog ne fait que traduire les interactions en CommandInvocation et
    afficher la réponse du dispatcher; toute la logique est dans le moteur.
    """

    def __init__(self, bot):
        self.bot = bot

    @staticmethod
    def _user_voice_channel_id(interaction: discord.Interaction) -> Optional[int]:
        voice = getattr(interaction.user, 'voice', None)
        channel = getattr(voice, 'channel', None)
        return channel.id if channel else None

    @staticmethod
    def _bot_voice_channel_id(interaction: discord.Interaction) -> Optional[int]:
        voice_client = interaction.guild.voice_client if interaction.guild else None
        channel = getattr(voice_client, 'channel', None)
        return channel.id if channel else None

    def check_voice(self, interaction: discord.Interaction, command_name: str) -> Optional[str]:
        """
        Ensure the user shares the bot's voice channel.

        Returns:
            Optional[str]: rejection message, None when the command may run
        """
        if command_name in NO_VOICE_CHECK:
            return None
        user_channel = self._user_voice_channel_id(interaction)
        if user_channel is None:
            return MESSAGES['VOICE_CHANNEL_REQUIRED']
        bot_channel = self._bot_voice_channel_id(interaction)
        if bot_channel is not None and bot_channel != user_channel:
            return MESSAGES['SAME_VOICE_CHANNEL_REQUIRED']
        return None

    async def _send(self, interaction: discord.Interaction, reply: Reply):
        embed = render_reply(reply)
        if interaction.response.is_done():
            await interaction.edit_original_response(embed=embed)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=reply.ephemeral)

    async def run_command(
        self,
        interaction: discord.Interaction,
        command_name: str,
        defer: bool = False,
        ephemeral: bool = False,
        **args,
    ):
        """Check voice, build the invocation, dispatch it and render the reply."""
        rejection = self.check_voice(interaction, command_name)
        if rejection:
            await interaction.response.send_message(embed=error(rejection), ephemeral=True)
            return

        invocation = CommandInvocation(
            command_name=command_name,
            args=args,
            user=str(interaction.user),
            guild_id=interaction.guild_id,
            voice_channel_id=self._user_voice_channel_id(interaction),
            text_channel_id=interaction.channel_id,
        )

        if defer:
            # Resolving can take longer than the 3 s interaction window
            await interaction.response.defer(ephemeral=ephemeral, thinking=True)

        try:
            reply = await self.bot.dispatcher.dispatch(invocation)
        except Exception as e:
            logger.exception(f"/{command_name} crashed in guild {interaction.guild_id}")
            reply = Reply(MESSAGES['COMMAND_FAILED'].format(error=e), ReplyKind.ERROR, ephemeral=True)
        await self._send(interaction, reply)

    # Slash Commands

    @app_commands.command(name="play", description="Play a song from YouTube (name or URL)")
    @app_commands.describe(query="Song name or URL")
    async def play(self, interaction: discord.Interaction, query: str):
        await self.run_command(interaction, 'play', defer=True, query=query)

    @app_commands.command(name="playlist", description="Queue a YouTube playlist or the top search results")
    @app_commands.describe(query="Playlist link or search keywords", limit="Maximum number of tracks (1-50)")
    async def playlist(
        self,
        interaction: discord.Interaction,
        query: str,
        limit: Optional[app_commands.Range[int, 1, 50]] = None,
    ):
        await self.run_command(interaction, 'playlist', defer=True, query=query, limit=limit)

    @app_commands.command(name="skip", description="Skip the current song")
    async def skip(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'skip')

    @app_commands.command(name="stop", description="Stop playback and clear the queue")
    async def stop(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'stop')

    @app_commands.command(name="pause", description="Pause playback")
    async def pause(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'pause')

    @app_commands.command(name="resume", description="Resume playback")
    async def resume(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'resume')

    @app_commands.command(name="np", description="Show the song that is playing")
    async def np(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'np')

    @app_commands.command(name="queue", description="Show the upcoming songs")
    async def queue(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'queue')

    @app_commands.command(name="remove", description="Remove a song from the queue by position")
    @app_commands.describe(index="Position as shown by /queue")
    async def remove(self, interaction: discord.Interaction, index: app_commands.Range[int, 1, None]):
        await self.run_command(interaction, 'remove', index=index)

    @app_commands.command(name="shuffle", description="Shuffle the queue")
    async def shuffle(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'shuffle')

    @app_commands.command(name="loop", description="Set the loop mode")
    @app_commands.describe(mode="What to repeat")
    @app_commands.choices(mode=LOOP_CHOICES)
    async def loop(self, interaction: discord.Interaction, mode: app_commands.Choice[str]):
        await self.run_command(interaction, 'loop', mode=mode.value)

    @app_commands.command(name="volume", description="Set the volume (0-1000)")
    @app_commands.describe(value="Percent (0-1000)")
    async def volume(self, interaction: discord.Interaction, value: app_commands.Range[int, 0, 1000]):
        await self.run_command(interaction, 'volume', value=value)

    @app_commands.command(name="botupdate", description="Update the YouTube resolver (yt-dlp)")
    async def botupdate(self, interaction: discord.Interaction):
        await self.run_command(interaction, 'botupdate', defer=True, ephemeral=True)

    @app_commands.command(name="ping", description="Check the bot latency")
    async def ping(self, interaction: discord.Interaction):
        ws = round(self.bot.latency * 1000)
        elapsed = (discord.utils.utcnow() - interaction.created_at).total_seconds()
        rtt = max(0, round(elapsed * 1000))
        logger.info(f"/ping by {interaction.user} ws={ws}ms rtt={rtt}ms")
        await interaction.response.send_message(MESSAGES['PING'].format(ws=ws, rtt=rtt))


async def setup(bot):
    """Configure the music cog"""
    await bot.add_cog(Music(bot))
