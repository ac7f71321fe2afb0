"""
Audio sink adapter: feeds a transcoder pipeline into a discord.py voice client.

discord.py reports the end of a source through the `after` callback of
`VoiceClient.play`, called from its audio thread with the error (if any) that
stopped playback. The adapter hops that callback back onto the event loop so
the engine only ever sees "finished" (error is None) or "error" events on the
loop thread.
"""

import asyncio
import logging
from typing import Callable, Optional

import discord

from core.pipeline import PipelineHandle
from utils.constants import VOLUME_LOG_EXPONENT, VOLUME_MAX, VOLUME_MIN
from utils.exceptions import StreamError, VoiceError

logger = logging.getLogger(__name__)

OnFinished = Callable[[Optional[Exception]], None]

_HEADER_PACKETS = (b'OpusHead', b'OpusTags')
EXIT_WAIT_SECONDS = 2.0


def clamp_volume(percent: int) -> int:
    return max(VOLUME_MIN, min(VOLUME_MAX, int(percent)))


def percent_to_gain(percent: int) -> float:
    """Logarithmic volume: 100% is unity gain, 200% is roughly 3.2x amplitude."""
    return (clamp_volume(percent) / 100) ** VOLUME_LOG_EXPONENT


class PipelineAudioSource(discord.AudioSource):
    """
    Decodes the Opus packets of a pipeline's FFmpegOpusAudio into 20 ms PCM frames.

    Decoding to PCM lets the voice client wrap the source in a
    PCMVolumeTransformer, so volume changes apply to the live track.
    """

    def __init__(self, pipeline: PipelineHandle, decoder=None):
        self.pipeline = pipeline
        self._decoder = decoder or discord.opus.Decoder()
        self._buffer = bytearray()
        self._frame_size = discord.opus.Decoder.FRAME_SIZE

    def is_opus(self) -> bool:
        return False

    def read(self) -> bytes:
        while len(self._buffer) < self._frame_size:
            try:
                packet = self.pipeline.read()
            except (OSError, ValueError, discord.oggparse.OggError) as e:
                if self.pipeline.destroyed:
                    return b''
                raise StreamError(f"Transcoder stream failed: {e}") from e

            if not packet:
                return self._end_of_stream()
            if packet.startswith(_HEADER_PACKETS):
                continue
            self._buffer.extend(self._decoder.decode(packet))

        frame = bytes(self._buffer[:self._frame_size])
        del self._buffer[:self._frame_size]
        return frame

    def _end_of_stream(self) -> bytes:
        if self.pipeline.destroyed:
            return b''
        code = self.pipeline.wait(timeout=EXIT_WAIT_SECONDS)
        if code not in (0, None) and not self.pipeline.destroyed:
            raise StreamError(f"Transcoder exited with status {code}")
        return b''

    def cleanup(self):
        self.pipeline.destroy()


class DiscordVoiceSink:
    """
    One guild's voice connection, as seen by the playback engine.

    Attributes:
        bot (commands.Bot): bot owning the gateway connection
        guild_id (int): guild this sink plays into
    """

    def __init__(self, bot, guild_id: int):
        self.bot = bot
        self.guild_id = guild_id
        self._lock = asyncio.Lock()

    @property
    def guild(self) -> Optional[discord.Guild]:
        return self.bot.get_guild(self.guild_id)

    @property
    def voice_client(self) -> Optional[discord.VoiceClient]:
        guild = self.guild
        return guild.voice_client if guild else None

    async def connect(self, voice_channel_id: Optional[int]):
        """Join `voice_channel_id`, reusing the existing connection when possible."""
        async with self._lock:
            voice_client = self.voice_client
            if voice_client and voice_client.is_connected():
                if voice_channel_id is None or voice_client.channel.id == voice_channel_id:
                    return
            guild = self.guild
            if guild is None:
                raise VoiceError(f"Guild {self.guild_id} is not available")
            if voice_channel_id is None:
                raise VoiceError("No voice channel to join")
            channel = guild.get_channel(voice_channel_id)
            if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
                raise VoiceError(f"Voice channel {voice_channel_id} not found")

            try:
                if voice_client and voice_client.is_connected():
                    await voice_client.move_to(channel)
                else:
                    if voice_client:
                        await voice_client.disconnect(force=True)
                    await channel.connect(self_deaf=True)
            except (discord.DiscordException, asyncio.TimeoutError) as e:
                raise VoiceError(f"Could not join {channel.name}: {e}") from e
            logger.info(f"Joined voice channel {channel.name} in guild {self.guild_id}")

    def play(self, pipeline: PipelineHandle, volume_percent: int, on_finished: OnFinished):
        voice_client = self.voice_client
        if voice_client is None or not voice_client.is_connected():
            raise VoiceError("Not connected to a voice channel")

        source = discord.PCMVolumeTransformer(
            PipelineAudioSource(pipeline),
            volume=percent_to_gain(volume_percent),
        )
        loop = asyncio.get_running_loop()

        def after_playing(error):
            loop.call_soon_threadsafe(on_finished, error)

        if voice_client.is_playing() or voice_client.is_paused():
            voice_client.stop()
        voice_client.play(source, after=after_playing)

    def stop(self) -> bool:
        """Stop the current source. True if a "finished" callback will follow."""
        voice_client = self.voice_client
        if voice_client and (voice_client.is_playing() or voice_client.is_paused()):
            voice_client.stop()
            return True
        return False

    def pause(self) -> bool:
        voice_client = self.voice_client
        if voice_client and voice_client.is_playing():
            voice_client.pause()
            return True
        return False

    def resume(self) -> bool:
        voice_client = self.voice_client
        if voice_client and voice_client.is_paused():
            voice_client.resume()
            return True
        return False

    def set_volume(self, volume_percent: int):
        voice_client = self.voice_client
        source = voice_client.source if voice_client else None
        if isinstance(source, discord.PCMVolumeTransformer):
            source.volume = percent_to_gain(volume_percent)

    async def disconnect(self):
        async with self._lock:
            voice_client = self.voice_client
            if voice_client:
                try:
                    await voice_client.disconnect(force=True)
                except discord.DiscordException as e:
                    logger.warning(f"Error disconnecting from voice in guild {self.guild_id}: {e}")
