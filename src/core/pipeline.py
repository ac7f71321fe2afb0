"""
Transcoder pipeline: one discord.py FFmpeg source per track attempt.

The handle starts ffmpeg against a direct media URL through
`discord.FFmpegOpusAudio`, which spawns the process, reads its Ogg/Opus output
and kills it on cleanup. A handle is used for exactly one track attempt and is
never restarted.
"""

import logging
import shlex
import subprocess
import threading
from typing import Callable, Dict, Optional

import discord

from utils.constants import DEFAULT_HTTP_HEADERS, FFMPEG_BEFORE_OPTIONS, FFMPEG_BITRATE, FFMPEG_OPTIONS
from utils.exceptions import PipelineSpawnError

logger = logging.getLogger(__name__)
ffmpeg_logger = logging.getLogger('ffmpeg')


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def build_header_block(headers: Optional[Dict[str, str]]) -> str:
    """
    Build the value for ffmpeg's `-headers` option.

    Resolver-supplied headers win over the defaults; a cookie is only sent
    when the resolver returned one.
    """
    headers = headers or {}
    merged = {}
    for name, default in DEFAULT_HTTP_HEADERS.items():
        merged[name] = _header(headers, name) or default
    cookie = _header(headers, 'Cookie')
    if cookie:
        merged['Cookie'] = cookie
    return "".join(f"{name}: {value}\r\n" for name, value in merged.items())


def build_before_options(headers: Optional[Dict[str, str]] = None) -> str:
    # discord.py shlex-splits before_options, the header block must stay one argument
    return f"{FFMPEG_BEFORE_OPTIONS} -headers {shlex.quote(build_header_block(headers))}"


class FFmpegLogWriter:
    """File-like sink for ffmpeg's stderr: one `ffmpeg` log record per line."""

    def __init__(self):
        self._pending = b''

    def write(self, data: bytes):
        self._pending += data
        *lines, self._pending = self._pending.split(b'\n')
        for raw in lines:
            self._emit(raw)
        return len(data)

    def flush(self):
        if self._pending:
            self._emit(self._pending)
            self._pending = b''

    @staticmethod
    def _emit(raw: bytes):
        line = raw.decode('utf-8', errors='replace').strip()
        if line:
            ffmpeg_logger.info(f"[ffmpeg] {line}")


class PipelineHandle:
    """
    Wraps exactly one ffmpeg audio source.

    Attributes:
        executable (str): ffmpeg binary to run
        source (FFmpegOpusAudio): the running source, None before start()
        destroyed (bool): True once destroy() has been called
    """

    def __init__(self, executable: str = 'ffmpeg',
                 audio_factory: Callable[..., discord.FFmpegOpusAudio] = discord.FFmpegOpusAudio):
        self.executable = executable
        self._audio_factory = audio_factory
        self.source: Optional[discord.FFmpegOpusAudio] = None
        self.destroyed = False
        self._lock = threading.Lock()

    def start(self, direct_url: str, headers: Optional[Dict[str, str]] = None) -> discord.FFmpegOpusAudio:
        """
        Start ffmpeg for `direct_url`.

        Raises:
            PipelineSpawnError: binary missing, not executable, or the handle
                was already used
        """
        if self.source is not None or self.destroyed:
            raise PipelineSpawnError("Pipeline handles cannot be reused")

        try:
            self.source = self._audio_factory(
                direct_url,
                executable=self.executable,
                bitrate=FFMPEG_BITRATE,
                before_options=build_before_options(headers),
                options=FFMPEG_OPTIONS,
                stderr=FFmpegLogWriter(),
            )
        except discord.ClientException as e:
            raise PipelineSpawnError(f"Could not start {self.executable}: {e}") from e

        logger.debug(f"Started {self.executable} for {direct_url[:80]}")
        return self.source

    def read(self) -> bytes:
        """Next Opus packet from ffmpeg, b'' at end of stream."""
        if self.source is None:
            return b''
        return self.source.read()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Exit status of ffmpeg; None if it is still running after `timeout` or was torn down."""
        # FFmpegAudio keeps its Popen private and swaps it for a sentinel on cleanup
        process = getattr(self.source, '_process', None)
        if self.destroyed or not hasattr(process, 'wait'):
            return None
        try:
            return process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def destroy(self):
        """Kill ffmpeg through the source's cleanup. Safe to call any number of times."""
        with self._lock:
            if self.destroyed:
                return
            self.destroyed = True

        if self.source is None:
            return
        try:
            self.source.cleanup()
        except (BrokenPipeError, ConnectionResetError, ValueError):
            pass
        logger.debug(f"Destroyed pipeline for {self.executable}")
