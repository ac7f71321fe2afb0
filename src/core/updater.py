"""
Keeps the yt-dlp resolver up to date.

Media sites change their players often enough that a stale yt-dlp stops
resolving anything, so the bot upgrades it once a day at local midnight and
on boot when the last successful upgrade is more than a day old. The time of
the last successful upgrade is the only thing persisted to disk.
"""

import asyncio
import logging
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

import yt_dlp

from utils.constants import ONE_DAY_SECONDS, UPDATE_MARK_FILE

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_COMMAND = [sys.executable, '-m', 'pip', 'install', '--upgrade', '--quiet', 'yt-dlp']


class ResolverUpdater:
    """
    Upgrade yt-dlp in place, at most one upgrade at a time.

    Attributes:
        mark_file (Path): file holding the epoch seconds of the last successful update
        tz (timezone): fixed UTC offset used for the daily schedule
        command (list): process run to perform the upgrade
    """

    def __init__(
        self,
        data_dir,
        timezone_offset_hours: float = 7,
        command: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.mark_file = Path(data_dir) / UPDATE_MARK_FILE
        self.tz = timezone(timedelta(hours=timezone_offset_hours))
        self.command = command or list(DEFAULT_UPDATE_COMMAND)
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def read_last_update(self) -> float:
        """Timestamp of the last successful update, 0 when unknown."""
        try:
            return float(self.mark_file.read_text(encoding='utf-8').strip())
        except (OSError, ValueError):
            return 0.0

    def write_last_update(self, ts: Optional[float] = None):
        ts = self._clock() if ts is None else ts
        try:
            self.mark_file.parent.mkdir(parents=True, exist_ok=True)
            self.mark_file.write_text(str(ts), encoding='utf-8')
        except OSError as e:
            logger.warning(f"Could not record update time in {self.mark_file}: {e}")

    def should_update_on_boot(self, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        return now - self.read_last_update() > ONE_DAY_SECONDS

    def seconds_until_next_midnight(self, now: Optional[float] = None) -> float:
        """Seconds from `now` until the next 00:00 in the configured offset (at least 1)."""
        now = self._clock() if now is None else now
        local = datetime.fromtimestamp(now, self.tz)
        midnight = (local + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        return max(1.0, (midnight - local).total_seconds())

    async def run_update(self) -> bool:
        """
        Run the upgrade command. Returns True on success.

        A call made while another upgrade is running returns False at once.
        The upgraded package is picked up on the next restart.
        """
        if self._running:
            logger.info("yt-dlp update already running")
            return False
        self._running = True
        started = self._clock()
        logger.info(f"Updating yt-dlp (current version {yt_dlp.version.__version__})")
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            output, _ = await process.communicate()
        except OSError as e:
            logger.error(f"yt-dlp update failed: {e}")
            return False
        finally:
            self._running = False

        text = (output or b'').decode('utf-8', errors='replace').strip()
        if process.returncode != 0:
            logger.error(f"yt-dlp update failed (exit {process.returncode}): {text[-500:]}")
            return False

        logger.info(f"yt-dlp update done: {text[-200:] or 'ok'}")
        self.write_last_update(started)
        return True

    def start(self):
        """Schedule the daily update loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._daily_loop())

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _daily_loop(self):
        while True:
            delay = self.seconds_until_next_midnight()
            logger.info(f"Next yt-dlp update in {delay / 3600:.1f} h")
            await asyncio.sleep(delay)
            try:
                await self.run_update()
            except Exception:
                logger.exception("Scheduled yt-dlp update crashed")
