"""
Per-guild playback engine.

Owns the queue, the track being played, loop mode, volume and the transcoder
pipeline of the current track, and decides what happens when a track ends.

Playback state is a single `PlaybackAttempt` (or None when idle). Anything
that outlives an await (a resolver call, a sink callback) holds on to the
attempt it was started for and is dropped if that attempt is no longer
current. That is what keeps skip/stop from racing an in-flight load into a
double advance.
"""

import asyncio
import logging
import random
from collections import deque
from functools import partial
from typing import Awaitable, Callable, Deque, Iterable, Optional, Set

from core.interfaces import LoopMode, PlaybackAttempt, PlaybackPhase, QueueItem, TrackOutcome
from core.pipeline import PipelineHandle
from core.sink import clamp_volume
from utils.constants import MESSAGES, UP_NEXT_LOG_SIZE, VOLUME_DEFAULT
from utils.exceptions import InvalidIndex, InvalidVolume, MusicBotException, ResolutionError

logger = logging.getLogger(__name__)

Notifier = Callable[[int, str], Awaitable[None]]


class PlaybackEngine:
    """
    Gère la lecture de musique pour un serveur Discord spécifique.

    Attributes:
        guild_id (int): guild this engine plays for
        queue (deque): pending QueueItems, in play order
        loop_mode (LoopMode): what happens to a track once it ends
        volume (int): volume in percent, 0..1000
        restart_attempted (bool): the current track already used its one restart
        skip_requested (bool): the next sink "finished" event comes from a user skip
    """

    def __init__(
        self,
        guild_id: int,
        resolver,
        sink,
        notifier: Optional[Notifier] = None,
        *,
        pipeline_factory: Callable[[], PipelineHandle] = PipelineHandle,
        default_volume: int = VOLUME_DEFAULT,
        default_loop=LoopMode.OFF,
        rng: Optional[random.Random] = None,
    ):
        self.guild_id = guild_id
        self.resolver = resolver
        self.sink = sink
        self.notifier = notifier
        self.pipeline_factory = pipeline_factory

        self.queue: Deque[QueueItem] = deque()
        self.loop_mode = LoopMode.parse(default_loop)
        self.volume = clamp_volume(default_volume)
        self.restart_attempted = False
        self.skip_requested = False

        self._attempt: Optional[PlaybackAttempt] = None
        self._stopping = False
        self._kick_pending = False
        self._last_text_channel_id: Optional[int] = None
        self._transitions: Set[asyncio.Task] = set()
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current(self) -> Optional[QueueItem]:
        return self._attempt.item if self._attempt else None

    @property
    def pipeline(self) -> Optional[PipelineHandle]:
        return self._attempt.pipeline if self._attempt else None

    @property
    def phase(self) -> PlaybackPhase:
        if self._stopping:
            return PlaybackPhase.STOPPING
        if self._attempt is None:
            return PlaybackPhase.IDLE
        return self._attempt.phase

    def _owns(self, attempt: Optional[PlaybackAttempt]) -> bool:
        return attempt is not None and self._attempt is attempt

    def _log(self, level: int, message: str, **kwargs):
        logger.log(level, f"[guild {self.guild_id}] {message}", **kwargs)

    # ------------------------------------------------------------------
    # Queue mutation
    # ------------------------------------------------------------------

    def enqueue(self, item: QueueItem) -> bool:
        """Append `item`. Returns True if this started playback from idle."""
        self.queue.append(item)
        self._log(logging.INFO, f"Queued {item.title!r} | queue size now: {len(self.queue)}")
        return self._kick()

    def enqueue_batch(self, items: Iterable[QueueItem]) -> bool:
        items = list(items)
        self.queue.extend(items)
        self._log(logging.INFO, f"Queued {len(items)} items | queue size now: {len(self.queue)}")
        return self._kick() if items else False

    def remove_at(self, index) -> QueueItem:
        """
        Remove the queue entry at 1-based `index`.

        Raises:
            InvalidIndex: index is not an integer in 1..len(queue)
        """
        try:
            position = int(index)
        except (TypeError, ValueError):
            raise InvalidIndex(index, len(self.queue))
        if position < 1 or position > len(self.queue):
            raise InvalidIndex(index, len(self.queue))
        item = self.queue[position - 1]
        del self.queue[position - 1]
        self._log(logging.INFO, f"Removed #{position} {item.title!r}")
        return item

    def shuffle(self) -> bool:
        """Fisher-Yates shuffle of the pending queue. No-op below two entries."""
        queue = self.queue
        if len(queue) < 2:
            return False
        for i in range(len(queue) - 1, 0, -1):
            j = self._rng.randrange(i + 1)
            queue[i], queue[j] = queue[j], queue[i]
        return True

    def set_volume(self, percent) -> int:
        try:
            value = int(percent)
        except (TypeError, ValueError):
            raise InvalidVolume(f"Invalid volume: {percent!r}")
        self.volume = clamp_volume(value)
        if self.phase is PlaybackPhase.PLAYING:
            self.sink.set_volume(self.volume)
        return self.volume

    def set_loop_mode(self, mode) -> LoopMode:
        self.loop_mode = LoopMode.parse(mode)
        return self.loop_mode

    # ------------------------------------------------------------------
    # Playback controls
    # ------------------------------------------------------------------

    def pause(self) -> bool:
        if self.phase is not PlaybackPhase.PLAYING:
            return False
        return self.sink.pause()

    def resume(self) -> bool:
        if self.phase is not PlaybackPhase.PLAYING:
            return False
        return self.sink.resume()

    async def skip(self) -> bool:
        """
        Skip the current track. Returns False when nothing is playing or loading.

        A track that is still loading is abandoned on the spot; a playing one
        is stopped at the sink, whose "finished" event then carries the skip.
        """
        attempt = self._attempt
        if attempt is None:
            return False

        if attempt.phase is PlaybackPhase.LOADING:
            self._log(logging.INFO, f"Skipping {attempt.item.title!r} while it loads")
            self.skip_requested = False
            self._attempt = None
            self._release(attempt)
            if self.loop_mode is LoopMode.QUEUE:
                self.queue.append(attempt.item)
            self._kick()
            return True

        self._log(logging.INFO, f"Skipping {attempt.item.title!r}")
        self.skip_requested = True
        self._release(attempt)
        if not self.sink.stop():
            # Nothing was playing at the sink, so no event will follow
            self.skip_requested = False
            self._spawn(self._conclude(attempt, TrackOutcome.SKIPPED))
        return True

    async def stop(self):
        """Clear everything, kill the pipeline and leave the voice channel."""
        self._stopping = True
        try:
            self.queue.clear()
            self.loop_mode = LoopMode.OFF
            self.skip_requested = False
            self.restart_attempted = False
            if self._attempt is not None:
                await self._conclude(self._attempt, TrackOutcome.STOPPED)
            self.sink.stop()
            await self.sink.disconnect()
        finally:
            self._stopping = False
        self._log(logging.INFO, "Stopped and cleared the queue")
        if self.queue:
            # Something was queued while we were disconnecting
            self._kick()

    async def play_next(self):
        """
        Advance to the next playable queue entry, or settle idle.

        Entries that cannot be played are dropped one per iteration, so a
        queue of broken tracks drains instead of recursing.
        """
        self._release(self._attempt)
        self._attempt = None
        while self.queue:
            item = self.queue.popleft()
            self.restart_attempted = False
            if await self._load(item):
                return
        await self._settle_idle()

    async def join(self):
        """Wait until sink-driven transitions scheduled so far have completed."""
        while self._transitions:
            await asyncio.gather(*list(self._transitions), return_exceptions=True)

    async def close(self):
        for task in list(self._transitions):
            task.cancel()
        await self.stop()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load(self, item: QueueItem, *, restart: bool = False, announce: bool = True) -> bool:
        """
        Resolve `item`, start its pipeline and hand it to the sink.

        Returns False if the item could not be played (already reported to
        the user). Returns True once playing, or when another operation took
        over while this load was waiting, in which case there is nothing
        left for the caller to do.
        """
        attempt = PlaybackAttempt(item=item, is_restart=restart)
        self._attempt = attempt
        if item.text_channel_id is not None:
            self._last_text_channel_id = item.text_channel_id
        pipeline = None

        try:
            await self.sink.connect(item.voice_channel_id)
            if not self._owns(attempt):
                return True

            page_url = await self.resolver.resolve_first_match(item.source)
            if not self._owns(attempt):
                return True
            if not page_url:
                raise ResolutionError(f"cannot resolve page url for {item.source!r}")

            resolved = await self.resolver.resolve_direct_source(page_url)
            if not self._owns(attempt):
                return True

            pipeline = self.pipeline_factory()
            pipeline.start(resolved.direct_url, resolved.headers)
            attempt.pipeline = pipeline
            self.sink.play(pipeline, self.volume, partial(self._on_sink_finished, attempt))
            attempt.phase = PlaybackPhase.PLAYING
        except MusicBotException as e:
            self._log(logging.WARNING, f"play error for {item.title!r}: {e}")
            return await self._load_failed(attempt, pipeline)
        except Exception:
            self._log(logging.ERROR, f"Unexpected error while loading {item.title!r}", exc_info=True)
            return await self._load_failed(attempt, pipeline)

        if announce:
            up_next = " | ".join(x.title for x in list(self.queue)[:UP_NEXT_LOG_SIZE]) or "-"
            self._log(logging.INFO, f"NOW PLAYING: {item.title} | by={item.requested_by} up_next={up_next}")
            await self._notify(item.text_channel_id, MESSAGES['NOW_PLAYING'].format(
                title=item.title,
                requester=item.requested_by,
                volume=self.volume,
            ))
        elif attempt.is_restart:
            self._log(logging.INFO, f"RESTARTED: {item.title}")
        else:
            self._log(logging.INFO, f"REPLAYING: {item.title}")
        return True

    async def _load_failed(self, attempt: PlaybackAttempt, pipeline: Optional[PipelineHandle]) -> bool:
        if pipeline is not None:
            pipeline.destroy()
        attempt.pipeline = None
        if not self._owns(attempt):
            return True
        # Keep the attempt current while notifying so concurrent enqueues only append
        await self._notify(attempt.item.text_channel_id, MESSAGES['TRACK_SKIPPED_FAILED'].format(title=attempt.item.title))
        if not self._owns(attempt):
            return True
        self._attempt = None
        return False

    async def _settle_idle(self):
        self.restart_attempted = False
        self._log(logging.INFO, "QUEUE EMPTY")
        await self.sink.disconnect()
        if self.queue or self._attempt is not None:
            # Something was queued while we were disconnecting
            return
        await self._notify(self._last_text_channel_id, MESSAGES['QUEUE_EMPTY'])

    # ------------------------------------------------------------------
    # Sink events
    # ------------------------------------------------------------------

    def _on_sink_finished(self, attempt: PlaybackAttempt, error: Optional[Exception]):
        """Sink callback: `error` is None for a normal end of stream."""
        if not self._owns(attempt):
            self._log(logging.DEBUG, f"Ignoring sink event for superseded attempt {attempt.item.title!r}")
            return

        manual_skip, self.skip_requested = self.skip_requested, False
        if manual_skip:
            self._spawn(self._conclude(attempt, TrackOutcome.SKIPPED))
        elif error is None:
            self._spawn(self._conclude(attempt, TrackOutcome.FINISHED))
        else:
            self._spawn(self._handle_stream_error(attempt, error))

    async def _handle_stream_error(self, attempt: PlaybackAttempt, error: Exception):
        if not self._owns(attempt):
            return
        item = attempt.item
        self._log(logging.ERROR, f"Player error: {error}")

        if not self.restart_attempted:
            self.restart_attempted = True
            self._log(logging.ERROR, f"Attempting one-time stream restart | title={item.title!r}")
            await self._notify(item.text_channel_id, MESSAGES['RECONNECTING'])
            if not self._owns(attempt):
                return
            self._release(attempt)
            if not await self._load(item, restart=True, announce=False):
                await self.play_next()
            return

        await self._notify(item.text_channel_id, MESSAGES['TRACK_SKIPPED_FAILED'].format(title=item.title))
        await self._conclude(attempt, TrackOutcome.ABANDONED)

    async def _conclude(self, attempt: PlaybackAttempt, outcome: TrackOutcome):
        """Apply the loop policy to a track that ended with `outcome`, then move on."""
        if not self._owns(attempt):
            return
        item = attempt.item
        self._release(attempt)
        self._log(logging.INFO, f"FINISHED: {item.title} ({outcome.value})")

        if outcome is TrackOutcome.STOPPED:
            self._attempt = None
            return

        if outcome is TrackOutcome.FINISHED and self.loop_mode is LoopMode.TRACK:
            self.restart_attempted = False
            if not await self._load(item, announce=False):
                await self.play_next()
            return

        if outcome in (TrackOutcome.FINISHED, TrackOutcome.SKIPPED) and self.loop_mode is LoopMode.QUEUE:
            self.queue.append(item)

        self._attempt = None
        await self.play_next()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _release(self, attempt: Optional[PlaybackAttempt]):
        if attempt is not None and attempt.pipeline is not None:
            attempt.pipeline.destroy()
            attempt.pipeline = None

    def _kick(self) -> bool:
        """Schedule playback of the queue head if nothing is current."""
        if self._attempt is not None or self._stopping or self._kick_pending:
            return False
        self._kick_pending = True
        self._spawn(self._advance_if_idle())
        return True

    async def _advance_if_idle(self):
        self._kick_pending = False
        if self._attempt is None and self.queue:
            await self.play_next()

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._transitions.add(task)
        task.add_done_callback(self._transition_done)
        return task

    def _transition_done(self, task: asyncio.Task):
        self._transitions.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        self._log(logging.ERROR, "Unhandled error in playback transition", exc_info=error)
        attempt, self._attempt = self._attempt, None
        if attempt is not None:
            self._release(attempt)
            self.sink.stop()
        self._kick()

    async def _notify(self, text_channel_id: Optional[int], message: str):
        if text_channel_id is None or self.notifier is None:
            return
        try:
            await self.notifier(text_channel_id, message)
        except Exception as e:
            self._log(logging.WARNING, f"Could not notify channel {text_channel_id}: {e}")
