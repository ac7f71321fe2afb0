"""
Command dispatcher: the boundary between the chat gateway and the engines.

The gateway turns an interaction into a `CommandInvocation`; the dispatcher
runs it against the guild's engine and answers with a `Reply` that the
gateway renders. Nothing in here knows about Discord objects.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.interfaces import QueueItem
from core.registry import GuildStateRegistry
from core.resolver import clamp_limit
from utils.constants import (
    MESSAGES, PLAYLIST_DEFAULT_LIMIT, PLAYLIST_PREVIEW_SIZE, QUEUE_PREVIEW_SIZE,
)
from utils.exceptions import InvalidIndex, InvalidLoopMode, InvalidVolume, MusicBotException
from utils.url_utils import URLUtils

logger = logging.getLogger(__name__)

# Commands that act on playback and therefore need the caller in a voice channel
VOICE_COMMANDS = frozenset({
    'play', 'playlist', 'skip', 'stop', 'pause', 'resume',
    'remove', 'shuffle', 'loop', 'volume',
})


@dataclass
class CommandInvocation:
    command_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    user: str = "unknown"
    guild_id: int = 0
    voice_channel_id: Optional[int] = None
    text_channel_id: Optional[int] = None


class ReplyKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


@dataclass
class Reply:
    message: str
    kind: ReplyKind = ReplyKind.INFO
    title: Optional[str] = None
    fields: List[Tuple[str, str]] = field(default_factory=list)
    ephemeral: bool = False


def _rejection(message: str) -> Reply:
    return Reply(message, ReplyKind.ERROR, ephemeral=True)


class CommandDispatcher:
    """
    Exécute les commandes utilisateur sur le moteur du serveur concerné.

    Attributes:
        registry (GuildStateRegistry): moteurs par serveur
        resolver (MediaResolver): pour les titres et l'expansion de playlists
        updater (ResolverUpdater): mise à jour de yt-dlp, optionnelle
    """

    def __init__(self, registry: GuildStateRegistry, resolver, updater=None):
        self.registry = registry
        self.resolver = resolver
        self.updater = updater
        self._handlers = {
            'play': self._play,
            'playlist': self._playlist,
            'skip': self._skip,
            'stop': self._stop,
            'pause': self._pause,
            'resume': self._resume,
            'np': self._now_playing,
            'queue': self._queue,
            'remove': self._remove,
            'shuffle': self._shuffle,
            'loop': self._loop,
            'volume': self._volume,
            'botupdate': self._botupdate,
        }

    @property
    def commands(self) -> List[str]:
        return list(self._handlers)

    async def dispatch(self, invocation: CommandInvocation) -> Reply:
        name = invocation.command_name
        logger.info(f"/{name} by {invocation.user} in guild {invocation.guild_id} args={invocation.args}")

        handler = self._handlers.get(name)
        if handler is None:
            return _rejection(MESSAGES['UNKNOWN_COMMAND'].format(name=name))
        if name in VOICE_COMMANDS and invocation.voice_channel_id is None:
            return _rejection(MESSAGES['VOICE_CHANNEL_REQUIRED'])

        try:
            return await handler(invocation)
        except InvalidIndex:
            return _rejection(MESSAGES['INVALID_INDEX'])
        except InvalidVolume:
            return _rejection(MESSAGES['INVALID_VOLUME'])
        except InvalidLoopMode:
            return _rejection(MESSAGES['INVALID_LOOP'])
        except MusicBotException as e:
            logger.warning(f"/{name} failed in guild {invocation.guild_id}: {e}")
            return _rejection(MESSAGES['COMMAND_FAILED'].format(error=e.message))

    def _engine(self, invocation: CommandInvocation):
        return self.registry.get_or_create(invocation.guild_id)

    def _item(self, invocation: CommandInvocation, title: str, source: str) -> QueueItem:
        return QueueItem(
            title=title,
            source=source,
            requested_by=invocation.user,
            guild_id=invocation.guild_id,
            voice_channel_id=invocation.voice_channel_id,
            text_channel_id=invocation.text_channel_id,
        )

    # ------------------------------------------------------------------
    # Queue commands
    # ------------------------------------------------------------------

    async def _play(self, invocation: CommandInvocation) -> Reply:
        query = str(invocation.args.get('query') or '').strip()
        if not query:
            return _rejection(MESSAGES['QUERY_REQUIRED'])
        title = await self.resolver.resolve_title(query)
        self._engine(invocation).enqueue(self._item(invocation, title, query))
        return Reply(MESSAGES['SONG_ADDED'].format(title=title), ReplyKind.SUCCESS)

    async def _playlist(self, invocation: CommandInvocation) -> Reply:
        query = str(invocation.args.get('query') or '').strip()
        if not query:
            return _rejection(MESSAGES['QUERY_REQUIRED'])
        limit = invocation.args.get('limit')
        limit = clamp_limit(PLAYLIST_DEFAULT_LIMIT if limit is None else limit)

        entries = await self.resolver.resolve_batch(query, limit)
        if not entries:
            return Reply(MESSAGES['PLAYLIST_EMPTY'], ReplyKind.ERROR)

        self._engine(invocation).enqueue_batch(
            self._item(invocation, entry.title, entry.url) for entry in entries
        )

        lines = [f"`{i}.` {entry.title}" for i, entry in enumerate(entries[:PLAYLIST_PREVIEW_SIZE], start=1)]
        if len(entries) > PLAYLIST_PREVIEW_SIZE:
            lines.append(MESSAGES['PLAYLIST_MORE'].format(count=len(entries) - PLAYLIST_PREVIEW_SIZE))
        message = MESSAGES['PLAYLIST_ADDED'].format(count=len(entries)) + "\n" + "\n".join(lines)
        title = MESSAGES['PLAYLIST_TITLE'] if URLUtils.is_playlist(query) else MESSAGES['SEARCH_TITLE']
        return Reply(message, ReplyKind.SUCCESS, title=title)

    async def _remove(self, invocation: CommandInvocation) -> Reply:
        engine = self._engine(invocation)
        if not engine.queue:
            return Reply(MESSAGES['REMOVE_EMPTY'])
        index = invocation.args.get('index')
        removed = engine.remove_at(index)
        return Reply(MESSAGES['REMOVED'].format(index=index, title=removed.title), ReplyKind.SUCCESS)

    async def _shuffle(self, invocation: CommandInvocation) -> Reply:
        if self._engine(invocation).shuffle():
            return Reply(MESSAGES['SHUFFLED'], ReplyKind.SUCCESS)
        return Reply(MESSAGES['SHUFFLE_TOO_SMALL'])

    async def _queue(self, invocation: CommandInvocation) -> Reply:
        engine = self._engine(invocation)
        queue = list(engine.queue)
        if not queue:
            return Reply(MESSAGES['QUEUE_EMPTY_LIST'])
        lines = [
            f"`{i}.` {item.title} - *{item.requested_by}*"
            for i, item in enumerate(queue[:QUEUE_PREVIEW_SIZE], start=1)
        ]
        if len(queue) > QUEUE_PREVIEW_SIZE:
            lines.append(MESSAGES['QUEUE_MORE'].format(count=len(queue) - QUEUE_PREVIEW_SIZE))
        return Reply(
            "\n".join(lines),
            title=MESSAGES['QUEUE_TITLE'].format(count=len(queue), loop=engine.loop_mode.label),
        )

    # ------------------------------------------------------------------
    # Playback commands
    # ------------------------------------------------------------------

    async def _skip(self, invocation: CommandInvocation) -> Reply:
        if await self._engine(invocation).skip():
            return Reply(MESSAGES['SKIPPED'], ReplyKind.SUCCESS)
        return Reply(MESSAGES['NOTHING_PLAYING'])

    async def _stop(self, invocation: CommandInvocation) -> Reply:
        await self._engine(invocation).stop()
        return Reply(MESSAGES['STOPPED'], ReplyKind.SUCCESS)

    async def _pause(self, invocation: CommandInvocation) -> Reply:
        if self._engine(invocation).pause():
            return Reply(MESSAGES['PAUSED'], ReplyKind.SUCCESS)
        return Reply(MESSAGES['NOTHING_PLAYING'])

    async def _resume(self, invocation: CommandInvocation) -> Reply:
        if self._engine(invocation).resume():
            return Reply(MESSAGES['RESUMED'], ReplyKind.SUCCESS)
        return Reply(MESSAGES['NOT_PAUSED'])

    async def _now_playing(self, invocation: CommandInvocation) -> Reply:
        engine = self._engine(invocation)
        current = engine.current
        if current is None:
            return Reply(MESSAGES['NOTHING_PLAYING'])
        return Reply(
            MESSAGES['NOW_PLAYING_BODY'].format(title=current.title, requester=current.requested_by),
            title=MESSAGES['NOW_PLAYING_TITLE'],
            fields=[
                ("Up next", str(len(engine.queue))),
                ("Volume", f"{engine.volume}%"),
                ("Loop", engine.loop_mode.label),
            ],
        )

    async def _loop(self, invocation: CommandInvocation) -> Reply:
        mode = self._engine(invocation).set_loop_mode(invocation.args.get('mode'))
        return Reply(MESSAGES['LOOP_SET'].format(mode=mode.label), ReplyKind.SUCCESS)

    async def _volume(self, invocation: CommandInvocation) -> Reply:
        volume = self._engine(invocation).set_volume(invocation.args.get('value'))
        return Reply(MESSAGES['VOLUME_SET'].format(volume=volume), ReplyKind.SUCCESS)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def _botupdate(self, invocation: CommandInvocation) -> Reply:
        if self.updater is None:
            return _rejection(MESSAGES['UPDATE_UNAVAILABLE'])
        if self.updater.is_running:
            return Reply(MESSAGES['UPDATE_RUNNING'], ReplyKind.WARNING, ephemeral=True)
        if await self.updater.run_update():
            return Reply(MESSAGES['UPDATE_DONE'], ReplyKind.SUCCESS, ephemeral=True)
        return Reply(MESSAGES['UPDATE_FAILED'], ReplyKind.ERROR, ephemeral=True)
