"""
Interfaces and data structures shared by the resolver, the pipeline and the engine
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any

from utils.constants import LOOP_LABELS
from utils.exceptions import InvalidLoopMode


class LoopMode(Enum):
    OFF = "off"
    TRACK = "track"
    QUEUE = "queue"

    @classmethod
    def parse(cls, value: Any) -> "LoopMode":
        """Accept a LoopMode or its (case-insensitive) string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidLoopMode(f"Unknown loop mode: {value!r}")

    @property
    def label(self) -> str:
        return LOOP_LABELS[self.value]


class PlaybackPhase(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    STOPPING = "stopping"


class TrackOutcome(Enum):
    """How a track ended. Drives the loop/advance policy."""
    FINISHED = "finished"    # sink reached natural end of stream
    SKIPPED = "skipped"      # user asked to skip
    ABANDONED = "abandoned"  # unplayable, or failed again after its one restart
    STOPPED = "stopped"      # user stopped playback entirely


@dataclass(frozen=True)
class QueueItem:
    """
    One track request. `source` is the original query or URL and is resolved
    again every time the item is played, since direct media URLs expire.
    """
    title: str
    source: str
    requested_by: str
    guild_id: int
    voice_channel_id: Optional[int] = None
    text_channel_id: Optional[int] = None


@dataclass(frozen=True)
class ResolvedSource:
    direct_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    title: Optional[str] = None


@dataclass(frozen=True)
class ResolvedEntry:
    title: str
    url: str


@dataclass(eq=False)
class PlaybackAttempt:
    """
    A single attempt at playing one QueueItem.

    Identity matters: the engine compares attempts with `is` to decide whether
    a late resolver result or sink callback still belongs to what is playing.
    """
    item: QueueItem
    phase: PlaybackPhase = PlaybackPhase.LOADING
    pipeline: Any = None
    is_restart: bool = False
