import asyncio
import random

import pytest

from core.engine import PlaybackEngine
from core.interfaces import QueueItem, ResolvedSource
from utils.exceptions import PipelineSpawnError, ResolutionError


class FakePipeline:
    def __init__(self, fail=False):
        self.fail = fail
        self.started_with = None
        self.destroyed = False

    @property
    def url(self):
        return self.started_with[0] if self.started_with else None

    def start(self, direct_url, headers=None):
        if self.fail:
            raise PipelineSpawnError("ffmpeg: not found")
        self.started_with = (direct_url, headers)

    def destroy(self):
        self.destroyed = True


class FakeResolver:
    """Resolves `x` to https://page.test/x and then https://cdn.test/x."""

    def __init__(self):
        self.unresolvable = set()   # sources with no page url
        self.broken = set()         # sources whose direct url cannot be resolved
        self.gates = {}             # source -> asyncio.Event holding resolution back
        self.batch = []

    async def resolve_title(self, query):
        return f"title:{query}"

    async def resolve_first_match(self, query):
        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()
        if query in self.unresolvable:
            return None
        return f"https://page.test/{query}"

    async def resolve_direct_source(self, page_url):
        source = page_url.rsplit('/', 1)[-1]
        if source in self.broken:
            raise ResolutionError(f"no media url for {source}")
        return ResolvedSource(direct_url=f"https://cdn.test/{source}", headers={'User-Agent': 'test'})

    async def resolve_batch(self, query, limit=25):
        return self.batch[:limit]


class FakeSink:
    def __init__(self):
        self.played = []
        self.on_finished = None
        self.playing = False
        self.paused = False
        self.volume = None
        self.volume_calls = []
        self.connected = None
        self.disconnects = 0

    async def connect(self, voice_channel_id):
        self.connected = voice_channel_id

    def play(self, pipeline, volume_percent, on_finished):
        self.played.append(pipeline)
        self.volume = volume_percent
        self.on_finished = on_finished
        self.playing = True
        self.paused = False

    def finish(self, error=None):
        """End the current source the way discord.py's `after` callback would."""
        callback, self.on_finished = self.on_finished, None
        self.playing = False
        self.paused = False
        callback(error)

    def stop(self):
        if not self.playing:
            return False
        self.finish(None)
        return True

    def pause(self):
        if self.playing and not self.paused:
            self.paused = True
            return True
        return False

    def resume(self):
        if self.paused:
            self.paused = False
            return True
        return False

    def set_volume(self, volume_percent):
        self.volume = volume_percent
        self.volume_calls.append(volume_percent)

    async def disconnect(self):
        self.disconnects += 1
        self.connected = None


def make_item(source, guild_id=1, text_channel_id=10, voice_channel_id=100):
    return QueueItem(
        title=source,
        source=source,
        requested_by="user#0001",
        guild_id=guild_id,
        voice_channel_id=voice_channel_id,
        text_channel_id=text_channel_id,
    )


async def settle(engine, rounds=5):
    """Let spawned work run up to its next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)
    await engine.join()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def notes():
    return []


@pytest.fixture
def pipelines():
    return []


@pytest.fixture
def failing_sources():
    return set()


@pytest.fixture
def engine(resolver, sink, notes, pipelines, failing_sources):
    async def notifier(channel_id, message):
        notes.append((channel_id, message))

    def pipeline_factory():
        # The source is only known at start(); fail on a marked direct url
        pipeline = FakePipeline()
        original_start = pipeline.start

        def start(direct_url, headers=None):
            if direct_url.rsplit('/', 1)[-1] in failing_sources:
                pipeline.fail = True
            return original_start(direct_url, headers)

        pipeline.start = start
        pipelines.append(pipeline)
        return pipeline

    return PlaybackEngine(
        1,
        resolver,
        sink,
        notifier,
        pipeline_factory=pipeline_factory,
        rng=random.Random(1234),
    )
