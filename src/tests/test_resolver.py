import time

import pytest

from core.resolver import MediaResolver, clamp_limit
from utils.exceptions import ResolutionError


class FakeExtractor:
    """Stands in for yt-dlp: maps a target to a canned info dict."""

    def __init__(self, responses=None, error=None, delay=0):
        self.responses = responses or {}
        self.error = error
        self.delay = delay
        self.calls = []

    def __call__(self, target, options):
        self.calls.append((target, options))
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.responses.get(target)


@pytest.fixture
def make_resolver():
    created = []

    def factory(extractor, **config):
        resolver = MediaResolver(config, extractor=extractor)
        created.append(resolver)
        return resolver

    yield factory
    for resolver in created:
        resolver.close()


@pytest.mark.parametrize("value,expected", [(None, 25), ("abc", 25), (0, 1), (-3, 1), (10, 10), (500, 50)])
def test_clamp_limit(value, expected):
    assert clamp_limit(value) == expected


def test_build_options(make_resolver):
    resolver = make_resolver(FakeExtractor(), cookie_file="/tmp/cookies.txt")
    options = resolver.build_options()

    assert options['format'] == 'bestaudio/best'
    assert options['nocheckcertificate'] is True
    assert options['retries'] == float('inf')
    assert options['cookiefile'] == "/tmp/cookies.txt"
    assert options['source_address'] == '0.0.0.0'

    plain = make_resolver(FakeExtractor(), force_ipv4=False).build_options()
    assert 'source_address' not in plain
    assert 'cookiefile' not in plain


@pytest.mark.asyncio
async def test_first_match_returns_urls_unchanged(make_resolver):
    extractor = FakeExtractor()
    resolver = make_resolver(extractor)

    url = "https://www.youtube.com/watch?v=abc"
    assert await resolver.resolve_first_match(url) == url
    assert extractor.calls == []


@pytest.mark.asyncio
async def test_first_match_searches_keywords(make_resolver):
    extractor = FakeExtractor({"ytsearch1:lofi beats": {"entries": [None, {"id": "xyz", "title": "Lofi"}]}})
    resolver = make_resolver(extractor)

    assert await resolver.resolve_first_match("lofi beats") == "https://www.youtube.com/watch?v=xyz"
    target, options = extractor.calls[0]
    assert options['extract_flat'] == 'in_playlist'


@pytest.mark.asyncio
async def test_first_match_without_results(make_resolver):
    resolver = make_resolver(FakeExtractor({"ytsearch1:nothing": {"entries": []}}))
    assert await resolver.resolve_first_match("nothing") is None

    failing = make_resolver(FakeExtractor(error=RuntimeError("HTTP 429")))
    assert await failing.resolve_first_match("anything") is None


@pytest.mark.asyncio
async def test_direct_source_with_headers(make_resolver):
    page = "https://www.youtube.com/watch?v=abc"
    extractor = FakeExtractor({page: {
        "url": "https://rr1.googlevideo.com/audio",
        "title": "Song",
        "http_headers": {"User-Agent": "ua", "Cookie": "c=1"},
    }})
    resolver = make_resolver(extractor)

    source = await resolver.resolve_direct_source(page)
    assert source.direct_url == "https://rr1.googlevideo.com/audio"
    assert source.headers == {"User-Agent": "ua", "Cookie": "c=1"}
    assert source.title == "Song"


@pytest.mark.asyncio
async def test_direct_source_failures(make_resolver):
    page = "https://www.youtube.com/watch?v=abc"

    no_url = make_resolver(FakeExtractor({page: {"title": "Song"}}))
    with pytest.raises(ResolutionError):
        await no_url.resolve_direct_source(page)

    broken = make_resolver(FakeExtractor(error=RuntimeError("Sign in to confirm your age")))
    with pytest.raises(ResolutionError):
        await broken.resolve_direct_source(page)

    slow = make_resolver(FakeExtractor({page: {"url": "x"}}, delay=0.5), resolve_timeout=0.05)
    with pytest.raises(ResolutionError):
        await slow.resolve_direct_source(page)


@pytest.mark.asyncio
async def test_title_falls_back_to_query(make_resolver):
    resolver = make_resolver(FakeExtractor({"ytsearch1:song": {"entries": [{"title": "The Song"}]}}))
    assert await resolver.resolve_title("song") == "The Song"
    assert await resolver.resolve_title("unknown words") == "unknown words"

    failing = make_resolver(FakeExtractor(error=RuntimeError("boom")))
    assert await failing.resolve_title("song") == "song"


@pytest.mark.asyncio
async def test_batch_from_playlist(make_resolver):
    playlist = "https://www.youtube.com/playlist?list=PL1"
    entries = [{"id": f"v{i}", "title": f"Track {i}"} for i in range(5)]
    entries.insert(2, None)
    entries.append({"id": "v9"})
    extractor = FakeExtractor({playlist: {"entries": entries}})
    resolver = make_resolver(extractor)

    result = await resolver.resolve_batch(playlist, 10)

    assert [e.title for e in result] == ["Track 0", "Track 1", "Track 2", "Track 3", "Track 4", "v9"]
    assert result[0].url == "https://www.youtube.com/watch?v=v0"
    assert extractor.calls[0][1]['playlistend'] == 10


@pytest.mark.asyncio
async def test_batch_search_is_clamped(make_resolver):
    extractor = FakeExtractor({"ytsearch50:jazz": {"entries": [{"id": "a", "title": "A"}]}})
    resolver = make_resolver(extractor)

    result = await resolver.resolve_batch("jazz", 500)
    assert [e.title for e in result] == ["A"]
    assert extractor.calls[0][0] == "ytsearch50:jazz"


@pytest.mark.asyncio
async def test_batch_single_video_and_failure(make_resolver):
    video = "https://www.youtube.com/watch?v=solo"
    resolver = make_resolver(FakeExtractor({video: {"id": "solo", "title": "Solo", "webpage_url": video}}))
    result = await resolver.resolve_batch(video)
    assert [(e.title, e.url) for e in result] == [("Solo", video)]

    failing = make_resolver(FakeExtractor(error=RuntimeError("boom")))
    assert await failing.resolve_batch("anything") == []
