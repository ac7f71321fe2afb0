"""
Media resolver adapter around yt-dlp.

Turns a user query or page URL into something playable. Direct media URLs are
signed and short-lived, so `resolve_direct_source` is only called right
before a pipeline starts; enqueueing only needs a display title.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import async_timeout
import yt_dlp

from core.interfaces import ResolvedEntry, ResolvedSource
from utils.constants import (
    BATCH_RESOLVE_TIMEOUT, PLAYLIST_DEFAULT_LIMIT, PLAYLIST_MAX_LIMIT,
    RESOLVE_TIMEOUT, SEARCH_PREFIX, WATCH_URL, YTDL_FLAT_OPTIONS, YTDL_OPTIONS,
)
from utils.exceptions import ResolutionError
from utils.url_utils import is_url

logger = logging.getLogger(__name__)

Extractor = Callable[[str, Dict[str, Any]], Optional[Dict[str, Any]]]


def ytdlp_extract(target: str, options: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Blocking yt-dlp metadata extraction (runs in the resolver's thread pool)."""
    with yt_dlp.YoutubeDL(options) as ydl:
        return ydl.extract_info(target, download=False)


def clamp_limit(limit: Any) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = PLAYLIST_DEFAULT_LIMIT
    return max(1, min(PLAYLIST_MAX_LIMIT, value))


def _entry_url(entry: Dict[str, Any]) -> Optional[str]:
    url = entry.get('webpage_url') or entry.get('url')
    if url and is_url(url):
        return url
    if entry.get('id'):
        return WATCH_URL.format(id=entry['id'])
    return None


def _entry_title(entry: Dict[str, Any]) -> str:
    return entry.get('title') or entry.get('id') or "unknown"


class MediaResolver:
    """
    Async facade over yt-dlp.

    Attributes:
        cookie_file (str): Netscape cookie file passed to yt-dlp, if any
        force_ipv4 (bool): bind yt-dlp to IPv4
        thread_pool (ThreadPoolExecutor): where blocking extraction runs
    """

    def __init__(self, config: Optional[dict] = None, extractor: Optional[Extractor] = None):
        config = config or {}
        self.cookie_file = config.get('cookie_file')
        self.force_ipv4 = config.get('force_ipv4', True)
        self.timeout = config.get('resolve_timeout', RESOLVE_TIMEOUT)
        self.batch_timeout = config.get('batch_resolve_timeout', BATCH_RESOLVE_TIMEOUT)
        self._extract = extractor or ytdlp_extract
        self.thread_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix='resolver')

    def build_options(self, **extra) -> Dict[str, Any]:
        options = dict(YTDL_OPTIONS)
        if self.cookie_file:
            options['cookiefile'] = self.cookie_file
        if self.force_ipv4:
            options['source_address'] = '0.0.0.0'
        options.update(extra)
        return options

    async def _extract_info(self, target: str, options: Dict[str, Any], timeout: float) -> Optional[Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        async with async_timeout.timeout(timeout):
            return await loop.run_in_executor(self.thread_pool, partial(self._extract, target, options))

    async def resolve_title(self, query: str) -> str:
        """Best-effort display title. Falls back to the raw query on any failure."""
        target = query if is_url(query) else f"{SEARCH_PREFIX}1:{query}"
        try:
            info = await self._extract_info(target, self.build_options(**YTDL_FLAT_OPTIONS), self.timeout)
        except Exception as e:
            logger.warning(f"Title lookup failed for {query!r}: {e}")
            return query
        if not info:
            return query
        if info.get('entries') is not None:
            entries = [e for e in info['entries'] if e]
            if entries and entries[0].get('title'):
                return entries[0]['title']
            return info.get('title') or query
        return info.get('title') or query

    async def resolve_first_match(self, query: str) -> Optional[str]:
        """
        Canonical page URL for `query`.

        URLs are returned unchanged; anything else is searched for and the
        first hit's URL is returned, or None when nothing matched.
        """
        if is_url(query):
            return query
        try:
            info = await self._extract_info(
                f"{SEARCH_PREFIX}1:{query}",
                self.build_options(**YTDL_FLAT_OPTIONS),
                self.timeout,
            )
        except Exception as e:
            logger.error(f"search resolve fail: {e}")
            return None
        for entry in (info or {}).get('entries') or []:
            if entry:
                url = _entry_url(entry)
                if url:
                    return url
        return None

    async def resolve_direct_source(self, page_url: str) -> ResolvedSource:
        """
        Best audio-only stream for `page_url` plus the headers needed to fetch it.

        Raises:
            ResolutionError: extraction failed, timed out or returned no URL
        """
        try:
            info = await self._extract_info(page_url, self.build_options(), self.timeout)
        except asyncio.TimeoutError:
            raise ResolutionError(f"Timed out resolving {page_url}")
        except Exception as e:
            raise ResolutionError(f"Failed to resolve {page_url}: {e}") from e

        if info and info.get('entries'):
            info = next((e for e in info['entries'] if e), None)
        url = (info or {}).get('url')
        if not url:
            raise ResolutionError("yt-dlp did not return media url")
        return ResolvedSource(
            direct_url=url,
            headers=dict(info.get('http_headers') or {}),
            title=info.get('title'),
        )

    async def resolve_batch(self, query: str, limit: Any = PLAYLIST_DEFAULT_LIMIT) -> List[ResolvedEntry]:
        """
        Expand a playlist URL, or search for up to `limit` results.

        `limit` is clamped to 1..50. Failures yield an empty list.
        """
        limit = clamp_limit(limit)
        if is_url(query):
            target = query
            options = self.build_options(**YTDL_FLAT_OPTIONS, playlistend=limit)
        else:
            target = f"{SEARCH_PREFIX}{limit}:{query}"
            options = self.build_options(**YTDL_FLAT_OPTIONS)

        entries: List[ResolvedEntry] = []
        try:
            info = await self._extract_info(target, options, self.batch_timeout)
        except Exception as e:
            logger.error(f"fetch playlist entries fail: {e}")
            return entries

        raw_entries = (info or {}).get('entries')
        if raw_entries is None and info:
            # A plain video URL expands to itself
            raw_entries = [info]
        for entry in raw_entries or []:
            if len(entries) >= limit:
                break
            if not entry:
                continue
            url = _entry_url(entry)
            if url:
                entries.append(ResolvedEntry(title=_entry_title(entry), url=url))
        return entries

    def close(self):
        self.thread_pool.shutdown(wait=False)
