"""
HTTP client for remote catalog sources.

Every source is a set of URL templates (search, stream URL, lyric). The
responses are the meting-style JSON documents the default source serves.
Failures are logged and turned into empty results; the engine decides
what an empty result means.
"""

import asyncio
import json
import logging
from typing import Any, List, Optional, Iterable

import aiohttp
import async_timeout

from lxplayer.core.interfaces import Song, Source
from lxplayer.utils.constants import REQUEST_TIMEOUT
from lxplayer.utils.exceptions import SourceError

logger = logging.getLogger(__name__)


class SourceManager:
    """Configured sources and the one currently in use."""

    def __init__(self, sources: Iterable[Source]):
        self.sources: List[Source] = list(sources)
        self.current: Optional[Source] = self.sources[0] if self.sources else None

    @classmethod
    def from_config(cls, config: dict) -> 'SourceManager':
        return cls(Source.from_dict(s) for s in config.get('sources', []))

    def get(self, name: str) -> Source:
        for source in self.sources:
            if source.name == name:
                return source
        raise KeyError(f"Unknown source: {name}")

    def select(self, name: str) -> Source:
        self.current = self.get(name)
        logger.info(f"[SOURCE] Switched to {name}")
        return self.current


def parse_songs(payload: Any) -> List[Song]:
    """Songs from a search response: either {"data": [...]} or a bare list."""
    items = payload.get('data') if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        return []

    songs = []
    for item in items:
        if not isinstance(item, dict) or item.get('id') in (None, ''):
            continue
        duration = item.get('duration')
        songs.append(Song(
            id=str(item['id']),
            name=item.get('name'),
            artist=item.get('artist'),
            album=item.get('album'),
            duration=int(duration) if isinstance(duration, (int, float)) else None,
            pic=item.get('pic'),
        ))
    return songs


def parse_stream_url(payload: Any) -> Optional[str]:
    """Stream URL from {"url": ...} or {"data": {"url": ...}}."""
    if not isinstance(payload, dict):
        return None
    url = payload.get('url')
    if isinstance(url, str) and url:
        return url
    data = payload.get('data')
    if isinstance(data, dict):
        url = data.get('url')
        if isinstance(url, str) and url:
            return url
    return None


class HttpSourceResolver:
    """
    Resolves searches, stream URLs and lyrics against a Source over HTTP.

    The aiohttp session is created lazily and must be released with close().
    """

    def __init__(self, timeout: float = REQUEST_TIMEOUT, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_text(self, url: str) -> str:
        try:
            async with async_timeout.timeout(self.timeout):
                async with self._get_session().get(url) as response:
                    if response.status >= 400:
                        raise SourceError(f"HTTP {response.status} from {url}", code=response.status)
                    return await response.text()
        except asyncio.TimeoutError:
            raise SourceError(f"Timeout requesting {url}", code=408)
        except aiohttp.ClientError as e:
            raise SourceError(f"Request to {url} failed: {e}")

    async def _get_json(self, url: str) -> Any:
        text = await self._get_text(url)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise SourceError(f"Invalid JSON from {url}: {e}")

    async def search(self, keyword: str, source: Source) -> List[Song]:
        try:
            payload = await self._get_json(source.search_request(keyword))
        except SourceError as e:
            logger.error(f"[SOURCE] Search '{keyword}' on {source.name} failed: {e.message}")
            return []
        songs = parse_songs(payload)
        logger.info(f"[SOURCE] Search '{keyword}' on {source.name}: {len(songs)} result(s)")
        return songs

    async def resolve_stream_url(self, song_id: str, source: Source) -> Optional[str]:
        try:
            payload = await self._get_json(source.play_request(song_id))
        except SourceError as e:
            logger.error(f"[SOURCE] Stream resolution for {song_id} on {source.name} failed: {e.message}")
            return None
        url = parse_stream_url(payload)
        if url is None:
            logger.warning(f"[SOURCE] No stream URL in response for {song_id}")
        return url

    async def fetch_lyric(self, song_id: str, source: Source) -> Optional[str]:
        try:
            return await self._get_text(source.lyric_request(song_id))
        except SourceError as e:
            logger.error(f"[SOURCE] Lyric fetch for {song_id} on {source.name} failed: {e.message}")
            return None
