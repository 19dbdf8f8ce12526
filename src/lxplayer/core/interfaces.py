"""
Interfaces and data structures shared by the playback engine and its collaborators
"""

import uuid
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List, Protocol, Callable
from urllib.parse import quote

from lxplayer.utils.constants import LOCAL_ALBUM, LOCAL_ARTIST, QUALITY_SUFFIX


class PlayMode(Enum):
    SEQUENCE = "sequence"
    LOOP = "loop"
    SINGLE = "single"
    RANDOM = "random"


class PlayerStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    STALLED = "stalled"


class ErrorType(Enum):
    """Non-fatal failures the engine degrades from."""
    RESOLUTION_FAILURE = "resolution_failure"
    OPEN_FAILURE = "open_failure"


@dataclass(frozen=True, eq=False)
class Song:
    """A playable song. Two songs are the same song when their ids match."""
    id: str
    name: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    duration: Optional[int] = None
    pic: Optional[str] = None
    is_local: bool = False
    local_path: Optional[str] = None

    def __eq__(self, other):
        if not isinstance(other, Song):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    @classmethod
    def local(cls, path: str, name: Optional[str] = None) -> 'Song':
        """Build a song for a local file with a freshly generated id."""
        return cls(
            id=str(uuid.uuid4()),
            name=name or Path(path).stem,
            artist=LOCAL_ARTIST,
            album=LOCAL_ALBUM,
            is_local=True,
            local_path=str(path)
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Song':
        duration = data.get('duration')
        return cls(
            id=str(data['id']),
            name=data.get('name'),
            artist=data.get('artist'),
            album=data.get('album'),
            duration=int(duration) if duration is not None else None,
            pic=data.get('pic'),
            is_local=bool(data.get('is_local', False)),
            local_path=data.get('local_path')
        )


@dataclass(frozen=True)
class Source:
    """A remote catalog endpoint: search, stream resolution and lyric templates."""
    name: str
    search_url: str
    play_url: str
    lyric_url: str

    def search_request(self, keyword: str) -> str:
        return self.search_url + quote(keyword, safe='')

    def play_request(self, song_id: str) -> str:
        return self.play_url.replace(QUALITY_SUFFIX, '') + song_id + QUALITY_SUFFIX

    def lyric_request(self, song_id: str) -> str:
        return self.lyric_url + song_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Source':
        return cls(
            name=data['name'],
            search_url=data['search_url'],
            play_url=data['play_url'],
            lyric_url=data['lyric_url']
        )


@dataclass(frozen=True)
class Sample:
    """One reading of a playback session. duration is None while unknown."""
    elapsed: float = 0.0
    duration: Optional[float] = None
    ended: bool = False


@dataclass(frozen=True)
class EngineState:
    """Published engine state. Replaced wholesale on every change."""
    status: PlayerStatus = PlayerStatus.IDLE
    current: Optional[Song] = None
    index: int = 0
    progress: float = 0.0
    total: Optional[float] = None
    is_playing: bool = False
    speed: float = 1.0
    mode: PlayMode = PlayMode.SEQUENCE
    lyric_index: Optional[int] = None
    lyric_count: int = 0
    sleep_remaining: int = 0
    error: Optional[ErrorType] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'current': self.current.to_dict() if self.current else None,
            'index': self.index,
            'progress': self.progress,
            'total': self.total,
            'is_playing': self.is_playing,
            'speed': self.speed,
            'mode': self.mode.value,
            'lyric_index': self.lyric_index,
            'lyric_count': self.lyric_count,
            'sleep_remaining': self.sleep_remaining,
            'error': self.error.value if self.error else None,
        }


StateListener = Callable[[EngineState, Dict[str, Any]], None]


# Collaborator interfaces

class SourceResolver(Protocol):
    async def search(self, keyword: str, source: Source) -> List[Song]: ...

    async def resolve_stream_url(self, song_id: str, source: Source) -> Optional[str]: ...

    async def fetch_lyric(self, song_id: str, source: Source) -> Optional[str]: ...


class HistoryStore(Protocol):
    async def record_played(self, song: Song) -> None: ...

    async def is_favorite(self, song: Song) -> bool: ...

    async def toggle_favorite(self, song: Song) -> bool: ...


class SettingsStore(Protocol):
    def get_default_speed(self) -> float: ...

    async def set_default_speed(self, speed: float) -> None: ...

    def get_lyric_offset(self, song_id: str) -> float: ...


class AudioBackend(Protocol):
    """The audio output the playback session drives."""

    async def load(self, target: str) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def set_rate(self, rate: float) -> None: ...

    def stop(self) -> None: ...

    def position(self) -> Optional[float]: ...

    def duration(self) -> Optional[float]: ...

    def at_end(self) -> bool: ...
