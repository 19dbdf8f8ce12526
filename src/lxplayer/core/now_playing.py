from dataclasses import dataclass
from typing import Any, Dict, Optional

from lxplayer.core.interfaces import EngineState
from lxplayer.utils.constants import PROGRESS_BAR_LENGTH, UNKNOWN_TITLE


def format_duration(seconds: Optional[float]) -> str:
    """Format duration as MM:SS or HH:MM:SS"""
    if seconds is None:
        return "LIVE"
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    seconds = seconds % 60

    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def progress_bar(current: float, total: Optional[float], length: int = PROGRESS_BAR_LENGTH) -> str:
    """Create a text-based progress bar"""
    if not total:
        return "▬" * length + " LIVE"

    # Clamp to [0, length] to avoid overflow when elapsed > duration
    ratio = 0 if total <= 0 else current / total
    filled = max(0, min(length, int(ratio * length)))
    return "▰" * filled + "▱" * (length - filled)


@dataclass(frozen=True)
class NowPlaying:
    """What the remote-control surface shows for the current song."""
    title: str
    artist: Optional[str] = None
    album: Optional[str] = None
    elapsed: float = 0.0
    duration: Optional[float] = None
    is_playing: bool = False

    @classmethod
    def from_state(cls, state: EngineState) -> Optional['NowPlaying']:
        song = state.current
        if song is None:
            return None
        return cls(
            title=song.name or UNKNOWN_TITLE,
            artist=song.artist,
            album=song.album,
            elapsed=state.progress,
            duration=state.total,
            is_playing=state.is_playing
        )

    def info(self) -> Dict[str, Any]:
        """Title/artist pair in the shape media sessions expect."""
        return {'title': self.title, 'artist': self.artist or ""}

    def render(self) -> str:
        line = self.title if not self.artist else f"{self.title} - {self.artist}"
        timing = f"{format_duration(self.elapsed)} / {format_duration(self.duration)}"
        return f"{line}\n{timing} {progress_bar(self.elapsed, self.duration)}"
