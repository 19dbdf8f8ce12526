"""
A single playable item opened on the audio backend.
"""

import logging
import math
from enum import Enum
from typing import Optional

from lxplayer.core.interfaces import AudioBackend, Sample
from lxplayer.utils.exceptions import OpenError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


def _finite_or_none(value) -> Optional[float]:
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) and value >= 0 else None


class PlaybackSession:
    """
    Transport controls for one local file or resolved stream URL.

    Only one session owns the backend at a time. Once a session is closed
    (because another one replaced it) every control becomes a no-op and
    sample() reports nothing, so late callers cannot disturb the new item.
    """

    def __init__(self, backend: AudioBackend, target: str, rate: float = 1.0):
        self.backend = backend
        self.target = target
        self.rate = rate
        self.state = SessionState.PENDING
        self.error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.state == SessionState.READY

    @property
    def failed(self) -> bool:
        return self.state == SessionState.FAILED

    async def open(self) -> bool:
        """Load the target on the backend. Returns False and marks the session failed on error."""
        try:
            await self.backend.load(self.target)
        except OpenError as e:
            if self.state == SessionState.CLOSED:
                return False
            self.state = SessionState.FAILED
            self.error = e.message
            logger.warning(f"[SESSION] Failed to open {self.target}: {e.message}")
            return False

        if self.state == SessionState.CLOSED:
            # Replaced while loading; leave the backend to the new session
            return False

        self.state = SessionState.READY
        logger.info(f"[SESSION] Opened {self.target}")
        return self._control(self.backend.set_rate, self.rate)

    def _control(self, command, *args) -> bool:
        """Forward a transport command; a dead backend marks the session failed."""
        if not self.ready:
            return False
        try:
            command(*args)
        except OpenError as e:
            self.state = SessionState.FAILED
            self.error = e.message
            logger.warning(f"[SESSION] Backend rejected {getattr(command, '__name__', command)}: {e.message}")
            return False
        return True

    def play(self) -> bool:
        return self._control(self.backend.play)

    def pause(self) -> bool:
        return self._control(self.backend.pause)

    def seek(self, seconds: float) -> bool:
        return self._control(self.backend.seek, max(0.0, float(seconds)))

    def set_rate(self, rate: float) -> bool:
        # Kept even while pending or paused; applied on open and on resume
        self.rate = rate
        return self._control(self.backend.set_rate, rate)

    def sample(self) -> Sample:
        if not self.ready:
            return Sample()
        elapsed = _finite_or_none(self.backend.position()) or 0.0
        return Sample(
            elapsed=elapsed,
            duration=_finite_or_none(self.backend.duration()),
            ended=self.backend.at_end()
        )

    def close(self) -> None:
        if self.state == SessionState.CLOSED:
            return
        was_ready = self.ready
        if was_ready:
            self._control(self.backend.stop)
        self.state = SessionState.CLOSED
