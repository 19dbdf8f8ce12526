"""
Remote transport controls and output-route events.

OS media sessions (lock screen, headset buttons, car kits) deliver abstract
commands here. They may arrive on a foreign thread, so the *_threadsafe
variants marshal onto the engine's event loop before touching any state.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from lxplayer.core.interfaces import EngineState
from lxplayer.core.music_player import PlaybackEngine
from lxplayer.utils.constants import ROUTE_OLD_DEVICE_UNAVAILABLE

logger = logging.getLogger(__name__)


class RemoteCommand(Enum):
    PLAY = "play"
    PAUSE = "pause"
    TOGGLE = "toggle"
    NEXT = "next"
    PREVIOUS = "previous"


class RemoteCommandCenter:
    """
    Bridges the engine to an OS-level remote control surface.

    Attributes:
        engine (PlaybackEngine): Engine receiving the commands
        now_playing_info (dict): Title/artist summary shown by the surface
        on_now_playing (Callable): Optional sink notified when the summary changes
    """

    def __init__(self, engine: PlaybackEngine, loop: Optional[asyncio.AbstractEventLoop] = None,
                 on_now_playing: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.engine = engine
        self.loop = loop
        self.on_now_playing = on_now_playing
        self.now_playing_info: Dict[str, Any] = {}
        self._unsubscribe = engine.subscribe(self._on_state)

    def _on_state(self, state: EngineState, changes: Dict[str, Any]) -> None:
        if 'current' not in changes:
            return
        summary = self.engine.now_playing()
        self.now_playing_info = summary.info() if summary else {}
        if self.on_now_playing:
            self.on_now_playing(self.now_playing_info)

    async def handle(self, command: RemoteCommand) -> None:
        logger.debug(f"[REMOTE] Command {command.value}")
        if command == RemoteCommand.PLAY:
            self.engine.play()
        elif command == RemoteCommand.PAUSE:
            self.engine.pause()
        elif command == RemoteCommand.TOGGLE:
            self.engine.toggle_play()
        elif command == RemoteCommand.NEXT:
            await self.engine.next()
        elif command == RemoteCommand.PREVIOUS:
            await self.engine.prev()

    def handle_threadsafe(self, command: RemoteCommand):
        """Submit a command from a non-loop thread. Returns a concurrent.futures.Future."""
        if self.loop is None:
            raise RuntimeError("RemoteCommandCenter needs an event loop for thread-safe dispatch")
        return asyncio.run_coroutine_threadsafe(self.handle(command), self.loop)

    def route_changed(self, reason: str) -> None:
        if reason == ROUTE_OLD_DEVICE_UNAVAILABLE:
            self.engine.on_route_lost()
        else:
            logger.debug(f"[REMOTE] Ignoring route change: {reason}")

    def route_changed_threadsafe(self, reason: str) -> None:
        if self.loop is None:
            raise RuntimeError("RemoteCommandCenter needs an event loop for thread-safe dispatch")
        self.loop.call_soon_threadsafe(self.route_changed, reason)

    def close(self) -> None:
        self._unsubscribe()
