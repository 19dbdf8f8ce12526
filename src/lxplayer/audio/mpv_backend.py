"""
mpv audio backend driven over mpv's JSON IPC socket.

The player process is started once in idle mode and every song is loaded
into it with `loadfile ... replace`. Position, duration and end-of-file
arrive as property/events and are cached, so the engine's sampling loop
can read them without a round trip.
"""

import asyncio
import json
import logging
import math
import os
import shutil
import tempfile
import time
from typing import Any, Dict, Optional

import async_timeout

from lxplayer.utils.constants import OPEN_TIMEOUT
from lxplayer.utils.exceptions import OpenError

logger = logging.getLogger(__name__)

OBSERVED_PROPERTIES = ('time-pos', 'duration', 'pause', 'speed')


def find_mpv_binary(preferred_path: Optional[str] = None) -> Optional[str]:
    """Locate mpv: explicit path first, then PATH."""
    if preferred_path and os.path.isfile(preferred_path):
        return preferred_path
    return shutil.which('mpv')


def _as_seconds(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


class MpvBackend:
    """
    Audio backend controlled through mpv's JSON IPC.

    Attributes:
        mpv_path (str): mpv executable
        ipc_path (str): Unix socket path passed to --input-ipc-server
        open_timeout (float): Seconds to wait for a file to load
    """

    def __init__(self, mpv_path: Optional[str] = None, ipc_path: Optional[str] = None,
                 open_timeout: float = OPEN_TIMEOUT):
        self.mpv_path = find_mpv_binary(mpv_path)
        self.ipc_path = ipc_path or os.path.join(tempfile.gettempdir(), f"lxplayer-mpv-{os.getpid()}.sock")
        self.open_timeout = open_timeout

        self._proc: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._pending_load: Optional[asyncio.Future] = None
        self._observer_id = 0
        self._request_id = 0

        # Playlist entry of the last loadfile; events for other entries are stale
        self._load_request: Optional[int] = None
        self._load_acked = False
        self._load_entry: Optional[int] = None
        self._load_started = False

        # Cached properties
        self._time_pos: Optional[float] = None
        self._duration: Optional[float] = None
        self._paused = True
        self._speed = 1.0
        self._eof = False

    # ----------------------------
    # Lifecycle
    # ----------------------------

    @property
    def is_running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None and self._writer is not None

    async def start(self, connect_timeout: float = 3.0) -> None:
        if self._proc is not None:
            return
        if not self.mpv_path:
            raise OpenError("mpv binary not found (set MPV_PATH or install mpv)")

        if os.path.exists(self.ipc_path):
            os.remove(self.ipc_path)

        args = [
            self.mpv_path,
            '--idle=yes',
            '--no-video',
            '--audio-display=no',
            '--keep-open=no',
            f'--input-ipc-server={self.ipc_path}',
            '--terminal=no',
            '--msg-level=all=warn',
        ]
        self._proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )

        deadline = time.monotonic() + connect_timeout
        last_err: Optional[Exception] = None
        while time.monotonic() < deadline:
            try:
                self._reader, self._writer = await asyncio.open_unix_connection(self.ipc_path)
                break
            except OSError as e:
                last_err = e
                await asyncio.sleep(0.05)
        if self._writer is None:
            await self.close()
            raise OpenError(f"Failed to connect to mpv IPC socket {self.ipc_path}: {last_err!r}")

        self._read_task = asyncio.create_task(self._read_loop())
        for name in OBSERVED_PROPERTIES:
            self._observer_id += 1
            self._send('observe_property', self._observer_id, name)
        logger.info(f"[MPV] Started {self.mpv_path} (ipc {self.ipc_path})")

    async def close(self) -> None:
        if self._read_task:
            self._read_task.cancel()
            self._read_task = None
        if self._writer is not None:
            try:
                self._send('quit')
                self._writer.close()
            except (ConnectionError, RuntimeError) as e:
                logger.debug(f"[MPV] Error closing IPC connection: {e}")
            self._writer = None
            self._reader = None
        if self._proc is not None:
            if self._proc.returncode is None:
                try:
                    async with async_timeout.timeout(2):
                        await self._proc.wait()
                except asyncio.TimeoutError:
                    self._proc.terminate()
            self._proc = None
        self._fail_pending(OpenError("mpv backend closed"))
        logger.info("[MPV] Backend closed")

    # ----------------------------
    # Protocol
    # ----------------------------

    def _send(self, *args: Any, request_id: Optional[int] = None) -> None:
        if self._writer is None:
            raise OpenError("mpv is not running")
        payload: Dict[str, Any] = {'command': list(args)}
        if request_id is not None:
            payload['request_id'] = request_id
        line = json.dumps(payload) + '\n'
        self._writer.write(line.encode('utf-8'))

    async def _read_loop(self) -> None:
        try:
            while self._reader is not None:
                line = await self._reader.readline()
                if not line:
                    break
                try:
                    message = json.loads(line.decode('utf-8', errors='replace'))
                except json.JSONDecodeError:
                    logger.debug(f"[MPV] Ignoring malformed IPC line: {line!r}")
                    continue
                if isinstance(message, dict):
                    self.handle_message(message)
        except asyncio.CancelledError:
            raise
        except ConnectionError as e:
            logger.warning(f"[MPV] IPC connection lost: {e}")
        self._writer = None
        self._fail_pending(OpenError("mpv IPC connection closed"))

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Apply one decoded IPC message (command reply, property change or playback event)."""
        event = message.get('event')
        if event is None:
            self._on_reply(message)
        elif event == 'property-change':
            self._on_property(message.get('name'), message.get('data'))
        elif event in ('start-file', 'file-loaded', 'end-file'):
            if self._is_current_entry(event, message.get('playlist_entry_id')):
                self._on_file_event(event, message)
            else:
                logger.debug(f"[MPV] Ignoring {event} from a superseded file")

    def _on_reply(self, message: Dict[str, Any]) -> None:
        if self._load_request is None or message.get('request_id') != self._load_request:
            return
        error = message.get('error', 'success')
        if error != 'success':
            self._fail_pending(OpenError(f"mpv rejected loadfile: {error}"))
            return
        data = message.get('data')
        self._load_entry = data.get('playlist_entry_id') if isinstance(data, dict) else None
        self._load_acked = True

    def _is_current_entry(self, event: str, entry_id: Any) -> bool:
        if self._load_request is None:
            return True
        # Anything before the loadfile reply belongs to an earlier file
        if not self._load_acked:
            return False
        if self._load_entry is not None and entry_id is not None:
            return entry_id == self._load_entry
        # Older mpv has no entry ids: the first start-file after the reply is ours
        if event == 'start-file':
            self._load_started = True
        return self._load_started

    def _on_file_event(self, event: str, message: Dict[str, Any]) -> None:
        if event == 'start-file':
            self._eof = False
        elif event == 'file-loaded':
            if self._pending_load is not None and not self._pending_load.done():
                self._pending_load.set_result(True)
        elif event == 'end-file':
            reason = message.get('reason')
            if reason == 'error':
                self._fail_pending(OpenError(f"mpv could not open file: {message.get('file_error', 'unknown error')}"))
            elif reason == 'eof':
                self._eof = True

    def _on_property(self, name: Optional[str], value: Any) -> None:
        if name == 'time-pos':
            self._time_pos = _as_seconds(value)
        elif name == 'duration':
            self._duration = _as_seconds(value)
        elif name == 'pause':
            self._paused = bool(value)
        elif name == 'speed':
            self._speed = _as_seconds(value) or 1.0

    def _fail_pending(self, error: OpenError) -> None:
        if self._pending_load is not None and not self._pending_load.done():
            self._pending_load.set_exception(error)

    # ----------------------------
    # AudioBackend
    # ----------------------------

    async def load(self, target: str) -> None:
        if not self.is_running:
            raise OpenError("mpv is not running")

        self._fail_pending(OpenError("Load superseded"))
        future = asyncio.get_running_loop().create_future()
        self._pending_load = future
        self._request_id += 1
        self._load_request = self._request_id
        self._load_acked = False
        self._load_entry = None
        self._load_started = False
        self._eof = False
        self._time_pos = None
        self._duration = None

        # Load paused so the session can apply its rate before audio starts
        self._send('set_property', 'pause', True)
        self._send('loadfile', target, 'replace', request_id=self._load_request)
        try:
            async with async_timeout.timeout(self.open_timeout):
                await future
        except asyncio.TimeoutError:
            raise OpenError(f"Timed out opening {target}", code=408)
        finally:
            if self._pending_load is future:
                self._pending_load = None

    def play(self) -> None:
        self._send('set_property', 'pause', False)

    def pause(self) -> None:
        self._send('set_property', 'pause', True)

    def seek(self, seconds: float) -> None:
        self._send('seek', float(seconds), 'absolute')

    def set_rate(self, rate: float) -> None:
        self._send('set_property', 'speed', float(rate))

    def stop(self) -> None:
        self._send('stop')

    def position(self) -> Optional[float]:
        return self._time_pos

    def duration(self) -> Optional[float]:
        return self._duration

    def at_end(self) -> bool:
        return self._eof

    def is_paused(self) -> bool:
        return self._paused
