"""
Player Service Application
==========================

Headless process that owns the playback engine and exposes it over ZeroMQ.

The Player Service:
- Builds the engine and its collaborators once, at startup (AppContext)
- Answers commands on a REP socket
- Publishes state diffs and now-playing summaries on a PUB socket
- Shuts down cleanly on SIGINT/SIGTERM

Usage: lxplayer-service  (or python player_main.py)
"""

import asyncio
import json
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

import zmq
import zmq.asyncio

from lxplayer.audio.mpv_backend import MpvBackend
from lxplayer.core.interfaces import EngineState, PlayMode, Song
from lxplayer.core.music_player import PlaybackEngine
from lxplayer.core.remote import RemoteCommand, RemoteCommandCenter
from lxplayer.sources.api import HttpSourceResolver, SourceManager
from lxplayer.utils.config import load_config
from lxplayer.utils.constants import ROUTE_OLD_DEVICE_UNAVAILABLE
from lxplayer.utils.database import DatabaseManager
from lxplayer.utils.exceptions import PlayerException
from lxplayer.utils.ipc_protocol import (
    IPCMessage, Command, MessageType,
    create_now_playing_event, create_state_update_event
)
from lxplayer.utils.logging_config import setup_logging

TRANSPORT_COMMANDS = {
    Command.PLAY: RemoteCommand.PLAY,
    Command.PAUSE: RemoteCommand.PAUSE,
    Command.TOGGLE: RemoteCommand.TOGGLE,
    Command.NEXT: RemoteCommand.NEXT,
    Command.PREVIOUS: RemoteCommand.PREVIOUS,
}

# Commands that load a song run as background tasks; the reply carries the LOADING state
LOADING_COMMANDS = {Command.PLAY_LIST, Command.PLAY_LOCAL, Command.NEXT, Command.PREVIOUS}


@dataclass
class AppContext:
    """Everything the service owns, built once per process."""
    config: dict
    database: DatabaseManager
    source_manager: SourceManager
    resolver: HttpSourceResolver
    backend: MpvBackend
    engine: PlaybackEngine
    remote: RemoteCommandCenter


async def build_context(config: dict) -> AppContext:
    """Create, initialize and wire the service components"""
    database = DatabaseManager(config['database_path'], config['history_limit'])
    await database.initialize()

    source_manager = SourceManager.from_config(config)
    resolver = HttpSourceResolver(timeout=config['request_timeout'])

    backend = MpvBackend(config.get('mpv_path'), open_timeout=config['open_timeout'])
    await backend.start()

    engine = PlaybackEngine(
        backend,
        resolver=resolver,
        source_manager=source_manager,
        history=database,
        settings=database,
        sample_interval=config['sample_interval']
    )
    remote = RemoteCommandCenter(engine, loop=asyncio.get_running_loop())

    return AppContext(
        config=config,
        database=database,
        source_manager=source_manager,
        resolver=resolver,
        backend=backend,
        engine=engine,
        remote=remote
    )


class PlayerServiceApp:
    """Main Player Service Application"""

    def __init__(self, config: Optional[dict] = None, context: Optional[AppContext] = None):
        self.config = config
        self.app_context = context
        self.zmq_context = None
        self.command_socket = None
        self.event_socket = None
        self.running = False
        self.logger = logging.getLogger("player_service")

        self._events: asyncio.Queue = asyncio.Queue()
        self._event_task: Optional[asyncio.Task] = None
        self._loads: Set[asyncio.Task] = set()
        self._unsubscribe = None
        self._closed = False

    async def initialize(self):
        """Initialize the Player Service"""
        try:
            if self.config is None:
                self.config = load_config()

            setup_logging(self.config.get('log_level', 'INFO'))
            self.logger.info("Initializing Player Service...")

            if self.app_context is None:
                self.app_context = await build_context(self.config)
            self.attach_events()

            # Initialize ZeroMQ context
            self.zmq_context = zmq.asyncio.Context()

            # Setup command socket (receives commands from clients)
            self.command_socket = self.zmq_context.socket(zmq.REP)
            self.command_socket.bind(self.config['command_address'])
            self.logger.info(f"Command socket bound to {self.config['command_address']}")

            # Setup event socket (sends events to subscribers)
            self.event_socket = self.zmq_context.socket(zmq.PUB)
            self.event_socket.bind(self.config['event_address'])
            self.logger.info(f"Event socket bound to {self.config['event_address']}")

            self._event_task = asyncio.create_task(self.event_loop())

            self.logger.info("Player Service initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize Player Service: {e}")
            raise

    def attach_events(self):
        """Forward engine state diffs and now-playing summaries to the event queue"""
        engine = self.app_context.engine
        self._unsubscribe = engine.subscribe(self._on_state)
        self.app_context.remote.on_now_playing = self._on_now_playing

    def _on_state(self, state: EngineState, changes: Dict[str, Any]):
        self._events.put_nowait(create_state_update_event(changes).to_json())

    def _on_now_playing(self, info: Dict[str, Any]):
        self._events.put_nowait(create_now_playing_event(info).to_json())

    async def start(self):
        """Start the Player Service"""
        await self.initialize()
        self.running = True
        self.logger.info("Player Service started")

        # Start the command processing loop
        await self.command_loop()

    def stop(self):
        """Ask the command loop to exit"""
        self.running = False

    async def command_loop(self):
        """Main command processing loop"""
        self.logger.info("Starting command processing loop...")

        while self.running:
            try:
                # Wait for a command from a client
                message_data = await self.command_socket.recv_string(zmq.NOBLOCK)
            except zmq.Again:
                # No message available, wait a bit
                await asyncio.sleep(0.01)
                continue

            response = await self.process_command(message_data)
            try:
                await self.command_socket.send_string(response)
            except zmq.ZMQError as e:
                self.logger.error(f"Error sending reply: {e}")

    async def process_command(self, message_data: str) -> str:
        """Process a command message and return the JSON reply"""
        try:
            message = IPCMessage.from_json(message_data)

            if message.type != MessageType.COMMAND.value:
                return json.dumps({"status": "error", "message": "Invalid message type"})

            command = Command(message.action)
            self.logger.debug(f"Processing command {command.value}")

            result = await self.dispatch(command, message.data or {})
            return json.dumps({"status": "success", "data": result})

        except PlayerException as e:
            self.logger.warning(f"Command rejected: {e.message}")
            return json.dumps({"status": "error", "message": e.message})
        except Exception as e:
            self.logger.error(f"Error processing command: {e}")
            return json.dumps({"status": "error", "message": str(e)})

    def _spawn_load(self, coro) -> asyncio.Task:
        """Run a loading command as a tracked task; its outcome reaches clients as STATE_UPDATE events"""
        task = asyncio.get_running_loop().create_task(coro)
        self._loads.add(task)
        task.add_done_callback(self._on_load_done)
        return task

    def _on_load_done(self, task: asyncio.Task):
        self._loads.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Loading command failed: {error!r}", exc_info=error)

    async def dispatch(self, command: Command, data: Dict[str, Any]) -> Any:
        ctx = self.app_context
        engine = ctx.engine

        if command in LOADING_COMMANDS:
            if command == Command.PLAY_LIST:
                songs = [Song.from_dict(s) for s in data["songs"]]
                self._spawn_load(engine.play_list(songs, int(data.get("start_index", 0))))
            elif command == Command.PLAY_LOCAL:
                self._spawn_load(engine.play_local(data["path"]))
            else:
                self._spawn_load(ctx.remote.handle(TRANSPORT_COMMANDS[command]))
            # Let the load run up to its first suspension so the reply shows the new song
            await asyncio.sleep(0)
            if command == Command.PLAY_LOCAL:
                return engine.state.current.to_dict()
        elif command in TRANSPORT_COMMANDS:
            await ctx.remote.handle(TRANSPORT_COMMANDS[command])
        elif command == Command.ENQUEUE_NEXT:
            engine.enqueue_next(Song.from_dict(data["song"]))
        elif command == Command.SET_MODE:
            engine.set_mode(PlayMode(data["mode"]))
        elif command == Command.SET_SPEED:
            engine.set_speed(float(data["speed"]))
        elif command == Command.SEEK:
            engine.seek(float(data["seconds"]))
        elif command == Command.START_SLEEP:
            engine.start_sleep(float(data["minutes"]))
        elif command == Command.CANCEL_SLEEP:
            engine.cancel_sleep()
        elif command == Command.SEARCH:
            return await self._search(data)
        elif command == Command.TOGGLE_FAVORITE:
            song = engine.state.current
            if song is None:
                raise PlayerException("Nothing is playing")
            favorite = await ctx.database.toggle_favorite(song)
            return {"song_id": song.id, "favorite": favorite}
        elif command == Command.GET_LYRICS:
            return {
                "lines": [{"time": line.time, "text": line.text} for line in engine.lyrics],
                "index": engine.state.lyric_index
            }
        elif command == Command.SET_LYRIC_OFFSET:
            song_id = data.get("song_id") or (engine.state.current.id if engine.state.current else None)
            if not song_id:
                raise PlayerException("No song to apply the lyric offset to")
            await ctx.database.set_lyric_offset(song_id, float(data["offset"]))
            return {"song_id": song_id, "offset": float(data["offset"])}
        elif command == Command.ROUTE_LOST:
            ctx.remote.route_changed(ROUTE_OLD_DEVICE_UNAVAILABLE)

        # GET_STATE, and every command without a dedicated result
        return engine.state.to_dict()

    async def _search(self, data: Dict[str, Any]) -> list:
        ctx = self.app_context
        name = data.get("source")
        try:
            source = ctx.source_manager.get(name) if name else ctx.source_manager.current
        except KeyError as e:
            raise PlayerException(str(e.args[0]))
        if source is None:
            raise PlayerException("No source configured")
        songs = await ctx.resolver.search(data["keyword"], source)
        return [song.to_dict() for song in songs]

    async def event_loop(self):
        """Publish queued events in order"""
        while True:
            event_message = await self._events.get()
            await self.send_event(event_message)

    async def send_event(self, event_message: str):
        """Send an event to subscribers"""
        if self.event_socket is None:
            return
        try:
            await self.event_socket.send_string(event_message)
        except zmq.ZMQError as e:
            self.logger.error(f"Error sending event: {e}")

    async def shutdown(self):
        """Shutdown the Player Service"""
        if self._closed:
            return
        self._closed = True
        self.logger.info("Shutting down Player Service...")
        self.running = False

        if self._unsubscribe:
            self._unsubscribe()
        if self._event_task:
            self._event_task.cancel()
            await asyncio.gather(self._event_task, return_exceptions=True)
        loads = [t for t in self._loads if not t.done()]
        for task in loads:
            task.cancel()
        if loads:
            await asyncio.gather(*loads, return_exceptions=True)

        ctx = self.app_context
        if ctx is not None:
            ctx.remote.close()
            await ctx.engine.shutdown()
            await ctx.backend.close()
            await ctx.resolver.close()
            await ctx.database.close()

        # Close sockets
        if self.command_socket:
            self.command_socket.close()
        if self.event_socket:
            self.event_socket.close()

        # Terminate context
        if self.zmq_context:
            self.zmq_context.term()

        self.logger.info("Player Service shutdown complete")


def signal_handler(app: PlayerServiceApp):
    """Handle shutdown signals"""
    def handler(signum):
        app.logger.info(f"Received signal {signum}, shutting down...")
        app.stop()
    return handler


async def main() -> int:
    """Main entry point"""
    app = PlayerServiceApp()

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in [signal.SIGINT, signal.SIGTERM]:
        loop.add_signal_handler(sig, signal_handler(app), sig)

    try:
        await app.start()
    except PlayerException as e:
        app.logger.error(f"Fatal error: {e.message}")
        return 1
    except Exception as e:
        app.logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await app.shutdown()

    return 0


def run():
    exit_code = asyncio.run(main())
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
