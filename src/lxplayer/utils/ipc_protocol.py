"""
Inter-Process Communication Protocol for the player service
===========================================================

This module defines the IPC protocol used between the headless player
service and its clients (UIs, OS media-session bridges). The protocol uses
ZeroMQ: a REQ/REP pair for commands and a PUB/SUB pair for events.

Message Format:
All messages are JSON-encoded with the following structure:
{
    "type": "command" | "event",
    "action": "ACTION_NAME",
    "data": {...},
    "timestamp": float
}

Replies to commands:
{"status": "success", "data": ...} or {"status": "error", "message": "..."}

Commands (Client -> Player):
- PLAY, PAUSE, TOGGLE, NEXT, PREVIOUS: transport
- PLAY_LIST: replace the queue and start at an index
- PLAY_LOCAL: play a local audio file
- ENQUEUE_NEXT: play a song right after the current one
- SET_MODE, SET_SPEED, SEEK: playback options
- START_SLEEP, CANCEL_SLEEP: sleep timer
- SEARCH: search the current source
- TOGGLE_FAVORITE: add or remove the current song from favorites
- GET_STATE, GET_LYRICS: read state
- SET_LYRIC_OFFSET: per-song lyric offset in seconds
- ROUTE_LOST: the audio output device went away

Events (Player -> Client):
- STATE_UPDATE: changed engine state fields
- NOW_PLAYING: title/artist summary for remote-control surfaces
"""

import json
import time
from enum import Enum
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict

from lxplayer.core.interfaces import EngineState, Song


class MessageType(Enum):
    COMMAND = "command"
    EVENT = "event"


class Command(Enum):
    PLAY = "PLAY"
    PAUSE = "PAUSE"
    TOGGLE = "TOGGLE"
    NEXT = "NEXT"
    PREVIOUS = "PREVIOUS"
    PLAY_LIST = "PLAY_LIST"
    PLAY_LOCAL = "PLAY_LOCAL"
    ENQUEUE_NEXT = "ENQUEUE_NEXT"
    SET_MODE = "SET_MODE"
    SET_SPEED = "SET_SPEED"
    SEEK = "SEEK"
    START_SLEEP = "START_SLEEP"
    CANCEL_SLEEP = "CANCEL_SLEEP"
    SEARCH = "SEARCH"
    TOGGLE_FAVORITE = "TOGGLE_FAVORITE"
    GET_STATE = "GET_STATE"
    GET_LYRICS = "GET_LYRICS"
    SET_LYRIC_OFFSET = "SET_LYRIC_OFFSET"
    ROUTE_LOST = "ROUTE_LOST"


class Event(Enum):
    STATE_UPDATE = "STATE_UPDATE"
    NOW_PLAYING = "NOW_PLAYING"


@dataclass
class IPCMessage:
    """Base IPC message structure"""
    type: str
    action: str
    data: Dict[str, Any]
    timestamp: float = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = time.time()

    def to_json(self) -> str:
        """Convert message to JSON string"""
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, json_str: str) -> 'IPCMessage':
        """Create message from JSON string"""
        data = json.loads(json_str)
        return cls(**data)


class CommandMessage(IPCMessage):
    """Command message from a client to the player"""

    def __init__(self, action: Command, data: Dict[str, Any] = None):
        super().__init__(
            type=MessageType.COMMAND.value,
            action=action.value,
            data=data or {}
        )


class EventMessage(IPCMessage):
    """Event message from the player to its subscribers"""

    def __init__(self, action: Event, data: Dict[str, Any] = None):
        super().__init__(
            type=MessageType.EVENT.value,
            action=action.value,
            data=data or {}
        )


# Command Data Structures

@dataclass
class PlayListData:
    """Data for PLAY_LIST command"""
    songs: List[Dict[str, Any]]
    start_index: int = 0


@dataclass
class LyricOffsetData:
    """Data for SET_LYRIC_OFFSET command"""
    song_id: str
    offset: float


def state_changes_to_dict(changes: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-friendly form of a state diff, using the same encoding as EngineState.to_dict()"""
    if not changes:
        return {}
    full = EngineState(**changes).to_dict()
    return {k: full[k] for k in changes}


# Helper functions for creating common messages

def create_command(command: Command) -> CommandMessage:
    """Create a command message that carries no data"""
    return CommandMessage(command)


def create_play_list_command(songs: List[Song], start_index: int = 0) -> CommandMessage:
    """Create a PLAY_LIST command message"""
    return CommandMessage(
        Command.PLAY_LIST,
        asdict(PlayListData([s.to_dict() for s in songs], start_index))
    )


def create_play_local_command(path: str) -> CommandMessage:
    """Create a PLAY_LOCAL command message"""
    return CommandMessage(Command.PLAY_LOCAL, {"path": path})


def create_enqueue_next_command(song: Song) -> CommandMessage:
    """Create an ENQUEUE_NEXT command message"""
    return CommandMessage(Command.ENQUEUE_NEXT, {"song": song.to_dict()})


def create_set_mode_command(mode: str) -> CommandMessage:
    """Create a SET_MODE command message"""
    return CommandMessage(Command.SET_MODE, {"mode": mode})


def create_set_speed_command(speed: float) -> CommandMessage:
    """Create a SET_SPEED command message"""
    return CommandMessage(Command.SET_SPEED, {"speed": speed})


def create_seek_command(seconds: float) -> CommandMessage:
    """Create a SEEK command message"""
    return CommandMessage(Command.SEEK, {"seconds": seconds})


def create_start_sleep_command(minutes: float) -> CommandMessage:
    """Create a START_SLEEP command message"""
    return CommandMessage(Command.START_SLEEP, {"minutes": minutes})


def create_search_command(keyword: str, source: Optional[str] = None) -> CommandMessage:
    """Create a SEARCH command message"""
    data = {"keyword": keyword}
    if source:
        data["source"] = source
    return CommandMessage(Command.SEARCH, data)


def create_set_lyric_offset_command(song_id: str, offset: float) -> CommandMessage:
    """Create a SET_LYRIC_OFFSET command message"""
    return CommandMessage(Command.SET_LYRIC_OFFSET, asdict(LyricOffsetData(song_id, offset)))


def create_state_update_event(changes: Dict[str, Any]) -> EventMessage:
    """Create a STATE_UPDATE event message"""
    return EventMessage(Event.STATE_UPDATE, state_changes_to_dict(changes))


def create_now_playing_event(info: Dict[str, Any]) -> EventMessage:
    """Create a NOW_PLAYING event message"""
    return EventMessage(Event.NOW_PLAYING, dict(info))


# ZeroMQ Configuration

DEFAULT_COMMAND_PORT = 5555  # Client -> Player commands
DEFAULT_EVENT_PORT = 5556    # Player -> Client events
