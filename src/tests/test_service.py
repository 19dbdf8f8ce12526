import asyncio
import json
import signal

import pytest
import zmq

from lxplayer.core.interfaces import PlayMode, PlayerStatus, Song
from lxplayer.core.music_player import PlaybackEngine
from lxplayer.core.remote import RemoteCommandCenter
from lxplayer.service import AppContext, PlayerServiceApp, main
from lxplayer.sources.api import SourceManager
from lxplayer.utils.database import DatabaseManager
from lxplayer.utils.ipc_protocol import (
    Command, CommandMessage, Event, EventMessage, IPCMessage,
    create_command, create_enqueue_next_command, create_play_list_command,
    create_play_local_command, create_search_command, create_seek_command,
    create_set_lyric_offset_command, create_set_mode_command, create_set_speed_command,
    create_start_sleep_command
)


@pytest.fixture
async def app(tmp_path, backend, resolver, source, scheduler):
    database = DatabaseManager(str(tmp_path / 'service.db'))
    await database.initialize()
    source_manager = SourceManager([source])
    engine = PlaybackEngine(
        backend, resolver=resolver, source_manager=source_manager,
        history=database, settings=database, scheduler=scheduler
    )
    context = AppContext(
        config={},
        database=database,
        source_manager=source_manager,
        resolver=resolver,
        backend=backend,
        engine=engine,
        remote=RemoteCommandCenter(engine),
    )
    service = PlayerServiceApp(config={}, context=context)
    yield service
    await service.shutdown()


async def send(app, message):
    return json.loads(await app.process_command(message.to_json()))


@pytest.mark.asyncio
async def test_play_list_command(app, songs, settle):
    reply = await send(app, create_play_list_command(songs, 1))

    assert reply['status'] == 'success'
    assert reply['data']['current']['id'] == '2'
    assert reply['data']['index'] == 1

    await settle()
    reply = await send(app, create_command(Command.GET_STATE))
    assert reply['data']['status'] == 'playing'


@pytest.mark.asyncio
async def test_play_list_replies_while_stream_is_resolving(app, songs, resolver, backend, settle):
    gate = asyncio.get_running_loop().create_future()
    resolver.url_gates['1'] = gate

    reply = await asyncio.wait_for(send(app, create_play_list_command(songs)), timeout=1)
    assert reply['data']['status'] == 'loading'
    assert reply['data']['current']['id'] == '1'

    reply = await asyncio.wait_for(send(app, create_command(Command.PAUSE)), timeout=1)
    assert reply['status'] == 'success'

    gate.set_result(None)
    await settle()

    assert app.app_context.engine.state.status == PlayerStatus.PLAYING
    assert backend.loaded == [resolver.urls['1']]


@pytest.mark.asyncio
async def test_skip_during_slow_load_drops_the_stale_song(app, songs, resolver, backend, settle):
    gate = asyncio.get_running_loop().create_future()
    resolver.url_gates['1'] = gate

    await send(app, create_play_list_command(songs))
    reply = await asyncio.wait_for(send(app, create_command(Command.NEXT)), timeout=1)
    assert reply['data']['current']['id'] == '2'
    await settle()

    gate.set_result(None)
    await settle()

    engine = app.app_context.engine
    assert engine.state.current == songs[1]
    assert engine.is_playing
    assert backend.loaded == [resolver.urls['2']]


@pytest.mark.asyncio
async def test_transport_commands(app, songs, settle):
    engine = app.app_context.engine
    await send(app, create_play_list_command(songs))
    await settle()

    reply = await send(app, create_command(Command.PAUSE))
    assert reply['data']['is_playing'] is False

    await send(app, create_command(Command.TOGGLE))
    assert engine.is_playing

    await send(app, create_command(Command.NEXT))
    await settle()
    assert engine.state.current == songs[1]

    await send(app, create_command(Command.PREVIOUS))
    await settle()
    assert engine.state.current == songs[0]

    await send(app, create_command(Command.ROUTE_LOST))
    assert engine.state.status == PlayerStatus.PAUSED

    await send(app, create_command(Command.PLAY))
    assert engine.is_playing


@pytest.mark.asyncio
async def test_playback_option_commands(app, songs, backend, settle):
    engine = app.app_context.engine
    await send(app, create_play_list_command(songs))
    await settle()

    reply = await send(app, create_set_mode_command('loop'))
    assert reply['data']['mode'] == 'loop'
    assert engine.mode == PlayMode.LOOP

    reply = await send(app, create_set_speed_command(2))
    assert reply['data']['speed'] == 2.0

    reply = await send(app, create_seek_command(42))
    assert reply['data']['progress'] == 42.0
    assert ('seek', 42.0) in backend.calls


@pytest.mark.asyncio
async def test_sleep_commands(app, songs, settle):
    await send(app, create_play_list_command(songs))
    await settle()

    reply = await send(app, create_start_sleep_command(1))
    assert reply['data']['sleep_remaining'] == 60

    reply = await send(app, create_command(Command.CANCEL_SLEEP))
    assert reply['data']['sleep_remaining'] == 0


@pytest.mark.asyncio
async def test_play_local_and_enqueue_next(app, songs, backend, resolver, settle):
    reply = await send(app, create_play_local_command('/music/song.ogg'))
    assert reply['data']['is_local'] is True
    assert reply['data']['name'] == 'song'
    await settle()
    assert backend.loaded[-1] == '/music/song.ogg'

    await send(app, create_play_list_command(songs))
    await settle()
    extra = Song(id='77', name='Extra')
    resolver.urls['77'] = 'http://cdn.test/77.mp3'
    await send(app, create_enqueue_next_command(extra))
    await send(app, create_command(Command.NEXT))
    await settle()

    assert app.app_context.engine.state.current == extra


@pytest.mark.asyncio
async def test_search_command(app, resolver):
    resolver.search_results = [Song(id='5', name='Found')]

    reply = await send(app, create_search_command('found'))
    assert reply['data'] == [Song(id='5', name='Found').to_dict()]

    reply = await send(app, create_search_command('found', source='nope'))
    assert reply['status'] == 'error'
    assert 'nope' in reply['message']


@pytest.mark.asyncio
async def test_toggle_favorite_command(app, songs, settle):
    reply = await send(app, create_command(Command.TOGGLE_FAVORITE))
    assert reply == {'status': 'error', 'message': 'Nothing is playing'}

    await send(app, create_play_list_command(songs))
    await settle()
    reply = await send(app, create_command(Command.TOGGLE_FAVORITE))
    assert reply['data'] == {'song_id': '1', 'favorite': True}
    assert await app.app_context.database.is_favorite(songs[0])


@pytest.mark.asyncio
async def test_lyrics_commands(app, songs, resolver, settle):
    resolver.lyrics['1'] = "[00:01.00]hello\n[00:02.50]world"
    await send(app, create_play_list_command(songs))
    await settle()

    reply = await send(app, create_command(Command.GET_LYRICS))
    assert reply['data']['lines'] == [
        {'time': 1.0, 'text': 'hello'},
        {'time': 2.5, 'text': 'world'},
    ]

    reply = await send(app, create_set_lyric_offset_command('1', 0.5))
    assert reply['data'] == {'song_id': '1', 'offset': 0.5}
    assert app.app_context.database.get_lyric_offset('1') == 0.5


@pytest.mark.asyncio
async def test_get_state(app):
    reply = await send(app, create_command(Command.GET_STATE))

    assert reply['status'] == 'success'
    assert reply['data']['status'] == 'idle'
    assert reply['data']['current'] is None


@pytest.mark.asyncio
async def test_bad_messages_get_error_replies(app):
    reply = json.loads(await app.process_command("not json"))
    assert reply['status'] == 'error'

    reply = await send(app, EventMessage(Event.STATE_UPDATE))
    assert reply == {'status': 'error', 'message': 'Invalid message type'}

    reply = await send(app, IPCMessage(type='command', action='DANCE', data={}))
    assert reply['status'] == 'error'

    reply = await send(app, CommandMessage(Command.PLAY_LOCAL))
    assert reply['status'] == 'error'

    reply = await send(app, create_set_mode_command('shuffle-ish'))
    assert reply['status'] == 'error'


@pytest.mark.asyncio
async def test_engine_changes_are_queued_as_events(app, songs, settle):
    app.attach_events()
    await send(app, create_play_list_command(songs))
    await settle()

    events = []
    while not app._events.empty():
        events.append(IPCMessage.from_json(app._events.get_nowait()))

    assert all(e.type == 'event' for e in events)
    state_updates = [e.data for e in events if e.action == Event.STATE_UPDATE.value]
    assert state_updates[0]['status'] == 'loading'
    assert state_updates[0]['current']['id'] == '1'
    assert state_updates[-1] == {'is_playing': True, 'status': 'playing'}

    now_playing = [e.data for e in events if e.action == Event.NOW_PLAYING.value]
    assert now_playing == [{'title': 'First', 'artist': 'Artist A'}]


def test_command_message_round_trip(songs):
    message = create_play_list_command(songs[:2], 1)
    decoded = IPCMessage.from_json(message.to_json())

    assert decoded.type == 'command'
    assert decoded.action == 'PLAY_LIST'
    assert decoded.data['start_index'] == 1
    assert [s['id'] for s in decoded.data['songs']] == ['1', '2']
    assert decoded.timestamp == message.timestamp


@pytest.mark.asyncio
async def test_main_reports_socket_failure_and_exits_nonzero(monkeypatch):
    async def failing_start(self):
        raise zmq.ZMQError(98, "Address already in use")
    monkeypatch.setattr(PlayerServiceApp, 'start', failing_start)

    loop = asyncio.get_running_loop()
    try:
        assert await main() == 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
