import asyncio

import pytest

from lxplayer.core.session import PlaybackSession


@pytest.mark.asyncio
async def test_open_applies_rate(backend):
    session = PlaybackSession(backend, '/tmp/a.mp3', rate=1.25)

    assert await session.open()
    assert session.ready
    assert backend.loaded == ['/tmp/a.mp3']
    assert backend.rates == [1.25]


@pytest.mark.asyncio
async def test_open_failure_marks_failed(backend):
    backend.fail_targets.add('/tmp/missing.mp3')
    session = PlaybackSession(backend, '/tmp/missing.mp3')

    assert not await session.open()
    assert session.failed
    assert 'missing' in session.error
    assert not session.play()


@pytest.mark.asyncio
async def test_controls_before_open_are_noops(backend):
    session = PlaybackSession(backend, '/tmp/a.mp3')

    assert not session.play()
    assert not session.pause()
    assert not session.seek(10)
    assert backend.calls == []


@pytest.mark.asyncio
async def test_set_rate_before_open_is_kept(backend):
    session = PlaybackSession(backend, '/tmp/a.mp3')
    session.set_rate(2.0)

    await session.open()
    assert backend.rates == [2.0]


@pytest.mark.asyncio
async def test_sample_reports_position_and_end(backend):
    session = PlaybackSession(backend, '/tmp/a.mp3')
    assert session.sample().elapsed == 0.0

    await session.open()
    backend.pos = 12.0
    backend.dur = float('inf')
    sample = session.sample()
    assert sample.elapsed == 12.0
    assert sample.duration is None
    assert not sample.ended

    backend.dur = 180.0
    backend.ended = True
    sample = session.sample()
    assert sample.duration == 180.0
    assert sample.ended


@pytest.mark.asyncio
async def test_negative_seek_clamps_to_zero(backend):
    session = PlaybackSession(backend, '/tmp/a.mp3')
    await session.open()

    session.seek(-5)
    assert ('seek', 0.0) in backend.calls


@pytest.mark.asyncio
async def test_close_stops_and_disables(backend):
    session = PlaybackSession(backend, '/tmp/a.mp3')
    await session.open()

    session.close()
    session.close()

    assert backend.names().count('stop') == 1
    assert not session.play()
    assert session.sample().elapsed == 0.0


@pytest.mark.asyncio
async def test_close_while_opening(backend):
    gate = asyncio.get_running_loop().create_future()
    backend.load_gates['/tmp/a.mp3'] = gate
    session = PlaybackSession(backend, '/tmp/a.mp3')

    opening = asyncio.create_task(session.open())
    await asyncio.sleep(0)
    session.close()
    gate.set_result(None)

    assert not await opening
    assert not session.ready
    assert backend.rates == []


@pytest.mark.asyncio
async def test_backend_error_during_control_fails_session(backend):
    session = PlaybackSession(backend, '/tmp/a.mp3')
    await session.open()
    backend.broken.add('pause')

    assert not session.pause()
    assert session.failed
