import asyncio
import random

import pytest

from lxplayer.core.interfaces import Song, Source
from lxplayer.core.music_player import PlaybackEngine
from lxplayer.sources.api import SourceManager
from lxplayer.utils.exceptions import OpenError


class FakeBackend:
    """Records every call; position/duration/end are set by the test."""

    def __init__(self):
        self.calls = []
        self.loaded = []
        self.rates = []
        self.fail_targets = set()
        self.load_gates = {}
        self.broken = set()
        self.pos = 0.0
        self.dur = None
        self.ended = False
        self.closed = False

    async def load(self, target):
        self.calls.append(('load', target))
        if target in self.load_gates:
            await self.load_gates[target]
        if target in self.fail_targets:
            raise OpenError(f"cannot open {target}")
        self.loaded.append(target)
        self.pos = 0.0
        self.ended = False

    def _call(self, name, *args):
        if name in self.broken:
            raise OpenError(f"{name} failed")
        self.calls.append((name,) + args)

    def play(self):
        self._call('play')

    def pause(self):
        self._call('pause')

    def seek(self, seconds):
        self._call('seek', seconds)

    def set_rate(self, rate):
        self._call('set_rate', rate)
        self.rates.append(rate)

    def stop(self):
        self._call('stop')

    def position(self):
        return self.pos

    def duration(self):
        return self.dur

    def at_end(self):
        return self.ended

    def names(self):
        return [c[0] for c in self.calls]

    async def close(self):
        self.closed = True


class FakeResolver:
    def __init__(self):
        self.urls = {}
        self.lyrics = {}
        self.url_gates = {}
        self.lyric_gates = {}
        self.search_results = []
        self.lyric_requests = []
        self.closed = False

    async def search(self, keyword, source):
        return list(self.search_results)

    async def resolve_stream_url(self, song_id, source):
        if song_id in self.url_gates:
            await self.url_gates[song_id]
        return self.urls.get(song_id)

    async def fetch_lyric(self, song_id, source):
        self.lyric_requests.append(song_id)
        if song_id in self.lyric_gates:
            await self.lyric_gates[song_id]
        return self.lyrics.get(song_id)

    async def close(self):
        self.closed = True


class FakeHistory:
    def __init__(self):
        self.played = []
        self.favorites = set()

    async def record_played(self, song):
        self.played.append(song.id)

    async def is_favorite(self, song):
        return song.id in self.favorites

    async def toggle_favorite(self, song):
        if song.id in self.favorites:
            self.favorites.discard(song.id)
            return False
        self.favorites.add(song.id)
        return True


class FakeSettings:
    def __init__(self, speed=1.0):
        self.speed = speed
        self.offsets = {}
        self.saved_speeds = []

    def get_default_speed(self):
        return self.speed

    async def set_default_speed(self, speed):
        self.speed = speed
        self.saved_speeds.append(speed)

    def get_lyric_offset(self, song_id):
        return self.offsets.get(song_id, 0.0)


class ManualTask:
    def __init__(self, interval, callback, due, name):
        self.interval = interval
        self.callback = callback
        self.due = due
        self.name = name
        self.active = True

    def cancel(self):
        self.active = False


class ManualScheduler:
    """Fake clock: callbacks only fire from advance()."""

    def __init__(self):
        self.now = 0.0
        self.tasks = []

    def every(self, interval, callback, name=""):
        task = ManualTask(interval, callback, self.now + interval, name)
        self.tasks.append(task)
        return task

    def active(self, name):
        return [t for t in self.tasks if t.active and t.name == name]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self.tasks if t.active and t.due <= target + 1e-9]
            if not due:
                break
            task = min(due, key=lambda t: t.due)
            self.now = task.due
            task.due += task.interval
            task.callback()
        self.now = target


def url_for(song):
    return f"http://cdn.test/{song.id}.mp3"


@pytest.fixture
def songs():
    return [
        Song(id='1', name='First', artist='Artist A', duration=180),
        Song(id='2', name='Second', artist='Artist B', duration=200),
        Song(id='3', name='Third', artist='Artist C', duration=220),
    ]


@pytest.fixture
def source():
    return Source(
        name='test',
        search_url='http://api.test/?type=search&keywords=',
        play_url='http://api.test/?type=url&id=&quality=320',
        lyric_url='http://api.test/?type=lyric&id=',
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def resolver(songs):
    resolver = FakeResolver()
    for song in songs:
        resolver.urls[song.id] = url_for(song)
    return resolver


@pytest.fixture
def history():
    return FakeHistory()


@pytest.fixture
def settings():
    return FakeSettings()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def engine(backend, resolver, source, history, settings, scheduler):
    return PlaybackEngine(
        backend,
        resolver=resolver,
        source_manager=SourceManager([source]),
        history=history,
        settings=settings,
        scheduler=scheduler,
        rng=random.Random(42),
    )


@pytest.fixture
def settle():
    """Let spawned engine tasks run to completion."""
    async def _settle(rounds=10):
        for _ in range(rounds):
            await asyncio.sleep(0)
    return _settle
