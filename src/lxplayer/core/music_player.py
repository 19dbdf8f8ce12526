"""
Playback engine: queue cursor, transport state, lyric sync and sleep timer.
"""

import asyncio
import logging
import random
from dataclasses import replace
from typing import Any, Callable, Iterable, List, Optional, Set

from lxplayer.core.interfaces import (
    AudioBackend, EngineState, ErrorType, HistoryStore, PlayMode, PlayerStatus,
    SettingsStore, Song, SourceResolver, StateListener
)
from lxplayer.core.lyrics import LyricCursor, LyricTrack
from lxplayer.core.now_playing import NowPlaying
from lxplayer.core.queue_manager import PlayQueue
from lxplayer.core.session import PlaybackSession
from lxplayer.core.timers import AsyncioScheduler, PeriodicTask, Scheduler
from lxplayer.utils.constants import (
    DEFAULT_SPEED, MAX_SPEED, MIN_SPEED, SAMPLE_INTERVAL, SLEEP_TICK
)
from lxplayer.utils.exceptions import ResolutionError

logger = logging.getLogger(__name__)


class PlaybackEngine:
    """
    Owns the play queue and the single active playback session.

    All state lives on one asyncio event loop. Every mutation happens in a
    synchronous stretch of code, and every coroutine that suspends (stream
    resolution, lyric fetch, backend open) re-checks its load token after
    resuming, so a result for a song that is no longer current is dropped.

    Attributes:
        queue (PlayQueue): Active list, cursor and play-next override
        mode (PlayMode): How next() moves the cursor
        speed (float): Playback rate applied to every new session
        session (PlaybackSession): Currently open session, if any
        lyrics (LyricTrack): Lyrics for the current song (empty until fetched)
        state (EngineState): Last published state
    """

    def __init__(
        self,
        backend: AudioBackend,
        resolver: Optional[SourceResolver] = None,
        source_manager=None,
        history: Optional[HistoryStore] = None,
        settings: Optional[SettingsStore] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        sample_interval: float = SAMPLE_INTERVAL,
    ):
        self.backend = backend
        self.resolver = resolver
        self.source_manager = source_manager
        self.history = history
        self.settings = settings
        self.scheduler = scheduler or AsyncioScheduler()
        self.sample_interval = sample_interval

        self.queue = PlayQueue(rng)
        self.mode = PlayMode.SEQUENCE
        self.speed = self._clamp_speed(settings.get_default_speed() if settings else DEFAULT_SPEED)
        self.session: Optional[PlaybackSession] = None
        self.lyrics = LyricTrack()
        self._lyric_cursor = LyricCursor(self.lyrics)

        self.state = EngineState(speed=self.speed, mode=self.mode)
        self._listeners: List[StateListener] = []

        self._generation = 0
        self._sampler: Optional[PeriodicTask] = None
        self._sleep_timer: Optional[PeriodicTask] = None
        self._sleep_remaining = 0
        self._lyric_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    # ----------------------------
    # Published state
    # ----------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for state diffs. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _publish(self, **changes: Any) -> None:
        changed = {k: v for k, v in changes.items() if getattr(self.state, k) != v}
        # Songs compare by id; a different Song object for the same id is still a change
        if 'current' in changes and changes['current'] is not self.state.current:
            changed['current'] = changes['current']
        if not changed:
            return
        self.state = replace(self.state, **changed)
        for listener in list(self._listeners):
            try:
                listener(self.state, changed)
            except Exception as e:
                logger.error(f"[ENGINE] State listener failed: {e}", exc_info=True)

    def now_playing(self) -> Optional[NowPlaying]:
        return NowPlaying.from_state(self.state)

    @property
    def is_playing(self) -> bool:
        return self.state.is_playing

    # ----------------------------
    # Background tasks
    # ----------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[ENGINE] Background task failed: {error!r}", exc_info=error)

    def _is_current(self, token: int, song: Song) -> bool:
        current = self.state.current
        return token == self._generation and current is not None and current.id == song.id

    # ----------------------------
    # Queue operations
    # ----------------------------

    async def play_list(self, songs: Iterable[Song], start_index: int = 0) -> None:
        self.queue.set_list(songs, start_index)
        await self.load_current()

    async def play_local(self, path: str) -> Song:
        song = Song.local(path)
        await self.play_list([song], 0)
        return song

    def enqueue_next(self, song: Song) -> None:
        self.queue.enqueue_next(song)

    def set_mode(self, mode: PlayMode) -> None:
        self.mode = mode
        self._publish(mode=mode)
        logger.info(f"[ENGINE] Play mode set to {mode.value}")

    async def next(self) -> None:
        index = self.queue.advance(self.mode)
        if self.queue.is_past_end:
            # Drop any load still in flight for the previous cursor position
            self._generation += 1
            self._stop_sampling()
            self.pause()
            status = self.state.status
            if self.session is None or not self.session.ready:
                status = PlayerStatus.IDLE
            self._publish(index=index, status=status, is_playing=False)
            logger.info("[ENGINE] End of queue reached, playback halted")
            return
        await self.load_current()

    async def prev(self) -> None:
        self.queue.retreat()
        await self.load_current()

    async def load_current(self) -> None:
        """
        Start playback of the song under the cursor.

        Resolution or open failures leave the engine stalled on the song
        (no automatic retry or skip); the user decides whether to retry or
        move on.
        """
        self._generation += 1
        token = self._generation
        self._stop_sampling()
        self._close_session()
        self._cancel_lyrics()

        song = self.queue.current
        if song is None:
            self._publish(
                status=PlayerStatus.IDLE, current=None, index=self.queue.index,
                is_playing=False, progress=0.0, total=None,
                lyric_index=None, lyric_count=0, error=None
            )
            logger.info("[ENGINE] Cursor past end of list, idle")
            return

        self._publish(
            status=PlayerStatus.LOADING, current=song, index=self.queue.index,
            is_playing=False, progress=0.0, total=None,
            lyric_index=None, lyric_count=0, error=None
        )
        logger.info(f"[ENGINE] Loading {song.name or song.id} (index {self.queue.index})")

        if self.history is not None:
            self._spawn(self.history.record_played(song))
        self._start_lyrics(song, token)

        try:
            target = await self._resolve_origin(song)
        except ResolutionError as e:
            if self._is_current(token, song):
                logger.warning(f"[ENGINE] {e.message}; stalled on {song.name or song.id}")
                self._publish(status=PlayerStatus.STALLED, error=ErrorType.RESOLUTION_FAILURE)
            return

        if not self._is_current(token, song):
            logger.debug(f"[ENGINE] Dropping stale stream URL for {song.id}")
            return

        session = PlaybackSession(self.backend, target, self.speed)
        self.session = session
        opened = await session.open()

        if not self._is_current(token, song):
            return
        if not opened:
            self._publish(status=PlayerStatus.STALLED, error=ErrorType.OPEN_FAILURE, total=None)
            return

        self._start_sampling(session)
        self.play()

    async def _resolve_origin(self, song: Song) -> str:
        if song.is_local:
            if not song.local_path:
                raise ResolutionError(f"Local song {song.id} has no file path")
            return song.local_path

        source = self.source_manager.current if self.source_manager else None
        if self.resolver is None or source is None:
            raise ResolutionError("No source configured for stream resolution")

        url = await self.resolver.resolve_stream_url(song.id, source)
        if not url:
            raise ResolutionError(f"No stream URL for song {song.id}")
        return url

    def _close_session(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    # ----------------------------
    # Lyrics
    # ----------------------------

    def _set_lyrics(self, track: LyricTrack) -> None:
        self.lyrics = track
        self._lyric_cursor.reset(track)

    def _cancel_lyrics(self) -> None:
        if self._lyric_task is not None:
            self._lyric_task.cancel()
            self._lyric_task = None
        self._set_lyrics(LyricTrack())

    def _start_lyrics(self, song: Song, token: int) -> None:
        if song.is_local or self.resolver is None:
            return
        source = self.source_manager.current if self.source_manager else None
        if source is None:
            return
        self._lyric_task = self._spawn(self._load_lyrics(song, source, token))

    async def _load_lyrics(self, song: Song, source, token: int) -> None:
        raw = await self.resolver.fetch_lyric(song.id, source)
        if not self._is_current(token, song):
            logger.debug(f"[LYRICS] Dropping stale lyrics for {song.id}")
            return
        track = LyricTrack.parse(raw)
        self._set_lyrics(track)
        self._publish(lyric_count=len(track), lyric_index=None)
        logger.info(f"[LYRICS] Loaded {len(track)} line(s) for {song.name or song.id}")

    # ----------------------------
    # Transport
    # ----------------------------

    def play(self) -> None:
        # The session left over after the last track has nothing more to play
        if self.session is None or not self.session.ready or self.queue.is_past_end:
            return
        if self.session.play():
            self._publish(is_playing=True, status=PlayerStatus.PLAYING)
        else:
            self._on_session_failed()

    def pause(self) -> None:
        if self.session is None or not self.session.ready:
            return
        if self.session.pause():
            self._publish(is_playing=False, status=PlayerStatus.PAUSED)
        else:
            self._on_session_failed()

    def _on_session_failed(self) -> None:
        self._stop_sampling()
        self._publish(status=PlayerStatus.STALLED, is_playing=False, error=ErrorType.OPEN_FAILURE)

    def toggle_play(self) -> None:
        if self.state.is_playing:
            self.pause()
        else:
            self.play()

    def seek(self, seconds: float) -> None:
        if self.session is None or not self.session.ready:
            return
        seconds = max(0.0, float(seconds))
        self.session.seek(seconds)
        self._publish(progress=seconds)

    @staticmethod
    def _clamp_speed(speed: float) -> float:
        return max(MIN_SPEED, min(MAX_SPEED, float(speed)))

    def set_speed(self, multiplier: float) -> None:
        speed = self._clamp_speed(multiplier)
        if speed != multiplier:
            logger.warning(f"[ENGINE] Speed {multiplier} clamped to {speed}")
        self.speed = speed
        if self.session is not None:
            self.session.set_rate(speed)
        self._publish(speed=speed)
        if self.settings is not None:
            self._spawn(self.settings.set_default_speed(speed))

    def on_route_lost(self) -> None:
        """The output device went away; never keep playing into a dead route."""
        logger.info("[ENGINE] Output device lost, pausing")
        self.pause()

    # ----------------------------
    # Sampling loop
    # ----------------------------

    def _start_sampling(self, session: PlaybackSession) -> None:
        self._stop_sampling()
        self._sampler = self.scheduler.every(
            self.sample_interval, lambda: self._on_sample(session), name="sampling-loop"
        )

    def _stop_sampling(self) -> None:
        if self._sampler is not None:
            self._sampler.cancel()
            self._sampler = None

    def _on_sample(self, session: PlaybackSession) -> None:
        if session is not self.session:
            return

        sample = session.sample()
        song = self.state.current
        offset = 0.0
        if song is not None and self.settings is not None:
            offset = self.settings.get_lyric_offset(song.id)
        lyric_index = self._lyric_cursor.lookup(sample.elapsed + offset)
        self._publish(progress=sample.elapsed, total=sample.duration, lyric_index=lyric_index)

        if sample.ended:
            logger.info(f"[ENGINE] Track ended: {song.name if song else '?'}")
            self._stop_sampling()
            self._spawn(self.next())

    # ----------------------------
    # Sleep timer
    # ----------------------------

    def start_sleep(self, minutes: float) -> None:
        self.cancel_sleep()
        self._sleep_remaining = int(minutes * 60)
        self._publish(sleep_remaining=self._sleep_remaining)
        self._sleep_timer = self.scheduler.every(SLEEP_TICK, self._on_sleep_tick, name="sleep-timer")
        logger.info(f"[ENGINE] Sleep timer set for {minutes} minute(s)")

    def cancel_sleep(self) -> None:
        if self._sleep_timer is not None:
            self._sleep_timer.cancel()
            self._sleep_timer = None
        self._sleep_remaining = 0
        self._publish(sleep_remaining=0)

    def _on_sleep_tick(self) -> None:
        self._sleep_remaining -= 1
        if self._sleep_remaining <= 0:
            logger.info("[ENGINE] Sleep timer elapsed, pausing")
            self.pause()
            self.cancel_sleep()
            return
        self._publish(sleep_remaining=self._sleep_remaining)

    # ----------------------------
    # Teardown
    # ----------------------------

    async def shutdown(self) -> None:
        """Stop timers, drop pending work and release the session"""
        self._generation += 1
        self._stop_sampling()
        self.cancel_sleep()
        self._cancel_lyrics()
        tasks = [t for t in self._background if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._close_session()
        self._publish(status=PlayerStatus.IDLE, is_playing=False)
        logger.info("[ENGINE] Shutdown complete")
