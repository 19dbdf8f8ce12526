"""
Play queue management: the active list, its cursor and the play-next override
"""

import logging
import random
from collections import deque
from typing import Deque, Dict, List, Optional, Any, Iterable

from lxplayer.core.interfaces import PlayMode, Song

logger = logging.getLogger(__name__)


class PlayQueue:
    """
    Ordered song list plus a cursor into it.

    The cursor may sit one past the last song, which means the end of the
    list was reached. Songs passed to enqueue_next() wait in a FIFO and are
    spliced in right after the cursor on the next advance().
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.songs: List[Song] = []
        self.index: int = 0
        self.pending: Deque[Song] = deque()
        self._rng = rng or random.Random()

    @property
    def current(self) -> Optional[Song]:
        """Song under the cursor, or None when the cursor is past the end."""
        if 0 <= self.index < len(self.songs):
            return self.songs[self.index]
        return None

    @property
    def is_past_end(self) -> bool:
        return self.index >= len(self.songs)

    def set_list(self, songs: Iterable[Song], start_index: int = 0) -> None:
        """Replace the list, drop pending play-next songs and move the cursor."""
        self.songs = list(songs)
        self.pending.clear()
        clamped = max(0, min(int(start_index), len(self.songs)))
        if clamped != start_index:
            logger.warning(f"[QUEUE] Start index {start_index} clamped to {clamped} for {len(self.songs)} song(s)")
        self.index = clamped
        logger.info(f"[QUEUE] List set: {len(self.songs)} song(s), cursor at {self.index}")

    def enqueue_next(self, song: Song) -> None:
        self.pending.append(song)
        logger.info(f"[QUEUE] Play-next added: {song.name or song.id} | Pending now: {len(self.pending)}")

    def advance(self, mode: PlayMode) -> int:
        """
        Move the cursor one step under `mode` and return the new index.

        A result equal to len(songs) means the end of the list was reached.
        """
        if self.pending:
            song = self.pending.popleft()
            insert_at = min(self.index + 1, len(self.songs))
            self.songs.insert(insert_at, song)
            logger.info(f"[QUEUE] Spliced {song.name or song.id} at {insert_at}")

        length = len(self.songs)
        if mode == PlayMode.SEQUENCE:
            self.index += 1
        elif mode == PlayMode.LOOP:
            self.index = (self.index + 1) % length if length else 0
        elif mode == PlayMode.SINGLE:
            pass
        elif mode == PlayMode.RANDOM:
            # Repeats of the current index are allowed
            self.index = self._rng.randrange(length) if length else 0

        if self.index > length:
            self.index = length
        if self.index == length:
            logger.info("[QUEUE] Reached end of list")
        return self.index

    def retreat(self) -> int:
        self.index = max(0, self.index - 1)
        return self.index

    def snapshot(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'songs': [s.to_dict() for s in self.songs],
            'pending': [s.to_dict() for s in self.pending],
        }

    def __len__(self) -> int:
        return len(self.songs)
