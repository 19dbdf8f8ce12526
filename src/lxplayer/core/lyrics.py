"""
Timed lyric parsing and time-index lookup.

Lyric text uses the bracketed timestamp convention:

    [01:02]some text
    [01:02.35]some text
    [00:12.00][00:48.10]repeated chorus

Anything else (metadata tags like [ar:Artist], blank lines, garbage) is
skipped without error. An input with no usable lines gives an empty track.
"""

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

logger = logging.getLogger(__name__)

_TIMESTAMP = re.compile(r'\[(\d+):(\d{1,2}(?:\.\d+)?)\]')


@dataclass(frozen=True)
class LyricLine:
    time: float
    text: str


class LyricTrack:
    """An immutable, time-ordered sequence of lyric lines."""

    def __init__(self, lines: Sequence[LyricLine] = ()):
        # sorted() is stable, so equal timestamps keep their source order
        self._lines = tuple(sorted(lines, key=lambda line: line.time))
        self._times = [line.time for line in self._lines]

    @classmethod
    def parse(cls, raw: Optional[str]) -> 'LyricTrack':
        if not raw:
            return cls()

        lines: List[LyricLine] = []
        skipped = 0
        for row in raw.splitlines():
            row = row.strip()
            stamps = []
            pos = 0
            while True:
                match = _TIMESTAMP.match(row, pos)
                if not match:
                    break
                stamps.append(int(match.group(1)) * 60 + float(match.group(2)))
                pos = match.end()
            if not stamps:
                if row:
                    skipped += 1
                continue
            text = row[pos:].strip()
            lines.extend(LyricLine(time=t, text=text) for t in stamps)

        if skipped:
            logger.debug(f"[LYRICS] Skipped {skipped} line(s) without a timestamp")
        return cls(lines)

    @property
    def lines(self) -> Sequence[LyricLine]:
        return self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[LyricLine]:
        return iter(self._lines)

    def __getitem__(self, index: int) -> LyricLine:
        return self._lines[index]

    def lookup(self, elapsed: float) -> Optional[int]:
        """
        Index of the line being sung at `elapsed` seconds.

        Returns None before the first timestamp and the last index once
        `elapsed` reaches the final timestamp.
        """
        index = bisect_right(self._times, elapsed) - 1
        return index if index >= 0 else None

    def time_at(self, index: int) -> float:
        return self._times[index]


class LyricCursor:
    """
    Resumable lookup over a LyricTrack for a steadily advancing clock.

    Each call scans forward from the previous answer, so a playback tick
    costs O(1) amortized. A backwards jump (seek, replay) falls back to a
    binary search.
    """

    def __init__(self, track: Optional[LyricTrack] = None):
        self.track = track or LyricTrack()
        self.index: Optional[int] = None

    def reset(self, track: Optional[LyricTrack] = None) -> None:
        if track is not None:
            self.track = track
        self.index = None

    def lookup(self, elapsed: float) -> Optional[int]:
        track = self.track
        count = len(track)
        if count == 0:
            self.index = None
            return None

        index = self.index
        if index is None:
            if elapsed < track.time_at(0):
                return None
            index = 0
        elif elapsed < track.time_at(index):
            self.index = track.lookup(elapsed)
            return self.index

        while index + 1 < count and track.time_at(index + 1) <= elapsed:
            index += 1
        self.index = index
        return index
