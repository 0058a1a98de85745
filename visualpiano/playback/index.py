"""Cursor into the active note stream for windowed lookup.

During forward playback the cursor only ever moves forward, so each frame
costs amortized O(1). A backward jump larger than the tolerance falls back
to a binary search.
"""

import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass

from visualpiano.analysis.models import Note
from visualpiano.config import settings

logger = logging.getLogger(__name__)


def _start(note: Note) -> float:
    return note.start


def lower_bound(time: float, notes: list[Note]) -> int:
    """First index whose note starts at or after ``time``."""
    return bisect_left(notes, time, key=_start)


@dataclass
class PlaybackCursor:
    last_index: int = 0
    last_query_time: float = 0.0


class PlaybackIndex:
    """Windowed access to a start-sorted note list."""

    def __init__(
        self,
        notes: list[Note] | None = None,
        look_behind: float | None = None,
        look_ahead: float | None = None,
        jump_tolerance: float | None = None,
    ) -> None:
        self.look_behind = settings.look_behind if look_behind is None else look_behind
        self.look_ahead = settings.look_ahead if look_ahead is None else look_ahead
        self.jump_tolerance = settings.jump_tolerance if jump_tolerance is None else jump_tolerance
        self.notes: list[Note] = []
        self.cursor = PlaybackCursor()
        self.reset(notes or [])

    def reset(self, notes: list[Note]) -> None:
        """Swap the active note list and rewind the cursor."""
        self.notes = notes
        self.cursor = PlaybackCursor()

    def resync(self, time: float) -> int:
        """Reposition the cursor for a discontinuous move to ``time``."""
        window_start = max(0.0, time - self.look_behind)
        self.cursor = PlaybackCursor(lower_bound(window_start, self.notes), time)
        logger.debug(f"Cursor resync at {time:.3f}s -> index {self.cursor.last_index}")
        return self.cursor.last_index

    def window(
        self,
        current_time: float,
        look_behind: float | None = None,
        look_ahead: float | None = None,
    ) -> tuple[int, int]:
        """Index range [start, end) of notes to draw or schedule around ``current_time``."""
        behind = self.look_behind if look_behind is None else look_behind
        ahead = self.look_ahead if look_ahead is None else look_ahead
        window_start = max(0.0, current_time - behind)
        window_end = current_time + ahead

        idx = self.cursor.last_index
        if current_time < self.cursor.last_query_time - self.jump_tolerance:
            idx = lower_bound(window_start, self.notes)

        notes = self.notes
        while idx < len(notes) and notes[idx].start + notes[idx].duration < window_start:
            idx += 1

        end = bisect_right(notes, window_end, lo=idx, key=_start)
        self.cursor = PlaybackCursor(idx, current_time)
        return idx, end

    def notes_in(self, current_time: float, **kwargs) -> list[Note]:
        start, end = self.window(current_time, **kwargs)
        return self.notes[start:end]
