"""Note scheduling queue polled by the audio driver.

Events are keyed by (transport time, note id). The driver polls once per tick
with the current transport time and receives the note-ons that became due,
each paired with a note-off queued at ``on + duration / speed``.
"""

import heapq

from visualpiano.analysis.models import Note
from visualpiano.playback.models import EventKind, NoteEvent


def midi_to_frequency(pitch: int) -> float:
    return 440.0 * 2.0 ** ((pitch - 69) / 12.0)


class NoteScheduler:
    def __init__(self) -> None:
        self._queue: list[tuple[float, int, int, EventKind, Note]] = []
        self.speed = 1.0

    def _push(self, time: float, kind: EventKind, note: Note) -> None:
        # offs sort before ons at the same instant
        order = 0 if kind is EventKind.OFF else 1
        heapq.heappush(self._queue, (time, order, note.id, kind, note))

    def clear(self) -> None:
        self._queue = []

    def pending(self) -> int:
        return len(self._queue)

    def sounding(self) -> set[int]:
        """Ids of notes whose note-on fired and whose note-off is still queued."""
        return {entry[2] for entry in self._queue if entry[3] is EventKind.OFF}

    def rebuild(self, notes: list[Note], song_time: float, speed: float, keep_offs: bool = False) -> None:
        """Schedule every note starting at or after ``song_time``.

        With ``keep_offs`` the queued note-offs survive the rebuild and notes
        still sounding are not triggered again. Without it the caller must
        tell the driver to release everything.
        """
        offs = [entry for entry in self._queue if entry[3] is EventKind.OFF] if keep_offs else []
        skip = {entry[2] for entry in offs}
        self.speed = speed
        self._queue = offs + [
            (note.start / speed, 1, note.id, EventKind.ON, note)
            for note in notes
            if note.start >= song_time and note.id not in skip
        ]
        heapq.heapify(self._queue)

    def poll(self, now: float, horizon: float = 0.0) -> list[NoteEvent]:
        """Pop every event due by ``now + horizon`` (transport seconds)."""
        events = []
        while self._queue and self._queue[0][0] <= now + horizon:
            time, _, _, kind, note = heapq.heappop(self._queue)
            scaled = note.duration / self.speed
            if kind is EventKind.ON:
                self._push(time + scaled, EventKind.OFF, note)
            events.append(NoteEvent(
                kind=kind,
                note_id=note.id,
                pitch=note.pitch,
                frequency=midi_to_frequency(note.pitch),
                velocity=note.velocity,
                start_offset=time - now,
                duration=scaled,
            ))
        return events
