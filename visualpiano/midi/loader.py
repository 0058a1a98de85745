"""MIDI file loading utilities."""

from __future__ import annotations

import io
import logging
from bisect import bisect_right
from collections import defaultdict, deque
from pathlib import Path
from typing import BinaryIO, Union

import mido

from visualpiano.analysis.models import RawMidiData

logger = logging.getLogger(__name__)

DEFAULT_TEMPO = 500000  # microseconds per quarter note (120 bpm)


class MidiLoadError(ValueError):
    """The input could not be decoded as a Standard MIDI File."""


class _TickClock:
    """Converts absolute ticks to seconds through the file's tempo changes."""

    def __init__(self, tempo_events: list[tuple[int, int]], ticks_per_beat: int) -> None:
        self.ticks_per_beat = ticks_per_beat
        self._ticks = [0]
        self._seconds = [0.0]
        self._tempos = [DEFAULT_TEMPO]
        for tick, tempo in sorted(tempo_events):
            seconds = self.seconds(tick)
            if tick == self._ticks[-1]:
                self._tempos[-1] = tempo
                continue
            self._ticks.append(tick)
            self._seconds.append(seconds)
            self._tempos.append(tempo)

    def seconds(self, tick: int) -> float:
        i = bisect_right(self._ticks, tick) - 1
        return self._seconds[i] + mido.tick2second(tick - self._ticks[i], self.ticks_per_beat, self._tempos[i])


def _open(source: Union[str, Path, bytes, bytearray, BinaryIO]) -> mido.MidiFile:
    try:
        if isinstance(source, (bytes, bytearray)):
            return mido.MidiFile(file=io.BytesIO(bytes(source)))
        if hasattr(source, "read"):
            return mido.MidiFile(file=source)
        return mido.MidiFile(str(source))
    except Exception as e:
        raise MidiLoadError(f"Could not read MIDI file: {e}") from e


def load_midi(
    source: Union[str, Path, bytes, bytearray, BinaryIO],
    title: str | None = None,
) -> RawMidiData:
    """Decode a MIDI file into raw note, tempo and time-signature lists.

    Parameters
    ----------
    source:
        Path to a ``.mid`` file, its raw bytes, or a binary file object.
    title:
        Display title; defaults to the file name when a path is given.

    Returns
    -------
    RawMidiData
        Times in seconds, velocities scaled to 0-1.
    """
    mid = _open(source)
    if title is None:
        title = Path(str(source)).name if isinstance(source, (str, Path)) else ""

    tempo_events: list[tuple[int, int]] = []
    sig_events: list[tuple[int, int, int]] = []
    for track in mid.tracks:
        tick = 0
        for msg in track:
            tick += msg.time
            if msg.type == "set_tempo":
                tempo_events.append((tick, msg.tempo))
            elif msg.type == "time_signature":
                sig_events.append((tick, msg.numerator, msg.denominator))

    clock = _TickClock(tempo_events, mid.ticks_per_beat)

    notes = []
    end_tick = 0
    for track_index, track in enumerate(mid.tracks):
        tick = 0
        sounding: defaultdict[tuple[int, int], deque[tuple[int, int]]] = defaultdict(deque)
        for msg in track:
            tick += msg.time
            if msg.type == "note_on" and msg.velocity > 0:
                sounding[(msg.channel, msg.note)].append((tick, msg.velocity))
            elif msg.type in ("note_off", "note_on"):
                queue = sounding.get((msg.channel, msg.note))
                if queue:
                    start_tick, velocity = queue.popleft()
                    notes.append(_note(clock, start_tick, tick, msg.note, velocity, track_index))
        # notes never released end with their track
        for (_, pitch), queue in sounding.items():
            for start_tick, velocity in queue:
                notes.append(_note(clock, start_tick, tick, pitch, velocity, track_index))
        end_tick = max(end_tick, tick)

    notes.sort(key=lambda n: n["startTime"])
    duration = max(
        clock.seconds(end_tick),
        max((n["startTime"] + n["duration"] for n in notes), default=0.0),
    )

    logger.info(f"Loaded MIDI '{title}': {len(mid.tracks)} tracks, {len(notes)} notes, {duration:.1f}s")

    return RawMidiData(
        notes=notes,
        tempos=[{"time": clock.seconds(t), "bpm": mido.tempo2bpm(tempo)} for t, tempo in tempo_events],
        time_signatures=[
            {"time": clock.seconds(t), "numerator": num, "denominator": den}
            for t, num, den in sig_events
        ],
        duration=duration,
        title=title,
    )


def _note(clock: _TickClock, start_tick: int, end_tick: int, pitch: int, velocity: int, track: int) -> dict:
    start = clock.seconds(start_tick)
    return {
        "startTime": start,
        "duration": clock.seconds(end_tick) - start,
        "pitch": pitch,
        "velocity": velocity / 127.0,
        "trackIndex": track,
    }
