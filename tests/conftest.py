"""Shared test fixtures for timeline and analysis tests."""

import mido
import pytest
from fastapi.testclient import TestClient

from visualpiano.analysis.models import Note, RawMidiData
from visualpiano.main import app


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


class FakeClock:
    """Manually advanced clock for deterministic engine tests."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_notes(starts, pitch: int = 60, duration: float = 0.5, velocity: float = 0.8) -> list[Note]:
    """Notes at the given start times, ids in order."""
    return [
        Note(start=s, duration=duration, pitch=pitch, velocity=velocity, id=i)
        for i, s in enumerate(starts)
    ]


def generate_song(
    bars: int = 8,
    bpm: float = 120.0,
    beats_per_bar: int = 4,
) -> RawMidiData:
    """Two-hand C major exercise: bass C on every downbeat, C-E-G arpeggio above.

    Returns raw, JS-decoder style note dicts like the frontend sends.
    """
    beat = 60.0 / bpm
    notes = []
    for bar in range(bars):
        bar_start = bar * beats_per_bar * beat
        notes.append({"startTime": bar_start, "duration": beat * beats_per_bar,
                      "pitch": 48, "velocity": 0.9, "trackIndex": 1})
        for i in range(beats_per_bar):
            pitch = (60, 64, 67, 72)[i % 4]
            notes.append({"startTime": bar_start + i * beat, "duration": beat * 0.9,
                          "pitch": pitch, "velocity": 0.7, "trackIndex": 0})
    duration = bars * beats_per_bar * beat
    return RawMidiData(
        notes=notes,
        tempos=[{"time": 0, "bpm": bpm}],
        time_signatures=[{"time": 0, "numerator": beats_per_bar, "denominator": 4}],
        duration=duration,
        title="exercise.mid",
    )


@pytest.fixture
def song():
    """Eight bars of 4/4 at 120 BPM (16 seconds)."""
    return generate_song()


def write_midi_file(path, bpm: float = 120.0, ticks_per_beat: int = 480, tempo_change=None) -> None:
    """Write a small type-1 MIDI file: conductor track plus a C major scale.

    ``tempo_change`` is an optional (beat, bpm) pair.
    """
    mid = mido.MidiFile(type=1, ticks_per_beat=ticks_per_beat)

    conductor = mido.MidiTrack()
    conductor.append(mido.MetaMessage("time_signature", numerator=3, denominator=4, time=0))
    conductor.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(bpm), time=0))
    if tempo_change is not None:
        beat, new_bpm = tempo_change
        conductor.append(mido.MetaMessage(
            "set_tempo", tempo=mido.bpm2tempo(new_bpm), time=int(beat * ticks_per_beat)))
    mid.tracks.append(conductor)

    melody = mido.MidiTrack()
    for pitch in (60, 62, 64, 65, 67, 69, 71, 72):
        melody.append(mido.Message("note_on", note=pitch, velocity=100, time=0))
        melody.append(mido.Message("note_off", note=pitch, velocity=0, time=ticks_per_beat))
    mid.tracks.append(melody)

    mid.save(str(path))
