"""Analysis orchestrator - turns one decoded MIDI file into an AnalysisResult."""

import logging
import math

from visualpiano.analysis.grid import build_grid, normalize_time_sig_map, normalize_tempo_map
from visualpiano.analysis.hands import assign_hands
from visualpiano.analysis.key import infer_key
from visualpiano.analysis.models import AnalysisResult, Note, RawMidiData

logger = logging.getLogger(__name__)

DEFAULT_VELOCITY = 0.7
MIN_DURATION = 0.001

# accepted spellings for raw note fields: python-style first, then JS decoder style
_NOTE_FIELDS = {
    "start": ("start", "startTime", "time"),
    "duration": ("duration",),
    "pitch": ("pitch", "midi"),
    "velocity": ("velocity",),
    "track": ("track", "trackIndex"),
}


def _read(entry, name: str):
    for alias in _NOTE_FIELDS[name]:
        if isinstance(entry, dict):
            if alias in entry:
                return entry[alias]
        elif hasattr(entry, alias):
            return getattr(entry, alias)
    return None


def _finite(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_notes(entries) -> list[Note]:
    """Validate raw note records into Notes sorted by start time.

    Notes without a usable start or pitch are dropped; velocity and duration
    fall back to defaults. Ids are assigned in the final order.
    """
    notes = []
    dropped = 0
    for entry in entries or []:
        start = _finite(_read(entry, "start"))
        pitch = _finite(_read(entry, "pitch"))
        if start is None or pitch is None or not 0 <= pitch <= 127:
            dropped += 1
            continue

        duration = _finite(_read(entry, "duration"))
        if duration is None or duration <= 0:
            duration = MIN_DURATION

        velocity = _finite(_read(entry, "velocity"))
        velocity = DEFAULT_VELOCITY if velocity is None else min(1.0, max(0.0, velocity))

        track = _finite(_read(entry, "track"))
        notes.append(Note(
            start=max(0.0, start),
            duration=duration,
            pitch=int(pitch),
            velocity=velocity,
            track=int(track) if track is not None else 0,
        ))

    if dropped:
        logger.info(f"Dropped {dropped} malformed note(s)")

    notes.sort(key=lambda n: n.start)
    for i, note in enumerate(notes):
        note.id = i
    return notes


class AnalysisEngine:
    """Runs grid construction, key inference and hand assignment."""

    def analyze(self, raw: RawMidiData) -> AnalysisResult:
        notes = normalize_notes(raw.notes)

        duration = _finite(raw.duration)
        if duration is None or duration <= 0:
            duration = max((n.end for n in notes), default=0.0)

        tempo_map = normalize_tempo_map(raw.tempos)
        time_sig_map = normalize_time_sig_map(raw.time_signatures)
        grid = build_grid(tempo_map, time_sig_map, duration)

        key = infer_key(notes)
        split_point = assign_hands(notes)

        logger.info(
            f"Analyzed '{raw.title}': {len(notes)} notes, {duration:.1f}s, "
            f"{len(tempo_map)} tempo / {len(time_sig_map)} meter change(s), "
            f"key={key.name if key else 'n/a'}, split={split_point:.1f}"
        )

        return AnalysisResult(
            notes=notes,
            tempo_map=tempo_map,
            time_sig_map=time_sig_map,
            grid=grid,
            key=key,
            split_point=split_point,
            duration=duration,
            title=raw.title,
        )
