"""Tempo / time-signature normalization and beat grid construction.

The grid is built by a single forward sweep over two independently changing
timelines. Changes that land in the middle of a beat clamp the sweep to the
change time so the new tempo or meter starts exactly where it was written.
"""

import logging
import math
from bisect import bisect_left, bisect_right
from dataclasses import replace

from visualpiano.analysis.models import GridLine, TempoPoint, TimeSigPoint

logger = logging.getLogger(__name__)

DEFAULT_BPM = 120.0
DEFAULT_NUMERATOR = 4
DEFAULT_DENOMINATOR = 4
TIME_EPS = 1e-6


def _field(entry, name: str, default=None):
    if isinstance(entry, dict):
        return entry.get(name, default)
    return getattr(entry, name, default)


def _as_float(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number


def _coerce_time(value) -> float | None:
    """Missing -> 0, non-finite -> None (dropped), negative -> 0."""
    if value is None:
        return 0.0
    number = _as_float(value)
    if number is None or not math.isfinite(number):
        return None
    return max(0.0, number)


def _coerce_positive(value, default):
    number = _as_float(value)
    if number is None or not math.isfinite(number) or number <= 0:
        return default
    return number


def _coerce_count(value, default: int) -> int:
    number = _as_float(value)
    if number is None or not math.isfinite(number) or number < 1:
        return default
    return int(number)


def _compact(points: list, make_default):
    """Collapse near-equal times (last write wins) and anchor the map at 0."""
    points = sorted(points, key=lambda p: p.time)

    compact = []
    for point in points:
        if compact and abs(point.time - compact[-1].time) <= TIME_EPS:
            compact[-1] = point
        else:
            compact.append(point)

    if compact and compact[0].time <= TIME_EPS:
        compact[0] = replace(compact[0], time=0.0)
    if not compact or compact[0].time > 0:
        compact.insert(0, make_default())
    return compact


def normalize_tempo_map(entries) -> list[TempoPoint]:
    """Build a sorted, de-duplicated tempo map that starts at time 0."""
    points = []
    for entry in entries or []:
        t = _coerce_time(_field(entry, "time"))
        if t is None:
            continue
        bpm = _coerce_positive(_field(entry, "bpm"), DEFAULT_BPM)
        points.append(TempoPoint(t, bpm))
    return _compact(points, lambda: TempoPoint(0.0, DEFAULT_BPM))


def normalize_time_sig_map(entries) -> list[TimeSigPoint]:
    """Build a sorted, de-duplicated time-signature map that starts at time 0.

    Entries may carry ``numerator``/``denominator`` or a ``timeSignature``
    pair as emitted by JavaScript MIDI decoders.
    """
    points = []
    for entry in entries or []:
        t = _coerce_time(_field(entry, "time"))
        if t is None:
            continue
        numerator = _field(entry, "numerator")
        denominator = _field(entry, "denominator")
        pair = _field(entry, "timeSignature")
        if pair is not None and numerator is None and denominator is None:
            try:
                numerator, denominator = pair[0], pair[1]
            except (TypeError, IndexError, KeyError):
                numerator = denominator = None
        points.append(TimeSigPoint(
            t,
            _coerce_count(numerator, DEFAULT_NUMERATOR),
            _coerce_count(denominator, DEFAULT_DENOMINATOR),
        ))
    return _compact(points, lambda: TimeSigPoint(0.0, DEFAULT_NUMERATOR, DEFAULT_DENOMINATOR))


def beat_seconds(tempo: TempoPoint, sig: TimeSigPoint) -> float:
    """Length of one beat of ``sig`` at ``tempo`` (quarter note = 60/bpm)."""
    return (60.0 / tempo.bpm) * (4.0 / sig.denominator)


def build_grid(
    tempo_map: list[TempoPoint],
    time_sig_map: list[TimeSigPoint],
    total_duration: float,
) -> list[GridLine]:
    """Walk tempo and meter jointly and emit every beat/bar boundary."""
    lines: list[GridLine] = []
    if not total_duration or total_duration <= 0:
        return lines

    tempo_idx = 0
    sig_idx = 0
    beat_in_bar = 0
    t = 0.0

    while t <= total_duration + TIME_EPS:
        while tempo_idx + 1 < len(tempo_map) and tempo_map[tempo_idx + 1].time <= t + TIME_EPS:
            tempo_idx += 1
        while sig_idx + 1 < len(time_sig_map) and time_sig_map[sig_idx + 1].time <= t + TIME_EPS:
            sig_idx += 1
            beat_in_bar = 0

        lines.append(GridLine(t, beat_in_bar == 0))

        sig = time_sig_map[sig_idx]
        step = beat_seconds(tempo_map[tempo_idx], sig)

        next_tempo = tempo_map[tempo_idx + 1].time if tempo_idx + 1 < len(tempo_map) else math.inf
        next_sig = time_sig_map[sig_idx + 1].time if sig_idx + 1 < len(time_sig_map) else math.inf
        next_change = min(next_tempo, next_sig)

        if t + step > next_change + TIME_EPS:
            # change lands mid-beat: restart the sweep at the change itself
            t = next_change
            continue

        t += step
        beat_in_bar = (beat_in_bar + 1) % max(1, sig.numerator)

    logger.debug(f"Built grid: {len(lines)} lines over {total_duration:.2f}s")
    return lines


def lower_bound_lines(lines: list[GridLine], t: float) -> int:
    """Index of the first grid line at or after ``t``."""
    return bisect_left(lines, t, key=lambda line: line.time)


def lines_in_window(lines: list[GridLine], start: float, end: float) -> list[GridLine]:
    """Grid lines with start <= time <= end."""
    lo = lower_bound_lines(lines, start)
    hi = bisect_right(lines, end, lo=lo, key=lambda line: line.time)
    return lines[lo:hi]


def beat_index_at(lines: list[GridLine], t: float) -> int:
    """Index of the beat currently sounding at ``t`` (metronome position)."""
    return max(0, lower_bound_lines(lines, t) - 1)


def bar_start_at(lines: list[GridLine], t: float) -> float:
    """Start of the bar containing ``t``; ``t`` itself when there is no grid."""
    if not lines:
        return t
    idx = bisect_right(lines, t + TIME_EPS, key=lambda line: line.time) - 1
    while idx >= 0:
        if lines[idx].is_bar_start:
            return lines[idx].time
        idx -= 1
    return lines[0].time


def next_bar_span(lines: list[GridLine], t: float) -> tuple[float, float] | None:
    """The first complete bar starting at or after ``t``."""
    found: list[float] = []
    for i in range(lower_bound_lines(lines, t), len(lines)):
        if lines[i].is_bar_start:
            found.append(lines[i].time)
            if len(found) == 2:
                return found[0], found[1]
    return None
