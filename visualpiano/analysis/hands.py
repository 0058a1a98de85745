"""Left/right hand assignment.

A 1-D 2-means over pitch finds the boundary between the two hands. Notes are
then walked in chord-sized groups so that a compact chord is never torn
across the boundary.
"""

import numpy as np

from visualpiano.analysis.models import Hand, Note
from visualpiano.config import settings

MIDDLE_C = 60.0


def compute_split_point(
    notes: list[Note],
    seeds: tuple[float, float] | None = None,
    iterations: int | None = None,
) -> float:
    """Pitch boundary between the low and high clusters."""
    if not notes:
        return MIDDLE_C
    c1, c2 = seeds if seeds is not None else settings.split_seeds
    n_iter = iterations if iterations is not None else settings.split_iterations

    pitches = np.array([n.pitch for n in notes], dtype=float)
    for _ in range(n_iter):
        # ties go to the first (lower-seeded) centroid
        to_first = np.abs(pitches - c1) <= np.abs(pitches - c2)
        if to_first.any():
            c1 = float(pitches[to_first].mean())
        if (~to_first).any():
            c2 = float(pitches[~to_first].mean())

    return (min(c1, c2) + max(c1, c2)) / 2


def _hand_for(pitch: float, split_point: float) -> Hand:
    return Hand.LEFT if pitch < split_point else Hand.RIGHT


def assign_hands(
    notes: list[Note],
    chord_window: float | None = None,
    chord_span: int | None = None,
) -> float:
    """Set ``hand`` on every note (sorted by start) and return the split point."""
    if not notes:
        return MIDDLE_C
    window = settings.chord_window if chord_window is None else chord_window
    span_limit = settings.chord_span if chord_span is None else chord_span

    split_point = compute_split_point(notes)

    i = 0
    while i < len(notes):
        group_start = notes[i].start
        j = i
        while j < len(notes) and notes[j].start <= group_start + window:
            j += 1
        group = notes[i:j]

        pitches = sorted(n.pitch for n in group)
        if len(group) >= 3 and pitches[-1] - pitches[0] <= span_limit:
            hand = _hand_for(pitches[len(pitches) // 2], split_point)
            for note in group:
                note.hand = hand
        else:
            for note in group:
                note.hand = _hand_for(note.pitch, split_point)
        i = j

    return split_point


def split_by_hand(notes: list[Note], split_point: float) -> tuple[list[Note], list[Note]]:
    """Partition into (left, right), keeping start order."""
    left: list[Note] = []
    right: list[Note] = []
    for note in notes:
        if note.hand is Hand.LEFT:
            left.append(note)
        elif note.hand is Hand.RIGHT:
            right.append(note)
        elif note.pitch < split_point:
            left.append(note)
        else:
            right.append(note)
    return left, right
