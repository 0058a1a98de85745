"""Loop mark bookkeeping.

Marks are kept as a plain ascending list of seconds that is mutated in place.
No two marks are closer than ``eps``; insertion keeps the order without
re-sorting the whole list.
"""

from visualpiano.analysis.models import LoopSegment


def insert_unique(marks: list[float], t: float, eps: float = 0.001) -> bool:
    """Insert ``t`` into the sorted mark list.

    Returns False (and leaves the list untouched) when a mark within ``eps``
    already exists.
    """
    for i, existing in enumerate(marks):
        if abs(existing - t) < eps:
            return False
        if existing > t:
            marks.insert(i, t)
            return True
    marks.append(t)
    return True


def resolve_segment(marks: list[float], playhead: float, total_duration: float) -> LoopSegment | None:
    """Resolve the loop segment that contains ``playhead``.

    A playhead sitting exactly on an interior mark belongs to the segment
    that ends at that mark (first match scanning ascending).
    """
    if not marks:
        return None

    first = marks[0]
    last = marks[-1]

    if playhead <= first:
        return LoopSegment(0.0, first)
    if playhead >= last:
        return LoopSegment(last, total_duration)

    for lo, hi in zip(marks, marks[1:]):
        if lo <= playhead <= hi:
            return LoopSegment(lo, hi)

    return LoopSegment(last, total_duration)


def next_mark(marks: list[float], t: float, eps: float = 0.001) -> float | None:
    """First mark strictly after ``t``, wrapping around to the first mark."""
    if not marks:
        return None
    for mark in marks:
        if mark > t + eps:
            return mark
    return marks[0]


def nearest_mark(marks: list[float], t: float) -> tuple[float, float] | None:
    """Return (mark, distance) of the mark closest to ``t``."""
    if not marks:
        return None
    best = min(marks, key=lambda m: abs(m - t))
    return best, abs(best - t)


def remove_near(marks: list[float], t: float, eps: float = 0.001) -> int:
    """Remove every mark within ``eps`` of ``t``. Returns the number removed."""
    kept = [m for m in marks if abs(m - t) >= eps]
    removed = len(marks) - len(kept)
    marks[:] = kept
    return removed
