"""Data passed from the playback engine to the renderer and audio driver."""

from dataclasses import dataclass, field
from enum import Enum

from visualpiano.analysis.models import GridLine, LoopSegment, Note


class EventKind(str, Enum):
    ON = "on"
    OFF = "off"


@dataclass(frozen=True)
class NoteEvent:
    """A note-on or note-off for the synth, already scaled by playback speed."""
    kind: EventKind
    note_id: int
    pitch: int
    frequency: float  # Hz
    velocity: float
    start_offset: float  # seconds from the poll time, may be <= 0 when late
    duration: float  # seconds of transport time


@dataclass
class FrameSnapshot:
    """Read-only view of one engine tick."""
    song_time: float
    playing: bool
    notes: list[Note] = field(default_factory=list)
    grid: list[GridLine] = field(default_factory=list)
    events: list[NoteEvent] = field(default_factory=list)
    beat_index: int = -1
    next_bar: tuple[float, float] | None = None
    loop: LoopSegment | None = None
    release_all: bool = False  # a resync dropped queued note-offs
    notices: list[str] = field(default_factory=list)
