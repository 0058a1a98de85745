"""Core data models for timeline and musical analysis."""

from dataclasses import dataclass, field
from enum import Enum

PITCH_CLASS_NAMES = ["C", "C#", "D", "Eb", "E", "F", "F#", "G", "Ab", "A", "Bb", "B"]


class Hand(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    UNASSIGNED = "unassigned"


class HandMode(str, Enum):
    """Which hand's notes are active for playback."""
    BOTH = "both"
    LEFT = "left"
    RIGHT = "right"


class Scale(str, Enum):
    MAJOR = "major"
    MINOR = "minor"


@dataclass
class Note:
    """A single note of the loaded file."""
    start: float  # seconds
    duration: float  # seconds, > 0
    pitch: int  # MIDI 0-127
    velocity: float = 0.7  # 0.0-1.0
    track: int = 0
    hand: Hand = Hand.UNASSIGNED
    id: int = 0  # position in the sorted note list of the load

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class TempoPoint:
    time: float
    bpm: float


@dataclass(frozen=True)
class TimeSigPoint:
    time: float
    numerator: int
    denominator: int

    @property
    def label(self) -> str:
        return f"{self.numerator}/{self.denominator}"


@dataclass(frozen=True)
class GridLine:
    """A beat or bar boundary."""
    time: float
    is_bar_start: bool = False


@dataclass(frozen=True)
class LoopSegment:
    start: float
    end: float


@dataclass(frozen=True)
class KeyHypothesis:
    """A candidate key signature with its score."""
    tonic: int  # pitch class 0-11
    scale: Scale
    score: float

    @property
    def tonic_name(self) -> str:
        return PITCH_CLASS_NAMES[self.tonic % 12]

    @property
    def name(self) -> str:
        return f"{self.tonic_name} {self.scale.value}"


@dataclass
class RawMidiData:
    """Decoded but unvalidated contents of a MIDI file."""
    notes: list = field(default_factory=list)
    tempos: list = field(default_factory=list)
    time_signatures: list = field(default_factory=list)
    duration: float | None = None
    title: str = ""


@dataclass
class AnalysisResult:
    """Everything derived from one loaded file."""
    notes: list[Note]
    tempo_map: list[TempoPoint]
    time_sig_map: list[TimeSigPoint]
    grid: list[GridLine]
    key: KeyHypothesis | None
    split_point: float
    duration: float = 0.0
    title: str = ""

    @property
    def initial_bpm(self) -> float:
        return self.tempo_map[0].bpm if self.tempo_map else 120.0
