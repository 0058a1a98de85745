"""Pydantic request/response models for API."""

from typing import Any

from pydantic import BaseModel


class KeyResponse(BaseModel):
    tonic: int
    name: str
    scale: str
    score: float
    scale_pitch_classes: list[int] = []


class TempoPointResponse(BaseModel):
    time: float
    bpm: float


class TimeSignatureResponse(BaseModel):
    time: float
    numerator: int
    denominator: int


class GridLineResponse(BaseModel):
    time: float
    is_bar_start: bool


class AnalysisResponse(BaseModel):
    title: str = ""
    duration: float = 0.0
    note_count: int = 0
    left_count: int = 0
    right_count: int = 0
    split_point: float = 60.0
    initial_bpm: float = 120.0
    key: KeyResponse | None = None
    tempo_map: list[TempoPointResponse] = []
    time_signatures: list[TimeSignatureResponse] = []
    grid: list[GridLineResponse] = []


# WebSocket message types

class NoteResponse(BaseModel):
    id: int
    start: float
    duration: float
    pitch: int
    velocity: float
    hand: str
    in_scale: bool = True


class NoteEventResponse(BaseModel):
    kind: str
    note_id: int
    pitch: int
    frequency: float
    velocity: float
    start_offset: float
    duration: float


class LoopResponse(BaseModel):
    start: float
    end: float


class FrameResponse(BaseModel):
    song_time: float
    playing: bool
    speed: float = 1.0
    hand_mode: str = "both"
    notes: list[NoteResponse] = []
    grid: list[GridLineResponse] = []
    events: list[NoteEventResponse] = []
    beat_index: int = -1
    next_bar: list[float] | None = None
    loop: LoopResponse | None = None
    marks: list[float] = []
    release_all: bool = False
    notices: list[str] = []


class FrameMessage(BaseModel):
    type: str = "frame"
    data: FrameResponse


class AnalysisMessage(BaseModel):
    type: str = "analysis"
    data: AnalysisResponse


class ErrorMessage(BaseModel):
    type: str = "error"
    message: str


class SessionCommand(BaseModel):
    """A control message sent by the client over the session socket."""
    type: str
    time: float | None = None
    delta: float | None = None
    speed: float | None = None
    mode: str | None = None
    start: str | None = None
    end: str | None = None
    notes: list[dict[str, Any]] = []
    tempos: list[dict[str, Any]] = []
    time_signatures: list[dict[str, Any]] = []
    duration: float | None = None
    title: str = ""
