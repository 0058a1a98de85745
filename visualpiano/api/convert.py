"""Conversion of engine results into API response models."""

from visualpiano.analysis.hands import split_by_hand
from visualpiano.analysis.key import is_in_scale, scale_pitch_classes
from visualpiano.analysis.models import AnalysisResult
from visualpiano.api.schemas import (
    AnalysisResponse,
    FrameResponse,
    GridLineResponse,
    KeyResponse,
    LoopResponse,
    NoteEventResponse,
    NoteResponse,
    TempoPointResponse,
    TimeSignatureResponse,
)
from visualpiano.playback.engine import PlaybackEngine
from visualpiano.playback.models import FrameSnapshot


def analysis_to_response(result: AnalysisResult) -> AnalysisResponse:
    left, right = split_by_hand(result.notes, result.split_point)
    return AnalysisResponse(
        title=result.title,
        duration=result.duration,
        note_count=len(result.notes),
        left_count=len(left),
        right_count=len(right),
        split_point=result.split_point,
        initial_bpm=result.initial_bpm,
        key=KeyResponse(
            tonic=result.key.tonic,
            name=result.key.name,
            scale=result.key.scale.value,
            score=result.key.score,
            scale_pitch_classes=sorted(scale_pitch_classes(result.key)),
        ) if result.key else None,
        tempo_map=[TempoPointResponse(time=p.time, bpm=p.bpm) for p in result.tempo_map],
        time_signatures=[
            TimeSignatureResponse(time=s.time, numerator=s.numerator, denominator=s.denominator)
            for s in result.time_sig_map
        ],
        grid=[GridLineResponse(time=g.time, is_bar_start=g.is_bar_start) for g in result.grid],
    )


def frame_to_response(frame: FrameSnapshot, engine: PlaybackEngine) -> FrameResponse:
    key = engine.song.key if engine.song else None
    return FrameResponse(
        song_time=frame.song_time,
        playing=frame.playing,
        speed=engine.speed,
        hand_mode=engine.hand_mode.value,
        notes=[
            NoteResponse(
                id=n.id,
                start=n.start,
                duration=n.duration,
                pitch=n.pitch,
                velocity=n.velocity,
                hand=n.hand.value,
                in_scale=is_in_scale(key, n.pitch),
            )
            for n in frame.notes
        ],
        grid=[GridLineResponse(time=g.time, is_bar_start=g.is_bar_start) for g in frame.grid],
        events=[
            NoteEventResponse(
                kind=e.kind.value,
                note_id=e.note_id,
                pitch=e.pitch,
                frequency=e.frequency,
                velocity=e.velocity,
                start_offset=e.start_offset,
                duration=e.duration,
            )
            for e in frame.events
        ],
        beat_index=frame.beat_index,
        next_bar=list(frame.next_bar) if frame.next_bar else None,
        loop=LoopResponse(start=frame.loop.start, end=frame.loop.end) if frame.loop else None,
        marks=list(engine.marks),
        release_all=frame.release_all,
        notices=frame.notices,
    )
