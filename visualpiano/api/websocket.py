"""WebSocket endpoint for interactive playback sessions."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from visualpiano.api.convert import analysis_to_response, frame_to_response
from visualpiano.api.schemas import AnalysisMessage, ErrorMessage, FrameMessage, SessionCommand
from visualpiano.midi.loader import MidiLoadError, load_midi
from visualpiano.playback.engine import PlaybackEngine, load_raw

logger = logging.getLogger(__name__)

router = APIRouter()


def _require(value, name: str):
    if value is None:
        raise ValueError(f"'{name}' is required")
    return value


def apply_command(engine: PlaybackEngine, command: SessionCommand) -> None:
    """Route one client command to the engine."""
    kind = command.type
    if kind == "load":
        engine.load_file(load_raw(
            command.notes,
            command.tempos,
            command.time_signatures,
            duration=command.duration,
            title=command.title,
        ))
    elif kind == "play":
        engine.play()
    elif kind == "pause":
        engine.pause()
    elif kind == "stop":
        engine.stop()
    elif kind == "seek":
        engine.seek(_require(command.time, "time"))
    elif kind == "seek_delta":
        engine.seek_by_delta(_require(command.delta, "delta"))
    elif kind == "scrub_start":
        engine.begin_scrub()
    elif kind == "scrub":
        engine.scrub(_require(command.time, "time"))
    elif kind == "scrub_end":
        engine.end_scrub()
    elif kind == "speed":
        engine.set_speed(_require(command.speed, "speed"))
    elif kind == "speed_delta":
        engine.adjust_speed(_require(command.delta, "delta"))
    elif kind == "speed_reset":
        engine.reset_speed()
    elif kind == "hand_mode":
        if command.mode is None:
            engine.cycle_hand_mode()
        else:
            engine.set_hand_mode(command.mode)
    elif kind == "mark":
        engine.mark_loop()
    elif kind == "loop_toggle":
        engine.toggle_loop()
    elif kind == "loop_edit":
        engine.edit_loop_bounds(command.start or "", command.end or "")
    elif kind == "jump_mark":
        engine.jump_to_next_mark()
    elif kind == "clear_marks":
        engine.clear_marks()
    elif kind != "tick":
        raise ValueError(f"Unknown command type: {kind}")


@router.websocket("/ws/session")
async def playback_session(websocket: WebSocket):
    """Interactive playback via WebSocket.

    Protocol:
    - Client sends binary MIDI file bytes to load a file, or JSON commands
      ``{"type": "play" | "seek" | "scrub" | ... | "tick", ...}``
    - Server answers every message:
      - {"type": "analysis", "data": {...}} after a file load
      - {"type": "frame", "data": {...}} after any other command
      - {"type": "error", "message": "..."} for malformed input
    """
    await websocket.accept()
    engine = PlaybackEngine()
    logger.info("Playback session opened")

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            data = message.get("bytes")
            if data is not None:
                try:
                    song = engine.load_file(load_midi(data))
                except MidiLoadError as e:
                    await websocket.send_json(ErrorMessage(message=str(e)).model_dump())
                    continue
                await websocket.send_json(AnalysisMessage(data=analysis_to_response(song)).model_dump())
                continue

            try:
                command = SessionCommand.model_validate_json(message.get("text") or "")
                apply_command(engine, command)
            except (ValidationError, ValueError) as e:
                await websocket.send_json(ErrorMessage(message=str(e)).model_dump())
                continue

            if command.type == "load" and engine.song is not None:
                await websocket.send_json(AnalysisMessage(data=analysis_to_response(engine.song)).model_dump())
                continue

            frame = engine.tick()
            await websocket.send_json(FrameMessage(data=frame_to_response(frame, engine)).model_dump())

    except WebSocketDisconnect:
        pass
    logger.info("Playback session closed")
