"""File upload endpoint for MIDI analysis."""

import logging

from fastapi import APIRouter, File, HTTPException, UploadFile

from visualpiano.analysis.engine import AnalysisEngine
from visualpiano.api.convert import analysis_to_response
from visualpiano.api.schemas import AnalysisResponse
from visualpiano.config import settings
from visualpiano.midi.loader import MidiLoadError, load_midi

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = {".mid", ".midi", ".smf"}


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_file(file: UploadFile = File(...)):
    """Analyze an uploaded MIDI file: grid, key and hand split."""
    if file.filename:
        ext = "." + file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
        if ext and ext not in ALLOWED_EXTENSIONS:
            raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    content = await file.read()
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")

    try:
        raw = load_midi(content, title=file.filename or "")
    except MidiLoadError as e:
        raise HTTPException(400, str(e))

    try:
        result = AnalysisEngine().analyze(raw)
        return analysis_to_response(result)
    except Exception:
        logger.exception("Analysis failed")
        raise HTTPException(500, "Analysis failed")
