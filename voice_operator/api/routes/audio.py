"""
Audio API - transcribe recorded utterances.
"""

import logging

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from ...audio.transcribe import Transcriber
from ...core.config import settings
from ...core.errors import DecisionServiceError


logger = logging.getLogger(__name__)

router = APIRouter()


def get_transcriber(req: Request) -> Transcriber:
    """Return the app's transcriber, creating it on first use."""
    transcriber = getattr(req.app.state, "transcriber", None)
    if transcriber is None:
        transcriber = Transcriber()
        req.app.state.transcriber = transcriber
    return transcriber


@router.post("/audio")
async def transcribe_audio(
    req: Request,
    audio: UploadFile | None = File(default=None),
    tabId: str = Form(default=""),
) -> dict:
    """
    Transcribe one recorded utterance.

    The transcript is returned to the caller; the tab then sends it over
    its WebSocket as a user_transcript.

    Args:
        req: FastAPI request (for app state)
        audio: Recorded clip
        tabId: Tab the utterance belongs to

    Returns:
        {"transcript", "tabId"}
    """
    if audio is None:
        raise HTTPException(status_code=400, detail="No audio file provided")

    data = await audio.read()
    if len(data) > settings.max_audio_bytes:
        raise HTTPException(status_code=413, detail="Audio file too large")

    logger.info("Audio received: %d bytes, mime %s, tab %s", len(data), audio.content_type, tabId or "-")

    sessions = req.app.state.sessions
    await sessions.notify_status(tabId, "transcribing")

    try:
        transcript = await get_transcriber(req).transcribe(
            data,
            filename=audio.filename or "recording.webm",
            content_type=audio.content_type or "audio/webm",
        )
    except (DecisionServiceError, ValueError) as e:
        logger.error("Transcription error: %s", e)
        await sessions.notify_status(tabId, "idle")
        raise HTTPException(status_code=500, detail="Transcription failed") from e

    await sessions.notify_status(tabId, "thinking")

    return {"transcript": transcript, "tabId": tabId}
