"""Recording and dream run REST API. Mounted under /api by app.main."""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from app.models import PipelineRunResponse, RecorderResponse
from app.studio import DreamStudio
from models.dream import RecordingSession
from routes.dependencies import get_studio
from services.errors import PermissionDeniedError

router = APIRouter(tags=["dreams"])
logger = logging.getLogger(__name__)

DEFAULT_AUDIO_TYPE = "audio/webm"
DEFAULT_IMAGE_TYPE = "image/png"


@router.get("/recording", response_model=RecorderResponse)
def get_recording(studio: DreamStudio = Depends(get_studio)) -> RecorderResponse:
    """Recorder state for the elapsed-time display."""
    return RecorderResponse(**studio.capture.snapshot())


@router.post("/recording/start", response_model=RecorderResponse, status_code=202)
async def start_recording(studio: DreamStudio = Depends(get_studio)) -> RecorderResponse:
    logger.info("[dreams] POST /api/recording/start called")
    try:
        await studio.capture.start()
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=exc.message) from exc
    return RecorderResponse(**studio.capture.snapshot())


@router.post("/recording/stop", response_model=PipelineRunResponse, status_code=202)
async def stop_recording(
    language: str | None = Query(None, description="Language hint for transcription, e.g. en"),
    studio: DreamStudio = Depends(get_studio),
) -> PipelineRunResponse:
    """Stop recording and hand the recording to a new dream run."""
    logger.info("[dreams] POST /api/recording/stop called. language=%s", language)
    run = await studio.finish_recording(language)
    if run is None:
        raise HTTPException(status_code=409, detail="Not recording")
    return PipelineRunResponse.model_validate(run.to_dict())


@router.post("/dreams", response_model=PipelineRunResponse, status_code=202)
async def upload_dream(
    audio: UploadFile = File(...),
    duration: str | None = Form(None),
    language: str | None = Form(None),
    breathe_image: UploadFile | None = File(None),
    studio: DreamStudio = Depends(get_studio),
) -> PipelineRunResponse:
    """Start a dream run from an uploaded recording instead of the microphone."""
    buffer = await audio.read()
    if not buffer:
        raise HTTPException(status_code=400, detail="Audio file is required")
    try:
        duration_seconds = float(duration) if duration else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="duration must be a number of seconds") from exc

    image = await breathe_image.read() if breathe_image is not None else None
    recording = RecordingSession(
        buffer=buffer,
        mime_type=audio.content_type or DEFAULT_AUDIO_TYPE,
        duration_seconds=duration_seconds,
        filename=audio.filename or "dream-recording.webm",
        secondary_image=image or None,
        secondary_image_type=(breathe_image.content_type or DEFAULT_IMAGE_TYPE) if image else None,
    )
    logger.info("[dreams] POST /api/dreams upload=%d bytes duration=%s", len(buffer), duration_seconds)
    run = studio.submit(recording, language or None)
    return PipelineRunResponse.model_validate(run.to_dict())


@router.get("/dreams/current", response_model=PipelineRunResponse)
def get_current_dream(studio: DreamStudio = Depends(get_studio)) -> PipelineRunResponse:
    """Current run for polling: IDLE -> TRANSCRIBING -> ... -> READY | ERROR."""
    return PipelineRunResponse.model_validate(studio.pipeline.current.to_dict())
