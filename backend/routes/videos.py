"""Video job REST API. Mounted under /api by app.main."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.models import VideoJobResponse, VideoLocationResponse
from app.studio import DreamStudio
from routes.dependencies import get_studio
from services.errors import NotReadyError, VideoNotFoundError

router = APIRouter(tags=["videos"])
logger = logging.getLogger(__name__)


@router.post("/videos", response_model=VideoJobResponse, status_code=202)
async def generate_video(studio: DreamStudio = Depends(get_studio)) -> VideoJobResponse:
    """Render a video from the current dream prompt."""
    logger.info("[videos] POST /api/videos called")
    try:
        job = await studio.generate_video()
    except NotReadyError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    return VideoJobResponse.model_validate(job.to_dict())


@router.get("/videos/current", response_model=VideoJobResponse)
def get_current_video(studio: DreamStudio = Depends(get_studio)) -> VideoJobResponse:
    return VideoJobResponse.model_validate(studio.videos.job.to_dict())


@router.get("/videos/latest", response_model=VideoLocationResponse)
async def get_latest_video(studio: DreamStudio = Depends(get_studio)) -> VideoLocationResponse:
    try:
        location = await studio.gateway.fetch_latest_video()
    except VideoNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    return VideoLocationResponse.model_validate(location.to_dict())
