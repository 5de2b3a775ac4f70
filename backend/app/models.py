from datetime import datetime

from pydantic import BaseModel, Field

from models.dream import PipelineStatus
from models.video import VideoStatus


class ErrorInfoResponse(BaseModel):
    kind: str
    message: str


class RecorderResponse(BaseModel):
    recording: bool
    elapsed_seconds: float = 0.0
    permission_error: str | None = None


class PromptResponse(BaseModel):
    sora_prompt: str
    narrative_beats: list[str] = Field(default_factory=list)
    visual_keywords: list[str] = Field(default_factory=list)
    emotional_tone: str = ""
    color_palette: str = ""
    camera_style: str = ""
    motion_style: str = ""
    negative_prompts: list[str] = Field(default_factory=list)


class VideoHandleResponse(BaseModel):
    job_id: str
    status: str
    download_url: str | None = None


class PipelineRunResponse(BaseModel):
    """Current dream run. GET /api/dreams/current."""

    run_id: int
    status: PipelineStatus
    transcript: str | None = None
    prompt: PromptResponse | None = None
    video: VideoHandleResponse | None = None
    elapsed_ms: int | None = None
    error: ErrorInfoResponse | None = None


class VideoJobResponse(BaseModel):
    status: VideoStatus
    job_id: str | None = None
    download_url: str | None = None
    error: ErrorInfoResponse | None = None


class VideoLocationResponse(BaseModel):
    filename: str
    url: str
    modified: datetime | None = None
    source: str
