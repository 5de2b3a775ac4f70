"""Wire shapes of the Dream Processing and Video Rendering services."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TranscriptPayload(BaseModel):
    text: str


class PromptPayload(BaseModel):
    sora_prompt: str
    narrative_beats: list[str] = Field(default_factory=list)
    visual_keywords: list[str] = Field(default_factory=list)
    emotional_tone: str = ""
    color_palette: str = ""
    camera_style: str = ""
    motion_style: str = ""
    negative_prompts: list[str] | None = None


class VideoPayload(BaseModel):
    job_id: str | None = None
    status: str | None = None
    download_url: str | None = None


class DreamResponse(BaseModel):
    """Response body of ``POST /dreams``."""

    transcript: TranscriptPayload
    prompt: PromptPayload
    video: VideoPayload | None = None
    elapsed_ms: int | None = None


class LatestVideoPayload(BaseModel):
    """Response body of ``GET /videos/latest``."""

    filename: str
    url: str
    modified: str | None = None


class ServiceErrorPayload(BaseModel):
    error: str | None = None
    details: str | None = None
    message: str | None = None
