from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .video import VideoJobHandle


class PipelineStatus(str, Enum):
    IDLE = "idle"
    TRANSCRIBING = "transcribing"
    ENGINEERING = "engineering"
    SUBMITTING = "submitting"
    READY = "ready"
    ERROR = "error"


# Forward order of a run; READY and ERROR are both terminal.
PIPELINE_ORDER = (
    PipelineStatus.IDLE,
    PipelineStatus.TRANSCRIBING,
    PipelineStatus.ENGINEERING,
    PipelineStatus.SUBMITTING,
)
IN_FLIGHT_STATUSES = frozenset(
    {PipelineStatus.TRANSCRIBING, PipelineStatus.ENGINEERING, PipelineStatus.SUBMITTING}
)


@dataclass(frozen=True)
class ErrorInfo:
    kind: str                  # ErrorKind value, e.g. "timeout"
    message: str               # human-readable, shown as-is

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class RecordingSession:
    buffer: bytes
    mime_type: str
    duration_seconds: float | None   # None when an upload did not say
    filename: str = "dream-recording.webm"
    secondary_image: bytes | None = None
    secondary_image_type: str | None = None


@dataclass(frozen=True)
class PromptBundle:
    sora_prompt: str
    narrative_beats: tuple[str, ...] = ()
    visual_keywords: tuple[str, ...] = ()
    emotional_tone: str = ""
    color_palette: str = ""
    camera_style: str = ""
    motion_style: str = ""
    negative_prompts: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PromptBundle:
        """Build from the service's snake_case ``prompt`` object."""
        return cls(
            sora_prompt=payload["sora_prompt"],
            narrative_beats=tuple(payload.get("narrative_beats") or ()),
            visual_keywords=tuple(payload.get("visual_keywords") or ()),
            emotional_tone=payload.get("emotional_tone") or "",
            color_palette=payload.get("color_palette") or "",
            camera_style=payload.get("camera_style") or "",
            motion_style=payload.get("motion_style") or "",
            negative_prompts=tuple(payload.get("negative_prompts") or ()),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "sora_prompt": self.sora_prompt,
            "narrative_beats": list(self.narrative_beats),
            "visual_keywords": list(self.visual_keywords),
            "emotional_tone": self.emotional_tone,
            "color_palette": self.color_palette,
            "negative_prompts": list(self.negative_prompts),
            "camera_style": self.camera_style,
            "motion_style": self.motion_style,
        }


@dataclass
class PipelineRun:
    run_id: int = 0
    status: PipelineStatus = PipelineStatus.IDLE
    transcript: str | None = None
    prompt: PromptBundle | None = None
    video: VideoJobHandle | None = None
    elapsed_ms: int | None = None
    error: ErrorInfo | None = None

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "transcript": self.transcript,
            "prompt": self.prompt.to_payload() if self.prompt else None,
            "video": self.video.to_dict() if self.video else None,
            "elapsed_ms": self.elapsed_ms,
            "error": self.error.to_dict() if self.error else None,
        }
