from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .dream import ErrorInfo

VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov")


class VideoStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class VideoOptions:
    duration_seconds: int = 5
    aspect_ratio: str = "16:9"
    format: str = "mp4"
    seed: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "duration_seconds": self.duration_seconds,
            "aspect_ratio": self.aspect_ratio,
            "format": self.format,
        }
        if self.seed is not None:
            payload["seed"] = self.seed
        return payload


@dataclass(frozen=True)
class VideoJobHandle:
    job_id: str
    status: str
    download_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"job_id": self.job_id, "status": self.status, "download_url": self.download_url}


@dataclass(frozen=True)
class VideoLocation:
    filename: str
    url: str
    modified: datetime | None = None
    source: str = "remote"     # remote | local

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "url": self.url,
            "modified": self.modified.isoformat() if self.modified else None,
            "source": self.source,
        }


@dataclass
class VideoJob:
    status: VideoStatus = VideoStatus.IDLE
    job_id: str | None = None
    download_url: str | None = None
    error: ErrorInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "job_id": self.job_id,
            "download_url": self.download_url,
            "error": self.error.to_dict() if self.error else None,
        }
