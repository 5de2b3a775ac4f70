from .dream import (
    ErrorInfo,
    PipelineRun,
    PipelineStatus,
    PromptBundle,
    RecordingSession,
)
from .record import AuditRecord
from .video import (
    VIDEO_EXTENSIONS,
    VideoJob,
    VideoJobHandle,
    VideoLocation,
    VideoOptions,
    VideoStatus,
)

__all__ = [
    "AuditRecord",
    "ErrorInfo",
    "PipelineRun",
    "PipelineStatus",
    "PromptBundle",
    "RecordingSession",
    "VIDEO_EXTENSIONS",
    "VideoJob",
    "VideoJobHandle",
    "VideoLocation",
    "VideoOptions",
    "VideoStatus",
]
