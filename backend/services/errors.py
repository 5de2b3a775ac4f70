"""Error taxonomy shared by the capture, gateway and state machines."""

from __future__ import annotations

from enum import Enum

from models.dream import ErrorInfo


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    SERVICE = "service"
    NOT_FOUND = "not_found"
    NOT_READY = "not_ready"
    PERSISTENCE = "persistence"
    UNKNOWN = "unknown"


class DreamPipelineError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN
    default_message = "Unknown error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind.value, message=self.message)


class PermissionDeniedError(DreamPipelineError):
    kind = ErrorKind.PERMISSION_DENIED
    default_message = "Unable to access the microphone. Check the audio device and its permissions."


class GatewayConnectionError(DreamPipelineError):
    kind = ErrorKind.CONNECTION
    default_message = "Cannot connect to the dream service."


class GatewayTimeoutError(DreamPipelineError):
    kind = ErrorKind.TIMEOUT
    default_message = "The dream service did not respond in time."


class ServiceError(DreamPipelineError):
    kind = ErrorKind.SERVICE
    default_message = "Backend request failed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VideoNotFoundError(DreamPipelineError):
    kind = ErrorKind.NOT_FOUND
    default_message = "No videos found"


class NotReadyError(DreamPipelineError):
    kind = ErrorKind.NOT_READY
    default_message = "No dream prompt is available yet."


class PersistenceError(DreamPipelineError):
    kind = ErrorKind.PERSISTENCE
    default_message = "Failed to save the dream record."


def error_info(exc: BaseException) -> ErrorInfo:
    """Normalize any exception into the ErrorInfo shown to the presentation layer."""
    if isinstance(exc, DreamPipelineError):
        return exc.to_info()
    return ErrorInfo(kind=ErrorKind.UNKNOWN.value, message=str(exc) or ErrorKind.UNKNOWN.value)
