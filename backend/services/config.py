"""Environment-backed configuration for the dream pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_BACKEND_URL = "http://localhost:8080"
DEFAULT_RECORDS_DIR = "dream-records"
DEFAULT_VIDEO_DIR = "generated-videos"
DREAM_TIMEOUT_SECONDS = 60.0
REQUEST_TIMEOUT_SECONDS = 30.0


def _env(name: str) -> str:
    return os.environ.get(name, "").strip()


def get_backend_url() -> str:
    """Dream/Video service base address from BACKEND_URL or the local dev default."""
    return (_env("BACKEND_URL") or DEFAULT_BACKEND_URL).rstrip("/")


def get_records_dir() -> Path:
    return Path(_env("DREAM_RECORDS_DIR") or DEFAULT_RECORDS_DIR)


def get_video_dir() -> Path:
    return Path(_env("DREAM_VIDEO_DIR") or DEFAULT_VIDEO_DIR)


def get_dream_timeout() -> float:
    raw = _env("DREAM_TIMEOUT_SECONDS")
    if not raw:
        return DREAM_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        return DREAM_TIMEOUT_SECONDS
    return value if value > 0 else DREAM_TIMEOUT_SECONDS


@dataclass(frozen=True)
class GatewayConfig:
    """
    Everything the gateway needs to reach the remote services and local storage.

    Built once at startup and handed to the components that need it.
    """

    backend_url: str = DEFAULT_BACKEND_URL
    records_dir: Path = Path(DEFAULT_RECORDS_DIR)
    video_dir: Path = Path(DEFAULT_VIDEO_DIR)
    dream_timeout: float = DREAM_TIMEOUT_SECONDS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> GatewayConfig:
        return cls(
            backend_url=get_backend_url(),
            records_dir=get_records_dir(),
            video_dir=get_video_dir(),
            dream_timeout=get_dream_timeout(),
        )
