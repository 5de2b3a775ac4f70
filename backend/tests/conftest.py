from __future__ import annotations

import copy
import time
from typing import Any

import pytest

from services.config import GatewayConfig
from services.errors import PermissionDeniedError

DREAM_RESPONSE: dict[str, Any] = {
    "transcript": {"text": "I am flying over a violet sea"},
    "prompt": {
        "sora_prompt": "A lone figure glides above a violet sea at dusk, silver light on the waves.",
        "narrative_beats": ["departure", "ascent", "arrival"],
        "visual_keywords": ["violet", "sea", "flight"],
        "emotional_tone": "serene",
        "color_palette": "violet/silver",
        "camera_style": "drone",
        "motion_style": "slow-glide",
        "negative_prompts": [],
    },
    "video": {"job_id": "job-1", "status": "queued"},
    "elapsed_ms": 1340,
}


class FakeMicrophone:
    """Stands in for the sound card: tests push chunks with emit()."""

    sample_rate = 16_000
    channels = 1

    def __init__(self, *, deny: bool = False, open_delay: float = 0.0) -> None:
        self.deny = deny
        self.open_delay = open_delay
        self.open_calls = 0
        self.close_calls = 0
        self._on_chunk: Any = None

    @property
    def is_open(self) -> bool:
        return self._on_chunk is not None

    def open(self, on_chunk: Any) -> None:
        if self.open_delay:
            time.sleep(self.open_delay)
        if self.deny:
            raise PermissionDeniedError("Microphone permission denied")
        self.open_calls += 1
        self._on_chunk = on_chunk

    def close(self) -> None:
        self.close_calls += 1
        self._on_chunk = None

    def emit(self, data: bytes) -> None:
        assert self._on_chunk is not None, "microphone is not open"
        self._on_chunk(data)


@pytest.fixture
def dream_response() -> dict[str, Any]:
    return copy.deepcopy(DREAM_RESPONSE)


@pytest.fixture
def gateway_config(tmp_path) -> GatewayConfig:
    return GatewayConfig(
        backend_url="http://dreams.test",
        records_dir=tmp_path / "records",
        video_dir=tmp_path / "videos",
        dream_timeout=2.0,
        request_timeout=2.0,
    )


@pytest.fixture
def microphone() -> FakeMicrophone:
    return FakeMicrophone()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def denied_microphone() -> FakeMicrophone:
    return FakeMicrophone(deny=True)


@pytest.fixture
def slow_microphone() -> FakeMicrophone:
    return FakeMicrophone(open_delay=0.2)
