from pathlib import Path
from unittest.mock import patch

from services.config import (
    DEFAULT_BACKEND_URL,
    DREAM_TIMEOUT_SECONDS,
    GatewayConfig,
    get_backend_url,
    get_dream_timeout,
    get_video_dir,
)


def test_get_backend_url_default() -> None:
    with patch.dict("os.environ", {"BACKEND_URL": ""}, clear=False):
        assert get_backend_url() == DEFAULT_BACKEND_URL


def test_get_backend_url_from_env_strips_whitespace_and_slash() -> None:
    with patch.dict("os.environ", {"BACKEND_URL": "  http://dreams.internal:9000/  "}, clear=False):
        assert get_backend_url() == "http://dreams.internal:9000"


def test_get_dream_timeout_ignores_invalid_values() -> None:
    with patch.dict("os.environ", {"DREAM_TIMEOUT_SECONDS": "soon"}, clear=False):
        assert get_dream_timeout() == DREAM_TIMEOUT_SECONDS
    with patch.dict("os.environ", {"DREAM_TIMEOUT_SECONDS": "-5"}, clear=False):
        assert get_dream_timeout() == DREAM_TIMEOUT_SECONDS
    with patch.dict("os.environ", {"DREAM_TIMEOUT_SECONDS": "12.5"}, clear=False):
        assert get_dream_timeout() == 12.5


def test_gateway_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("BACKEND_URL", "http://dreams.test")
    monkeypatch.setenv("DREAM_RECORDS_DIR", "/tmp/records")
    monkeypatch.delenv("DREAM_VIDEO_DIR", raising=False)
    monkeypatch.delenv("DREAM_TIMEOUT_SECONDS", raising=False)

    config = GatewayConfig.from_env()

    assert config.backend_url == "http://dreams.test"
    assert config.records_dir == Path("/tmp/records")
    assert config.video_dir == get_video_dir() == Path("generated-videos")
    assert config.dream_timeout == 60.0
