from __future__ import annotations

import asyncio

import numpy as np
import pytest

from services.audio_capture import AudioCapture, AudioEncoder
from services.errors import PermissionDeniedError


@pytest.mark.anyio
async def test_stop_returns_chunks_in_arrival_order(microphone) -> None:
    capture = AudioCapture(microphone, tick_seconds=0.01)

    assert await capture.start() is True
    assert capture.is_recording
    microphone.emit(b"\x01\x00")
    microphone.emit(b"\x02\x00")
    microphone.emit(b"\x03\x00")
    await asyncio.sleep(0.05)

    session = await capture.stop()

    assert session is not None
    assert session.buffer == b"\x01\x00\x02\x00\x03\x00"
    assert session.mime_type == "audio/L16;rate=16000"
    assert session.filename.endswith(".pcm")
    assert session.duration_seconds > 0
    assert microphone.is_open is False
    assert capture.is_recording is False


@pytest.mark.anyio
async def test_start_while_recording_is_a_no_op(microphone) -> None:
    capture = AudioCapture(microphone)

    assert await capture.start() is True
    assert await capture.start() is False
    assert microphone.open_calls == 1
    await capture.close()


@pytest.mark.anyio
async def test_stop_when_idle_returns_none(microphone) -> None:
    capture = AudioCapture(microphone)

    assert await capture.stop() is None
    await capture.start()
    assert await capture.stop() is not None
    assert await capture.stop() is None
    assert microphone.close_calls == 1


@pytest.mark.anyio
async def test_permission_denied_is_reported(denied_microphone) -> None:
    snapshots: list[dict] = []
    capture = AudioCapture(denied_microphone, on_change=snapshots.append)

    with pytest.raises(PermissionDeniedError):
        await capture.start()

    assert capture.is_recording is False
    assert capture.permission_error == "Microphone permission denied"
    assert snapshots[-1]["permission_error"] == "Microphone permission denied"


@pytest.mark.anyio
async def test_elapsed_counter_ticks_and_resets(microphone) -> None:
    capture = AudioCapture(microphone, tick_seconds=0.01)

    await capture.start()
    await asyncio.sleep(0.08)
    first = await capture.stop()
    assert first is not None and first.duration_seconds >= 0.03

    await capture.start()
    assert capture.elapsed_ms == 0
    await capture.close()


@pytest.mark.anyio
async def test_close_releases_the_device(microphone) -> None:
    async with AudioCapture(microphone) as capture:
        await capture.start()
        assert microphone.is_open

    assert microphone.is_open is False
    assert capture.is_recording is False


@pytest.mark.anyio
async def test_stop_encodes_with_the_configured_encoder(microphone) -> None:
    capture = AudioCapture(microphone, encoder=AudioEncoder.wav())

    await capture.start()
    microphone.emit(np.zeros(1600, dtype=np.int16).tobytes())
    session = await capture.stop()

    assert session is not None
    assert session.mime_type == "audio/wav"
    assert session.filename.endswith(".wav")
    assert session.buffer[:4] == b"RIFF"


def test_wav_encoder_output() -> None:
    pcm = (np.sin(np.linspace(0, 2 * np.pi * 440, 16_000)) * 8000).astype(np.int16).tobytes()

    data = AudioEncoder.wav().encode(pcm, sample_rate=16_000, channels=1)

    assert data[:4] == b"RIFF"
    assert data[8:12] == b"WAVE"
    assert len(data) >= len(pcm)


def test_encoder_returns_empty_for_no_audio() -> None:
    assert AudioEncoder.wav().encode(b"", sample_rate=16_000, channels=1) == b""


@pytest.mark.anyio
async def test_close_while_opening_releases_the_device(slow_microphone) -> None:
    capture = AudioCapture(slow_microphone)

    starting = asyncio.create_task(capture.start())
    await asyncio.sleep(0.05)
    await capture.close()

    assert await starting is False
    assert slow_microphone.open_calls == 1
    assert slow_microphone.is_open is False
    assert capture.is_recording is False
    await asyncio.sleep(0.05)
    assert slow_microphone.is_open is False
