"""Microphone capture: accumulate raw PCM chunks, then encode them to an audio container."""

from __future__ import annotations

import asyncio
import io
import logging
import time
from contextlib import suppress
from fractions import Fraction
from typing import Any, Callable, Protocol

import av
import numpy as np

from models.dream import RecordingSession
from services.errors import PermissionDeniedError
from services.records import audio_suffix

logger = logging.getLogger(__name__)

# Opus only runs at 48 kHz, so capture at that rate to avoid resampling.
SAMPLE_RATE = 48_000
CHANNELS = 1
TICK_SECONDS = 0.1
RAW_PCM_MIME = "audio/L16"

ChunkHandler = Callable[[bytes], None]
StateListener = Callable[[dict[str, Any]], None]


class Microphone(Protocol):
    sample_rate: int
    channels: int

    def open(self, on_chunk: ChunkHandler) -> None:
        """Acquire the device and start delivering int16 PCM chunks. Raises PermissionDeniedError."""

    def close(self) -> None:
        """Release the device. Must be safe to call when not open."""


class SoundDeviceMicrophone:
    """
    PortAudio input stream via ``sounddevice``.

    ``on_chunk`` is called on the PortAudio callback thread.
    """

    def __init__(
        self,
        *,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
        device: int | str | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self._device = device
        self._stream: Any | None = None

    def open(self, on_chunk: ChunkHandler) -> None:
        try:
            # Imported lazily: importing sounddevice fails outright without PortAudio.
            import sounddevice as sd  # noqa: PLC0415
        except (ImportError, OSError) as exc:
            raise PermissionDeniedError(f"Microphone unavailable: {exc}") from exc

        def callback(indata: Any, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.debug("[audio_capture] Input status: %s", status)
            on_chunk(bytes(indata))

        try:
            stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self._device,
                callback=callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise PermissionDeniedError(f"Unable to access the microphone: {exc}") from exc
        try:
            stream.start()
        except sd.PortAudioError as exc:
            stream.close()
            raise PermissionDeniedError(f"Unable to access the microphone: {exc}") from exc
        self._stream = stream

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()


class AudioEncoder:
    """
    Encodes interleaved int16 PCM into an audio container in memory.

    Defaults to WebM/Opus; ``AudioEncoder.wav()`` gives plain PCM WAV.
    """

    def __init__(
        self,
        *,
        container_format: str = "webm",
        codec: str = "libopus",
        mime_type: str = "audio/webm;codecs=opus",
    ) -> None:
        self._container_format = container_format
        self._codec = codec
        self.mime_type = mime_type

    @classmethod
    def wav(cls) -> AudioEncoder:
        return cls(container_format="wav", codec="pcm_s16le", mime_type="audio/wav")

    def encode(self, pcm: bytes, *, sample_rate: int, channels: int) -> bytes:
        samples = np.frombuffer(pcm, dtype=np.int16)
        samples = samples[: len(samples) - len(samples) % channels]
        if samples.size == 0:
            return b""
        layout = "mono" if channels == 1 else "stereo"

        buffer = io.BytesIO()
        container = av.open(buffer, "w", format=self._container_format)
        try:
            stream = container.add_stream(self._codec, rate=sample_rate, layout=layout)
            # Packed s16 frames are a single plane of interleaved samples.
            frame = av.AudioFrame.from_ndarray(samples.reshape(1, -1), format="s16", layout=layout)
            frame.sample_rate = sample_rate
            frame.pts = 0
            frame.time_base = Fraction(1, sample_rate)
            for packet in stream.encode(frame):
                container.mux(packet)
            for packet in stream.encode(None):
                container.mux(packet)
        finally:
            container.close()
        return buffer.getvalue()


class AudioCapture:
    """
    Owns the microphone for one recording at a time.

    ``start()`` acquires the device; chunks are appended in arrival order and an
    elapsed counter ticks every 100 ms. ``stop()`` always releases the device and
    returns the finished RecordingSession. Both are no-ops in the wrong state.
    """

    def __init__(
        self,
        microphone: Microphone | None = None,
        *,
        encoder: AudioEncoder | None = None,
        tick_seconds: float = TICK_SECONDS,
        on_change: StateListener | None = None,
    ) -> None:
        self._microphone = microphone or SoundDeviceMicrophone()
        self._encoder = encoder
        self._tick_seconds = tick_seconds
        self._tick_ms = int(round(tick_seconds * 1000))
        self._on_change = on_change
        self._chunks: list[bytes] = []
        self._elapsed_ms = 0
        self._recording = False
        self._pending_open: asyncio.Future[None] | None = None
        # Bumped by close(); an open that finishes after a close is released at once.
        self._generation = 0
        self._ticker: asyncio.Task[None] | None = None
        self._permission_error: str | None = None

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def elapsed_ms(self) -> int:
        return self._elapsed_ms

    @property
    def permission_error(self) -> str | None:
        return self._permission_error

    def snapshot(self) -> dict[str, Any]:
        return {
            "recording": self._recording,
            "elapsed_seconds": self._elapsed_ms / 1000,
            "permission_error": self._permission_error,
        }

    async def start(self) -> bool:
        """Begin recording. Returns False if already recording."""
        if self._recording or self._pending_open is not None:
            return False
        loop = asyncio.get_running_loop()
        chunks: list[bytes] = []

        def on_chunk(data: bytes) -> None:
            if data:
                loop.call_soon_threadsafe(chunks.append, data)

        generation = self._generation
        opening = asyncio.ensure_future(asyncio.to_thread(self._microphone.open, on_chunk))
        self._pending_open = opening
        try:
            await opening
        except PermissionDeniedError as exc:
            self._permission_error = exc.message
            logger.warning("[audio_capture] Microphone access denied: %s", exc.message)
            self._notify()
            raise
        finally:
            self._pending_open = None

        if generation != self._generation:
            logger.info("[audio_capture] Closed while the microphone was opening; releasing it")
            await asyncio.to_thread(self._microphone.close)
            return False

        self._permission_error = None
        self._chunks = chunks
        self._elapsed_ms = 0
        self._recording = True
        self._ticker = asyncio.create_task(self._tick())
        logger.info("[audio_capture] Recording started")
        self._notify()
        return True

    async def stop(self) -> RecordingSession | None:
        """Finish recording and return the session, or None when not recording."""
        if not self._recording:
            return None
        self._recording = False
        try:
            await asyncio.to_thread(self._microphone.close)
        finally:
            await self._stop_ticker()
            self._notify()

        # Let chunk hand-offs queued before the stream stopped land first.
        await asyncio.sleep(0)
        pcm = b"".join(self._chunks)
        self._chunks = []
        duration = self._elapsed_ms / 1000

        if self._encoder is not None:
            buffer = await asyncio.to_thread(
                self._encoder.encode,
                pcm,
                sample_rate=self._microphone.sample_rate,
                channels=self._microphone.channels,
            )
            mime_type = self._encoder.mime_type
        else:
            buffer = pcm
            mime_type = f"{RAW_PCM_MIME};rate={self._microphone.sample_rate}"

        logger.info("[audio_capture] Recording stopped: %d bytes, %.1fs", len(buffer), duration)
        return RecordingSession(
            buffer=buffer,
            mime_type=mime_type,
            duration_seconds=duration,
            filename=f"dream-{int(time.time() * 1000)}{audio_suffix(mime_type)}",
        )

    async def close(self) -> None:
        """Release the device whatever state the recorder is in."""
        self._generation += 1
        self._recording = False
        self._chunks = []
        await self._stop_ticker()
        pending = self._pending_open
        if pending is not None:
            # start() reports the outcome of the open; only wait for it here.
            await asyncio.wait({pending})
        try:
            self._microphone.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("[audio_capture] Releasing microphone failed: %s", exc, exc_info=True)

    async def __aenter__(self) -> AudioCapture:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_seconds)
            self._elapsed_ms += self._tick_ms

    async def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is None:
            return
        ticker.cancel()
        with suppress(asyncio.CancelledError):
            await ticker

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())
