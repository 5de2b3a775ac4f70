"""
HTTP gateway to the Dream Processing and Video Rendering services.

This is the only module that performs network I/O. It provides:
- ``submit_dream``: multipart upload of a recording, bounded by a hard timeout
- ``submit_video_job``: JSON submission of a prompt bundle for rendering
- ``fetch_latest_video``: latest rendered artifact, with a local directory fallback

Transport and service failures are normalized into ``services.errors`` types.
A successful dream submission also persists the raw audio and an audit record
in the background; that side task never affects the caller.
"""

from __future__ import annotations

import asyncio
import logging
import stat
from collections.abc import Coroutine
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from models.dream import PromptBundle
from models.payloads import DreamResponse, LatestVideoPayload, ServiceErrorPayload, VideoPayload
from models.record import AuditRecord
from models.video import VIDEO_EXTENSIONS, VideoJobHandle, VideoLocation, VideoOptions
from services.config import GatewayConfig
from services.errors import (
    GatewayConnectionError,
    GatewayTimeoutError,
    ServiceError,
    VideoNotFoundError,
)
from services.records import RecordStore, audio_suffix

logger = logging.getLogger(__name__)

LOCAL_VIDEO_URL_PREFIX = "/videos/"


def _connection_message(base_url: str) -> str:
    return (
        f"Cannot connect to the dream service at {base_url}. "
        "Please ensure the backend service is running "
        "or set BACKEND_URL to its address."
    )


def _service_message(response: httpx.Response, fallback: str) -> str:
    """Server-supplied ``error`` / ``details`` text when the body carries it."""
    try:
        payload = ServiceErrorPayload.model_validate(response.json())
    except (ValueError, ValidationError):
        return fallback
    parts = [p for p in (payload.error, payload.details or payload.message) if p]
    if not parts:
        return fallback
    return ": ".join(dict.fromkeys(parts))


def _parse_modified(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


class RemoteGateway:
    def __init__(
        self,
        config: GatewayConfig,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        records: RecordStore | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.backend_url,
            timeout=config.request_timeout,
            transport=transport,
        )
        self._records = records or RecordStore(config.records_dir)
        self._background: set[asyncio.Task[None]] = set()

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def records(self) -> RecordStore:
        return self._records

    def resolve_url(self, url: str | None) -> str | None:
        """Resolve a service-relative URL against the service base address."""
        if not url:
            return None
        return urljoin(self._config.backend_url.rstrip("/") + "/", url)

    # --- POST /dreams -------------------------------------------------------------

    async def submit_dream(
        self,
        buffer: bytes,
        duration: float | None = None,
        language: str | None = None,
        secondary_image: bytes | None = None,
        *,
        mime_type: str = "audio/webm",
        filename: str | None = None,
        secondary_image_type: str | None = None,
    ) -> DreamResponse:
        """
        Upload a recording and return the parsed pipeline response.

        :raises GatewayTimeoutError: no response within ``config.dream_timeout``; the request is aborted
        :raises GatewayConnectionError: the service is unreachable
        :raises ServiceError: non-2xx status or malformed body
        """
        audio_name = filename or f"dream-recording{audio_suffix(mime_type)}"
        files: dict[str, tuple[str, bytes, str]] = {"audio": (audio_name, buffer, mime_type)}
        if secondary_image:
            image_type = secondary_image_type or "image/png"
            files["breathe_image"] = (f"breathe-{_now_ms()}.png", secondary_image, image_type)
        data: dict[str, str] = {}
        if duration is not None:
            data["duration"] = str(duration)
        if language:
            data["language"] = language

        logger.info(
            "[gateway] POST /dreams audio=%d bytes duration=%s language=%s image=%s",
            len(buffer),
            duration,
            language,
            bool(secondary_image),
        )
        try:
            # The hard bound is ours; wait_for cancels the in-flight request.
            response = await asyncio.wait_for(
                self._client.post("/dreams", data=data, files=files, timeout=None),
                timeout=self._config.dream_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("[gateway] POST /dreams aborted after %.1fs", self._config.dream_timeout)
            raise GatewayTimeoutError(
                f"The dream service did not respond within {self._config.dream_timeout:g} seconds."
            ) from exc
        except httpx.TransportError as exc:
            logger.error("[gateway] Backend connection error: %s", exc)
            raise GatewayConnectionError(_connection_message(self._config.backend_url)) from exc

        if not response.is_success:
            message = _service_message(response, "Backend request failed")
            logger.error("[gateway] POST /dreams -> %d: %s", response.status_code, message)
            raise ServiceError(message, status_code=response.status_code)

        try:
            result = DreamResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("[gateway] POST /dreams returned a malformed body: %s", exc)
            raise ServiceError("Malformed response from the dream service", status_code=response.status_code) from exc

        logger.info("[gateway] POST /dreams -> %d elapsed_ms=%s", response.status_code, result.elapsed_ms)
        self._spawn(self._persist(buffer, mime_type, result))
        return result

    # --- POST /videos -------------------------------------------------------------

    async def submit_video_job(
        self,
        prompt: PromptBundle,
        options: VideoOptions | None = None,
    ) -> VideoJobHandle:
        body = {"prompt": prompt.to_payload(), "options": (options or VideoOptions()).to_payload()}
        logger.info("[gateway] POST /videos options=%s", body["options"])
        try:
            response = await self._client.post("/videos", json=body)
        except httpx.TimeoutException as exc:
            raise GatewayTimeoutError("The video service did not respond in time.") from exc
        except httpx.TransportError as exc:
            logger.error("[gateway] Video service connection error: %s", exc)
            raise GatewayConnectionError(_connection_message(self._config.backend_url)) from exc

        if not response.is_success:
            message = _service_message(response, "Video generation failed")
            logger.error("[gateway] POST /videos -> %d: %s", response.status_code, message)
            raise ServiceError(message, status_code=response.status_code)

        try:
            payload = VideoPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ServiceError("Malformed response from the video service", status_code=response.status_code) from exc
        if not payload.job_id:
            raise ServiceError("Video service response is missing job_id", status_code=response.status_code)

        handle = VideoJobHandle(
            job_id=payload.job_id,
            status=payload.status or "queued",
            download_url=self.resolve_url(payload.download_url),
        )
        logger.info("[gateway] Video job %s status=%s", handle.job_id, handle.status)
        return handle

    # --- GET /videos/latest -------------------------------------------------------

    async def fetch_latest_video(self) -> VideoLocation:
        """
        Most recently produced video: the service first, then the local video directory.

        :raises VideoNotFoundError: neither source has a video
        """
        remote = await self._fetch_remote_latest()
        if remote is not None:
            return remote
        local = await asyncio.to_thread(self._scan_local_videos)
        if local is not None:
            return local
        raise VideoNotFoundError()

    async def _fetch_remote_latest(self) -> VideoLocation | None:
        try:
            response = await self._client.get("/videos/latest")
        except httpx.TransportError as exc:
            logger.debug("[gateway] GET /videos/latest unreachable: %s", exc)
            return None
        if not response.is_success:
            logger.debug("[gateway] GET /videos/latest -> %d", response.status_code)
            return None
        try:
            payload = LatestVideoPayload.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.warning("[gateway] GET /videos/latest returned a malformed body")
            return None
        return VideoLocation(
            filename=payload.filename,
            url=self.resolve_url(payload.url) or payload.url,
            modified=_parse_modified(payload.modified),
            source="remote",
        )

    def _scan_local_videos(self) -> VideoLocation | None:
        video_dir: Path = self._config.video_dir
        if not video_dir.is_dir():
            return None
        try:
            entries = list(video_dir.iterdir())
        except OSError as exc:
            logger.warning("[gateway] Cannot list %s: %s", video_dir, exc)
            return None
        candidates: list[tuple[float, Path]] = []
        for p in entries:
            if p.suffix.lower() not in VIDEO_EXTENSIONS:
                continue
            try:
                info = p.stat()
            except OSError:
                # Removed (or a dangling link) between listing and stat.
                continue
            if stat.S_ISREG(info.st_mode):
                candidates.append((info.st_mtime, p))
        if not candidates:
            return None
        mtime, latest = max(candidates)
        modified = datetime.fromtimestamp(mtime, tz=timezone.utc)
        return VideoLocation(
            filename=latest.name,
            url=f"{LOCAL_VIDEO_URL_PREFIX}{latest.name}",
            modified=modified,
            source="local",
        )

    # --- background persistence ---------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _persist(self, buffer: bytes, mime_type: str, result: DreamResponse) -> None:
        record = AuditRecord(
            transcript=result.transcript.model_dump(),
            prompt=result.prompt.model_dump(),
            video=result.video.model_dump() if result.video else None,
            elapsed_ms=result.elapsed_ms,
        )
        try:
            await asyncio.to_thread(self._records.save_latest_audio, buffer, mime_type=mime_type)
        except Exception as exc:  # noqa: BLE001
            logger.error("[gateway] Failed to save latest recording: %s", exc, exc_info=True)
        try:
            await asyncio.to_thread(self._records.append_record, record)
        except Exception as exc:  # noqa: BLE001
            logger.error("[gateway] Failed to append dream record: %s", exc, exc_info=True)

    async def wait_background(self) -> None:
        """Wait for pending persistence tasks."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        # Pending record writes are awaited, not cancelled.
        await self.wait_background()
        if self._owns_client:
            await self._client.aclose()


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)
