"""Wires capture, gateway and both state machines under one owning lifetime."""

from __future__ import annotations

import logging

import httpx

from models.dream import PipelineRun, RecordingSession
from models.video import VideoJob, VideoOptions
from services.audio_capture import AudioCapture, AudioEncoder, Microphone
from services.config import GatewayConfig
from services.gateway import RemoteGateway
from services.pipeline import PipelineOrchestrator, StageSchedule
from services.status_hub import StatusHub
from services.video_jobs import VideoJobController

logger = logging.getLogger(__name__)


class DreamStudio:
    """
    One user's dream pipeline: microphone -> dream run -> optional video job.

    Every dependency is passed in or built from ``config``; nothing is global.
    State changes are mirrored onto ``hub`` for WebSocket clients.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        microphone: Microphone | None = None,
        encoder: AudioEncoder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        schedule: StageSchedule | None = None,
        video_options: VideoOptions | None = None,
        poll_delay: float | None = None,
        refresh_interval: float | None = None,
    ) -> None:
        self.config = config
        self.hub = StatusHub()
        self.gateway = RemoteGateway(config, transport=transport)
        self.capture = AudioCapture(
            microphone,
            encoder=encoder or AudioEncoder(),
            on_change=lambda snapshot: self.hub.publish_nowait("recorder", snapshot),
        )
        video_kwargs: dict[str, float] = {}
        if poll_delay is not None:
            video_kwargs["poll_delay"] = poll_delay
        if refresh_interval is not None:
            video_kwargs["refresh_interval"] = refresh_interval
        self.videos = VideoJobController(
            self.gateway,
            options=video_options,
            on_change=self._publish_video,
            **video_kwargs,
        )
        self.pipeline = PipelineOrchestrator(
            self.gateway,
            schedule=schedule,
            on_change=self._publish_run,
            on_ready=self._on_run_ready,
        )
        self._publish_run(self.pipeline.current)
        self._publish_video(self.videos.job)

    async def finish_recording(self, language: str | None = None) -> PipelineRun | None:
        """Stop the microphone and start a dream run with the recording."""
        recording = await self.capture.stop()
        if recording is None:
            return None
        return self.submit(recording, language)

    def submit(self, recording: RecordingSession, language: str | None = None) -> PipelineRun:
        self.pipeline.start(recording, language)
        return self.pipeline.current

    async def generate_video(self) -> VideoJob:
        return await self.videos.generate(self.pipeline.prompt)

    async def close(self) -> None:
        logger.info("[studio] Shutting down")
        await self.capture.close()
        await self.pipeline.close()
        await self.videos.close()
        await self.gateway.aclose()
        await self.hub.flush()

    def _on_run_ready(self, _run: PipelineRun) -> None:
        self.videos.reset()

    def _publish_run(self, run: PipelineRun) -> None:
        self.hub.publish_nowait("pipeline", run.to_dict())

    def _publish_video(self, job: VideoJob) -> None:
        self.hub.publish_nowait("video", job.to_dict())
