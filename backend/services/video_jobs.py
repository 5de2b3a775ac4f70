"""Video rendering job state machine with delayed and interval polling."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import replace
from typing import Callable

from models.dream import PromptBundle
from models.video import VideoJob, VideoJobHandle, VideoOptions, VideoStatus
from services.errors import DreamPipelineError, NotReadyError, VideoNotFoundError
from services.gateway import RemoteGateway

logger = logging.getLogger(__name__)

POLL_DELAY_SECONDS = 2.0
REFRESH_INTERVAL_SECONDS = 5.0

JobListener = Callable[[VideoJob], None]


class VideoJobController:
    """
    Submits a render job and watches for the finished video.

    - One delayed poll ``poll_delay`` seconds after submission settles the job:
      READY with the latest video URL, or READY with the job's own
      ``download_url`` when nothing is found (lenient fallback).
    - A refresh loop re-queries every ``refresh_interval`` seconds while the job
      is GENERATING and shows a URL as soon as one appears.

    Polling runs iff status is GENERATING. Timers are cancelled the moment the
    status leaves GENERATING, on ``reset()`` and on ``close()``; results from a
    cancelled poll or an older job are never applied.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        *,
        options: VideoOptions | None = None,
        poll_delay: float = POLL_DELAY_SECONDS,
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        on_change: JobListener | None = None,
    ) -> None:
        self._gateway = gateway
        self._options = options or VideoOptions()
        self._poll_delay = poll_delay
        self._refresh_interval = refresh_interval
        self._listeners: list[JobListener] = [on_change] if on_change else []
        self._job = VideoJob()
        self._epoch = 0
        self._refresh_task: asyncio.Task[None] | None = None
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def job(self) -> VideoJob:
        return replace(self._job)

    @property
    def polling(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def add_listener(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    async def generate(self, prompt: PromptBundle | None) -> VideoJob:
        """
        Submit a render job for ``prompt``.

        Returns once the job is submitted (or has failed); the outcome of the
        delayed poll arrives later through listeners / ``job``.

        :raises NotReadyError: no prompt is available yet
        """
        if prompt is None:
            raise NotReadyError()

        self._cancel_timers()
        self._epoch += 1
        epoch = self._epoch
        self._set(epoch, VideoJob(status=VideoStatus.GENERATING))
        self._refresh_task = asyncio.create_task(self._refresh_loop(epoch), name=f"video-refresh-{epoch}")

        try:
            handle = await self._gateway.submit_video_job(prompt, self._options)
        except asyncio.CancelledError:
            self._cancel_timers()
            raise
        except DreamPipelineError as exc:
            logger.warning("[video_jobs] Video submission failed (%s): %s", exc.kind.value, exc.message)
            self._set(epoch, VideoJob(status=VideoStatus.ERROR, error=exc.to_info()))
            return self.job

        if not self._set(epoch, replace(self._job, job_id=handle.job_id)):
            return self.job
        self._poll_task = asyncio.create_task(self._delayed_poll(epoch, handle), name=f"video-poll-{epoch}")
        return self.job

    def reset(self) -> None:
        """Back to IDLE, e.g. when a new dream run becomes ready."""
        self._cancel_timers()
        self._epoch += 1
        self._set(self._epoch, VideoJob())

    async def close(self) -> None:
        self._epoch += 1
        tasks = [t for t in (self._refresh_task, self._poll_task) if t is not None]
        self._cancel_timers()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def _delayed_poll(self, epoch: int, handle: VideoJobHandle) -> None:
        await asyncio.sleep(self._poll_delay)
        url: str | None
        try:
            location = await self._gateway.fetch_latest_video()
            url = location.url
        except VideoNotFoundError:
            logger.info("[video_jobs] No video yet for job %s; using its download_url", handle.job_id)
            url = handle.download_url
        except Exception as exc:  # noqa: BLE001
            logger.error("[video_jobs] Latest-video poll failed: %s", exc, exc_info=True)
            url = handle.download_url
        if epoch != self._epoch or self._job.status is not VideoStatus.GENERATING:
            return
        self._poll_task = None
        self._set(epoch, replace(self._job, status=VideoStatus.READY, download_url=url or self._job.download_url))

    async def _refresh_loop(self, epoch: int) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            if epoch != self._epoch or self._job.status is not VideoStatus.GENERATING:
                return
            try:
                location = await self._gateway.fetch_latest_video()
            except VideoNotFoundError:
                continue
            except DreamPipelineError as exc:
                logger.debug("[video_jobs] Refresh poll failed: %s", exc.message)
                continue
            if epoch != self._epoch or self._job.status is not VideoStatus.GENERATING:
                return
            if location.url != self._job.download_url:
                logger.info("[video_jobs] Latest video available: %s", location.url)
                self._set(epoch, replace(self._job, download_url=location.url))

    def _cancel_timers(self) -> None:
        for task in (self._refresh_task, self._poll_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        self._refresh_task = None
        self._poll_task = None

    def _set(self, epoch: int, job: VideoJob) -> bool:
        if epoch != self._epoch:
            return False
        self._job = job
        if job.status is not VideoStatus.GENERATING:
            self._cancel_timers()
        for listener in list(self._listeners):
            listener(replace(job))
        return True

