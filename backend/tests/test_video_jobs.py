from __future__ import annotations

import asyncio

import pytest

from models.dream import PromptBundle
from models.video import VideoJob, VideoJobHandle, VideoLocation, VideoOptions, VideoStatus
from services.errors import NotReadyError, ServiceError, VideoNotFoundError
from services.video_jobs import VideoJobController

PROMPT = PromptBundle(sora_prompt="A violet sea at dusk", narrative_beats=("one", "two", "three"))


class _FakeGateway:
    def __init__(
        self,
        *,
        handle: VideoJobHandle | None = None,
        submit_error: Exception | None = None,
        latest: VideoLocation | None = None,
    ) -> None:
        self.handle = handle or VideoJobHandle(
            job_id="job-1", status="queued", download_url="http://dreams.test/videos/job-1.mp4"
        )
        self.submit_error = submit_error
        self.latest = latest
        self.submitted: list[tuple[PromptBundle, VideoOptions | None]] = []
        self.latest_calls = 0

    async def submit_video_job(self, prompt: PromptBundle, options: VideoOptions | None = None) -> VideoJobHandle:
        self.submitted.append((prompt, options))
        if self.submit_error is not None:
            raise self.submit_error
        return self.handle

    async def fetch_latest_video(self) -> VideoLocation:
        self.latest_calls += 1
        if self.latest is None:
            raise VideoNotFoundError()
        return self.latest


@pytest.mark.anyio
async def test_generate_without_prompt_is_rejected() -> None:
    gateway = _FakeGateway()
    controller = VideoJobController(gateway)

    with pytest.raises(NotReadyError):
        await controller.generate(None)

    assert gateway.submitted == []
    assert controller.job.status is VideoStatus.IDLE


@pytest.mark.anyio
async def test_submission_failure_ends_in_error_and_stops_polling() -> None:
    gateway = _FakeGateway(submit_error=ServiceError("Video generation failed: quota"))
    controller = VideoJobController(gateway, poll_delay=0.01, refresh_interval=0.01)

    job = await controller.generate(PROMPT)
    await asyncio.sleep(0.05)

    assert job.status is VideoStatus.ERROR
    assert job.error is not None and job.error.message == "Video generation failed: quota"
    assert controller.polling is False
    assert gateway.latest_calls == 0


@pytest.mark.anyio
async def test_delayed_poll_applies_latest_video() -> None:
    latest = VideoLocation(filename="dream-1.mp4", url="http://dreams.test/videos/dream-1.mp4")
    gateway = _FakeGateway(latest=latest)
    seen: list[VideoJob] = []
    controller = VideoJobController(gateway, poll_delay=0.02, refresh_interval=30, on_change=seen.append)

    job = await controller.generate(PROMPT)
    assert job.status is VideoStatus.GENERATING
    assert job.job_id == "job-1"
    await asyncio.sleep(0.1)

    assert controller.job.status is VideoStatus.READY
    assert controller.job.download_url == latest.url
    assert [j.status for j in seen][0] is VideoStatus.GENERATING
    assert seen[-1].status is VideoStatus.READY
    assert gateway.submitted[0][1] == VideoOptions()


@pytest.mark.anyio
async def test_not_found_keeps_generating_until_delay_then_uses_download_url() -> None:
    gateway = _FakeGateway()
    controller = VideoJobController(gateway, poll_delay=0.15, refresh_interval=30)

    await controller.generate(PROMPT)
    await asyncio.sleep(0.03)
    assert controller.job.status is VideoStatus.GENERATING

    await asyncio.sleep(0.25)
    job = controller.job
    assert job.status is VideoStatus.READY
    assert job.download_url == "http://dreams.test/videos/job-1.mp4"
    assert gateway.latest_calls == 1


@pytest.mark.anyio
async def test_ready_without_any_url_is_allowed() -> None:
    gateway = _FakeGateway(handle=VideoJobHandle(job_id="job-2", status="queued"))
    controller = VideoJobController(gateway, poll_delay=0.01, refresh_interval=30)

    await controller.generate(PROMPT)
    await asyncio.sleep(0.05)

    assert controller.job.status is VideoStatus.READY
    assert controller.job.download_url is None


@pytest.mark.anyio
async def test_refresh_loop_shows_url_while_generating() -> None:
    latest = VideoLocation(filename="dream-2.mp4", url="/videos/dream-2.mp4", source="local")
    gateway = _FakeGateway(latest=latest)
    controller = VideoJobController(gateway, poll_delay=30, refresh_interval=0.01)

    await controller.generate(PROMPT)
    await asyncio.sleep(0.05)

    assert controller.job.status is VideoStatus.GENERATING
    assert controller.job.download_url == "/videos/dream-2.mp4"
    assert controller.polling is True
    await controller.close()
    assert controller.polling is False


@pytest.mark.anyio
async def test_no_polls_after_leaving_generating() -> None:
    gateway = _FakeGateway()
    controller = VideoJobController(gateway, poll_delay=0.05, refresh_interval=0.01)

    await controller.generate(PROMPT)
    await asyncio.sleep(0.15)
    assert controller.job.status is VideoStatus.READY
    assert controller.polling is False

    calls = gateway.latest_calls
    await asyncio.sleep(0.1)
    assert gateway.latest_calls == calls


@pytest.mark.anyio
async def test_reset_cancels_polling_and_returns_to_idle() -> None:
    gateway = _FakeGateway()
    controller = VideoJobController(gateway, poll_delay=0.05, refresh_interval=0.01)

    await controller.generate(PROMPT)
    controller.reset()
    calls = gateway.latest_calls
    await asyncio.sleep(0.1)

    assert controller.job == VideoJob()
    assert controller.polling is False
    assert gateway.latest_calls == calls


@pytest.mark.anyio
async def test_regenerate_supersedes_previous_job() -> None:
    gateway = _FakeGateway()
    controller = VideoJobController(gateway, poll_delay=0.05, refresh_interval=30)

    await controller.generate(PROMPT)
    gateway.handle = VideoJobHandle(job_id="job-2", status="queued", download_url="http://dreams.test/videos/job-2.mp4")
    await controller.generate(PROMPT)
    await asyncio.sleep(0.15)

    assert controller.job.status is VideoStatus.READY
    assert controller.job.job_id == "job-2"
    assert controller.job.download_url == "http://dreams.test/videos/job-2.mp4"
