"""Dream pipeline run state machine."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass, replace
from typing import Callable

from models.dream import (
    IN_FLIGHT_STATUSES,
    PIPELINE_ORDER,
    PipelineRun,
    PipelineStatus,
    PromptBundle,
    RecordingSession,
)
from models.payloads import DreamResponse
from models.video import VideoJobHandle
from services.errors import DreamPipelineError, error_info
from services.gateway import RemoteGateway

logger = logging.getLogger(__name__)

RunListener = Callable[[PipelineRun], None]


@dataclass(frozen=True)
class StageSchedule:
    """Delays for the cosmetic progress labels shown while the request is in flight."""

    engineering_after: float = 0.8
    submitting_after: float = 1.2


class PipelineOrchestrator:
    """
    Drives one recording at a time through ``RemoteGateway.submit_dream``.

    Every run gets an increasing ``run_id``; only the most recently started run
    may write state, so a superseded run's late response is dropped
    (last-started-wins, not last-to-complete).

    Status only moves forward: IDLE -> TRANSCRIBING -> ENGINEERING -> SUBMITTING
    -> READY | ERROR. ENGINEERING and SUBMITTING advance on a local timer and are
    flushed immediately when the response beats the timer.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        *,
        schedule: StageSchedule | None = None,
        on_change: RunListener | None = None,
        on_ready: RunListener | None = None,
    ) -> None:
        self._gateway = gateway
        self._schedule = schedule or StageSchedule()
        self._listeners: list[RunListener] = [on_change] if on_change else []
        self._on_ready = on_ready
        self._run = PipelineRun()
        self._epoch = 0
        self._tasks: set[asyncio.Task[PipelineRun]] = set()

    @property
    def current(self) -> PipelineRun:
        return replace(self._run)

    @property
    def prompt(self) -> PromptBundle | None:
        """Prompt of the current run once it is READY."""
        if self._run.status is PipelineStatus.READY:
            return self._run.prompt
        return None

    def add_listener(self, listener: RunListener) -> None:
        self._listeners.append(listener)

    def start(self, recording: RecordingSession, language: str | None = None) -> asyncio.Task[PipelineRun]:
        """
        Start a run and return its task.

        The state is TRANSCRIBING (previous result cleared) by the time this returns.
        """
        self._epoch += 1
        run_id = self._epoch
        logger.info(
            "[pipeline] Run %d started (%d bytes, duration=%s)",
            run_id,
            len(recording.buffer),
            recording.duration_seconds,
        )
        self._commit(run_id, PipelineRun(run_id=run_id, status=PipelineStatus.TRANSCRIBING))
        task = asyncio.create_task(self._execute(run_id, recording, language), name=f"dream-run-{run_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, recording: RecordingSession, language: str | None = None) -> PipelineRun:
        """Start a run and wait for its outcome (which may be stale if superseded)."""
        return await self.start(recording, language)

    async def close(self) -> None:
        self._epoch += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _execute(self, run_id: int, recording: RecordingSession, language: str | None) -> PipelineRun:
        progress = asyncio.create_task(self._advance_progress(run_id))
        try:
            response = await self._gateway.submit_dream(
                recording.buffer,
                recording.duration_seconds,
                language,
                recording.secondary_image,
                mime_type=recording.mime_type,
                filename=recording.filename,
                secondary_image_type=recording.secondary_image_type,
            )
        except DreamPipelineError as exc:
            logger.warning("[pipeline] Run %d failed (%s): %s", run_id, exc.kind.value, exc.message)
            return self._fail(run_id, exc)
        except Exception as exc:  # noqa: BLE001
            logger.error("[pipeline] Run %d failed unexpectedly: %s", run_id, exc, exc_info=True)
            return self._fail(run_id, exc)
        finally:
            progress.cancel()
            with suppress(asyncio.CancelledError):
                await progress

        self._advance(run_id, PipelineStatus.ENGINEERING)
        self._advance(run_id, PipelineStatus.SUBMITTING)
        outcome = self._to_ready(run_id, response)
        if self._commit(run_id, outcome):
            logger.info(
                "[pipeline] Run %d ready: %d beats, video job %s",
                run_id,
                len(outcome.prompt.narrative_beats) if outcome.prompt else 0,
                outcome.video.job_id if outcome.video else None,
            )
            if self._on_ready is not None:
                self._on_ready(replace(outcome))
        return outcome

    async def _advance_progress(self, run_id: int) -> None:
        await asyncio.sleep(self._schedule.engineering_after)
        self._advance(run_id, PipelineStatus.ENGINEERING)
        await asyncio.sleep(self._schedule.submitting_after)
        self._advance(run_id, PipelineStatus.SUBMITTING)

    def _advance(self, run_id: int, status: PipelineStatus) -> None:
        if run_id != self._epoch or self._run.status not in IN_FLIGHT_STATUSES:
            return
        if PIPELINE_ORDER.index(self._run.status) >= PIPELINE_ORDER.index(status):
            return
        self._commit(run_id, replace(self._run, status=status))

    def _fail(self, run_id: int, exc: BaseException) -> PipelineRun:
        outcome = PipelineRun(run_id=run_id, status=PipelineStatus.ERROR, error=error_info(exc))
        self._commit(run_id, outcome)
        return outcome

    def _to_ready(self, run_id: int, response: DreamResponse) -> PipelineRun:
        video = response.video
        handle = VideoJobHandle(
            job_id=(video.job_id if video else None) or f"dream-{int(time.time() * 1000)}",
            status=(video.status if video else None) or "skipped",
            download_url=self._gateway.resolve_url(video.download_url if video else None),
        )
        return PipelineRun(
            run_id=run_id,
            status=PipelineStatus.READY,
            transcript=response.transcript.text,
            prompt=PromptBundle.from_payload(response.prompt.model_dump()),
            video=handle,
            elapsed_ms=response.elapsed_ms,
        )

    def _commit(self, run_id: int, run: PipelineRun) -> bool:
        if run_id != self._epoch:
            logger.info("[pipeline] Discarding %s from superseded run %d", run.status.value, run_id)
            return False
        self._run = run
        for listener in list(self._listeners):
            listener(replace(run))
        return True
