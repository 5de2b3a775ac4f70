from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from services.status_hub import CHANNELS

router = APIRouter(tags=["status"])
logger = logging.getLogger(__name__)


async def _wait_disconnect(websocket: WebSocket) -> None:
    # Clients never send anything meaningful; reading only detects the close.
    with suppress(WebSocketDisconnect):
        while True:
            await websocket.receive_text()


@router.websocket("/ws/status/{channel}")
async def ws_status(websocket: WebSocket, channel: str) -> None:
    """
    Stream state snapshots to the frontend.

    Channels and payloads:
      pipeline: PipelineRun   {"run_id", "status", "transcript", "prompt", "video", "error", ...}
      video:    VideoJob      {"status", "job_id", "download_url", "error"}
      recorder: AudioCapture  {"recording", "elapsed_seconds", "permission_error"}
    """
    await websocket.accept()
    if channel not in CHANNELS:
        await websocket.send_json({"error": f"Unknown channel {channel!r}"})
        await websocket.close()
        return
    studio = getattr(websocket.app.state, "studio", None)
    if studio is None:
        await websocket.send_json({"error": "Dream studio is not running"})
        await websocket.close()
        return

    q = await studio.hub.subscribe(channel)
    logger.info("[status_ws] Subscribed channel=%s", channel)
    closed = asyncio.create_task(_wait_disconnect(websocket))
    try:
        while True:
            snapshot = asyncio.create_task(q.get())
            done, _ = await asyncio.wait({snapshot, closed}, return_when=asyncio.FIRST_COMPLETED)
            if snapshot not in done:
                snapshot.cancel()
                return
            await websocket.send_json(snapshot.result())
    except WebSocketDisconnect:
        return
    finally:
        closed.cancel()
        await studio.hub.unsubscribe(channel, q)
        logger.info("[status_ws] Unsubscribed channel=%s", channel)
