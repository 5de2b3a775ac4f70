from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import suppress
from typing import Any

CHANNELS = ("pipeline", "video", "recorder")

Snapshot = dict[str, Any]


def _offer(q: asyncio.Queue[Snapshot], snapshot: Snapshot) -> None:
    """Replace whatever the subscriber has not read yet with ``snapshot``."""
    with suppress(asyncio.QueueEmpty):
        q.get_nowait()
    with suppress(asyncio.QueueFull):
        q.put_nowait(snapshot)


class StatusHub:
    """
    In-memory pubsub for streaming state snapshots to WebSocket subscribers.

    - Channels: "pipeline" (PipelineRun), "video" (VideoJob), "recorder" (AudioCapture).
    - Each subscriber holds at most one pending snapshot: only the newest matters.
    - A new subscriber is primed with the channel's latest snapshot.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._queues: dict[str, set[asyncio.Queue[Snapshot]]] = defaultdict(set)
        self._latest: dict[str, Snapshot] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def latest(self, channel: str) -> Snapshot | None:
        return self._latest.get(channel)

    async def subscribe(self, channel: str) -> asyncio.Queue[Snapshot]:
        q: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=1)
        async with self._lock:
            self._queues[channel].add(q)
            primed = self._latest.get(channel)
        if primed is not None:
            _offer(q, primed)
        return q

    async def unsubscribe(self, channel: str, q: asyncio.Queue[Snapshot]) -> None:
        async with self._lock:
            queues = self._queues.get(channel, set())
            queues.discard(q)
            if not queues:
                self._queues.pop(channel, None)

    async def publish(self, channel: str, snapshot: Snapshot) -> None:
        async with self._lock:
            self._latest[channel] = snapshot
            targets = list(self._queues.get(channel, ()))
        for q in targets:
            _offer(q, snapshot)

    def publish_nowait(self, channel: str, snapshot: Snapshot) -> None:
        """Publish from sync code such as state machine listeners."""
        self._latest[channel] = snapshot
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop nobody can be subscribed yet.
            return
        task = loop.create_task(self.publish(channel, snapshot))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def flush(self) -> None:
        """Wait until every snapshot handed to publish_nowait has been delivered."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
