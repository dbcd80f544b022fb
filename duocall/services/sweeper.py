"""Optional background eviction of abandoned queue entries.

Expiry is normally lazy: a stale entry leaves the queue when a later join
scans past it. Deployments with low join rates can run this sweeper so stale
entries do not sit in memory until the next arrival.
"""
from __future__ import annotations

import asyncio
import logging

from .match_state import MatchmakingState

logger = logging.getLogger(__name__)


class QueueSweeper:
    def __init__(self, state: MatchmakingState, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._state = state
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        async with self._state.lock:
            removed = self._state.queue.evict_expired()
        if removed:
            logger.info("Evicted %d expired queue entries", removed)
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception:  # noqa: BLE001 - keep sweeping on unexpected errors
                logger.exception("Queue sweep failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="duocall-queue-sweeper")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
