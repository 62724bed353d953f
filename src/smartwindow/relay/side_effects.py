"""Detached execution of best-effort collaborator calls.

The relay hands archive writes and notifications to a :class:`SideEffectQueue`
and returns immediately.  Worker tasks run each job under a timeout; a full
queue, a timeout or a failing collaborator is logged and the job dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from smartwindow.errors import NotifierUnavailable, PersistenceUnavailable
from smartwindow.obs.redaction import redact_value

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


class SideEffectQueue:
    def __init__(self, *, maxsize: int = 256, workers: int = 2, timeout: float = 5.0) -> None:
        self._queue: asyncio.Queue[tuple[str, Job]] = asyncio.Queue(maxsize=maxsize)
        self._workers = max(1, workers)
        self._timeout = timeout
        self._tasks: list[asyncio.Task[None]] = []
        self.dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def submit(self, name: str, job: Job) -> bool:
        """Enqueue *job* (a zero-argument coroutine function). Never blocks."""
        try:
            self._queue.put_nowait((name, job))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("side-effect queue full; dropping %s", name)
            return False
        return True

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(), name=f"side-effects-{i}")
            for i in range(self._workers)
        ]

    async def join(self) -> None:
        """Wait until every queued job has been attempted."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []

    async def _worker(self) -> None:
        while True:
            name, job = await self._queue.get()
            try:
                await asyncio.wait_for(job(), timeout=self._timeout)
            except TimeoutError:
                logger.warning("%s timed out after %.1fs; skipped", name, self._timeout)
            except (PersistenceUnavailable, NotifierUnavailable) as exc:
                logger.warning("%s failed: %s", name, redact_value(exc.detail))
            except Exception as exc:  # noqa: BLE001
                logger.error("%s raised %s: %s", name, type(exc).__name__, redact_value(str(exc)))
            finally:
                self._queue.task_done()
