"""Bounded per-connection send queue.

The relay never awaits a socket: it ``offer``s frames to an :class:`Outbox`
and a separate writer drains it.  A consumer that falls ``maxsize`` frames
behind is considered broken and its outbox closes, which makes the
connection unwritable so the registry reaps it.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class Outbox:
    def __init__(self, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.overflowed = False

    @property
    def writable(self) -> bool:
        return not self._closed

    def offer(self, text: str) -> bool:
        """Queue *text* without blocking. Returns False if the frame was not queued."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning(
                "outbox full after %d frames; closing slow consumer", self._queue.maxsize
            )
            self.overflowed = True
            self.close()
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass  # the writer is not blocked on an empty queue and will see _closed

    async def get(self) -> str | None:
        """Return the next frame, or ``None`` once the outbox is closed."""
        if self._closed:
            return None
        text = await self._queue.get()
        if text is None or self._closed:
            return None
        return text
