"""SSE streaming helper built on ``sse-starlette``."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sse_starlette.sse import EventSourceResponse


def sse_response(
    event_generator: AsyncGenerator[dict[str, Any], None],
    **kwargs: Any,
) -> EventSourceResponse:
    """Wrap an async generator of ``{"event": ..., "data": ...}`` dicts.

    The generator's ``finally`` runs when the client disconnects;
    ``sse-starlette`` cancels it.
    """
    return EventSourceResponse(event_generator, **kwargs)
