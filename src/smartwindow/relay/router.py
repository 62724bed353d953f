"""Relay transports: the device/observer WebSocket and read-only state routes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Request, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from smartwindow.auth.dependencies import require_user
from smartwindow.auth.gate import Identity
from smartwindow.errors import AuthError, ProtocolError
from smartwindow.realtime import (
    WS_POLICY_VIOLATION,
    WS_PROTOCOL_ERROR,
    WS_TRY_AGAIN_LATER,
    CredentialStoreUnavailable,
    authenticate_websocket,
    close_reason,
    reject_websocket,
    sse_response,
)
from smartwindow.relay.engine import RelayEngine
from smartwindow.relay.outbox import Outbox

logger = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])


class StateResponse(BaseModel):
    temperature: float = Field(..., description="Last reported temperature in °C.")
    light: float = Field(..., description="Last reported light level in lux.")
    window: str = Field(..., description="'Open' or 'Closed'.")
    mode: str = Field(..., description="'Auto' or 'Manual'.")
    updatedAt: str | None = Field(None, description="Server acceptance time, ISO-8601.")


def _engine(app_state: Any) -> RelayEngine:
    return app_state.relay_engine  # type: ignore[no-any-return]


async def _pump(outbox: Outbox, websocket: WebSocket) -> None:
    """Drain *outbox* into *websocket* until either side closes."""
    try:
        while (text := await outbox.get()) is not None:
            await websocket.send_text(text)
    except (WebSocketDisconnect, RuntimeError, OSError):
        outbox.close()
        return
    if outbox.overflowed:
        with contextlib.suppress(RuntimeError, OSError):
            await websocket.close(code=WS_TRY_AGAIN_LATER, reason="slow_consumer")


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket) -> None:
    """Device and observer socket.

    Auth: optional ``?token=<session token>``.  Frames follow the relay
    vocabulary (``ROLE:``, ``USER:``, JSON reports, ``Open``/``Close``/``Auto``).
    """
    try:
        principal = await authenticate_websocket(websocket)
    except AuthError as exc:
        await reject_websocket(websocket, WS_POLICY_VIOLATION, close_reason(exc))
        return
    except CredentialStoreUnavailable:
        await reject_websocket(websocket, WS_TRY_AGAIN_LATER, "credential_store_unavailable")
        return

    await websocket.accept()
    engine = _engine(websocket.app.state)
    outbox = Outbox(maxsize=websocket.app.state.settings.outbox_size)
    connection_id = engine.connect(outbox, principal=principal)
    writer = asyncio.create_task(_pump(outbox, websocket))
    violation: ProtocolError | None = None

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            try:
                text = message.get("text")
                if text is None:
                    raise ProtocolError("Binary frames are not part of the relay protocol")
                engine.handle(connection_id, text)
            except ProtocolError as exc:
                logger.info("closing connection %s: %s", connection_id, exc.detail)
                violation = exc
                break
    except WebSocketDisconnect:
        pass
    finally:
        engine.disconnect(connection_id)
        outbox.close()
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer

    if violation is not None:
        with contextlib.suppress(RuntimeError, OSError):
            await websocket.close(code=WS_PROTOCOL_ERROR, reason=violation.detail[:120])


@router.get(
    "/api/state",
    response_model=StateResponse,
    summary="Current state",
    description="Latest accepted device snapshot, or the unknown default before any report.",
)
def current_state(request: Request, _identity: Identity = require_user()) -> StateResponse:
    snapshot = _engine(request.app.state).store.current_snapshot()
    return StateResponse(**snapshot.to_dict())


@router.get(
    "/api/state/stream",
    summary="State stream",
    description=(
        "Server-sent events carrying every accepted snapshot. The current snapshot is "
        "sent first. Read-only: commands must go through the WebSocket."
    ),
    responses={
        200: {
            "description": "Event stream of 'state' events.",
            "content": {"text/event-stream": {"schema": {"type": "string"}}},
        },
    },
)
async def state_stream(request: Request, identity: Identity = require_user()) -> Response:
    engine = _engine(request.app.state)
    outbox = Outbox(maxsize=request.app.state.settings.outbox_size)

    async def generate() -> AsyncGenerator[dict[str, Any], None]:
        connection_id = engine.attach_observer(outbox, identity)
        try:
            yield {"event": "state", "data": engine.store.current_snapshot().to_json()}
            while (text := await outbox.get()) is not None:
                yield {"event": "state", "data": text}
        finally:
            engine.disconnect(connection_id)

    return sse_response(generate())
