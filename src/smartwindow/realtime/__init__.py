"""Transport helpers for the relay: WebSocket token checks and SSE responses."""

from smartwindow.realtime.auth import (
    WS_POLICY_VIOLATION,
    WS_PROTOCOL_ERROR,
    WS_TRY_AGAIN_LATER,
    CredentialStoreUnavailable,
    authenticate_websocket,
    close_reason,
    reject_websocket,
)
from smartwindow.realtime.sse import sse_response

__all__ = [
    "WS_POLICY_VIOLATION",
    "WS_PROTOCOL_ERROR",
    "WS_TRY_AGAIN_LATER",
    "CredentialStoreUnavailable",
    "authenticate_websocket",
    "close_reason",
    "reject_websocket",
    "sse_response",
]
