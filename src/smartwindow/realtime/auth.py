"""Token checks at the WebSocket upgrade.

The relay socket takes an optional ``?token=<raw>`` query parameter.  A
missing token yields an anonymous connection; a present but rejected token
refuses the upgrade.
"""

from __future__ import annotations

from fastapi import WebSocket
from sqlalchemy.exc import SQLAlchemyError

from smartwindow.auth.gate import Identity, SessionGate
from smartwindow.errors import AuthError

# WebSocket close codes used by the relay.
WS_POLICY_VIOLATION = 1008
WS_PROTOCOL_ERROR = 1002
WS_TRY_AGAIN_LATER = 1013


class CredentialStoreUnavailable(Exception):
    """A token was presented but the ledger cannot be consulted."""


async def authenticate_websocket(websocket: WebSocket) -> Identity | None:
    """Return the identity behind ``?token=``, or ``None`` if no token was sent.

    Raises :class:`AuthError` for a rejected token and
    :class:`CredentialStoreUnavailable` when the Credential Store is down.
    The connection is **not** accepted here.
    """
    raw = websocket.query_params.get("token", "")
    if not raw:
        return None
    state = websocket.app.state
    if not getattr(state, "credential_store_ready", False):
        raise CredentialStoreUnavailable("credential store unavailable")
    gate: SessionGate = state.session_gate
    try:
        return await gate.validate(raw)
    except SQLAlchemyError as exc:
        raise CredentialStoreUnavailable("token ledger lookup failed") from exc


async def reject_websocket(websocket: WebSocket, code: int, reason: str) -> None:
    """Accept-then-close so the client receives a proper close frame."""
    await websocket.accept()
    await websocket.close(code=code, reason=reason)


def close_reason(exc: AuthError) -> str:
    return f"auth_{exc.reason.value}"
