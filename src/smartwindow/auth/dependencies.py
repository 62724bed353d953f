"""FastAPI dependencies for endpoint protection."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError

from smartwindow.auth.gate import Identity, SessionGate
from smartwindow.db.session import require_credential_store
from smartwindow.errors import AuthError

_bearer = HTTPBearer(auto_error=False)


def get_session_gate(request: Request) -> SessionGate:
    require_credential_store(request)
    return request.app.state.session_gate  # type: ignore[no-any-return]


async def _get_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    gate: SessionGate = Depends(get_session_gate),
) -> Identity:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return await gate.validate(credentials.credentials)
    except AuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Credential store unavailable",
        ) from None


def require_user() -> Any:
    """Dependency that returns the :class:`Identity` of a valid bearer token."""
    return Depends(_get_identity)


def require_admin() -> Any:
    """Dependency that requires an admin credential."""

    def _admin(identity: Identity = Depends(_get_identity)) -> Identity:
        if not identity.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin required")
        return identity

    return Depends(_admin)
