"""Auth API router – mounted at ``/auth``.

Every route here depends on the Credential Store; when it was unreachable at
startup they answer 503 while the relay keeps running.
"""

from __future__ import annotations

import secrets
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from smartwindow.auth import schemas
from smartwindow.auth.dependencies import get_session_gate, require_admin, require_user
from smartwindow.auth.gate import Identity, SessionGate
from smartwindow.auth.models import IssuedToken, TokenType
from smartwindow.auth.service import (
    DuplicateUserError,
    authenticate_user,
    create_user,
    find_user_by_id,
)
from smartwindow.db.session import get_db
from smartwindow.errors import IssuanceError

router = APIRouter(prefix="/auth", tags=["auth"])

_ERRORS = {
    401: {"model": schemas.ErrorResponse, "description": "Missing, invalid or revoked token."},
    503: {"model": schemas.ErrorResponse, "description": "Credential store unavailable."},
}


def _client_meta(request: Request) -> dict[str, str | None]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def _issue(
    gate: SessionGate,
    request: Request,
    owner_id: str | None,
    token_type: TokenType,
    ttl: timedelta,
) -> schemas.TokenResponse:
    try:
        raw, row = await gate.issue(owner_id, token_type, ttl, **_client_meta(request))
    except IssuanceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.detail
        ) from None
    return schemas.TokenResponse(
        access_token=raw,
        kind=row.token_type.value,
        expires_at=row.expires_at,
        user_id=row.user_id,
    )


def _summary(row: IssuedToken) -> schemas.IssuedTokenSummary:
    return schemas.IssuedTokenSummary(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        kind=row.token_type.value,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        revoked=row.revoked,
        last_used_at=row.last_used_at,
    )


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


@router.post(
    "/register",
    response_model=schemas.TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create a user account and issue an access token.",
    responses={409: {"model": schemas.ErrorResponse, "description": "Already registered."}},
)
async def register(
    body: schemas.RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gate: SessionGate = Depends(get_session_gate),
) -> schemas.TokenResponse:
    try:
        user = await create_user(db, body.username, body.email, body.password)
    except DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from None
    settings = request.app.state.settings
    ttl = timedelta(minutes=settings.access_token_expire_minutes)
    return await _issue(gate, request, user.id, TokenType.ACCESS, ttl)


@router.post(
    "/login",
    response_model=schemas.TokenResponse,
    summary="Login",
    description="Verify username and password and issue an access token.",
    responses=_ERRORS,
)
async def login(
    body: schemas.LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gate: SessionGate = Depends(get_session_gate),
) -> schemas.TokenResponse:
    user = await authenticate_user(db, body.username, body.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    settings = request.app.state.settings
    ttl = timedelta(minutes=settings.access_token_expire_minutes)
    return await _issue(gate, request, user.id, TokenType.ACCESS, ttl)


@router.post(
    "/admin/login",
    response_model=schemas.TokenResponse,
    summary="Admin login",
    description="Exchange the operator password for a short-lived admin token.",
    responses=_ERRORS,
)
async def admin_login(
    body: schemas.AdminLoginRequest,
    request: Request,
    gate: SessionGate = Depends(get_session_gate),
) -> schemas.TokenResponse:
    settings = request.app.state.settings
    expected = settings.admin_password
    if not expected or not secrets.compare_digest(body.password.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    ttl = timedelta(minutes=settings.admin_token_expire_minutes)
    return await _issue(gate, request, None, TokenType.ADMIN, ttl)


# ---------------------------------------------------------------------------
# Token lifecycle
# ---------------------------------------------------------------------------


@router.post(
    "/logout",
    response_model=schemas.MessageResponse,
    summary="Logout",
    description="Revoke the presented bearer token.",
    responses=_ERRORS,
)
async def logout(
    identity: Identity = require_user(),
    gate: SessionGate = Depends(get_session_gate),
) -> schemas.MessageResponse:
    await gate.revoke(identity.token_hash)
    return schemas.MessageResponse(message="Logged out")


@router.get(
    "/me",
    response_model=schemas.IdentityResponse,
    summary="Current identity",
    description="Describe the principal behind the presented bearer token.",
    responses=_ERRORS,
)
async def me(
    identity: Identity = require_user(),
    db: AsyncSession = Depends(get_db),
) -> schemas.IdentityResponse:
    username = None
    if identity.user_id is not None:
        user = await find_user_by_id(db, identity.user_id)
        username = user.username if user else None
    return schemas.IdentityResponse(
        token_id=identity.token_id,
        user_id=identity.user_id,
        username=username,
        kind=identity.token_type.value,
        expires_at=identity.expires_at,
    )


@router.get(
    "/tokens",
    response_model=list[schemas.IssuedTokenSummary],
    summary="List issued tokens",
    description="Admin only. List ledger rows, newest first.",
    responses=_ERRORS,
)
async def list_tokens(
    user_id: str | None = None,
    include_revoked: bool = False,
    limit: int = 50,
    _admin: Identity = require_admin(),
    gate: SessionGate = Depends(get_session_gate),
) -> list[schemas.IssuedTokenSummary]:
    rows = await gate.ledger.list_tokens(
        user_id=user_id, include_revoked=include_revoked, limit=min(max(limit, 1), 500)
    )
    return [_summary(r) for r in rows]


@router.post(
    "/tokens/revoke",
    response_model=schemas.MessageResponse,
    summary="Revoke a token",
    description="Admin only. Revoke a token by hash. Unknown or revoked hashes are a no-op.",
    responses=_ERRORS,
)
async def revoke_token(
    body: schemas.RevokeRequest,
    _admin: Identity = require_admin(),
    gate: SessionGate = Depends(get_session_gate),
) -> schemas.MessageResponse:
    await gate.revoke(body.token_hash)
    return schemas.MessageResponse(message="Revoked")
