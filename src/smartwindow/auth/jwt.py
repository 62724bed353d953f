"""JWT helpers for server-issued (HS256) session tokens."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import jwt
from pydantic import BaseModel

# ``sub`` for credentials that have no owning user.
ADMIN_SUBJECT = "admin"


class JWTClaims(BaseModel):
    """Typed representation of JWT payload."""

    sub: str
    typ: str
    jti: str
    iat: datetime
    exp: datetime


def encode_session_token(
    *,
    subject: str,
    token_type: str,
    jti: str,
    issued_at: datetime,
    expires_at: datetime,
    signing_key: str,
    algorithm: str = "HS256",
) -> str:
    """Sign a session token. The ledger row, not this token, is authoritative."""
    claims: dict[str, Any] = {
        "sub": subject,
        "typ": token_type,
        "jti": jti,
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(claims, signing_key, algorithm=algorithm)


def decode_session_token(
    token: str,
    *,
    signing_key: str,
    algorithm: str = "HS256",
) -> JWTClaims:
    """Verify the signature of a session token and return its claims.

    Expiry is not checked here; the Session Gate checks it against the ledger
    after revocation.

    Raises :class:`jwt.InvalidTokenError` on a bad signature or shape.
    """
    payload = jwt.decode(
        token,
        signing_key,
        algorithms=[algorithm],
        options={"verify_exp": False, "require": ["sub", "typ", "jti", "iat", "exp"]},
    )
    try:
        return JWTClaims(**payload)
    except ValueError as exc:
        raise jwt.InvalidTokenError(str(exc)) from exc
