"""Session Gate: issue, validate and revoke session tokens.

A token is accepted only when **both** hold:

1. its HS256 signature verifies with the server signing key, and
2. the Token Ledger has a matching row that is not revoked and not expired.

Failures are reported as :class:`~smartwindow.errors.AuthError` with a reason,
checked in this order: ``MALFORMED`` → ``UNRECOGNIZED`` → ``REVOKED`` →
``EXPIRED``.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from sqlalchemy.exc import SQLAlchemyError

from smartwindow.auth.jwt import ADMIN_SUBJECT, decode_session_token, encode_session_token
from smartwindow.auth.ledger import TokenLedger, as_utc, hash_token
from smartwindow.auth.models import IssuedToken, TokenType
from smartwindow.errors import AuthError, AuthFailure, IssuanceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated principal returned by :meth:`SessionGate.validate`."""

    token_id: str
    token_hash: str
    user_id: str | None
    token_type: TokenType
    expires_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.token_type is TokenType.ADMIN


class SessionGate:
    def __init__(
        self,
        ledger: TokenLedger,
        *,
        signing_key: str,
        algorithm: str = "HS256",
    ) -> None:
        self._ledger = ledger
        self._signing_key = signing_key
        self._algorithm = algorithm

    @property
    def ledger(self) -> TokenLedger:
        return self._ledger

    async def issue(
        self,
        owner_id: str | None,
        token_type: TokenType,
        ttl: timedelta,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[str, IssuedToken]:
        """Sign a new token and record it in the ledger as one unit.

        The raw token is returned only after the ledger row is committed;
        any storage failure raises :class:`IssuanceError` instead.
        """
        now = datetime.now(UTC)
        expires_at = now + ttl
        jti = secrets.token_urlsafe(16)
        raw = encode_session_token(
            subject=owner_id or ADMIN_SUBJECT,
            token_type=token_type.value,
            jti=jti,
            issued_at=now,
            expires_at=expires_at,
            signing_key=self._signing_key,
            algorithm=self._algorithm,
        )
        row = IssuedToken(
            user_id=owner_id,
            jti=jti,
            token_hash=hash_token(raw),
            token_type=token_type,
            issued_at=now,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            row = await self._ledger.insert(row)
        except SQLAlchemyError as exc:
            logger.error("token ledger write failed; %s token not issued", token_type.value)
            raise IssuanceError("Could not record issued token") from exc
        logger.info("issued %s token %s (owner=%s)", token_type.value, row.id, owner_id)
        return raw, row

    async def validate(self, raw_token: str) -> Identity:
        """Return the identity behind *raw_token* or raise :class:`AuthError`."""
        try:
            claims = decode_session_token(
                raw_token, signing_key=self._signing_key, algorithm=self._algorithm
            )
        except jwt.InvalidTokenError:
            raise AuthError(AuthFailure.MALFORMED) from None

        token_hash = hash_token(raw_token)
        row = await self._ledger.lookup(token_hash)
        if row is None or row.jti != claims.jti or row.token_type.value != claims.typ:
            raise AuthError(AuthFailure.UNRECOGNIZED)
        if row.revoked:
            raise AuthError(AuthFailure.REVOKED)

        now = datetime.now(UTC)
        expires_at = as_utc(row.expires_at)
        if now >= expires_at:
            raise AuthError(AuthFailure.EXPIRED)

        try:
            await self._ledger.mark_used(row.id, when=now)
        except SQLAlchemyError:
            logger.warning("could not record last use of token %s", row.id, exc_info=True)

        return Identity(
            token_id=row.id,
            token_hash=token_hash,
            user_id=row.user_id,
            token_type=row.token_type,
            expires_at=expires_at,
        )

    async def revoke(self, token_hash: str) -> None:
        """Revoke by hash. Unknown or already-revoked hashes are a no-op."""
        if await self._ledger.revoke(token_hash):
            logger.info("revoked token %s…", token_hash[:12])

    async def revoke_raw(self, raw_token: str) -> None:
        await self.revoke(hash_token(raw_token))
