"""Token Ledger: persistent record of every issued credential.

Pure storage over the ``smartwindow_user_tokens`` table.  Policy (what makes a
token valid) lives in :mod:`smartwindow.auth.gate`.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smartwindow.auth.models import IssuedToken


def hash_token(raw_token: str) -> str:
    """SHA-256 hash a raw token for storage."""
    return hashlib.sha256(raw_token.encode()).hexdigest()


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class TokenLedger:
    """Async repository for :class:`IssuedToken` rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, row: IssuedToken) -> IssuedToken:
        """Persist *row* and commit. Raises whatever the driver raises."""
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    async def lookup(self, token_hash: str) -> IssuedToken | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(IssuedToken).where(IssuedToken.token_hash == token_hash)
            )
            return result.scalars().first()

    async def mark_used(self, token_id: str, *, when: datetime | None = None) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(IssuedToken)
                .where(IssuedToken.id == token_id)
                .values(last_used_at=when or datetime.now(UTC))
            )
            await session.commit()

    async def revoke(self, token_hash: str) -> bool:
        """Flip ``revoked`` on the matching row. Returns True if a live row changed."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(IssuedToken)
                .where(IssuedToken.token_hash == token_hash, IssuedToken.revoked.is_(False))
                .values(revoked=True)
            )
            await session.commit()
            return bool(result.rowcount)

    async def list_tokens(
        self,
        *,
        user_id: str | None = None,
        include_revoked: bool = False,
        limit: int = 50,
    ) -> list[IssuedToken]:
        stmt = select(IssuedToken).order_by(IssuedToken.issued_at.desc()).limit(limit)
        if user_id is not None:
            stmt = stmt.where(IssuedToken.user_id == user_id)
        if not include_revoked:
            stmt = stmt.where(IssuedToken.revoked.is_(False))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
