"""Session dependencies for FastAPI."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def require_credential_store(request: Request) -> async_sessionmaker[AsyncSession]:
    """Return the app's session factory, or 503 when the store was unreachable at startup."""
    if not getattr(request.app.state, "credential_store_ready", False):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Credential store unavailable",
        )
    return request.app.state.async_session_factory  # type: ignore[no-any-return]


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` from the app's credential store."""
    factory = require_credential_store(request)
    async with factory() as session:
        yield session
