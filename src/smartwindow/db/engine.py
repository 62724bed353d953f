"""Engine factories."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from smartwindow.config import Settings


def sync_to_async_url(url: str) -> str:
    """Convert a sync database URL to its async equivalent."""
    if url.startswith("sqlite:"):
        return url.replace("sqlite:", "sqlite+aiosqlite:", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def create_async_engine_from_settings(settings: Settings | None = None) -> AsyncEngine:
    """Create the async engine backing the credential store and token ledger."""
    if settings is None:
        settings = Settings()
    url = sync_to_async_url(settings.database_url)
    connect_args: dict[str, Any] = {}
    kwargs: dict[str, Any] = {"connect_args": connect_args}
    if "sqlite" in url:
        connect_args["check_same_thread"] = False
    elif "postgresql" in url:
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20
        kwargs["pool_pre_ping"] = True
        # seconds; keeps login and health checks bounded when the database is down
        connect_args["timeout"] = 5
    return create_async_engine(url, **kwargs)
