"""Database helpers."""

from smartwindow.db.base import Base
from smartwindow.db.engine import create_async_engine_from_settings, sync_to_async_url
from smartwindow.db.session import get_db, require_credential_store

__all__ = [
    "Base",
    "create_async_engine_from_settings",
    "get_db",
    "require_credential_store",
    "sync_to_async_url",
]
