"""Telemetry archive backed by the Firebase Realtime Database REST API.

Layout mirrors what the dashboard reads::

    /logs/<category>/<timestamp-key>   one record per accepted report / command
    /current_state                     last accepted snapshot
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from smartwindow.errors import PersistenceUnavailable

logger = logging.getLogger(__name__)


class TelemetryArchive(Protocol):
    async def append_log(self, category: str, record: Mapping[str, Any]) -> None: ...

    async def set_current(self, record: Mapping[str, Any]) -> None: ...


def log_key(when: datetime | None = None) -> str:
    """Firebase-safe key for a log entry: ISO-8601 UTC with '.' replaced by '_'."""
    when = when or datetime.now(UTC)
    iso = when.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(".", "_")


class NullArchive:
    """Used when no archive is configured."""

    async def append_log(self, category: str, record: Mapping[str, Any]) -> None:
        return None

    async def set_current(self, record: Mapping[str, Any]) -> None:
        return None


class FirebaseArchive:
    def __init__(
        self,
        db_url: str,
        *,
        client: httpx.AsyncClient,
        auth: str | None = None,
    ) -> None:
        self._db_url = db_url.rstrip("/")
        self._client = client
        self._auth = auth or None

    async def append_log(self, category: str, record: Mapping[str, Any]) -> None:
        await self._put(f"logs/{category}/{log_key()}", record)

    async def set_current(self, record: Mapping[str, Any]) -> None:
        await self._put("current_state", record)

    async def _put(self, path: str, record: Mapping[str, Any]) -> None:
        params = {"auth": self._auth} if self._auth else None
        try:
            resp = await self._client.put(
                f"{self._db_url}/{path}.json", json=dict(record), params=params
            )
        except httpx.HTTPError as exc:
            raise PersistenceUnavailable(
                f"firebase PUT /{path} failed: {type(exc).__name__}"
            ) from exc
        if resp.status_code >= 400:
            raise PersistenceUnavailable(f"firebase PUT /{path} returned HTTP {resp.status_code}")
        logger.debug("archived /%s", path)
