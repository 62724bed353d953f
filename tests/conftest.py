"""Common test fixtures and helpers."""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Mapping
from typing import Any

import pytest
from fastapi.testclient import TestClient

from smartwindow.app import create_app
from smartwindow.config import Settings

TEST_SIGNING_KEY = "test-signing-key-0123456789abcdef0123456789"
ADMIN_PASSWORD = "operator-secret"


def run_cli(*args: str, env_override: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    """Run the CLI via ``python -m smartwindow``."""
    env = os.environ.copy()
    if env_override:
        env.update(env_override)
    return subprocess.run(
        [sys.executable, "-m", "smartwindow", *args],
        capture_output=True,
        text=True,
        env=env,
    )


class FakeTransport:
    """In-memory transport that records offered frames."""

    def __init__(self, *, capacity: int | None = None) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._capacity = capacity

    @property
    def writable(self) -> bool:
        return not self.closed

    def offer(self, text: str) -> bool:
        if self.closed:
            return False
        if self._capacity is not None and len(self.sent) >= self._capacity:
            self.closed = True
            return False
        self.sent.append(text)
        return True

    def close(self) -> None:
        self.closed = True


class RecordingArchive:
    def __init__(self) -> None:
        self.logs: list[tuple[str, dict[str, Any]]] = []
        self.current: list[dict[str, Any]] = []

    async def append_log(self, category: str, record: Mapping[str, Any]) -> None:
        self.logs.append((category, dict(record)))

    async def set_current(self, record: Mapping[str, Any]) -> None:
        self.current.append(dict(record))


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def notify(self, text: str) -> None:
        self.messages.append(text)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'smartwindow_test.db'}",
        env="development",
        auth_signing_key=TEST_SIGNING_KEY,
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture()
def archive():
    return RecordingArchive()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def app(settings, archive, notifier):
    return create_app(settings, archive=archive, notifier=notifier)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


def register(client: TestClient, username: str = "alice", password: str = "pw-alice") -> dict:
    r = client.post(
        "/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert r.status_code == 201, r.text
    return r.json()


def admin_login(client: TestClient) -> dict:
    r = client.post("/auth/admin/login", json={"password": ADMIN_PASSWORD})
    assert r.status_code == 200, r.text
    return r.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
