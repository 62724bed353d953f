"""Firebase archive and Telegram notifier against mocked HTTP transports."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from smartwindow.collaborators.archive import FirebaseArchive, log_key
from smartwindow.collaborators.notifier import TelegramNotifier, format_window_alert
from smartwindow.errors import NotifierUnavailable, PersistenceUnavailable
from smartwindow.relay.state import ControlMode, SystemState, WindowPosition

BOT_TOKEN = "123456:ABCDEFGHIJKLMNOPQRSTUVWXYZabcdef"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def _instant(_delay):
        return None

    monkeypatch.setattr("smartwindow.collaborators.notifier.asyncio.sleep", _instant)


class TestLogKey:
    def test_firebase_safe_key(self):
        when = datetime(2026, 3, 1, 12, 30, 45, 123000, tzinfo=UTC)
        assert log_key(when) == "2026-03-01T12:30:45_123Z"

    def test_no_dots(self):
        assert "." not in log_key()


class TestFirebaseArchive:
    async def test_append_log_and_set_current(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            archive = FirebaseArchive("https://db.example.com/", client=client, auth="s3cret")
            await archive.append_log("commands", {"command": "Open", "user": "alice"})
            await archive.set_current({"window": "Open"})

        assert seen[0].method == "PUT"
        assert seen[0].url.path.startswith("/logs/commands/")
        assert seen[0].url.path.endswith(".json")
        assert seen[0].url.params["auth"] == "s3cret"
        assert json.loads(seen[0].content) == {"command": "Open", "user": "alice"}
        assert seen[1].url.path == "/current_state.json"

    async def test_without_auth_no_query(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        async with _client(handler) as client:
            await FirebaseArchive("https://db.example.com", client=client).set_current({})
        assert "auth" not in seen[0].url.params

    async def test_http_error_status(self):
        async with _client(lambda r: httpx.Response(401)) as client:
            archive = FirebaseArchive("https://db.example.com", client=client)
            with pytest.raises(PersistenceUnavailable, match="HTTP 401"):
                await archive.set_current({"window": "Closed"})

    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            archive = FirebaseArchive("https://db.example.com", client=client)
            with pytest.raises(PersistenceUnavailable, match="ConnectError"):
                await archive.append_log("sensor_data", {})


class TestTelegramNotifier:
    async def test_send_message(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            notifier = TelegramNotifier(BOT_TOKEN, "42", client=client)
            await notifier.notify("hello")

        assert seen[0].url.path == f"/bot{BOT_TOKEN}/sendMessage"
        assert json.loads(seen[0].content) == {"chat_id": "42", "text": "hello"}

    async def test_retries_transient_failures(self):
        statuses = iter([502, 429, 200])
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(next(statuses))

        async with _client(handler) as client:
            await TelegramNotifier(BOT_TOKEN, "42", client=client, attempts=3).notify("x")
        assert calls == 3

    async def test_client_error_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400)

        async with _client(handler) as client:
            with pytest.raises(NotifierUnavailable, match="HTTP 400"):
                await TelegramNotifier(BOT_TOKEN, "42", client=client).notify("x")
        assert calls == 1

    async def test_failure_message_does_not_leak_token(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

        async with _client(handler) as client:
            with pytest.raises(NotifierUnavailable) as exc_info:
                await TelegramNotifier(BOT_TOKEN, "42", client=client, attempts=2).notify("x")
        assert "ABCDEFGHIJKLMNOPQRSTUVWXYZ" not in exc_info.value.detail


class TestWindowAlert:
    def test_format(self):
        state = SystemState(
            temperature=23.5,
            light=410.0,
            window=WindowPosition.OPEN,
            mode=ControlMode.MANUAL,
        )
        text = format_window_alert(state)
        assert "Window: Open" in text
        assert "Mode: Manual" in text
        assert "Temp: 23.5°C" in text
        assert "Light: 410 lux" in text
