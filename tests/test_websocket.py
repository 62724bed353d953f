"""End-to-end relay scenarios over the /ws socket."""

from __future__ import annotations

import json
import time
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from smartwindow.auth.gate import Identity
from smartwindow.auth.models import TokenType
from smartwindow.realtime import WS_POLICY_VIOLATION, WS_PROTOCOL_ERROR
from smartwindow.relay.registry import Role
from smartwindow.relay.router import state_stream
from tests.conftest import bearer, register

REPORT = {"temperature": 24.0, "light": 500, "window": "Open", "mode": "Auto"}


def wait_for_counts(client: TestClient, *, devices: int, observers: int) -> None:
    """Block until the registry reflects the expected connection counts."""
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline:
        body = client.get("/api/health").json()
        if body["devices"] == devices and body["observers"] == observers:
            return
        time.sleep(0.01)
    pytest.fail(f"registry never reached devices={devices} observers={observers}")


def _stream_identity() -> Identity:
    return Identity(
        token_id="t-stream",
        token_hash="0" * 64,
        user_id="u-stream",
        token_type=TokenType.ACCESS,
        expires_at=datetime.now(UTC) + timedelta(hours=1),
    )


class TestDeviceToObserver:
    def test_report_reaches_every_observer(self, client, app):
        with (
            client.websocket_connect("/ws") as obs1,
            client.websocket_connect("/ws") as obs2,
            client.websocket_connect("/ws") as device,
        ):
            obs1.send_text("ROLE:Observer")
            obs2.send_text("ROLE:BROWSER")
            device.send_text("ROLE:ESP32")
            wait_for_counts(client, devices=1, observers=2)

            device.send_text(json.dumps(REPORT))
            for ws in (obs1, obs2):
                body = json.loads(ws.receive_text())
                assert body["temperature"] == 24.0
                assert body["light"] == 500
                assert body["window"] == "Open"
                assert body["mode"] == "Auto"
                assert body["updatedAt"]

        snapshot = app.state.relay_engine.store.current_snapshot()
        assert snapshot.temperature == 24.0

    def test_malformed_report_keeps_device_connected(self, client):
        with client.websocket_connect("/ws") as obs, client.websocket_connect("/ws") as device:
            obs.send_text("ROLE:Observer")
            device.send_text("ROLE:Device")
            wait_for_counts(client, devices=1, observers=1)

            device.send_text("{not json")
            device.send_text(json.dumps({**REPORT, "temperature": 18.5}))
            assert json.loads(obs.receive_text())["temperature"] == 18.5

    def test_transition_triggers_one_alert(self, client, archive, notifier):
        with client.websocket_connect("/ws") as obs, client.websocket_connect("/ws") as device:
            obs.send_text("ROLE:Observer")
            device.send_text("ROLE:Device")
            wait_for_counts(client, devices=1, observers=1)
            for _ in range(5):
                device.send_text(json.dumps(REPORT))
            for _ in range(5):
                obs.receive_text()

        deadline = time.monotonic() + 5
        while (len(archive.current) < 5 or not notifier.messages) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(archive.current) == 5
        assert len(notifier.messages) == 1
        assert "Window: Open" in notifier.messages[0]


class TestObserverToDevice:
    def test_command_forwarded(self, client):
        with client.websocket_connect("/ws") as device, client.websocket_connect("/ws") as obs:
            device.send_text("ROLE:Device")
            obs.send_text("ROLE:Observer")
            wait_for_counts(client, devices=1, observers=1)

            obs.send_text("USER:alice")
            obs.send_text("hello there")
            obs.send_text("Close")
            assert device.receive_text() == "Close"

    def test_commands_from_one_observer_arrive_in_order(self, client):
        with client.websocket_connect("/ws") as device, client.websocket_connect("/ws") as obs:
            device.send_text("ROLE:Device")
            obs.send_text("ROLE:Observer")
            wait_for_counts(client, devices=1, observers=1)
            for command in ("Open", "Auto", "Close"):
                obs.send_text(command)
            assert [device.receive_text() for _ in range(3)] == ["Open", "Auto", "Close"]


class TestProtocolViolations:
    def test_second_role_closes_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ROLE:Device")
            ws.send_text("ROLE:Observer")
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
        assert exc_info.value.code == WS_PROTOCOL_ERROR

    def test_unknown_role_closes_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ROLE:Fridge")
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
        assert exc_info.value.code == WS_PROTOCOL_ERROR

    def test_device_cannot_send_user_directive(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ROLE:Device")
            ws.send_text("USER:alice")
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
        assert exc_info.value.code == WS_PROTOCOL_ERROR

    def test_binary_frame_closes_connection(self, client):
        with client.websocket_connect("/ws") as obs, client.websocket_connect("/ws") as ws:
            obs.send_text("ROLE:Observer")
            ws.send_text("ROLE:Device")
            wait_for_counts(client, devices=1, observers=1)
            ws.send_bytes(json.dumps(REPORT).encode())
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
            assert exc_info.value.code == WS_PROTOCOL_ERROR
            wait_for_counts(client, devices=0, observers=1)

    def test_closed_connection_is_unregistered(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ROLE:Observer")
            wait_for_counts(client, devices=0, observers=1)
        wait_for_counts(client, devices=0, observers=0)


class TestTokenOnUpgrade:
    def test_invalid_token_refused(self, client):
        with client.websocket_connect("/ws?token=garbage") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
        assert exc_info.value.code == WS_POLICY_VIOLATION
        assert exc_info.value.reason == "auth_malformed"

    def test_revoked_token_refused(self, client):
        token = register(client)["access_token"]
        client.post("/auth/logout", headers=bearer(token))
        with client.websocket_connect(f"/ws?token={token}") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
        assert exc_info.value.code == WS_POLICY_VIOLATION
        assert exc_info.value.reason == "auth_revoked"

    def test_authenticated_observer_cannot_impersonate(self, client):
        body = register(client)
        with client.websocket_connect(f"/ws?token={body['access_token']}") as ws:
            ws.send_text("ROLE:Observer")
            ws.send_text(f"USER:{body['user_id']}")
            ws.send_text("USER:someone-else")
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
        assert exc_info.value.code == WS_PROTOCOL_ERROR


class TestObserverTokenRequired:
    @pytest.fixture()
    def settings(self, settings):
        return settings.model_copy(update={"require_observer_token": True})

    def test_anonymous_observer_refused(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ROLE:Observer")
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
        assert exc_info.value.code == WS_PROTOCOL_ERROR

    def test_authenticated_observer_accepted(self, client):
        token = register(client)["access_token"]
        with client.websocket_connect(f"/ws?token={token}") as obs:
            obs.send_text("ROLE:Observer")
            wait_for_counts(client, devices=0, observers=1)

    def test_anonymous_device_still_accepted(self, client):
        with client.websocket_connect("/ws") as device:
            device.send_text("ROLE:Device")
            wait_for_counts(client, devices=1, observers=0)


class TestStateStream:
    def test_stream_requires_token(self, client):
        assert client.get("/api/state/stream").status_code == 401

    async def test_stream_registers_only_while_iterating(self, app):
        engine = app.state.relay_engine
        request = SimpleNamespace(app=app)
        response = await state_stream(request, _stream_identity())
        assert engine.registry.count(Role.OBSERVER) == 0

        stream = response.body_iterator
        first = await anext(stream)
        assert first["event"] == "state"
        assert json.loads(first["data"])["window"] == "Closed"
        assert engine.registry.count(Role.OBSERVER) == 1

        await stream.aclose()
        assert engine.registry.count(Role.OBSERVER) == 0

    async def test_unstarted_stream_leaves_registry_empty(self, app):
        engine = app.state.relay_engine
        await state_stream(SimpleNamespace(app=app), _stream_identity())
        await state_stream(SimpleNamespace(app=app), _stream_identity())
        assert engine.registry.count() == 0
