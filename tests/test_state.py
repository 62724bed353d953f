"""State store and device report validation."""

from __future__ import annotations

import json
import threading

import pytest

from smartwindow.errors import MalformedReportError
from smartwindow.relay.state import (
    UNKNOWN_STATE,
    ControlMode,
    DeviceReport,
    StateStore,
    WindowPosition,
    parse_device_report,
    validate_report,
)


def _report(**overrides):
    data = {"temperature": 22.5, "light": 310, "window": "Open", "mode": "Auto"}
    data.update(overrides)
    return data


class TestParseDeviceReport:
    def test_valid_report(self):
        report = parse_device_report(json.dumps(_report()))
        assert report == DeviceReport(
            temperature=22.5, light=310.0, window=WindowPosition.OPEN, mode=ControlMode.AUTO
        )

    def test_mode_defaults_to_auto(self):
        data = _report()
        del data["mode"]
        assert parse_device_report(json.dumps(data)).mode is ControlMode.AUTO

    def test_extra_keys_ignored(self):
        report = parse_device_report(json.dumps(_report(humidity=40, timestamp="whenever")))
        assert report.window is WindowPosition.OPEN

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "[]",
            json.dumps(_report(temperature="hot")),
            json.dumps(_report(window="Ajar")),
            json.dumps(_report(mode="Party")),
            json.dumps({"temperature": 1, "light": 2}),
        ],
    )
    def test_malformed_reports_rejected(self, text):
        with pytest.raises(MalformedReportError):
            parse_device_report(text)

    def test_non_finite_rejected(self):
        with pytest.raises(MalformedReportError):
            validate_report(_report(temperature=float("nan")))


class TestStateStore:
    def test_initial_snapshot_is_unknown(self):
        store = StateStore()
        assert store.current_snapshot() == UNKNOWN_STATE
        assert store.current_snapshot().updated_at is None

    def test_apply_replaces_snapshot(self):
        store = StateStore()
        state, _ = store.apply_device_report(_report())
        assert store.current_snapshot() is state
        assert state.temperature == 22.5
        assert state.window is WindowPosition.OPEN
        assert state.updated_at is not None

    def test_transition_detection(self):
        store = StateStore()
        _, changed = store.apply_device_report(_report(window="Open"))
        assert changed
        _, changed = store.apply_device_report(_report(window="Open", temperature=25))
        assert not changed
        _, changed = store.apply_device_report(_report(window="Closed"))
        assert changed

    def test_invalid_report_leaves_state_untouched(self):
        store = StateStore()
        before, _ = store.apply_device_report(_report())
        with pytest.raises(MalformedReportError):
            store.apply_device_report({"temperature": "x"})
        assert store.current_snapshot() is before

    def test_to_dict_keys(self):
        store = StateStore()
        state, _ = store.apply_device_report(_report(mode="Manual"))
        body = json.loads(state.to_json())
        assert set(body) == {"temperature", "light", "window", "mode", "updatedAt"}
        assert body["mode"] == "Manual"
        assert body["window"] == "Open"

    def test_concurrent_readers_never_see_torn_state(self):
        store = StateStore()
        pairs = [(float(i), "Open" if i % 2 else "Closed") for i in range(1, 300)]
        valid = {(t, w) for t, w in pairs} | {(0.0, "Closed")}
        seen: list[tuple[float, float, str]] = []
        done = threading.Event()

        def writer():
            for temp, window in pairs:
                store.apply_device_report(_report(temperature=temp, light=temp, window=window))
            done.set()

        def reader():
            while not done.is_set():
                snap = store.current_snapshot()
                seen.append((snap.temperature, snap.light, snap.window.value))

        threads = [threading.Thread(target=writer)] + [
            threading.Thread(target=reader) for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert all(temp == light for temp, light, _ in seen)
        assert {(temp, window) for temp, _, window in seen} <= valid
