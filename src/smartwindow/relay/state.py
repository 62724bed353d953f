"""State Store: the single authoritative snapshot of the window system.

Only :meth:`StateStore.apply_device_report` mutates state, and it swaps in a
whole new frozen :class:`SystemState` under a lock, so readers never see a
snapshot assembled from two different reports.
"""

from __future__ import annotations

import enum
import json
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from smartwindow.errors import MalformedReportError


class WindowPosition(str, enum.Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class ControlMode(str, enum.Enum):
    AUTO = "Auto"
    MANUAL = "Manual"


class DeviceReport(BaseModel):
    """One telemetry frame from the device. Extra keys are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    temperature: float = Field(strict=True, allow_inf_nan=False)
    light: float = Field(strict=True, allow_inf_nan=False)
    window: WindowPosition
    mode: ControlMode = ControlMode.AUTO


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(p) for p in err.get("loc", ())) or "report"
    return f"{where}: {err.get('msg', 'invalid')}"


def validate_report(data: Mapping[str, Any]) -> DeviceReport:
    """Validate an already-decoded report. Raises :class:`MalformedReportError`."""
    try:
        return DeviceReport.model_validate(data)
    except ValidationError as exc:
        raise MalformedReportError(_first_error(exc)) from None


def parse_device_report(text: str) -> DeviceReport:
    """Decode and validate a JSON text frame. Raises :class:`MalformedReportError`."""
    try:
        return DeviceReport.model_validate_json(text)
    except ValidationError as exc:
        raise MalformedReportError(_first_error(exc)) from None


@dataclass(frozen=True, slots=True)
class SystemState:
    temperature: float = 0.0
    light: float = 0.0
    window: WindowPosition = WindowPosition.CLOSED
    mode: ControlMode = ControlMode.AUTO
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "light": self.light,
            "window": self.window.value,
            "mode": self.mode.value,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


UNKNOWN_STATE = SystemState()


class StateStore:
    def __init__(self, initial: SystemState = UNKNOWN_STATE) -> None:
        self._lock = threading.Lock()
        self._state = initial

    def current_snapshot(self) -> SystemState:
        with self._lock:
            return self._state

    def apply_device_report(
        self, report: DeviceReport | Mapping[str, Any]
    ) -> tuple[SystemState, bool]:
        """Replace the snapshot with *report*. Returns ``(new_state, window_changed)``.

        The snapshot is stamped with the acceptance time; any timestamp the
        device sent is ignored. Invalid reports raise
        :class:`MalformedReportError` and leave state untouched.
        """
        if not isinstance(report, DeviceReport):
            report = validate_report(report)
        with self._lock:
            previous = self._state
            state = SystemState(
                temperature=report.temperature,
                light=report.light,
                window=report.window,
                mode=report.mode,
                updated_at=datetime.now(UTC),
            )
            self._state = state
        return state, state.window is not previous.window
