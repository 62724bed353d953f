"""Session-authenticated real-time relay between the device and its observers."""

from smartwindow.relay.engine import Outcome, RelayEngine
from smartwindow.relay.outbox import Outbox
from smartwindow.relay.registry import Connection, ConnectionRegistry, Role
from smartwindow.relay.side_effects import SideEffectQueue
from smartwindow.relay.state import (
    ControlMode,
    DeviceReport,
    StateStore,
    SystemState,
    WindowPosition,
)

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "ControlMode",
    "DeviceReport",
    "Outbox",
    "Outcome",
    "RelayEngine",
    "Role",
    "SideEffectQueue",
    "StateStore",
    "SystemState",
    "WindowPosition",
]
