"""Best-effort external collaborators: telemetry archive and push notifier."""

from smartwindow.collaborators.archive import FirebaseArchive, NullArchive, TelemetryArchive
from smartwindow.collaborators.notifier import (
    Notifier,
    NullNotifier,
    TelegramNotifier,
    format_window_alert,
)

__all__ = [
    "FirebaseArchive",
    "Notifier",
    "NullArchive",
    "NullNotifier",
    "TelegramNotifier",
    "TelemetryArchive",
    "format_window_alert",
]
