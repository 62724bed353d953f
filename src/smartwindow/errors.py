"""Exception taxonomy shared by the relay, the session gate and the collaborators."""

from __future__ import annotations

import enum


class SmartWindowError(Exception):
    """Base class for all smartwindow errors."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ProtocolError(SmartWindowError):
    """Malformed or duplicate classification/binding. The connection should be closed."""


class MalformedReportError(SmartWindowError):
    """Device telemetry that failed validation. Drop the message, keep the connection."""


class AuthFailure(str, enum.Enum):
    """Why a credential was rejected, in precedence order."""

    MALFORMED = "malformed"
    UNRECOGNIZED = "unrecognized"
    REVOKED = "revoked"
    EXPIRED = "expired"


_AUTH_DETAILS = {
    AuthFailure.MALFORMED: "Invalid token",
    AuthFailure.UNRECOGNIZED: "Unrecognized token",
    AuthFailure.REVOKED: "Token revoked",
    AuthFailure.EXPIRED: "Token expired",
}


class AuthError(SmartWindowError):
    """Raised when a presented credential is rejected."""

    def __init__(self, reason: AuthFailure, detail: str | None = None) -> None:
        self.reason = reason
        super().__init__(detail or _AUTH_DETAILS[reason])


class IssuanceError(SmartWindowError):
    """A credential could not be recorded in the ledger and was not handed out."""


class PersistenceUnavailable(SmartWindowError):
    """The telemetry archive rejected or failed a write."""


class NotifierUnavailable(SmartWindowError):
    """The push notifier rejected or failed a message."""
