"""Relay Engine: per-frame dispatch between the device and its observers.

Connection lifecycle::

    Unclassified --ROLE:Device-->   DeviceActive   --close--> Closed
    Unclassified --ROLE:Observer--> ObserverActive --close--> Closed
    ObserverActive --USER:<id>--> ObserverActive

:meth:`RelayEngine.handle` is synchronous and never awaits I/O.  Frames to
other connections go through their outboxes, and archive/notifier calls go
through the :class:`~smartwindow.relay.side_effects.SideEffectQueue`.
"""

from __future__ import annotations

import enum
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, assert_never

from smartwindow.collaborators.archive import NullArchive, TelemetryArchive
from smartwindow.collaborators.notifier import Notifier, NullNotifier, format_window_alert
from smartwindow.errors import MalformedReportError, ProtocolError
from smartwindow.relay.protocol import (
    IdentityDirective,
    Payload,
    RoleDirective,
    parse_command,
    parse_frame,
)
from smartwindow.relay.registry import Connection, ConnectionRegistry, Role, Transport, parse_role
from smartwindow.relay.side_effects import SideEffectQueue
from smartwindow.relay.state import StateStore, SystemState, parse_device_report

if TYPE_CHECKING:
    from smartwindow.auth.gate import Identity

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    """What :meth:`RelayEngine.handle` did with a frame."""

    CLASSIFIED = "classified"
    BOUND = "bound"
    STATE_ACCEPTED = "state_accepted"
    REPORT_DROPPED = "report_dropped"
    COMMAND_FORWARDED = "command_forwarded"
    IGNORED = "ignored"


class RelayEngine:
    def __init__(
        self,
        *,
        registry: ConnectionRegistry | None = None,
        store: StateStore | None = None,
        side_effects: SideEffectQueue | None = None,
        archive: TelemetryArchive | None = None,
        notifier: Notifier | None = None,
        require_observer_token: bool = False,
    ) -> None:
        self.registry = registry or ConnectionRegistry()
        self.store = store or StateStore()
        self.side_effects = side_effects or SideEffectQueue()
        self._archive: TelemetryArchive = archive or NullArchive()
        self._notifier: Notifier = notifier or NullNotifier()
        self._require_observer_token = require_observer_token

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, transport: Transport, *, principal: Identity | None = None) -> str:
        return self.registry.register(transport, principal=principal)

    def attach_observer(self, transport: Transport, principal: Identity) -> str:
        """Register an already-authenticated, read-only observer (e.g. an SSE stream)."""
        connection_id = self.registry.register(transport, principal=principal)
        self.registry.classify(connection_id, Role.OBSERVER)
        if principal.user_id is not None:
            self.registry.bind_identity(connection_id, principal.user_id)
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        self.registry.unregister(connection_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle(self, connection_id: str, text: str) -> Outcome:
        """Process one inbound frame. Raises :class:`ProtocolError` on directive misuse."""
        frame = parse_frame(text)
        match frame:
            case RoleDirective(token=token):
                self._classify(connection_id, token)
                return Outcome.CLASSIFIED
            case IdentityDirective(identity=identity):
                self._bind(connection_id, identity)
                return Outcome.BOUND
            case Payload(text=payload):
                pass
            case _:
                assert_never(frame)

        conn = self.registry.get(connection_id)
        if conn is None:
            return Outcome.IGNORED
        match conn.role:
            case Role.DEVICE:
                return self._on_device_payload(payload)
            case Role.OBSERVER:
                return self._on_observer_payload(conn, payload)
            case Role.UNKNOWN:
                logger.debug("ignoring payload from unclassified connection %s", connection_id)
                return Outcome.IGNORED
            case _:
                assert_never(conn.role)

    def _classify(self, connection_id: str, token: str) -> None:
        role = parse_role(token)
        if role is Role.OBSERVER and self._require_observer_token:
            conn = self.registry.get(connection_id)
            if conn is None or conn.principal is None:
                raise ProtocolError("Observer role requires an authenticated connection")
        self.registry.classify(connection_id, role)

    def _bind(self, connection_id: str, identity: str) -> None:
        conn = self.registry.get(connection_id)
        principal = conn.principal if conn else None
        if principal is not None and principal.user_id not in (None, identity):
            raise ProtocolError("USER directive does not match the authenticated user")
        self.registry.bind_identity(connection_id, identity)

    def _on_device_payload(self, text: str) -> Outcome:
        try:
            report = parse_device_report(text)
        except MalformedReportError as exc:
            logger.debug("dropping malformed device report: %s", exc.detail)
            return Outcome.REPORT_DROPPED

        state, transitioned = self.store.apply_device_report(report)
        frame = state.to_json()
        delivered = self.registry.for_each_by_role(
            Role.OBSERVER, lambda c: c.transport.offer(frame)
        )
        logger.debug("state accepted; broadcast to %d observer(s)", delivered)

        record = state.to_dict()
        self.side_effects.submit(
            "archive.append_log", lambda: self._archive.append_log("sensor_data", record)
        )
        self.side_effects.submit("archive.set_current", lambda: self._archive.set_current(record))
        if transitioned:
            self._notify_transition(state)
        return Outcome.STATE_ACCEPTED

    def _notify_transition(self, state: SystemState) -> None:
        logger.info("window transitioned to %s", state.window.value)
        text = format_window_alert(state)
        self.side_effects.submit("notifier.notify", lambda: self._notifier.notify(text))

    def _on_observer_payload(self, conn: Connection, text: str) -> Outcome:
        command = parse_command(text)
        if command is None:
            logger.debug("ignoring non-command text from observer %s", conn.id)
            return Outcome.IGNORED

        delivered = self.registry.for_each_by_role(
            Role.DEVICE, lambda c: c.transport.offer(command)
        )
        logger.info(
            "command %s from %s forwarded to %d device(s)",
            command,
            conn.identity or conn.id,
            delivered,
        )
        record = {
            "command": command,
            "user": conn.identity,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        self.side_effects.submit(
            "archive.append_log", lambda: self._archive.append_log("commands", record)
        )
        return Outcome.COMMAND_FORWARDED
