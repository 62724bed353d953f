"""Connection Registry: live transport connections tagged with a role.

All mutation happens under one internal lock, so transport callbacks may
register, classify and iterate concurrently without external locking.
Iteration always runs over a tuple snapshot of membership taken under the
lock, never over the live mapping.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from smartwindow.errors import ProtocolError
from smartwindow.ids import new_connection_id

if TYPE_CHECKING:
    from smartwindow.auth.gate import Identity

logger = logging.getLogger(__name__)


class Role(enum.Enum):
    UNKNOWN = "Unknown"
    DEVICE = "Device"
    OBSERVER = "Observer"


# Role tokens accepted after ``ROLE:``. ESP32/BROWSER are what the original
# firmware and dashboard send.
ROLE_TOKENS: dict[str, Role] = {
    "Device": Role.DEVICE,
    "Observer": Role.OBSERVER,
    "ESP32": Role.DEVICE,
    "BROWSER": Role.OBSERVER,
}


def parse_role(token: str) -> Role:
    """Map a classification token to a :class:`Role`. Raises :class:`ProtocolError`."""
    try:
        return ROLE_TOKENS[token]
    except KeyError:
        raise ProtocolError(f"Unrecognized role: {token!r}") from None


class Transport(Protocol):
    """Outbound half of a connection as seen by the relay."""

    @property
    def writable(self) -> bool: ...

    def offer(self, text: str) -> bool: ...

    def close(self) -> None: ...


@dataclass(slots=True)
class Connection:
    """A live connection. Fields are only mutated by :class:`ConnectionRegistry`."""

    id: str
    transport: Transport
    role: Role = Role.UNKNOWN
    identity: str | None = None
    principal: Identity | None = None


class ConnectionRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: dict[str, Connection] = {}

    def register(self, transport: Transport, *, principal: Identity | None = None) -> str:
        conn = Connection(id=new_connection_id(), transport=transport, principal=principal)
        with self._lock:
            self._connections[conn.id] = conn
        logger.debug("connection %s registered", conn.id)
        return conn.id

    def get(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def _require(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise ProtocolError(f"Unknown connection {connection_id}")
        return conn

    def classify(self, connection_id: str, role: Role | str) -> Role:
        """Assign the connection's role. Legal exactly once per connection."""
        if isinstance(role, str):
            role = parse_role(role)
        if role is Role.UNKNOWN:
            raise ProtocolError("Cannot classify a connection as Unknown")
        with self._lock:
            conn = self._require(connection_id)
            if conn.role is not Role.UNKNOWN:
                raise ProtocolError(f"Connection already classified as {conn.role.value}")
            conn.role = role
        logger.info("connection %s classified as %s", connection_id, role.value)
        return role

    def bind_identity(self, connection_id: str, identity: str) -> None:
        """Attach an observer identity. Rebinding replaces the previous identity."""
        with self._lock:
            conn = self._require(connection_id)
            if conn.role is not Role.OBSERVER:
                raise ProtocolError(
                    f"Identity binding requires Observer role, connection is {conn.role.value}"
                )
            conn.identity = identity
        logger.info("connection %s bound to identity %s", connection_id, identity)

    def unregister(self, connection_id: str) -> Connection | None:
        """Remove the connection. Safe to call for ids that are already gone."""
        with self._lock:
            conn = self._connections.pop(connection_id, None)
        if conn is not None:
            conn.transport.close()
            logger.debug("connection %s unregistered", connection_id)
        return conn

    def snapshot(self, role: Role | None = None) -> tuple[Connection, ...]:
        with self._lock:
            return tuple(
                c for c in self._connections.values() if role is None or c.role is role
            )

    def count(self, role: Role | None = None) -> int:
        return len(self.snapshot(role))

    def for_each_by_role(self, role: Role, fn: Callable[[Connection], object]) -> int:
        """Apply *fn* to every writable connection in *role*. Returns how many were visited.

        Connections whose transport is no longer writable are skipped and
        reaped; they are not retried.
        """
        visited = 0
        stale: list[str] = []
        for conn in self.snapshot(role):
            if not conn.transport.writable:
                stale.append(conn.id)
                continue
            fn(conn)
            visited += 1
        for connection_id in stale:
            logger.info("reaping unwritable connection %s", connection_id)
            self.unregister(connection_id)
        return visited
