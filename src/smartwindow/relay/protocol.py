"""Text-frame vocabulary spoken on the relay socket."""

from __future__ import annotations

from dataclasses import dataclass

from smartwindow.errors import ProtocolError

ROLE_PREFIX = "ROLE:"
USER_PREFIX = "USER:"

# Observer commands forwarded to the device, exact and case-sensitive.
COMMANDS = frozenset({"Open", "Close", "Auto"})


@dataclass(frozen=True, slots=True)
class RoleDirective:
    token: str


@dataclass(frozen=True, slots=True)
class IdentityDirective:
    identity: str


@dataclass(frozen=True, slots=True)
class Payload:
    text: str


Frame = RoleDirective | IdentityDirective | Payload


def parse_frame(text: str) -> Frame:
    """Split directives (``ROLE:``/``USER:``) from ordinary payloads."""
    if text.startswith(ROLE_PREFIX):
        return RoleDirective(text[len(ROLE_PREFIX) :].strip())
    if text.startswith(USER_PREFIX):
        identity = text[len(USER_PREFIX) :].strip()
        if not identity:
            raise ProtocolError("Empty identity in USER directive")
        return IdentityDirective(identity)
    return Payload(text)


def parse_command(text: str) -> str | None:
    """Return the command in *text*, or ``None`` if it is not one."""
    command = text.strip()
    return command if command in COMMANDS else None
