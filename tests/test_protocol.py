"""Frame parsing for the relay socket."""

from __future__ import annotations

import pytest

from smartwindow.errors import ProtocolError
from smartwindow.relay.protocol import (
    IdentityDirective,
    Payload,
    RoleDirective,
    parse_command,
    parse_frame,
)


class TestParseFrame:
    def test_role_directive(self):
        assert parse_frame("ROLE:Device") == RoleDirective("Device")

    def test_user_directive(self):
        assert parse_frame("USER:alice") == IdentityDirective("alice")

    def test_empty_user_rejected(self):
        with pytest.raises(ProtocolError):
            parse_frame("USER:   ")

    def test_everything_else_is_payload(self):
        assert parse_frame('{"temperature": 1}') == Payload('{"temperature": 1}')
        assert parse_frame("role:Device") == Payload("role:Device")


class TestParseCommand:
    @pytest.mark.parametrize("command", ["Open", "Close", "Auto"])
    def test_known_commands(self, command):
        assert parse_command(command) == command

    def test_surrounding_whitespace_trimmed(self):
        assert parse_command("  Open\n") == "Open"

    @pytest.mark.parametrize("text", ["open", "OPEN", "Opened", "", "Close please"])
    def test_not_commands(self, text):
        assert parse_command(text) is None
