"""Argon2id password hashing."""

from __future__ import annotations

from typing import cast

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_ph = PasswordHasher()

# Verified against when the username is unknown so both paths cost one hash.
_DUMMY_HASH = _ph.hash("smartwindow-dummy-password")


def hash_password(password: str) -> str:
    """Hash *password* with Argon2id."""
    return cast(str, _ph.hash(password))


def verify_password(password: str, hash_: str | None) -> bool:
    """Verify *password* against an Argon2id *hash_*.

    A ``None`` hash burns one verification and returns ``False``.
    """
    try:
        return cast(bool, _ph.verify(hash_ or _DUMMY_HASH, password)) and hash_ is not None
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(hash_: str) -> bool:
    """Return True when *hash_* was produced with outdated Argon2 parameters."""
    return cast(bool, _ph.check_needs_rehash(hash_))
