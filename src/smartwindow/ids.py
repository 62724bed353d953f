"""Prefixed base32 ID generators and validators.

Scheme
------
* Generate 20 random bytes -> base32-encode (lowercase, no padding, 32 chars).
* Replace the first character with a prefix:
  - 'u' for user IDs
  - 't' for issued-token row IDs
  - 'c' for live relay connection IDs
"""

from __future__ import annotations

import base64
import secrets

_ID_LEN = 32
_ALLOWED_CHARS = set("abcdefghijklmnopqrstuvwxyz234567")


def random_base32(nbytes: int = 20) -> str:
    """Return a lowercase base32 string (no padding) from *nbytes* random bytes.

    *nbytes* must be a multiple of 5 to avoid ``=`` padding.
    """
    if nbytes <= 0 or nbytes % 5 != 0:
        raise ValueError("nbytes must be a positive multiple of 5")
    return base64.b32encode(secrets.token_bytes(nbytes)).decode("ascii").lower()


def _prefixed(prefix: str) -> str:
    return prefix + random_base32()[1:]


def new_user_id() -> str:
    """Generate a user ID (32 chars, starts with 'u')."""
    return _prefixed("u")


def new_token_id() -> str:
    """Generate an issued-token row ID (32 chars, starts with 't')."""
    return _prefixed("t")


def new_connection_id() -> str:
    """Generate a relay connection ID (32 chars, starts with 'c')."""
    return _prefixed("c")


def _has_prefix(value: str, prefix: str) -> bool:
    return (
        len(value) == _ID_LEN
        and value[:1] == prefix
        and all(c in _ALLOWED_CHARS for c in value[1:])
    )


def is_user_id(value: str) -> bool:
    """Return True when *value* looks like a valid user ID."""
    return _has_prefix(value, "u")


def is_connection_id(value: str) -> bool:
    """Return True when *value* looks like a valid connection ID."""
    return _has_prefix(value, "c")
