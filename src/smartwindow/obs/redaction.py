"""Redaction utilities – keep credentials out of logs."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

# Header names that must never appear in logs.
_SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
    }
)

# (pattern, replacement) applied in order.
_SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)?"), "[REDACTED]"),
    # Telegram bot token inside an API URL: /bot<id>:<secret>/
    (re.compile(r"bot\d+:[A-Za-z0-9_-]{20,}"), "bot[REDACTED]"),
    # Firebase database secret / ID token passed as a query parameter.
    (re.compile(r"([?&](?:auth|token)=)[^&\s'\"]+"), r"\1[REDACTED]"),
]


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of *headers* with sensitive entries masked."""
    out: dict[str, str] = {}
    for k, v in headers.items():
        if k.lower() in _SENSITIVE_HEADERS:
            out[k] = "[REDACTED]"
        else:
            out[k] = v
    return out


def make_redactor(
    extra_patterns: Sequence[re.Pattern[str]] | None = None,
) -> Callable[[str], str]:
    """Build a redactor function, optionally extending the default patterns."""
    patterns = list(_SECRET_PATTERNS)
    if extra_patterns:
        patterns.extend((p, "[REDACTED]") for p in extra_patterns)

    def _redact(value: str) -> str:
        result = value
        for pat, repl in patterns:
            result = pat.sub(repl, result)
        return result

    return _redact


_default_redactor = make_redactor()


def redact_value(value: str) -> str:
    """Replace known secret patterns in *value* with ``[REDACTED]``."""
    return _default_redactor(value)
