"""Observability helpers: logging setup, trace ids, secret redaction."""

from smartwindow.obs.redaction import redact_headers, redact_value
from smartwindow.obs.setup import configure_logging, init_observability

__all__ = [
    "configure_logging",
    "init_observability",
    "redact_headers",
    "redact_value",
]
