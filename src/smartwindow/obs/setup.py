"""Logging configuration and request tracing middleware."""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from smartwindow.obs.redaction import redact_headers

logger = logging.getLogger("smartwindow.http")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging for the server process."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # httpx logs full request URLs at INFO, which include the Telegram bot token.
    logging.getLogger("httpx").setLevel(logging.WARNING)


class _TraceIdMiddleware(BaseHTTPMiddleware):
    """Attach a ``X-Trace-Id`` header to every HTTP response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get("x-trace-id", uuid.uuid4().hex)
        request.state.trace_id = trace_id
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "%s %s trace=%s headers=%s",
                request.method,
                request.url.path,
                trace_id,
                redact_headers(dict(request.headers)),
            )
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response


def init_observability(app: FastAPI) -> None:
    """Wire up tracing middleware."""
    app.add_middleware(_TraceIdMiddleware)
