"""Per-request JSON logging for the Dr.Web scan service.

Every request handled by the web service produces exactly one JSON log
line once the response is ready.  For ``POST /scan`` that line is the audit
record of the upload: how large it was, what the engine concluded and how
long the whole license/daemon/scan/metadata sequence took::

    {
      "event": "http_request",
      "correlation_id": "550e8400-e29b-41d4-a716-446655440000",
      "method": "POST",
      "path": "/scan",
      "status_code": 200,
      "upload_bytes": 68,
      "verdict": "infected",
      "duration_ms": 1042.7
    }

``verdict`` is read from ``request.state.scan_verdict``, which the scan
route sets (``"clean"``, ``"infected"`` or ``"error"``); it is ``null`` for
every other request.  ``upload_bytes`` is the request ``Content-Length``.

Responses with a 5xx status (a license or engine metadata failure) are
logged at ``ERROR``.  Health checks and Prometheus scrapes are logged at
``DEBUG`` so they do not drown the scan records.

The correlation ID comes from ``X-Correlation-ID`` (or ``X-Request-ID``),
or is generated as a UUID v4.  It is put on ``request.state.correlation_id``
for the scan route's own log lines and echoed in the ``X-Correlation-ID``
response header.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Headers checked (in priority order) for an incoming correlation ID.
_CORRELATION_HEADERS: tuple[str, ...] = ("x-correlation-id", "x-request-id")

# Paths polled by orchestrators and Prometheus.
_QUIET_PATH_PREFIXES: tuple[str, ...] = ("/healthz", "/metrics")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one JSON record per request, including the scan verdict."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = self._extract_correlation_id(request)
        request.state.correlation_id = correlation_id

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 2)

        log_entry = {
            "event": "http_request",
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "upload_bytes": _content_length(request),
            "verdict": getattr(request.state, "scan_verdict", None),
            "duration_ms": duration_ms,
        }
        logger.log(_level_for(request.url.path, response.status_code), json.dumps(log_entry))

        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @staticmethod
    def _extract_correlation_id(request: Request) -> str:
        for header in _CORRELATION_HEADERS:
            value = request.headers.get(header, "").strip()
            if value:
                return value
        return str(uuid.uuid4())


def _level_for(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if path.startswith(_QUIET_PATH_PREFIXES):
        return logging.DEBUG
    return logging.INFO


def _content_length(request: Request) -> int | None:
    value = request.headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)
