"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Logs one line per request with timing and status, and tags the request
with an ID that is returned to the client and stored on the Context:

    Client                   Logger middleware                Handler
      │  GET /users              │                               │
      ├─────────────────────────►│ id = "a1b2c3d4"               │
      │                          │ ctx.set(KEY_REQUEST_ID, id)   │
      │                          ├──────────────────────────────►│
      │                          │◄──────────────────────────────┤
      │                          │ log: GET /users 200 1.84ms    │
      │◄─────────────────────────┤ X-Request-ID: a1b2c3d4        │

Place it right after Recovery so that it also times requests rejected by
later middleware:

    app.use(Recovery())
    app.use(Logger())

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, asdict

from .base import MiddlewareHandler, NextFunc
from ..context import KEY_REQUEST_ID


# Namespaced so access logs can be routed separately:
#   logging.getLogger("webapp.access").addHandler(file_handler)
logger = logging.getLogger("webapp.access")


@dataclass
class RequestLog:
    """Structured log entry for a request."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        """Apache combined-style line."""
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class Logger(MiddlewareHandler):
    """
    Request logging middleware.

    Args:
        log_format: "text" (Apache style) or "json".
        include_request_id: Send the request ID back as X-Request-ID.
        log_level: Level used for access lines.
        skip_paths: Paths not worth logging (health checks).
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, ctx, next: NextFunc) -> None:
        request = ctx.request
        writer = ctx.response_writer

        # Reuse an ID from an upstream proxy so logs correlate across services
        request_id = request.get_header("x-request-id") or uuid.uuid4().hex[:8]
        ctx.set(KEY_REQUEST_ID, request_id)
        if self.include_request_id:
            writer.headers["X-Request-ID"] = request_id

        start_time = time.perf_counter()
        try:
            next(ctx)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        if request.path in self.skip_paths:
            return

        query = "&".join(
            f"{name}={value}"
            for name, values in request.query_params.items()
            for value in values
        )
        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=query,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=writer.status or 200,
            content_length=writer.size,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())
