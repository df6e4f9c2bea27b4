"""
=============================================================================
RECOVERY MIDDLEWARE
=============================================================================

Catches every exception raised further down the chain and turns it into
an error response, so a failing handler costs one request, not the worker
or the process.

    app.use(Recovery())          # FIRST, so it wraps everything else
    app.use(Logger())
    ...

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Recovery ─► Logger ─► ... ─► handler raises                        │
    │      ▲                                 │                             │
    │      └──────── exception unwinds ──────┘                             │
    │                                                                      │
    │   BindError (400)      → 400 + message, logged as a warning          │
    │   any other exception  → 500, logged with its stack trace            │
    └─────────────────────────────────────────────────────────────────────┘

If a downstream step already wrote a status, that response stands and the
failure is only logged.

=============================================================================
"""

import logging
import traceback
from http import HTTPStatus

from .base import MiddlewareHandler, NextFunc
from ..errors import WebappError
from ..http.response import write_string


logger = logging.getLogger(__name__)


class Recovery(MiddlewareHandler):
    """
    Converts downstream exceptions into 4xx/5xx responses.

    Args:
        print_stack: Put the stack trace in 500 response bodies.
                     Useful in development, never in production.
    """

    def __init__(self, print_stack: bool = False):
        self.print_stack = print_stack

    def __call__(self, ctx, next: NextFunc) -> None:
        try:
            next(ctx)
        except Exception as e:
            self.recover(ctx, e)

    def status_for(self, error: Exception) -> int:
        if isinstance(error, WebappError) and 400 <= error.status_code < 600:
            return error.status_code
        return HTTPStatus.INTERNAL_SERVER_ERROR

    def recover(self, ctx, error: Exception) -> None:
        request = ctx.request
        status = self.status_for(error)

        if status >= 500:
            logger.exception(
                f"PANIC: {request.method} {request.path}: {type(error).__name__}: {error}"
            )
        else:
            logger.warning(
                f"{request.method} {request.path} → {status}: {error}"
            )

        writer = ctx.response_writer
        if writer.written:
            logger.error(
                f"Response for {request.method} {request.path} already started "
                f"with status {writer.status}; cannot send {status}"
            )
            return

        if status >= 500:
            try:
                body = f"{status} {HTTPStatus(status).phrase}"
            except ValueError:
                body = f"{status} Server Error"
            if self.print_stack:
                body += "\n\n" + traceback.format_exc()
        else:
            body = str(error)

        writer.write_header(status)
        write_string(writer, body)
