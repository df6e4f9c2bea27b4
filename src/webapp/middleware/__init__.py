"""
=============================================================================
MIDDLEWARE
=============================================================================

Middleware is code that runs around every request an application serves,
before its router picks a handler:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    MIDDLEWARE CHAIN                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Incoming request → new Context                                     │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────┐                                               │
    │   │    Recovery     │ ──► turns exceptions into 4xx/5xx             │
    │   └────────┬────────┘                                               │
    │            ▼                                                         │
    │   ┌─────────────────┐                                               │
    │   │     Logger      │ ──► access log, X-Request-ID                  │
    │   └────────┬────────┘                                               │
    │            ▼                                                         │
    │   ┌─────────────────┐                                               │
    │   │  your own ...   │ ──► sessions, auth, database handles          │
    │   └────────┬────────┘                                               │
    │            ▼                                                         │
    │   ┌─────────────────┐                                               │
    │   │     Router      │ ──► always last: picks the route handler      │
    │   └─────────────────┘                                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
AVAILABLE MIDDLEWARE
=============================================================================

Recovery   Catches exceptions from later steps, answers 500 (or the
           status of a WebappError such as BindError's 400).

Logger     Per-request access log line with timing; X-Request-ID.

Database   Opens a database handle per request for ctx.db().

Static     Serves files from a directory, falls through on a miss.

=============================================================================
"""

from .base import (
    Handler,
    HandlerFunc,
    Middleware,
    MiddlewareHandler,
    FunctionMiddleware,
    NextFunc,
    as_middleware,
    build,
    function_middleware,
    void_middleware,
    wrap,
)
from .recovery import Recovery
from .logging import Logger
from .database import Database
from .static import Static

__all__ = [
    # Building blocks
    "Handler",
    "HandlerFunc",
    "Middleware",
    "MiddlewareHandler",
    "FunctionMiddleware",
    "NextFunc",
    "as_middleware",
    "build",
    "function_middleware",
    "void_middleware",
    "wrap",

    # Built-in middleware
    "Recovery",
    "Logger",
    "Database",
    "Static",
]
