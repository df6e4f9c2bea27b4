"""
=============================================================================
WEBAPP - Middleware Chains, Mounted Sub-Applications, One Context
=============================================================================

A small request-handling runtime. Every request gets one Context that
travels through a chain of middleware, into a router, and possibly on
into the chain and router of a mounted sub-application.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        WEBAPP ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTPServer (sockets, thread pool)                                  │
    │        │  ResponseWriter + HTTPRequest                               │
    │        ▼                                                             │
    │   Webapp.serve_http ──► Context                                      │
    │        │                                                             │
    │        ▼                                                             │
    │   middleware chain  Recovery ─► Logger ─► ... ─► router              │
    │                                                   │                  │
    │                                   ┌───────────────┴─────────┐        │
    │                                   ▼                         ▼        │
    │                             handler(ctx)          sub-application    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    webapp/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m webapp)
    ├── app.py               # Webapp, RouterContext, new(), classic()
    ├── context.py           # Per-request Context
    ├── config.py            # AppConfig dataclass
    ├── errors.py            # WebappError and friends
    ├── render.py            # Renderer ABC, JinjaRenderer
    ├── session.py           # Session, UserManager, AnonymousUser
    ├── server.py            # HTTPServer
    ├── core/                # Sockets, connections, thread pool
    ├── http/                # Request, ResponseWriter, Router, static files
    └── middleware/          # Chain builder + Recovery, Logger, Database, Static

=============================================================================
QUICK START
=============================================================================

    import webapp

    app = webapp.classic()

    @app.get("/")
    def index(ctx):
        ctx.view_string("Hello, %s!", "World")

    api = app.sub_route("/api")

    @api.get("/users/:id")
    def show_user(ctx):
        ctx.json({"id": ctx.path_params["id"]})

    app.run(":8080")

=============================================================================
"""

__version__ = "1.0.0"

from .app import RouterContext, Webapp, classic, new
from .config import AppConfig
from .context import (
    KEY_DATABASE_OBJECT,
    KEY_REQUEST_ID,
    KEY_SESSION_ID,
    KEY_USER,
    Context,
)
from .errors import BindError, DatabaseNotConfigured, EncodeError, RenderError, WebappError
from .middleware import (
    Database,
    Handler,
    HandlerFunc,
    Logger,
    Middleware,
    MiddlewareHandler,
    Recovery,
    Static,
    function_middleware,
    wrap,
)
from .render import JinjaRenderer, Renderer
from .server import HTTPServer
from .session import AnonymousUser, Session, UserManager

__all__ = [
    # Application
    "Webapp",
    "RouterContext",
    "new",
    "classic",
    "AppConfig",
    "HTTPServer",

    # Context
    "Context",
    "KEY_SESSION_ID",
    "KEY_DATABASE_OBJECT",
    "KEY_USER",
    "KEY_REQUEST_ID",

    # Handlers & middleware
    "Handler",
    "HandlerFunc",
    "Middleware",
    "MiddlewareHandler",
    "function_middleware",
    "wrap",
    "Recovery",
    "Logger",
    "Database",
    "Static",

    # Rendering, sessions
    "Renderer",
    "JinjaRenderer",
    "Session",
    "UserManager",
    "AnonymousUser",

    # Errors
    "WebappError",
    "BindError",
    "EncodeError",
    "RenderError",
    "DatabaseNotConfigured",

    "__version__",
]
