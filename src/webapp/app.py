"""
=============================================================================
APPLICATION
=============================================================================

A Webapp owns three things:

    _handlers       the middleware, in registration order
    _middleware     those handlers, then the router step, compiled into a
                    chain (rebuilt by use())
    router          where requests end up once the chain reaches it

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       ONE REQUEST                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   serve_http(writer, request)                                        │
    │        │  ctx = Context(app, writer, request)                        │
    │        ▼                                                             │
    │   Recovery ─► Logger ─► ... ─► router                                │
    │                                  │                                   │
    │                    ┌─────────────┴──────────────┐                    │
    │                    ▼                            ▼                    │
    │              handler(ctx)        child.serve_http_context(ctx)       │
    │                                   (its own chain ─► its router)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
MOUNTING
=============================================================================

sub_route("/api") returns a child Webapp whose routes live under /api and
whose middleware only runs for requests under /api, after the parent's:

    app = classic()
    api = app.sub_route("/api")
    api.use(require_token)

    @api.get("/users/:id")
    def show_user(ctx):
        ctx.json({"id": ctx.path_params["id"]})

    app.run(":8080")

The router becomes the last step of every chain in prepare(), which run()
calls for the whole tree, children first. It stays last: handlers added
with use() afterwards still run before it.

=============================================================================
"""

import logging
import sys
import threading
import weakref
from dataclasses import replace
from typing import Any, Callable, List, Optional

from .config import AppConfig
from .context import Context
from .http.request import HTTPRequest
from .http.response import ResponseWriter
from .http.router import Route, Router
from .middleware.base import (
    Handler,
    HandlerFunc,
    MiddlewareHandler,
    MiddlewareLike,
    NextFunc,
    as_middleware,
    build,
    handler_names,
    wrap,
)
from .middleware.logging import Logger
from .middleware.recovery import Recovery
from .render import JinjaRenderer, Renderer
from .server import HTTPServer


logger = logging.getLogger(__name__)

_prepare_lock = threading.Lock()


class RouterContext(Router, Handler):
    """
    A Router that is also a Handler, so it can be the last step of a chain.

    All matching is the Router's; serve_http() only forwards the Context.
    """

    def serve_http(self, ctx) -> None:
        self.serve_http_context(ctx)


class Webapp:
    """
    An application node: a middleware chain ending in a router.

    Build one with new() or classic() rather than directly.
    """

    def __init__(
        self,
        *handlers: MiddlewareLike,
        config: Optional[AppConfig] = None,
        render_engine: Optional[Renderer] = None,
        router: Optional[RouterContext] = None,
    ):
        self.config = config or AppConfig()
        self.config.validate()

        self._handlers: List[MiddlewareHandler] = [as_middleware(h) for h in handlers]
        self._middleware = build(self._handlers)
        self.router = router or RouterContext()
        self.render_engine: Renderer = render_engine or JinjaRenderer(
            self.config.views_dir, self.config.view_extension
        )

        self._parent: Optional[weakref.ref] = None
        self._children: List["Webapp"] = []
        self._router_step: Optional[MiddlewareHandler] = None

    def __repr__(self) -> str:
        prefix = self.router.prefix or "/"
        return f"<Webapp {prefix} [{', '.join(handler_names(self._handlers))}]>"

    # =========================================================================
    # TREE
    # =========================================================================

    @property
    def parent(self) -> Optional["Webapp"]:
        """The app this one is mounted on, or None for the root."""
        return self._parent() if self._parent is not None else None

    @property
    def children(self) -> List["Webapp"]:
        return list(self._children)

    @property
    def is_root(self) -> bool:
        return self._parent is None

    def sub_route(self, prefix: str) -> "Webapp":
        """
        Mount a new child application at ``prefix``.

        Every request under the prefix (any method) is forwarded, with the
        same Context, to the child, which has no middleware of its own
        until you add some.
        """
        child = Webapp(
            config=self.config,
            render_engine=self.render_engine,
            router=RouterContext(prefix=self.router.prefix + prefix),
        )
        child._parent = weakref.ref(self)
        self._children.append(child)
        if self._router_step is not None:
            child.prepare()

        self.router.new_route().path_prefix(prefix).handler_func(child.serve_http_context)
        logger.debug(f"Mounted {child!r} on {self!r}")
        return child

    # =========================================================================
    # MIDDLEWARE
    # =========================================================================

    def use(self, handler: MiddlewareLike) -> "Webapp":
        """
        Append a middleware handler and rebuild the chain.

        The new handler runs after every handler added before it and, once
        the app is prepared, still before the router.
        """
        self._handlers.append(as_middleware(handler))
        self._rebuild()
        return self

    def _rebuild(self) -> None:
        handlers = list(self._handlers)
        if self._router_step is not None:
            handlers.append(self._router_step)
        self._middleware = build(handlers)

    def use_func(self, func: Callable[[Context, NextFunc], None]) -> "Webapp":
        return self.use(func)

    def use_handler(self, handler: Handler) -> "Webapp":
        """Append a terminal handler; the chain continues after it runs."""
        return self.use(wrap(handler))

    def use_handler_func(self, func: Callable[[Context], None]) -> "Webapp":
        return self.use_handler(HandlerFunc(func))

    def handlers(self) -> List[MiddlewareHandler]:
        """The steps of the chain in order, the router step last once prepared."""
        steps = list(self._handlers)
        if self._router_step is not None:
            steps.append(self._router_step)
        return steps

    # =========================================================================
    # ROUTES
    # =========================================================================

    def new_route(self, func: Optional[Callable[[Context], None]] = None) -> Route:
        route = self.router.new_route()
        if func is not None:
            route.handler_func(func)
        return route

    def handle(self, path: str, handler: Any) -> Route:
        return self.router.handle(path, handler)

    def handle_func(self, path: str, func: Callable[[Context], None]) -> Route:
        return self.router.handle_func(path, func)

    def get(self, path: str, func: Optional[Callable[[Context], None]] = None):
        """
        Register a GET route.

        Returns the Route when ``func`` is given; otherwise works as a
        decorator and returns the function unchanged:

            @app.get("/users/:id")
            def show_user(ctx): ...
        """
        return self._method_route("GET", path, func)

    def post(self, path: str, func: Optional[Callable[[Context], None]] = None):
        return self._method_route("POST", path, func)

    def put(self, path: str, func: Optional[Callable[[Context], None]] = None):
        return self._method_route("PUT", path, func)

    def delete(self, path: str, func: Optional[Callable[[Context], None]] = None):
        return self._method_route("DELETE", path, func)

    def patch(self, path: str, func: Optional[Callable[[Context], None]] = None):
        return self._method_route("PATCH", path, func)

    def _method_route(self, method: str, path: str, func):
        if func is not None:
            return self.router.handle_func(path, func).methods(method)

        def decorator(f: Callable[[Context], None]) -> Callable[[Context], None]:
            self.router.handle_func(path, f).methods(method)
            return f

        return decorator

    def file_server(self, url_prefix: str, directory: str) -> Route:
        """Serve ``directory`` below ``url_prefix`` (404 for missing files)."""
        return self.router.file_server(url_prefix, directory)

    def url_for(self, name: str, **params: str) -> Optional[str]:
        return self.router.url_for(name, **params)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def serve_http(self, writer: ResponseWriter, request: HTTPRequest) -> None:
        """
        Transport entry point: one new Context per request.

        Prepares the tree on first use if run() did not.
        """
        if self._router_step is None:
            self.prepare()
        self.serve_http_context(Context(self, writer, request))

    def serve_http_context(self, ctx: Context) -> None:
        """Run this app's chain on an existing Context (used when mounted)."""
        self._middleware.serve_http(ctx)

    def prepare(self) -> "Webapp":
        """
        Make the router the last step of this app and of its children.

        Children are prepared first. Calling it again does nothing.
        """
        with _prepare_lock:
            self._prepare()
        return self

    def _prepare(self) -> None:
        for child in self._children:
            child._prepare()
        if self._router_step is not None:
            return
        self._router_step = wrap(self.router)
        self._rebuild()

    def run(self, address: str = "") -> None:
        """
        Prepare the tree and, for the root, serve on ``address`` until
        interrupted.

        ``address`` is "host:port" or ":port"; empty uses the config.
        A child app only gets prepared. Failing to bind is fatal: it is
        logged and the process exits with status 1.
        """
        self.prepare()
        if not self.is_root:
            return

        host, port = self.config.parse_address(address)
        config = replace(self.config, host=host, port=port)
        _setup_logging(config)

        logger.info(f"listening on {host}:{port}")
        logger.debug(f"middleware: {', '.join(handler_names(self.handlers()))}")

        server = HTTPServer(self.serve_http, config)
        try:
            server.serve_forever()
        except OSError as e:
            logger.critical(f"Server failed on {host}:{port}: {e}")
            sys.exit(1)


def _setup_logging(config: AppConfig) -> None:
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("webapp").setLevel(level)


def new(*handlers: MiddlewareLike, config: Optional[AppConfig] = None) -> Webapp:
    """A Webapp with exactly the given middleware (possibly none)."""
    return Webapp(*handlers, config=config)


def classic(config: Optional[AppConfig] = None) -> Webapp:
    """
    A Webapp with the usual middleware preinstalled:

        Recovery    exceptions become 500s, the server keeps serving
        Logger      one access log line per request
    """
    config = config or AppConfig()
    return Webapp(
        Recovery(print_stack=config.print_stack),
        Logger(log_format=config.log_format),
        config=config,
    )
