"""
=============================================================================
URL ROUTER
=============================================================================

Resolves a request to a route handler and invokes it with the request's
Context. Supports:

- Static paths: /users, /api/health
- Dynamic parameters: /users/:id, /posts/:post_id/comments/:comment_id
- Wildcard paths: /static/*filepath
- Path prefixes: every path under /api
- Method constraints: GET, POST, ...
- Nested routers (subrouters) and named routes

=============================================================================
ROUTES ARE BUILT BY CHAINING
=============================================================================

Registering a route returns the Route, which can be constrained further:

    router.handle_func("/users/:id", show_user).methods("GET").name("user")
    router.path_prefix("/admin").handler_func(admin_area)

    api = router.path_prefix("/api").subrouter()
    api.handle_func("/status", status)          # matches /api/status

=============================================================================
ROUTING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ctx.request: GET /users/123                                        │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  Router.serve_http_context(ctx)                              │   │
    │   │                                                              │   │
    │   │  GET  /health        → health                                │   │
    │   │  GET  /users/:id     → show_user      ← MATCH!               │   │
    │   │  ANY  /api/...       → api app                               │   │
    │   │                                                              │   │
    │   │  ctx.path_params = {"id": "123"}                             │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │        │                                                             │
    │        ▼                                                             │
    │   show_user(ctx)                                                     │
    │                                                                      │
    │   no route for the path          → 404 (or not_found_handler)        │
    │   route for the path, not method → 405 + Allow header                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

First match wins: register /users/me before /users/:id.

=============================================================================
"""

from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Optional, Set
import logging
import re

from .response import write_string
from .static import FileServer


logger = logging.getLogger(__name__)


# A route handler receives the request Context and writes the response.
RouteHandler = Callable[[Any], None]

ALL_METHODS = ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"]


def normalize_path(path: str) -> str:
    """"/users/" and "users" both become "/users"; "/" stays "/"."""
    return "/" + path.strip("/") if path.strip("/") else "/"


def as_route_handler(handler: Any) -> RouteHandler:
    """Accept either a callable taking a Context or an object with serve_http(ctx)."""
    serve = getattr(handler, "serve_http", None)
    if callable(serve):
        return serve
    if callable(handler):
        return handler
    raise TypeError(f"Not a route handler: {handler!r}")


def compile_pattern(path: str, prefix: bool = False) -> tuple[re.Pattern, List[str]]:
    """
    Compile a path template into a regex.

        "/users/:id/posts/:post_id"
            → ^/users/(?P<id>[^/]+)/posts/(?P<post_id>[^/]+)$

        "/static/*filepath"
            → ^/static/(?P<filepath>.*)$

    With ``prefix=True`` the template matches itself and anything below
    it, on segment boundaries: "/api" matches "/api" and "/api/users" but
    not "/apiary".

    Returns:
        Tuple of (compiled regex, parameter names in order)
    """
    param_names: List[str] = []
    regex_parts = ["^"]

    for segment in path.split("/"):
        if not segment:
            continue

        regex_parts.append("/")

        if segment.startswith(":"):
            param_names.append(segment[1:])
            regex_parts.append(f"(?P<{segment[1:]}>[^/]+)")

        elif segment.startswith("*"):
            param_name = segment[1:] or "wildcard"
            param_names.append(param_name)
            regex_parts.append(f"(?P<{param_name}>.*)")
            break  # wildcard consumes the rest

        else:
            regex_parts.append(re.escape(segment))

    if prefix:
        regex_parts.append("(?:/.*)?$" if len(regex_parts) > 1 else ".*$")
    else:
        if len(regex_parts) == 1:
            regex_parts.append("/")
        regex_parts.append("$")

    return re.compile("".join(regex_parts)), param_names


class Route:
    """
    A registered route: path matcher, method constraint and handler.

    Every builder method returns the Route so constraints chain. A route
    without a path matcher matches every path; one without methods
    matches every method.
    """

    def __init__(self, router: "Router"):
        self._router = router
        self._template: Optional[str] = None
        self._pattern: Optional[re.Pattern] = None
        self._param_names: List[str] = []
        self._is_prefix = False
        self._methods: Optional[Set[str]] = None
        self._handler: Optional[RouteHandler] = None
        self._subrouter: Optional["Router"] = None
        self._name: Optional[str] = None

    def __repr__(self) -> str:
        methods = ",".join(sorted(self._methods)) if self._methods else "ANY"
        template = self._template or "*"
        if self._is_prefix:
            template = template.rstrip("/") + "/..."
        return f"<Route {methods} {template}>"

    # =========================================================================
    # BUILDERS
    # =========================================================================

    def path(self, template: str) -> "Route":
        """Match exactly ``template`` (below the router's prefix)."""
        return self._set_template(template, prefix=False)

    def path_prefix(self, template: str) -> "Route":
        """Match ``template`` and every path below it."""
        return self._set_template(template, prefix=True)

    def _set_template(self, template: str, prefix: bool) -> "Route":
        self._template = self._router.prefix + template
        self._is_prefix = prefix
        self._pattern, self._param_names = compile_pattern(self._template, prefix)
        return self

    def methods(self, *methods: str) -> "Route":
        self._methods = {m.upper() for m in methods}
        return self

    def handler(self, handler: Any) -> "Route":
        self._handler = as_route_handler(handler)
        return self

    def handler_func(self, f: RouteHandler) -> "Route":
        self._handler = f
        return self

    def name(self, name: str) -> "Route":
        self._name = name
        self._router._named_routes[name] = self
        return self

    def subrouter(self) -> "Router":
        """
        Create a Router whose routes live under this route's path.

        This route then matches only when the subrouter has a match.
        """
        self._subrouter = Router(prefix=self._template or "", parent=self._router)
        return self._subrouter

    # =========================================================================
    # MATCHING
    # =========================================================================

    @property
    def template(self) -> Optional[str]:
        return self._template

    @property
    def is_prefix(self) -> bool:
        return self._is_prefix

    def get_handler(self) -> Optional[RouteHandler]:
        return self._handler

    def get_methods(self) -> Optional[Set[str]]:
        return self._methods

    def match_path(self, path: str) -> Optional[Dict[str, str]]:
        """Path parameters if the path matches, else None."""
        if self._pattern is None:
            return {}
        match = self._pattern.match(path)
        return match.groupdict() if match else None

    def accepts(self, method: str) -> bool:
        return self._methods is None or method.upper() in self._methods

    def url(self, **params: str) -> str:
        """Build this route's URL, substituting :name and *name parameters."""
        url = self._template or "/"
        for param_name, value in params.items():
            url = url.replace(f":{param_name}", value)
            url = url.replace(f"*{param_name}", value)
        return url


@dataclass
class RouteMatch:
    """Result of a successful route match."""
    route: Route
    params: Dict[str, str]


class Router:
    """
    Request router.

    Handlers are called as ``handler(ctx)``; path parameters are placed on
    ``ctx.path_params`` before the call.

    Usage:
        router = Router()
        router.handle_func("/users/:id", show_user).methods("GET")

        # As the last step of a request:
        router.serve_http_context(ctx)
    """

    def __init__(self, prefix: str = "", parent: Optional["Router"] = None):
        """
        Args:
            prefix: Path prefix prepended to every route template, used for
                    routers that serve a mounted sub-application.
            parent: Router this one was created from via Route.subrouter();
                    named routes are shared with it.
        """
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = parent._named_routes if parent else {}
        self.not_found_handler: Optional[RouteHandler] = None

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def new_route(self) -> Route:
        """Register an empty route and return it for configuration."""
        route = Route(self)
        self._routes.append(route)
        return route

    def handle(self, path: str, handler: Any) -> Route:
        """Register an object with serve_http(ctx), or any ctx callable, at ``path``."""
        return self.new_route().path(path).handler(handler)

    def handle_func(self, path: str, f: RouteHandler) -> Route:
        return self.new_route().path(path).handler_func(f)

    def path_prefix(self, prefix: str) -> Route:
        return self.new_route().path_prefix(prefix)

    def file_server(self, url_prefix: str, directory: str) -> Route:
        """Serve files from ``directory`` for every GET/HEAD below ``url_prefix``."""
        server = FileServer(directory, url_prefix=self.prefix + url_prefix)
        return self.path_prefix(url_prefix).methods("GET", "HEAD").handler(server)

    # =========================================================================
    # MATCHING & DISPATCH
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the first route matching both method and path.

        Routes with a subrouter delegate the decision to it.
        """
        path = normalize_path(path)

        for route in self._routes:
            params = route.match_path(path)
            if params is None or not route.accepts(method):
                continue

            if route._subrouter is not None:
                sub_match = route._subrouter.match(method, path)
                if sub_match is not None:
                    sub_match.params = {**params, **sub_match.params}
                    return sub_match
                continue

            if route.get_handler() is not None:
                return RouteMatch(route=route, params=params)

        return None

    def allowed_methods(self, path: str) -> List[str]:
        """Methods for which some route matches ``path`` (for 405 Allow headers)."""
        path = normalize_path(path)
        methods: Set[str] = set()

        for route in self._routes:
            if route.match_path(path) is None:
                continue
            if route._subrouter is not None:
                methods.update(route._subrouter.allowed_methods(path))
            elif route.get_methods() is None:
                return list(ALL_METHODS)
            else:
                methods.update(route.get_methods())

        return sorted(methods)

    def serve_http_context(self, ctx) -> None:
        """
        Dispatch the request carried by ``ctx``.

        On a miss the router answers 405 when the path is known under
        another method, otherwise calls ``not_found_handler`` or answers 404.
        """
        request = ctx.request
        match = self.match(request.method, request.path)

        if match is not None:
            logger.debug(f"{request.method} {request.path} → {match.route!r}")
            ctx.path_params = {**ctx.path_params, **match.params}
            match.route.get_handler()(ctx)
            return

        allowed = self.allowed_methods(request.path)
        if allowed:
            writer = ctx.response_writer
            writer.headers["Allow"] = ", ".join(allowed)
            writer.write_header(HTTPStatus.METHOD_NOT_ALLOWED)
            write_string(writer, "405 method not allowed")
            return

        if self.not_found_handler is not None:
            self.not_found_handler(ctx)
            return

        ctx.response_writer.write_header(HTTPStatus.NOT_FOUND)
        write_string(ctx.response_writer, "404 page not found")

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def url_for(self, name: str, **params: str) -> Optional[str]:
        """URL of a named route, or None if no route has that name."""
        route = self._named_routes.get(name)
        return route.url(**params) if route else None

    def routes(self) -> List[Route]:
        """All routes, including those of subrouters."""
        all_routes: List[Route] = []
        for route in self._routes:
            if route._subrouter is not None:
                all_routes.extend(route._subrouter.routes())
            else:
                all_routes.append(route)
        return all_routes
