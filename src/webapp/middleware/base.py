"""
=============================================================================
HANDLERS, MIDDLEWARE AND THE CHAIN
=============================================================================

Two shapes of handler exist:

    Handler              serve_http(ctx)            does its work, done
    MiddlewareHandler    __call__(ctx, next)        decides if and when the
                                                    rest of the chain runs

A list of middleware handlers is compiled ONCE (every time the list
changes, never per request) into a chain of Middleware nodes. Each node
holds one handler and the rest of the chain:

    build([A, B, C])

    ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌──────────┐
    │ A | rest─┼───►│ B | rest─┼───►│ C | rest─┼───►│   void   │
    └──────────┘    └──────────┘    └──────────┘    └──────────┘

Calling ``chain.serve_http(ctx)`` calls ``A(ctx, next)``; calling
``next(ctx)`` inside A serves the rest of the chain, starting with B.
The last node is a no-op, so a ``next`` past the real work does nothing.

=============================================================================
EXECUTION ORDER (THE ONION)
=============================================================================

    def A(ctx, next):                 order of execution
        before("A")                   1
        next(ctx)          ─────►       def B(ctx, next):
                                            before("B")          2
                                            next(ctx)   ───► ... 3
                                            after("B")           4
        after("A")                    5

Pre-``next`` code runs in registration order, post-``next`` code in
reverse order. A middleware that never calls ``next`` stops the chain
(everything after it is skipped, everything before it still unwinds);
one that calls ``next`` twice replays the rest of the chain.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence, Union
import inspect
import logging


logger = logging.getLogger(__name__)


# The continuation handed to every middleware: call it to run the rest of
# the chain with the (shared) request Context.
NextFunc = Callable[[Any], None]

# Anything usable as a middleware: a MiddlewareHandler or a plain
# function of (ctx, next).
MiddlewareLike = Union["MiddlewareHandler", Callable[[Any, NextFunc], None]]


class Handler(ABC):
    """A terminal unit of work over a Context. It has no continuation."""

    @abstractmethod
    def serve_http(self, ctx) -> None:
        pass


class HandlerFunc(Handler):
    """Adapts a plain ``f(ctx)`` function to the Handler interface."""

    def __init__(self, f: Callable[[Any], None]):
        self._f = f

    def serve_http(self, ctx) -> None:
        self._f(ctx)

    def __call__(self, ctx) -> None:
        self._f(ctx)


class MiddlewareHandler(ABC):
    """
    One step of a middleware chain.

    Implementations receive the request Context and ``next``, the rest of
    the chain:

        class Timer(MiddlewareHandler):
            def __call__(self, ctx, next):
                start = time.monotonic()
                next(ctx)
                ctx.response_writer.headers["X-Elapsed"] = f"{time.monotonic() - start:.3f}"
    """

    @abstractmethod
    def __call__(self, ctx, next: NextFunc) -> None:
        pass

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


class FunctionMiddleware(MiddlewareHandler):
    """Wraps a plain ``func(ctx, next)`` as a MiddlewareHandler."""

    def __init__(self, func: Callable[[Any, NextFunc], None], name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", repr(func))

    def __call__(self, ctx, next: NextFunc) -> None:
        self._func(ctx, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: Callable[[Any, NextFunc], None]) -> FunctionMiddleware:
    """
    Decorator form of FunctionMiddleware.

        @function_middleware
        def powered_by(ctx, next):
            ctx.response_writer.headers["X-Powered-By"] = "webapp"
            next(ctx)

        app.use(powered_by)
    """
    return FunctionMiddleware(func)


def as_middleware(handler: MiddlewareLike) -> MiddlewareHandler:
    """
    Return ``handler`` as a MiddlewareHandler, wrapping plain functions.

    Terminal handlers are refused here rather than failing on the first
    request: a Handler or an ``f(ctx)`` function belongs in use_handler()
    or use_handler_func().

    Raises:
        TypeError: If ``handler`` cannot be called as ``handler(ctx, next)``.
    """
    if isinstance(handler, MiddlewareHandler):
        return handler
    if isinstance(handler, Handler):
        raise TypeError(
            f"{handler!r} is a terminal Handler, not a middleware; register it with use_handler()"
        )
    if not callable(handler):
        raise TypeError(f"Not a middleware handler: {handler!r}")
    if not _accepts_ctx_and_next(handler):
        raise TypeError(
            f"{getattr(handler, '__name__', handler)!r} cannot be called as (ctx, next); "
            f"register an f(ctx) function with use_handler_func()"
        )
    return FunctionMiddleware(handler)


def _accepts_ctx_and_next(func: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(func)
    except (ValueError, TypeError):
        # Some builtins have no introspectable signature
        return True
    try:
        signature.bind(None, None)
    except TypeError:
        return False
    return True


def wrap(handler: Union[Handler, Callable[[Any], None]]) -> MiddlewareHandler:
    """
    Lift a terminal Handler into a middleware step.

    The handler runs, then the rest of the chain runs unconditionally.
    """
    serve = handler.serve_http if isinstance(handler, Handler) else handler
    name = getattr(handler, "__name__", handler.__class__.__name__)

    def lifted(ctx, next: NextFunc) -> None:
        serve(ctx)
        next(ctx)

    return FunctionMiddleware(lifted, name=name)


def _stop(ctx) -> None:
    """The continuation of the terminal node: nothing left to run."""


class Middleware:
    """
    One compiled node of a chain: a handler and the rest of the chain.

    Nodes are never modified after construction; Webapp.use() builds a
    new chain instead, so a request already being served keeps the chain
    it started with.
    """

    __slots__ = ("handler", "rest")

    def __init__(self, handler: MiddlewareHandler, rest: Optional["Middleware"] = None):
        self.handler = handler
        self.rest = rest

    def serve_http(self, ctx) -> None:
        self.handler(ctx, self.rest.serve_http if self.rest is not None else _stop)

    def __iter__(self):
        """The handlers of this chain, terminal no-op excluded."""
        node: Optional[Middleware] = self
        while node is not None and node.rest is not None:
            yield node.handler
            node = node.rest

    def __len__(self) -> int:
        return sum(1 for _ in self)


class _Void(MiddlewareHandler):
    def __call__(self, ctx, next: NextFunc) -> None:
        pass

    @property
    def name(self) -> str:
        return "void"


def void_middleware() -> Middleware:
    """The terminal node: does nothing and absorbs any further ``next``."""
    return Middleware(_Void(), None)


def build(handlers: Sequence[MiddlewareHandler]) -> Middleware:
    """
    Compile ``handlers`` into a chain, first handler outermost.

    =========================================================================
    RIGHT FOLD
    =========================================================================

    Given [A, B, C]:

        chain = void
        chain = Middleware(C, chain)      # C → void
        chain = Middleware(B, chain)      # B → C → void
        chain = Middleware(A, chain)      # A → B → C → void

    An empty list compiles to the void node alone.

    =========================================================================
    """
    chain = void_middleware()
    for handler in reversed(handlers):
        chain = Middleware(handler, chain)
    logger.debug(f"Built middleware chain: {' -> '.join(handler_names(handlers)) or 'void'}")
    return chain


def handler_names(handlers: List[MiddlewareHandler]) -> List[str]:
    return [getattr(h, "name", repr(h)) for h in handlers]
