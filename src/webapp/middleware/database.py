"""
Per-request database handle.

    def connect():
        return pool.getconn()

    app.use(Database(connect, close=pool.putconn))

    @app.get("/users")
    def list_users(ctx):
        rows = ctx.db().execute("SELECT ...")

The middleware knows nothing about drivers: ``connect`` returns whatever
object handlers should see from ``ctx.db()``, and ``close`` (if given)
receives it back once the rest of the chain is done, even if a handler
raised.
"""

import logging
from typing import Any, Callable, Optional

from .base import MiddlewareHandler, NextFunc
from ..context import KEY_DATABASE_OBJECT


logger = logging.getLogger(__name__)


class Database(MiddlewareHandler):

    def __init__(
        self,
        connect: Callable[[], Any],
        close: Optional[Callable[[Any], None]] = None,
    ):
        self.connect = connect
        self.close = close

    def __call__(self, ctx, next: NextFunc) -> None:
        handle = self.connect()
        ctx.set(KEY_DATABASE_OBJECT, handle)
        try:
            next(ctx)
        finally:
            if self.close is not None:
                try:
                    self.close(handle)
                except Exception:
                    logger.exception("Failed to release database handle")
