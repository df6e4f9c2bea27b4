"""
Static file middleware.

Answers GET/HEAD requests whose path names an existing file below the
directory; every other request continues down the chain untouched:

    app.use(Static("./public"))               # /app.css → ./public/app.css
    app.use(Static("./assets", prefix="/assets"))

Unlike Router.file_server(), a miss is not a 404: the router still gets
its chance.
"""

import logging

from .base import MiddlewareHandler, NextFunc
from ..http.static import FileServer, serve_file


logger = logging.getLogger(__name__)


class Static(MiddlewareHandler):

    def __init__(self, directory: str, prefix: str = "", cache_max_age: int = 3600):
        self.prefix = prefix.rstrip("/")
        self.files = FileServer(directory, url_prefix=self.prefix, cache_max_age=cache_max_age)

    def __call__(self, ctx, next: NextFunc) -> None:
        request = ctx.request
        if request.method not in ("GET", "HEAD"):
            next(ctx)
            return

        if self.prefix and not (
            request.path == self.prefix or request.path.startswith(self.prefix + "/")
        ):
            next(ctx)
            return

        try:
            path = self.files.resolve(request.path)
        except PermissionError:
            next(ctx)
            return

        if path.is_dir():
            path = path / "index.html"
        if not path.is_file():
            next(ctx)
            return

        logger.debug(f"Serving static file {path}")
        serve_file(ctx.response_writer, request, path, self.files.cache_max_age)
