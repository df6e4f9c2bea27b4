"""
=============================================================================
STATIC FILE SERVING
=============================================================================

Two entry points share one implementation:

    serve_file(writer, request, path)
        Used by Context.file() to answer with one specific file.

    FileServer(root_dir, url_prefix)
        A route handler serving a whole directory tree; installed by
        Router.file_server("/static", "./public").

=============================================================================
CACHING
=============================================================================

Every file is sent with an ETag built from its mtime and size. A client
that already has that version sends it back in If-None-Match and gets an
empty 304 Not Modified instead of the file.

=============================================================================
SECURITY
=============================================================================

FileServer resolves the requested path (following ".." and symlinks) and
refuses anything that lands outside its root directory with 403.

=============================================================================
"""

import logging
import mimetypes
from email.utils import formatdate
from http import HTTPStatus
from pathlib import Path
from typing import Union

from .request import HTTPRequest
from .response import ResponseWriter, write_string


logger = logging.getLogger(__name__)

TEXT_TYPES = {"application/json", "application/javascript", "application/xml", "image/svg+xml"}


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """Content-Type for a file name, with a charset for text types."""
    mime_type, _ = mimetypes.guess_type(str(path))
    mime_type = mime_type or "application/octet-stream"
    if mime_type.startswith("text/") or mime_type in TEXT_TYPES:
        return f"{mime_type}; charset={charset}"
    return mime_type


def serve_file(
    writer: ResponseWriter,
    request: HTTPRequest,
    path: Union[str, Path],
    cache_max_age: int = 3600,
) -> None:
    """
    Write the file at ``path`` to ``writer``.

    Missing files answer 404, unreadable ones 403. A matching
    If-None-Match answers 304 with no body.
    """
    path = Path(path)
    if path.is_dir():
        index = path / "index.html"
        if not index.is_file():
            writer.write_header(HTTPStatus.FORBIDDEN)
            write_string(writer, "Directory listing not allowed")
            return
        path = index

    if not path.is_file():
        writer.write_header(HTTPStatus.NOT_FOUND)
        write_string(writer, "404 page not found")
        return

    try:
        stat = path.stat()
        etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'

        if request.get_header("if-none-match") == etag:
            writer.headers["ETag"] = etag
            writer.write_header(HTTPStatus.NOT_MODIFIED)
            return

        content = path.read_bytes()
    except PermissionError:
        writer.write_header(HTTPStatus.FORBIDDEN)
        write_string(writer, "Permission denied")
        return

    writer.headers["Content-Type"] = get_content_type(path)
    writer.headers["ETag"] = etag
    writer.headers["Last-Modified"] = formatdate(stat.st_mtime, usegmt=True)
    writer.headers["Cache-Control"] = f"public, max-age={cache_max_age}"
    writer.write_header(HTTPStatus.OK)
    if request.method != "HEAD":
        writer.write(content)


class FileServer:
    """
    Serves files below ``root_dir`` for request paths below ``url_prefix``.

        GET /static/css/site.css  →  <root_dir>/css/site.css
    """

    def __init__(self, root_dir: Union[str, Path], url_prefix: str = "", cache_max_age: int = 3600):
        self.root_dir = Path(root_dir).resolve()
        self.url_prefix = url_prefix.rstrip("/")
        self.cache_max_age = cache_max_age

    def resolve(self, url_path: str) -> Path:
        """
        Map a request path to a file below root_dir.

        Raises:
            PermissionError: If the path escapes root_dir.
        """
        relative = url_path
        if self.url_prefix and relative.startswith(self.url_prefix):
            relative = relative[len(self.url_prefix):]

        full_path = (self.root_dir / relative.lstrip("/")).resolve()
        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            raise PermissionError(f"Path escapes {self.root_dir}: {url_path}") from None
        return full_path

    def serve_http(self, ctx) -> None:
        writer, request = ctx.response_writer, ctx.request
        try:
            full_path = self.resolve(request.path)
        except PermissionError:
            logger.warning(f"Path traversal attempt: {request.path}")
            writer.write_header(HTTPStatus.FORBIDDEN)
            write_string(writer, "Access denied")
            return

        serve_file(writer, request, full_path, self.cache_max_age)

    __call__ = serve_http
