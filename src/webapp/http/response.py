"""
=============================================================================
RESPONSE WRITER
=============================================================================

Handlers never build and return a response object. They WRITE to the
ResponseWriter held by their Context, and the server serializes whatever
was written once the middleware chain has finished:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       RESPONSE LIFECYCLE                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   handler(ctx)                                                       │
    │     ctx.response_writer.headers["X-Thing"] = "1"                     │
    │     ctx.response_writer.write_header(201)   ← status is now fixed   │
    │     ctx.response_writer.write(b"created")   ← body is buffered      │
    │                                                                      │
    │   chain returns                                                      │
    │     server: writer.to_bytes() → socket.sendall()                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Because the status is fixed by the first write_header() call (or implied
200 by the first write()), middleware can ask ``writer.written`` to know
whether a downstream step already produced a response. That is how the
Recovery middleware decides whether it may still send a 500.

=============================================================================
"""

import json
import logging
from email.utils import formatdate
from http import HTTPStatus
from typing import Any, Dict, Optional, Union


logger = logging.getLogger(__name__)


class ResponseWriter:
    """
    Buffers the status, headers and body of one response.

    Attributes:
        headers: Response headers. Mutable until the response is sent.
        status: Status code, 0 until write_header() or write() is called.
    """

    def __init__(self, version: str = "HTTP/1.1"):
        self.version = version
        self.headers: Dict[str, str] = {}
        self.status: int = 0
        self._body = bytearray()

    @property
    def written(self) -> bool:
        """True once a status has been written."""
        return self.status != 0

    @property
    def size(self) -> int:
        """Number of body bytes written so far."""
        return len(self._body)

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def write_header(self, status_code: int) -> None:
        """
        Fix the response status. The first call wins; later calls are
        ignored and logged, matching how a streamed status line cannot be
        taken back once sent.
        """
        if self.written:
            logger.warning(
                f"Superfluous write_header({status_code}), status already {self.status}"
            )
            return
        self.status = int(status_code)

    def write(self, data: Union[str, bytes]) -> int:
        """Append to the body, implying a 200 status if none was written."""
        if not self.written:
            self.write_header(HTTPStatus.OK)
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._body.extend(data)
        return len(data)

    def set_header(self, name: str, value: str) -> "ResponseWriter":
        self.headers[name] = value
        return self

    @property
    def status_line(self) -> str:
        status = self.status or HTTPStatus.OK
        try:
            phrase = HTTPStatus(status).phrase
        except ValueError:
            phrase = "Unknown"
        return f"{self.version} {status} {phrase}"

    def to_bytes(self, server_name: str = "webapp/1.0") -> bytes:
        """
        Serialize for the socket.

        Content-Length, Date and Server are filled in unless a handler set
        them; a writer nobody wrote to serializes as an empty 200.
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self._body)))
        response_headers.setdefault("Date", formatdate(usegmt=True))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        return "\r\n".join(lines).encode("utf-8") + b"\r\n" + bytes(self._body)


def write_string(
    writer: ResponseWriter,
    text: str,
    content_type: Optional[str] = "text/plain; charset=utf-8"
) -> int:
    """Write text, setting Content-Type unless a handler already did."""
    if content_type:
        writer.headers.setdefault("Content-Type", content_type)
    return writer.write(text)


def write_json(writer: ResponseWriter, data: Any, pretty: bool = False) -> int:
    """
    Write plain Python data (dicts, lists, strings, numbers) as JSON.

    For models (pydantic, dataclasses) use Context.json(), which knows how
    to encode them.
    """
    body = json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)
    writer.headers.setdefault("Content-Type", "application/json; charset=utf-8")
    return writer.write(body)
