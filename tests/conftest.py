"""
pytest configuration and fixtures.
"""

import http.client
import threading
from typing import Callable, Dict, Generator, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from webapp import AppConfig, HTTPServer, Webapp
from webapp.http import HTTPRequest, ResponseWriter


def build_request(
    method: str = "GET",
    target: str = "/",
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
) -> HTTPRequest:
    """An HTTPRequest as the parser would produce it; ``target`` may carry a query."""
    parts = urlsplit(target)
    headers = {name.lower(): value for name, value in (headers or {}).items()}
    if body:
        headers.setdefault("content-length", str(len(body)))
    return HTTPRequest(
        method=method,
        path=parts.path or "/",
        headers=headers,
        query_params=parse_qs(parts.query, keep_blank_values=True),
        body=body,
        client_address=("127.0.0.1", 50000),
    )


@pytest.fixture
def make_request() -> Callable[..., HTTPRequest]:
    """Factory for in-memory requests."""
    return build_request


@pytest.fixture
def dispatch() -> Callable[..., ResponseWriter]:
    """
    Run one request through an app without sockets:

        writer = dispatch(app, "GET", "/users/1")
    """
    def _dispatch(app: Webapp, method: str = "GET", target: str = "/", **kwargs) -> ResponseWriter:
        writer = ResponseWriter()
        app.serve_http(writer, build_request(method, target, **kwargs))
        return writer

    return _dispatch


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_form_request() -> bytes:
    """Sample HTTP POST request with an urlencoded body."""
    body = b"name=John&tag=a&tag=b"
    head = (
        "POST /users?source=web HTTP/1.1\r\n"
        "Host: localhost:8080\r\n"
        "Content-Type: application/x-www-form-urlencoded\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode() + body


@pytest.fixture
def config() -> AppConfig:
    """Test configuration: any free port, small pool, short timeouts."""
    return AppConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


class LiveServer:
    """Runs an app's HTTPServer in a background thread."""

    def __init__(self, app: Webapp, config: AppConfig):
        app.prepare()
        self.server = HTTPServer(app.serve_http, config)
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "LiveServer":
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self) -> None:
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def connect(self) -> http.client.HTTPConnection:
        return http.client.HTTPConnection("127.0.0.1", self.port, timeout=5.0)

    def request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, List[Tuple[str, str]], bytes]:
        """One request on a fresh connection: (status, headers, body)."""
        conn = self.connect()
        try:
            conn.request(method, path, body=body, headers=headers or {})
            response = conn.getresponse()
            return response.status, response.getheaders(), response.read()
        finally:
            conn.close()


@pytest.fixture
def live_server(config: AppConfig) -> Generator[Callable[[Webapp], LiveServer], None, None]:
    """
    Start apps on real sockets; every server started is stopped afterwards.

        server = live_server(app)
        status, headers, body = server.request("GET", "/")
    """
    servers: List[LiveServer] = []

    def _start(app: Webapp) -> LiveServer:
        server = LiveServer(app, config).start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.stop()
