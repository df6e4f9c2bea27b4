"""
=============================================================================
HTTP SERVER
=============================================================================

Runs a request handler over real sockets. The handler is any callable
taking ``(writer, request)``; for a Webapp that is ``app.serve_http``:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       REQUEST FLOW                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer.accept()                                              │
    │        │                                                             │
    │        ▼                                                             │
    │   ThreadPool.submit(_process_connection)                             │
    │        │                                                             │
    │        ▼  (worker thread, once per request on the connection)        │
    │   Connection.read_request() → RequestParser.parse()                  │
    │        │                                                             │
    │        ▼                                                             │
    │   handler(ResponseWriter, HTTPRequest)   ← the application          │
    │        │                                                             │
    │        ▼                                                             │
    │   writer.to_bytes() → Connection.send_response()                     │
    │        │                                                             │
    │        └─► keep-alive? read the next request : close                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

An exception escaping the handler (an application without the Recovery
middleware) is logged and answered with a bare 500 when nothing was
written yet; the connection and the server carry on.

=============================================================================
"""

import logging
from functools import partial
from http import HTTPStatus
from typing import Callable, Optional, Tuple

from .config import AppConfig
from .core import Connection, ConnectionState, SocketServer, ThreadPool
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import ResponseWriter, write_string


logger = logging.getLogger(__name__)

RequestHandler = Callable[[ResponseWriter, HTTPRequest], None]


class HTTPServer:
    """
    Multi-threaded HTTP/1.1 server around a single request handler.

    Usage:
        server = HTTPServer(app.serve_http, AppConfig(port=3000))
        server.serve_forever()      # blocks; shutdown() from another thread
    """

    def __init__(self, handler: RequestHandler, config: Optional[AppConfig] = None):
        self.handler = handler
        self.config = config or AppConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._running = False

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port) once listening; useful with port 0."""
        return self._socket_server.bound_address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def serve_forever(self) -> None:
        """
        Listen and serve until shutdown() or SIGINT/SIGTERM.

        Raises:
            OSError: If the address cannot be bound.
        """
        self._running = True
        self._thread_pool.start()
        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self) -> None:
        """Stop accepting connections; serve_forever() returns shortly after."""
        self._socket_server.shutdown()

    def _shutdown(self) -> None:
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=30.0)
        logger.info("Server stopped")

    def _handle_connection(self, conn: Connection) -> None:
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            on_drop=partial(self._reject, conn, "Server shutting down"),
        )
        if not submitted:
            logger.warning(
                f"[{conn.id}] All {self._thread_pool.size} workers busy and queue full, "
                f"rejecting connection"
            )
            self._reject(conn, "Server overloaded")

    def _reject(self, conn: Connection, message: str) -> None:
        """Answer 503 and close a connection that no worker will serve."""
        self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, message)
        conn.close()

    def _process_connection(self, conn: Connection) -> None:
        with conn:
            while True:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        self._send_error(conn, e.status_code, str(e))
                        break

                    conn.state = ConnectionState.PROCESSING
                    writer = self._dispatch(conn, request)
                    keep_alive = request.is_keep_alive and self.config.keep_alive and self._running

                    if keep_alive:
                        writer.headers.setdefault("Connection", "keep-alive")
                        writer.headers.setdefault(
                            "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        writer.headers["Connection"] = "close"

                    if not conn.send_response(writer.to_bytes(self.config.server_name)):
                        break
                    if not keep_alive:
                        break
                    conn.set_keep_alive()

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except ValueError as e:
                    # Connection.read_request() refuses oversized requests
                    self._send_error(conn, HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(e))
                    break

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> ResponseWriter:
        writer = ResponseWriter(request.version)
        try:
            self.handler(writer, request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Unhandled error in {request.method} {request.path}: {e}")
            if not writer.written:
                writer = ResponseWriter(request.version)
                writer.write_header(HTTPStatus.INTERNAL_SERVER_ERROR)
                write_string(writer, "500 Internal Server Error")
        return writer

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        """Answer errors that happen before a handler runs (parse errors, timeouts)."""
        writer = ResponseWriter()
        writer.headers["Connection"] = "close"
        writer.write_header(status)
        write_string(writer, message)
        conn.send_response(writer.to_bytes(self.config.server_name))
