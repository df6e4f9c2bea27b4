"""
=============================================================================
APPLICATION CONFIGURATION
=============================================================================

Centralized configuration for a Webapp and the HTTP server that runs it.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    1. Defaults        AppConfig()
    2. Code            AppConfig(port=3000, log_level="DEBUG")
    3. Environment     AppConfig.from_env()     (WEBAPP_* variables)
    4. CLI             python -m webapp --port 3000

Configuration is validated once, at construction of the Webapp, so a bad
port or worker count fails at startup and never in the middle of serving.

=============================================================================
LISTEN ADDRESSES
=============================================================================

Webapp.run() takes a listen address in the familiar "host:port" form:

    "127.0.0.1:8080"  → ("127.0.0.1", 8080)
    ":8080"           → ("0.0.0.0", 8080)    all interfaces
    "localhost"       → ("localhost", <config port>)

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class AppConfig:
    """
    Configuration for a Webapp.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK     host, port, backlog, buffer_size, timeout
    HTTP        keep_alive, keep_alive_timeout, max_request_size
    THREADING   min_workers, max_workers
    VIEWS       views_dir, view_extension
    LOGGING     log_level, log_format
    RECOVERY    print_stack

    =========================================================================
    """

    # NETWORK SETTINGS

    host: str = "127.0.0.1"
    """IP address to bind to. "0.0.0.0" listens on every interface."""

    port: int = 8080
    """Port number to listen on."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """Receive buffer size in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds for the first request on a connection."""

    # HTTP SETTINGS

    keep_alive: bool = True
    """Allow several requests on the same TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle timeout between requests on a kept-alive connection."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    """Requests larger than this are rejected with 413."""

    # THREAD POOL SETTINGS

    min_workers: int = 4
    max_workers: int = 16

    # VIEWS

    views_dir: str = "./views"
    """Directory the default render engine loads templates from."""

    view_extension: str = ".html"
    """Appended to view names that have no extension."""

    # LOGGING

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: 'text' (Apache style) or 'json'."""

    # RECOVERY

    print_stack: bool = False
    """Include the stack trace in 500 response bodies (development only)."""

    # SERVER IDENTITY

    server_name: str = "webapp/1.0"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Create configuration from environment variables.

        WEBAPP_HOST, WEBAPP_PORT, WEBAPP_WORKERS, WEBAPP_TIMEOUT,
        WEBAPP_VIEWS_DIR, WEBAPP_LOG_LEVEL, WEBAPP_LOG_FORMAT,
        WEBAPP_PRINT_STACK ("1"/"true" to enable).
        """
        max_workers = int(os.getenv("WEBAPP_WORKERS", "16"))
        return cls(
            host=os.getenv("WEBAPP_HOST", "127.0.0.1"),
            port=int(os.getenv("WEBAPP_PORT", "8080")),
            min_workers=min(4, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("WEBAPP_TIMEOUT", "30")),
            views_dir=os.getenv("WEBAPP_VIEWS_DIR", "./views"),
            log_level=os.getenv("WEBAPP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("WEBAPP_LOG_FORMAT", "text"),
            print_stack=os.getenv("WEBAPP_PRINT_STACK", "").lower() in ("1", "true", "yes"),
        )

    def validate(self) -> None:
        """Validate configuration values, failing fast on the first bad one."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Unknown log_format: {self.log_format}")

    def parse_address(self, address: str) -> Tuple[str, int]:
        """
        Split a "host:port" listen address.

        Missing parts fall back to the configured values, except that an
        explicitly empty host (":8080") means every interface.

        Raises:
            ValueError: If the port part is not a number.
        """
        if not address:
            return self.host, self.port

        host, sep, port = address.rpartition(":")
        if not sep:
            # No colon at all: the whole thing is a host name
            return address, self.port

        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"Invalid listen address: {address!r}") from None

        return host or "0.0.0.0", port_number
