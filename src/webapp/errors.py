"""
Per-request error types.

Every error a handler can trigger while talking to the Context (binding a
malformed body, encoding an unserializable model, rendering a missing view)
is raised as a WebappError subclass. The Recovery middleware catches them,
logs them, and turns them into a response carrying ``status_code``, so one
bad request never takes down the worker that served it.
"""

from http import HTTPStatus
from typing import Optional


class WebappError(Exception):
    """
    Base class for recoverable per-request errors.

    Carries the HTTP status the Recovery middleware should answer with.
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class BindError(WebappError):
    """Raised when a form or JSON body cannot be bound to the requested model."""

    status_code = HTTPStatus.BAD_REQUEST


class EncodeError(WebappError):
    """Raised when a response model cannot be serialized to JSON."""


class RenderError(WebappError):
    """Raised by a render engine when a view cannot be rendered."""


class DatabaseNotConfigured(WebappError):
    """Raised by Context.db() when no database middleware ran for the request."""
