"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

The pieces of HTTP the application core talks to:

    request.py    HTTPRequest + RequestParser (bytes → request)
    response.py   ResponseWriter (what handlers write, serialized to bytes)
    router.py     Router / Route (request → route handler)
    static.py     File serving with ETags

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import ResponseWriter, write_string, write_json
from .router import Router, Route, RouteMatch, compile_pattern
from .static import FileServer, serve_file, get_content_type

__all__ = [
    # Request
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response
    "ResponseWriter",
    "write_string",
    "write_json",

    # Routing
    "Router",
    "Route",
    "RouteMatch",
    "compile_pattern",

    # Static files
    "FileServer",
    "serve_file",
    "get_content_type",
]
