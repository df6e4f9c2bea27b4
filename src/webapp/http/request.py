"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read by a Connection into an HTTPRequest.

    Raw bytes                      HTTPRequest
    b"POST /login HTTP/1.1\r\n     HTTPRequest(
      Host: example.com\r\n          method="POST",
      Content-Type: ...\r\n          path="/login",
      \r\n                           headers={"host": ..., ...},
      user=ann&remember=1"           body=b"user=ann&remember=1",
                                   )

The request is the read-only half of a Context: handlers reach it through
``ctx.request`` and usually only through the helpers on Context
(``form()``, ``bind_form()``, ``bind_json()``).

=============================================================================
FORM DATA
=============================================================================

Form values are exposed the way browsers send them, as lists because a
key may repeat:

    ?tag=a&tag=b            → {"tag": ["a", "b"]}

    post_form   body only (application/x-www-form-urlencoded)
    form        query string + body, body values first

=============================================================================
"""

from dataclasses import dataclass, field
from http.cookies import SimpleCookie
from typing import Optional, Dict, List
from urllib.parse import parse_qs, urlparse, unquote
import re


FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code that should be returned to the client:
    400 for bad syntax, 405 for an unknown method, 413 for an oversized
    request and 505 for an unsupported HTTP version.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Header names are stored lowercase (HTTP headers are case-insensitive),
    query parameters as lists of values.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)

    _post_form: Optional[Dict[str, List[str]]] = field(default=None, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json", not "...; charset=utf-8")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection open unless told "close";
        HTTP/1.0 closes it unless told "keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    @property
    def post_form(self) -> Dict[str, List[str]]:
        """
        Form values decoded from an urlencoded body.

        Parsed once and cached. Bodies of any other content type yield an
        empty mapping.

        Raises:
            HTTPParseError: If the body is not valid UTF-8.
        """
        if self._post_form is None:
            if self.content_type == FORM_CONTENT_TYPE and self.body:
                try:
                    text = self.body.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise HTTPParseError(f"Invalid form body: {e}")
                self._post_form = parse_qs(text, keep_blank_values=True)
            else:
                self._post_form = {}
        return self._post_form

    @property
    def form(self) -> Dict[str, List[str]]:
        """Body form values followed by query string values for each key."""
        merged: Dict[str, List[str]] = {k: list(v) for k, v in self.post_form.items()}
        for name, values in self.query_params.items():
            merged.setdefault(name, []).extend(values)
        return merged

    @property
    def cookies(self) -> Dict[str, str]:
        jar = SimpleCookie()
        jar.load(self.headers.get("cookie", ""))
        return {name: morsel.value for name, morsel in jar.items()}

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter, or ``default``."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    REQUEST_LINE_PATTERN: METHOD SP REQUEST-URI SP HTTP-VERSION
    HEADER_PATTERN:       field-name ":" OWS field-value

    Security limits: requests over ``max_request_size`` are rejected with
    413, paths containing ".." with 400.
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, List[str]], str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Obsolete line folding (continuation lines starting with whitespace)
        is joined onto the previous header; repeated headers are combined
        with ", ".
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed header lines

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
