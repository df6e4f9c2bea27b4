"""
Unit tests for HTTP request parsing.
"""

import pytest

from webapp.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/api/users"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.host == "localhost:8080"
        assert request.user_agent == "pytest"
        assert request.headers["accept"] == "application/json"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.get_query("page") == "1"
        assert request.get_query("limit") == "10"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_form_post(self, sample_form_request: bytes):
        request = parse_request(sample_form_request)

        assert request.method == "POST"
        assert request.content_type == "application/x-www-form-urlencoded"
        assert request.is_keep_alive is False
        assert request.post_form == {"name": ["John"], "tag": ["a", "b"]}
        assert request.form == {"name": ["John"], "tag": ["a", "b"], "source": ["web"]}

    def test_parse_path_with_special_chars(self):
        raw = b"GET /search?q=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/search"
        assert request.get_query("q") == "hello world"

    def test_parse_invalid_method(self):
        raw = b"INVALID /path HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET\r\nHost: test\r\n\r\n")

    def test_parse_unsupported_version(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    def test_parse_missing_headers(self):
        request = parse_request(b"GET / HTTP/1.1\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_parse_path_traversal_blocked(self):
        raw = b"GET /../../../etc/passwd HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert "path" in str(exc_info.value).lower()

    def test_parse_request_too_large(self):
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_http_version_parsing(self):
        # HTTP/1.0 closes by default, HTTP/1.1 keeps alive
        request_10 = parse_request(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        request_11 = parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.version == "HTTP/1.1"
        assert request_11.is_keep_alive is True

    def test_content_length_handling(self):
        body = b"test body"
        raw = b"POST / HTTP/1.1\r\nContent-Length: 9\r\n\r\n" + body

        request = parse_request(raw)
        assert request.content_length == 9
        assert request.body == body

    def test_incomplete_body(self):
        raw = b"POST / HTTP/1.1\r\nContent-Length: 20\r\n\r\nshort"

        with pytest.raises(HTTPParseError, match="Incomplete body"):
            parse_request(raw)

    def test_case_insensitive_headers(self):
        raw = b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html\r\n\r\n"
        request = parse_request(raw)

        assert request.content_type == "text/html"
        assert request.get_header("Content-Type") == "text/html"
        assert request.get_header("content-type") == "text/html"

    def test_repeated_headers_combined(self):
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"

        assert parse_request(raw).headers["accept"] == "a, b"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_query_first_value(self):
        request = HTTPRequest(
            method="GET",
            path="/",
            query_params={"tags": ["python", "http", "server"]},
        )

        assert request.get_query("tags") == "python"

    def test_post_form_requires_form_content_type(self):
        request = HTTPRequest(
            method="POST",
            path="/",
            headers={"content-type": "application/json"},
            body=b'{"a": 1}',
        )

        assert request.post_form == {}

    def test_post_form_invalid_utf8(self):
        request = HTTPRequest(
            method="POST",
            path="/",
            headers={"content-type": "application/x-www-form-urlencoded"},
            body=b"a=\xff",
        )

        with pytest.raises(HTTPParseError):
            request.post_form

    def test_content_type_strips_parameters(self):
        request = HTTPRequest(
            method="POST",
            path="/",
            headers={"content-type": "Application/JSON; charset=utf-8"},
        )

        assert request.content_type == "application/json"
        assert request.is_json is True

    def test_cookies(self):
        request = HTTPRequest(
            method="GET",
            path="/",
            headers={"cookie": "session=abc123; theme=dark"},
        )

        assert request.cookies == {"session": "abc123", "theme": "dark"}
