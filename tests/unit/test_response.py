"""
Unit tests for the response writer.
"""

import json

from webapp.http.response import ResponseWriter, write_json, write_string


class TestResponseWriter:
    """Tests for ResponseWriter class."""

    def test_initial_state(self):
        writer = ResponseWriter()

        assert writer.status == 0
        assert writer.written is False
        assert writer.size == 0
        assert writer.body == b""

    def test_write_header_first_call_wins(self):
        writer = ResponseWriter()
        writer.write_header(201)
        writer.write_header(500)

        assert writer.status == 201

    def test_write_implies_200(self):
        writer = ResponseWriter()
        written = writer.write("héllo")

        assert writer.status == 200
        assert written == len("héllo".encode("utf-8"))
        assert writer.size == written

    def test_write_after_error_status_appends(self):
        writer = ResponseWriter()
        writer.write_header(404)
        writer.write(b"not ")
        writer.write(b"found")

        assert writer.status == 404
        assert writer.body == b"not found"

    def test_headers_mutable_after_status(self):
        writer = ResponseWriter()
        writer.write_header(200)
        writer.set_header("X-Late", "yes").set_header("X-Later", "also")

        assert writer.headers == {"X-Late": "yes", "X-Later": "also"}

    def test_status_line(self):
        writer = ResponseWriter("HTTP/1.0")
        writer.write_header(404)

        assert writer.status_line == "HTTP/1.0 404 Not Found"

    def test_status_line_unknown_code(self):
        writer = ResponseWriter()
        writer.write_header(599)

        assert writer.status_line == "HTTP/1.1 599 Unknown"

    def test_to_bytes(self):
        writer = ResponseWriter()
        writer.headers["Content-Type"] = "text/plain"
        writer.write(b"hello")

        raw = writer.to_bytes("test/1.0")
        head, body = raw.split(b"\r\n\r\n", 1)
        lines = head.decode().split("\r\n")

        assert lines[0] == "HTTP/1.1 200 OK"
        assert "Content-Type: text/plain" in lines
        assert "Content-Length: 5" in lines
        assert "Server: test/1.0" in lines
        assert any(line.startswith("Date: ") for line in lines)
        assert body == b"hello"

    def test_to_bytes_unwritten_is_empty_200(self):
        raw = ResponseWriter().to_bytes()

        assert raw.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Content-Length: 0\r\n" in raw
        assert raw.endswith(b"\r\n\r\n")

    def test_to_bytes_keeps_handler_headers(self):
        writer = ResponseWriter()
        writer.headers["Server"] = "custom"
        writer.write_header(204)

        assert b"Server: custom\r\n" in writer.to_bytes("ignored")


class TestWriteHelpers:
    """Tests for write_string and write_json."""

    def test_write_string_sets_default_type(self):
        writer = ResponseWriter()
        write_string(writer, "hi")

        assert writer.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert writer.body == b"hi"

    def test_write_string_keeps_existing_type(self):
        writer = ResponseWriter()
        writer.headers["Content-Type"] = "text/html"
        write_string(writer, "<b>hi</b>")

        assert writer.headers["Content-Type"] == "text/html"

    def test_write_json(self):
        writer = ResponseWriter()
        write_json(writer, {"name": "Zoë", "n": [1, 2]})

        assert writer.headers["Content-Type"].startswith("application/json")
        assert json.loads(writer.body) == {"name": "Zoë", "n": [1, 2]}

    def test_write_json_pretty(self):
        writer = ResponseWriter()
        write_json(writer, {"a": 1}, pretty=True)

        assert writer.body == b'{\n  "a": 1\n}'
