"""
Unit tests for the per-request Context.
"""

import json
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

import pytest
from pydantic import BaseModel

from webapp import (
    AppConfig,
    BindError,
    Context,
    DatabaseNotConfigured,
    EncodeError,
    KEY_DATABASE_OBJECT,
    RenderError,
    UserManager,
    new,
)
from webapp.http import ResponseWriter
from webapp.session import AnonymousUser


class Signup(BaseModel):
    name: str
    age: int
    tags: List[str] = []


@dataclass
class Point:
    x: int
    y: int


@pytest.fixture
def app(tmp_path):
    return new(config=AppConfig(views_dir=str(tmp_path)))


@pytest.fixture
def make_context(app, make_request):
    def _make(method="GET", target="/", **kwargs) -> Context:
        return Context(app, ResponseWriter(), make_request(method, target, **kwargs))
    return _make


FORM = {"Content-Type": "application/x-www-form-urlencoded"}
JSON = {"Content-Type": "application/json"}


class TestRegister:
    """Tests for the request-scoped key/value register."""

    def test_get_before_set_returns_default(self, make_context):
        ctx = make_context()

        assert ctx.get("missing") is None
        assert ctx.get("missing", 5) == 5
        assert ctx.get_all() == {}
        assert ctx._register is None

    def test_set_and_get(self, make_context):
        ctx = make_context()
        ctx.set("x", 1)

        assert ctx.get("x") == 1
        assert ctx.get_all() == {"x": 1}

    def test_has_distinguishes_none(self, make_context):
        ctx = make_context()
        ctx.set("empty", None)

        assert ctx.has("empty") is True
        assert ctx.has("missing") is False
        assert ctx.get("empty", "default") is None

    def test_get_all_is_a_copy(self, make_context):
        ctx = make_context()
        ctx.set("x", 1)
        ctx.get_all()["x"] = 2

        assert ctx.get("x") == 1

    def test_defaults(self, make_context, app):
        ctx = make_context()

        assert ctx.app is app
        assert ctx.session is None
        assert ctx.session_id == ""
        assert isinstance(ctx.user, AnonymousUser)
        assert ctx.path_params == {}

    def test_http(self, make_context):
        ctx = make_context()
        writer, request = ctx.http()

        assert writer is ctx.response_writer
        assert request is ctx.request


class TestResponses:
    """Tests for the response helpers."""

    def test_error(self, make_context):
        ctx = make_context()
        ctx.error("nope", 403)

        assert ctx.response_writer.status == 403
        assert ctx.response_writer.body == b"nope"
        assert ctx.response_writer.headers["Content-Type"].startswith("text/plain")

    def test_view_string_formats(self, make_context):
        ctx = make_context()
        ctx.view_string("Hello, %s! You are %d.", "Ann", 30)

        assert ctx.response_writer.status == 200
        assert ctx.response_writer.body == b"Hello, Ann! You are 30."

    def test_view_string_without_args_keeps_percent(self, make_context):
        ctx = make_context()
        ctx.view_string("100%")

        assert ctx.response_writer.body == b"100%"

    def test_json_dict(self, make_context):
        ctx = make_context()
        ctx.json({"id": 1, "tags": ["a"]})

        assert ctx.response_writer.status == 200
        assert ctx.response_writer.headers["Content-Type"].startswith("application/json")
        assert json.loads(ctx.response_writer.body) == {"id": 1, "tags": ["a"]}

    def test_json_models(self, make_context):
        ctx = make_context()
        ctx.json([Signup(name="Ann", age=3), Point(1, 2)])

        assert json.loads(ctx.response_writer.body) == [
            {"name": "Ann", "age": 3, "tags": []},
            {"x": 1, "y": 2},
        ]

    def test_json_unencodable_raises_before_writing(self, make_context):
        ctx = make_context()

        with pytest.raises(EncodeError) as exc_info:
            ctx.json({"handle": object()})

        assert exc_info.value.status_code == 500
        assert ctx.response_writer.written is False

    def test_redirect_get(self, make_context):
        ctx = make_context("GET", "/old")
        ctx.redirect("/new")

        writer = ctx.response_writer
        assert writer.status == 303
        assert writer.headers["Location"] == "/new"
        assert b"/new" in writer.body

    def test_redirect_post_has_no_body(self, make_context):
        ctx = make_context("POST", "/login")
        ctx.redirect("/home")

        assert ctx.response_writer.status == 303
        assert ctx.response_writer.body == b""

    def test_file(self, make_context, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        ctx = make_context()
        ctx.file(str(path))

        assert ctx.response_writer.status == 200
        assert ctx.response_writer.body == b"hello"

    def test_file_missing(self, make_context, tmp_path):
        ctx = make_context()
        ctx.file(str(tmp_path / "nope.txt"))

        assert ctx.response_writer.status == 404


class TestView:
    """Tests for template rendering through the app's render engine."""

    def test_view_renders_model(self, make_context, tmp_path):
        (tmp_path / "hello.html").write_text("<p>{{ name }} is {{ age }}</p>")

        ctx = make_context()
        ctx.view("hello", Signup(name="<Ann>", age=3))

        writer = ctx.response_writer
        assert writer.status == 200
        assert writer.headers["Content-Type"].startswith("text/html")
        assert writer.body == b"<p>&lt;Ann&gt; is 3</p>"

    def test_view_dict_model_and_ctx(self, make_context, tmp_path):
        (tmp_path / "who.html").write_text(
            "{{ greeting }} {{ 'in' if ctx.is_authenticated() else 'out' }}"
        )

        ctx = make_context()
        ctx.view("who", {"greeting": "hi"})

        assert ctx.response_writer.body == b"hi out"

    def test_view_missing_template(self, make_context):
        ctx = make_context()

        with pytest.raises(RenderError):
            ctx.view("does-not-exist")

        assert ctx.response_writer.written is False

    def test_view_broken_template(self, make_context, tmp_path):
        (tmp_path / "broken.html").write_text("{% if %}")
        ctx = make_context()

        with pytest.raises(RenderError):
            ctx.view("broken")


class TestBinding:
    """Tests for form and JSON binding."""

    def test_form_merges_query_and_body(self, make_context):
        ctx = make_context("POST", "/s?tag=q", body=b"tag=b&name=Ann", headers=FORM)

        assert ctx.form() == {"tag": ["b", "q"], "name": ["Ann"]}
        assert ctx.post_form() == {"tag": ["b"], "name": ["Ann"]}

    def test_post_form_ignores_other_content_types(self, make_context):
        ctx = make_context("POST", "/", body=b"name=Ann", headers=JSON)

        assert ctx.post_form() == {}

    def test_bind_form(self, make_context):
        ctx = make_context("POST", "/", body=b"name=Ann&age=30&tags=a&tags=b", headers=FORM)

        signup = ctx.bind_form(Signup)

        assert signup == Signup(name="Ann", age=30, tags=["a", "b"])

    def test_bind_form_single_value_list_field(self, make_context):
        """One checked checkbox still binds as a list."""
        ctx = make_context("POST", "/", body=b"name=Ann&age=30&tags=a", headers=FORM)

        assert ctx.bind_form(Signup).tags == ["a"]

    def test_bind_form_optional_and_dataclass_list_fields(self, make_context):
        @dataclass
        class Filter:
            kinds: Optional[Set[str]] = None
            ids: Sequence[int] = ()
            q: str = ""

        ctx = make_context("POST", "/", body=b"kinds=a&ids=7&q=x&q=y", headers=FORM)

        assert ctx.bind_form(Filter) == Filter(kinds={"a"}, ids=[7], q="x")

    def test_bind_form_dataclass(self, make_context):
        ctx = make_context("POST", "/", body=b"x=1&y=2", headers=FORM)

        assert ctx.bind_form(Point) == Point(1, 2)

    def test_bind_form_invalid(self, make_context):
        ctx = make_context("POST", "/", body=b"name=Ann&age=old", headers=FORM)

        with pytest.raises(BindError) as exc_info:
            ctx.bind_form(Signup)

        assert exc_info.value.status_code == 400

    def test_bind_form_bad_encoding(self, make_context):
        ctx = make_context("POST", "/", body=b"name=\xff\xfe", headers=FORM)

        with pytest.raises(BindError):
            ctx.bind_form(Signup)

    def test_bind_json(self, make_context):
        ctx = make_context("POST", "/", body=b'{"name": "Ann", "age": 3}', headers=JSON)

        assert ctx.bind_json(Signup) == Signup(name="Ann", age=3)

    def test_bind_json_malformed(self, make_context):
        ctx = make_context("POST", "/", body=b'{"name": ', headers=JSON)

        with pytest.raises(BindError):
            ctx.bind_json(Signup)

    def test_bind_json_empty_body(self, make_context):
        ctx = make_context("POST", "/", headers=JSON)

        with pytest.raises(BindError, match="empty"):
            ctx.bind_json(Signup)


class TestCollaborators:
    """Tests for db() and is_authenticated()."""

    def test_db_without_middleware(self, make_context):
        with pytest.raises(DatabaseNotConfigured):
            make_context().db()

    def test_db_returns_handle(self, make_context):
        ctx = make_context()
        handle = object()
        ctx.set(KEY_DATABASE_OBJECT, handle)

        assert ctx.db() is handle

    def test_is_authenticated(self, make_context):
        class Member(UserManager):
            def authenticated(self):
                return True

        ctx = make_context()
        assert ctx.is_authenticated() is False

        ctx.user = Member()
        assert ctx.is_authenticated() is True
