"""
=============================================================================
REQUEST CONTEXT
=============================================================================

One Context is created for every inbound request and handed, by
reference, to every middleware and to the final route handler:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONTEXT                                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   response_writer   where handlers write status, headers, body       │
    │   request           the parsed HTTPRequest                           │
    │   path_params       filled in by the router                          │
    │   register          request-scoped key/value store (get/set)         │
    │   session_id        ┐                                                │
    │   session           ├  attached by application middleware            │
    │   user              ┘  (user defaults to AnonymousUser)              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The Context is never shared between requests and never outlives its
request, so nothing on it is locked: a middleware may freely set values
that handlers further down the chain read.

=============================================================================
THE REGISTER
=============================================================================

    ctx.get("user_id")            → None   (nothing set yet, no error)
    ctx.set("user_id", 42)
    ctx.get("user_id")            → 42

The underlying dict is only created on the first set(). has() tells an
unset key apart from a key explicitly set to None.

=============================================================================
FAILURES ARE EXCEPTIONS
=============================================================================

bind_form(), bind_json() and json() raise BindError / EncodeError instead
of writing half a response. The Recovery middleware at the head of the
chain turns them into 400 / 500 responses, and the next request is served
normally.

=============================================================================
"""

from collections import abc
from http import HTTPStatus
from typing import (
    Annotated, Any, Dict, List, Optional, Set, Tuple, Type, TypeVar, Union,
    get_args, get_origin, get_type_hints,
)
import logging
import types

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import BindError, DatabaseNotConfigured, EncodeError
from .http.request import HTTPParseError, HTTPRequest
from .http.response import ResponseWriter, write_string
from .http.static import serve_file
from .session import AnonymousUser, Session, UserManager


logger = logging.getLogger(__name__)

KEY_SESSION_ID = "SessionId"
KEY_DATABASE_OBJECT = "DatabaseObject"
KEY_USER = "User"
KEY_REQUEST_ID = "RequestId"

T = TypeVar("T")

_MISSING = object()


class Context:
    """
    Per-request state threaded through the middleware chain.

    Attributes:
        response_writer: Buffered response for this request.
        request: The parsed request.
        path_params: Route parameters extracted by the router.
        session_id: Session identifier, if a session middleware set one.
        session: Session data, if a session middleware loaded it.
        user: User handle; AnonymousUser unless a middleware replaced it.
    """

    def __init__(self, app, response_writer: ResponseWriter, request: HTTPRequest):
        self._app = app
        self.response_writer = response_writer
        self.request = request
        self.path_params: Dict[str, str] = {}
        self._register: Optional[Dict[str, Any]] = None
        self.session_id: str = ""
        self.session: Optional[Session] = None
        self.user: UserManager = AnonymousUser()

    def __repr__(self) -> str:
        return f"<Context {self.request.method} {self.request.path}>"

    @property
    def app(self):
        """The Webapp that created this context (the root of the dispatch)."""
        return self._app

    def http(self) -> Tuple[ResponseWriter, HTTPRequest]:
        return self.response_writer, self.request

    # =========================================================================
    # REQUEST-SCOPED REGISTER
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Value set on this request under ``key``, or ``default``."""
        if not self._register:
            return default
        return self._register.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if self._register is None:
            self._register = {}
        self._register[key] = value

    def has(self, key: str) -> bool:
        """True if ``key`` was set on this request, even to None."""
        return self.get(key, _MISSING) is not _MISSING

    def get_all(self) -> Dict[str, Any]:
        """All values set on this request (empty if none were)."""
        return dict(self._register or {})

    # =========================================================================
    # RESPONSES
    # =========================================================================

    def error(self, message: str, status_code: int) -> None:
        """
        Answer with ``status_code`` and a plain-text ``message``.

        The caller should return right after; anything written later is
        appended to the error body.
        """
        self.response_writer.write_header(status_code)
        write_string(self.response_writer, message)

    def view_string(self, fmt: str, *args: Any) -> None:
        """Answer 200 with a %-formatted string."""
        self.response_writer.write_header(HTTPStatus.OK)
        write_string(self.response_writer, fmt % args if args else fmt)

    def view(self, view: str, model: Any = None) -> None:
        """
        Render ``view`` through the application's render engine.

        The status becomes 200 once the engine has rendered; an engine that
        fails raises before anything is written, so Recovery can still send
        a 500.
        """
        self._app.render_engine.render(self, view, model)
        if not self.response_writer.written:
            self.response_writer.write_header(HTTPStatus.OK)

    def file(self, file_path: str) -> None:
        """Answer with the contents of a file (404 if it does not exist)."""
        serve_file(self.response_writer, self.request, file_path)

    def json(self, model: Any) -> None:
        """
        Answer 200 with ``model`` encoded as JSON.

        Dicts, lists, pydantic models and dataclasses are all accepted.

        Raises:
            EncodeError: If the model cannot be serialized. Nothing has been
                         written at that point.
        """
        try:
            body = TypeAdapter(Any).dump_json(model)
        except (ValueError, TypeError) as e:
            raise EncodeError(f"Cannot encode {type(model).__name__} as JSON: {e}") from e

        self.response_writer.headers["Content-Type"] = "application/json; charset=utf-8"
        self.response_writer.write_header(HTTPStatus.OK)
        self.response_writer.write(body)

    def redirect(self, path: str) -> None:
        """303 See Other: the browser follows up with a GET to ``path``."""
        writer = self.response_writer
        writer.headers["Location"] = path
        writer.write_header(HTTPStatus.SEE_OTHER)
        if self.request.method == "GET":
            write_string(writer, f'<a href="{path}">See Other</a>.\n', "text/html; charset=utf-8")

    # =========================================================================
    # FORMS & BINDING
    # =========================================================================

    def form(self) -> Dict[str, List[str]]:
        """Query string and urlencoded body values, by key."""
        try:
            return self.request.form
        except HTTPParseError as e:
            raise BindError(str(e)) from e

    def post_form(self) -> Dict[str, List[str]]:
        """Urlencoded body values only."""
        try:
            return self.request.post_form
        except HTTPParseError as e:
            raise BindError(str(e)) from e

    def bind_form(self, model: Type[T]) -> T:
        """
        Decode the urlencoded body into an instance of ``model``.

        Fields typed as lists (or sets, tuples, sequences) always bind as
        lists, even from a single value; other fields take the first value:

            name=ann&tag=a        →  {"name": "ann", "tag": ["a"]}

        Raises:
            BindError: If the body does not validate against ``model``.
        """
        many = _sequence_fields(model)
        data = {
            key: values if key in many else values[0]
            for key, values in self.post_form().items()
        }
        try:
            return TypeAdapter(model).validate_python(data)
        except ValidationError as e:
            raise BindError(f"Invalid form data for {_model_name(model)}: {e}") from e

    def bind_json(self, model: Type[T]) -> T:
        """
        Decode the JSON body into an instance of ``model``.

        Raises:
            BindError: If the body is empty, is not JSON, or does not
                       validate against ``model``.
        """
        if not self.request.body:
            raise BindError("Request body is empty")
        try:
            return TypeAdapter(model).validate_json(self.request.body)
        except ValidationError as e:
            logger.debug(f"JSON binding failed for {_model_name(model)}: {e.error_count()} errors")
            raise BindError(f"Invalid JSON body for {_model_name(model)}: {e}") from e

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    def db(self) -> Any:
        """
        The database handle opened for this request by the Database middleware.

        Raises:
            DatabaseNotConfigured: If no Database middleware ran.
        """
        handle = self.get(KEY_DATABASE_OBJECT)
        if handle is None:
            raise DatabaseNotConfigured(
                "Database connection was not established. "
                "Use the Database middleware to open one per request."
            )
        return handle

    def is_authenticated(self) -> bool:
        return self.user.authenticated()


def _model_name(model: Any) -> str:
    return getattr(model, "__name__", repr(model))


_SEQUENCE_TYPES = (list, set, frozenset, tuple, abc.Sequence, abc.MutableSequence, abc.Set)


def _is_sequence(annotation: Any) -> bool:
    origin = get_origin(annotation)
    if origin is Annotated:
        return _is_sequence(get_args(annotation)[0])
    if origin is Union or origin is types.UnionType:
        return any(_is_sequence(arg) for arg in get_args(annotation) if arg is not type(None))
    return annotation in _SEQUENCE_TYPES or origin in _SEQUENCE_TYPES


def _sequence_fields(model: Any) -> Set[str]:
    """Form keys whose field on ``model`` takes several values."""
    if not isinstance(model, type):
        return set()

    if issubclass(model, BaseModel):
        hints: Dict[str, Any] = {}
        for name, info in model.model_fields.items():
            hints[name] = info.annotation
            if info.alias:
                hints[info.alias] = info.annotation
    else:
        try:
            hints = get_type_hints(model)
        except (NameError, TypeError):
            # Unresolvable forward references: bind every field as a scalar
            hints = {}

    return {name for name, annotation in hints.items() if _is_sequence(annotation)}
