"""
Session and user capabilities exposed on the Context.

The runtime does not store sessions or authenticate anyone itself. An
application (usually through its own middleware) loads whatever it needs
and attaches it to the request's Context:

    ctx.session_id = cookie_value
    ctx.session = store.load(cookie_value)     # any mutable mapping
    ctx.user = AccountUser(account)            # any UserManager

Handlers then only rely on ``ctx.is_authenticated()``.
"""

from abc import ABC, abstractmethod
from typing import Any, MutableMapping


# Session data is any mutable mapping; a plain dict works.
Session = MutableMapping[str, Any]


class UserManager(ABC):
    """The user handle carried by a Context."""

    @abstractmethod
    def authenticated(self) -> bool:
        """True if the request belongs to a signed-in user."""


class AnonymousUser(UserManager):
    """Default user for every new Context: never authenticated."""

    def authenticated(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "AnonymousUser()"
