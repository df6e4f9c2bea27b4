"""
=============================================================================
VIEW RENDERING
=============================================================================

Context.view(name, model) hands rendering to the application's render
engine:

    ctx.view("users/show", {"user": user})
        │
        ▼
    app.render_engine.render(ctx, "users/show", {"user": user})
        │
        ▼
    <views_dir>/users/show.html  → ctx.response_writer

Any object with a ``render(ctx, view, model)`` method can replace the
default engine:

    app.render_engine = MyRenderer()

The default engine is Jinja2, loading templates from the configured views
directory with HTML autoescaping switched on.

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound, select_autoescape
from pydantic import BaseModel

from .errors import RenderError


logger = logging.getLogger(__name__)


class Renderer(ABC):
    """A render engine writes a named view for a model to the response."""

    @abstractmethod
    def render(self, ctx, view: str, model: Any) -> None:
        """
        Render ``view`` with ``model`` into ``ctx.response_writer``.

        Raises:
            RenderError: If the view cannot be found or rendered.
        """


def model_to_dict(model: Any) -> Dict[str, Any]:
    """Template variables for a model: dicts as-is, models by field."""
    if model is None:
        return {}
    if isinstance(model, dict):
        return model
    if isinstance(model, BaseModel):
        return dict(model)
    if is_dataclass(model) and not isinstance(model, type):
        return asdict(model)
    return {"model": model}


class JinjaRenderer(Renderer):
    """
    Renders Jinja2 templates from a directory.

    The model's fields become template variables, and the model itself is
    also available as ``model``. The request Context is available as
    ``ctx``, so templates can check ``ctx.is_authenticated()``.
    """

    def __init__(self, views_dir: str = "./views", extension: str = ".html"):
        self.views_dir = views_dir
        self.extension = extension
        self._env: Optional[Environment] = None

    @property
    def env(self) -> Environment:
        # Created on first use so an app without views needs no views dir
        if self._env is None:
            self._env = Environment(
                loader=FileSystemLoader(self.views_dir),
                autoescape=select_autoescape(["html", "htm", "xml"]),
            )
        return self._env

    def template_name(self, view: str) -> str:
        if "." in view.rsplit("/", 1)[-1]:
            return view
        return view + self.extension

    def render(self, ctx, view: str, model: Any) -> None:
        name = self.template_name(view)
        try:
            template = self.env.get_template(name)
            variables = {**model_to_dict(model), "model": model, "ctx": ctx}
            html = template.render(**variables)
        except TemplateNotFound:
            raise RenderError(f"View not found: {name} (in {self.views_dir})") from None
        except TemplateError as e:
            raise RenderError(f"Failed to render {name}: {e}") from e

        ctx.response_writer.headers.setdefault("Content-Type", "text/html; charset=utf-8")
        logger.debug(f"Rendered view {name}")
        ctx.response_writer.write(html)
