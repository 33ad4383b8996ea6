"""
=============================================================================
VIEW RENDERER
=============================================================================

Renders named templates into HTML with Jinja2.

    response.render("posts/show", {"post": request.form})
                       │
                       ▼
    templates/posts/show.html  +  context  ──►  "<!DOCTYPE html>..."

=============================================================================
TEMPLATE LOOKUP
=============================================================================

Names are relative to the views directory and the extension is added
when it is missing:

    "index"            → templates/index.html
    "posts/new"        → templates/posts/new.html
    "posts/new.html"   → templates/posts/new.html

=============================================================================
FAILURES
=============================================================================

The environment uses StrictUndefined, so a template that mentions a
variable the context does not define fails instead of printing an empty
string:

    {{ post.titel }}     ──►  TemplateRenderError (500)

Missing templates and syntax errors fail the same way. TemplateRenderError
is an HTTPError with status 500, so the default error handler turns it
into a 500 response and logs it.

Output is HTML-autoescaped: a form field containing <script> is shown,
not run.

=============================================================================
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
    select_autoescape,
)

from .http.errors import TemplateRenderError


logger = logging.getLogger(__name__)


class ViewRenderer:
    """
    Jinja2 environment bound to one views directory.

        renderer = ViewRenderer("templates")
        html = renderer.render("index", {"title": "Home"})

    `template_globals` are visible to every template (site name, helpers).
    """

    def __init__(
        self,
        views_dir: Union[str, Path],
        extension: str = ".html",
        template_globals: Optional[Dict[str, Any]] = None,
        auto_reload: bool = False,
    ):
        self.views_dir = Path(views_dir)
        self.extension = extension
        self.env = Environment(
            loader=FileSystemLoader(str(self.views_dir)),
            autoescape=select_autoescape(["html", "htm"]),
            undefined=StrictUndefined,
            auto_reload=auto_reload,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        if template_globals:
            self.env.globals.update(template_globals)

    def template_name(self, name: str) -> str:
        if self.extension and not Path(name).suffix:
            return name + self.extension
        return name

    def render(self, name: str, context: Optional[Dict[str, Any]] = None) -> str:
        """
        Render a template to a string.

        Raises:
            TemplateRenderError: Missing template, syntax error, or an
                undefined variable.
        """
        template_name = self.template_name(name)
        try:
            template = self.env.get_template(template_name)
            return template.render(context or {})
        except TemplateNotFound as e:
            raise TemplateRenderError(template_name, f"template not found ({e.name})") from e
        except TemplateSyntaxError as e:
            raise TemplateRenderError(template_name, f"syntax error on line {e.lineno}: {e.message}") from e
        except UndefinedError as e:
            raise TemplateRenderError(template_name, e.message or "undefined variable") from e
        except TemplateError as e:
            raise TemplateRenderError(template_name, str(e)) from e
