"""Render plain-text message bodies into the branded HTML email."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

from .config import BrandSettings

TEMPLATE_DIR = Path(__file__).resolve().parent / "email_templates"

_LINE_BREAK = Markup("<br />\n")


@lru_cache(maxsize=1)
def _template_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
        keep_trailing_newline=True,
    )


def format_body(body: str) -> Markup:
    """Escape ``body`` and turn its newlines into ``<br />`` tags.

    The result is the only markup that reaches the email; anything the sender
    typed that looks like HTML is rendered as text.
    """

    normalized = body.replace("\r\n", "\n").replace("\r", "\n")
    return _LINE_BREAK.join(escape(line) for line in normalized.split("\n"))


def render_email_html(body: str, *, brand: BrandSettings, subject: str = "") -> str:
    """Return a self-contained HTML document wrapping ``body`` in the brand layout."""

    template = _template_environment().get_template("branded.html")
    return template.render(body=format_body(body), brand=brand, subject=subject)


__all__ = ["format_body", "render_email_html"]
