"""Markdown to HTML conversion for generated summaries."""

from __future__ import annotations

import bleach
from markdown_it import MarkdownIt
from markupsafe import Markup

ALLOWED_TAGS = ["p", "ul", "ol", "li", "strong", "em", "b", "i", "br", "a", "h2", "h3"]
ALLOWED_ATTRS = {"a": ["href", "title", "target", "rel"]}

_MD = MarkdownIt("commonmark", {"breaks": True, "html": False})


def format_summary_html(value: str | None) -> Markup:
    """Render provider markdown to sanitised HTML."""
    if not value:
        return Markup("")

    html = _MD.render(value)
    clean_html = bleach.clean(
        html, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRS, strip=True
    )
    clean_html = clean_html.replace("<ul>", '<ul class="summary-bullets">')
    return Markup(clean_html)
