"""Renderer — (entry or list view, theme, site) -> HTML.

A :class:`Renderer` is built from one consistent snapshot of content,
theme and configuration and holds no other state; two renderers over the
same inputs produce identical output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import jinja2

from thypress._errors import RenderError
from thypress.render.context import PageData, asset_context, build_context
from thypress.render.pagination import POSTS_PER_PAGE, Pagination, total_pages
from thypress.render.taxonomy import filter_by, neighbours, related_entries

if TYPE_CHECKING:
    from thypress._types import Context, PageType
    from thypress.config import ThypressConfig
    from thypress.content.processor import Entry
    from thypress.content.store import ContentSnapshot
    from thypress.render.taxonomy import Taxonomy
    from thypress.theme import Theme

NOT_FOUND_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>404 - Not Found</title>
<style>body{font-family:system-ui,sans-serif;text-align:center;padding:4rem 1rem;color:#333}</style>
</head>
<body>
<h1>404</h1>
<p>Page not found.</p>
<p><a href="/">Go home</a></p>
</body>
</html>
"""


def page_key(page: int) -> str:
    """Layer A key for home list page *page*."""
    return f"__index_{page}"


class Renderer:
    """Renders pages from one snapshot of content, theme and config.

    Args:
        theme: Composed theme.
        content: Content snapshot.
        config: Site configuration.

    """

    def __init__(self, theme: Theme, content: ContentSnapshot, config: ThypressConfig) -> None:
        self.theme = theme
        self.content = content
        self.config = config
        self._site = config.site_context()

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def context(self, page_type: PageType, data: PageData) -> Context:
        return build_context(
            page_type,
            data,
            self._site,
            self.content.navigation,
            self.theme.metadata,
        )

    def _render(self, template_name: str | None, context: Context) -> str:
        if template_name is None:
            msg = f"No template available for page type '{context.get('page_type')}'"
            raise RenderError(msg)
        template = self.theme.get(template_name)
        if template is None:
            msg = f"Template '{template_name}' not found"
            raise RenderError(msg)
        try:
            return template.render(context)
        except jinja2.TemplateError as exc:
            msg = f"Template '{template_name}': {exc}"
            raise RenderError(msg) from exc

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def render_entry(self, entry: Entry) -> str:
        """Render an entry page; raw HTML documents are returned verbatim."""
        if entry.rendered_full is not None:
            return entry.rendered_full
        prev_entry, next_entry = neighbours(entry, self.content.ordered)
        data = PageData(
            entry=entry,
            prev_entry=prev_entry,
            next_entry=next_entry,
            related=related_entries(entry, self.content.ordered),
        )
        return self._render(self.theme.select_template(entry), self.context("entry", data))

    def page_count(self) -> int:
        return total_pages(len(self.content.ordered))

    def render_list(self, page: int) -> str | None:
        """Render home list page *page*; None when out of range."""
        if page < 1 or page > self.page_count():
            return None
        pagination = Pagination.for_page(page, len(self.content.ordered))
        start, end = pagination.slice_bounds(POSTS_PER_PAGE)
        data = PageData(entries=list(self.content.ordered[start:end]), pagination=pagination)
        return self._render(self.theme.list_template("index"), self.context("index", data))

    def home_entry(self) -> Entry | None:
        """The entry served at ``/``: ``config.index``, else the ``index`` entry."""
        if self.config.index:
            entry = self.content.get(self.config.index.strip("/"))
            if entry is not None:
                return entry
        return self.content.get("index")

    def render_taxonomy(self, taxonomy: Taxonomy, term: str) -> str | None:
        """Render a tag, category or series page; None when no entry matches."""
        entries = filter_by(self.content.ordered, taxonomy, term)
        if not entries:
            return None
        data = PageData(entries=entries, term=term)
        return self._render(self.theme.list_template(taxonomy), self.context(taxonomy, data))

    def render_404(self) -> str:
        """Theme ``404`` template, else the embedded minimal page."""
        name = self.theme.first("404")
        if name is None:
            return NOT_FOUND_HTML
        try:
            return self._render(name, self.context("404", PageData()))
        except RenderError:
            return NOT_FOUND_HTML

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def render_asset(self, key: str) -> bytes | None:
        """Render a templated theme asset with the site context."""
        if key not in self.theme.asset_templates:
            return None
        context = asset_context(self._site, self.theme.metadata, self.content.ordered)
        try:
            return self.theme.render_asset(key, context)
        except jinja2.TemplateError as exc:
            msg = f"Asset '{key}': {exc}"
            raise RenderError(msg) from exc
