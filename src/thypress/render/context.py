"""Template context builder — one map shape for every page type.

Always present: ``config`` (full merged config), ``theme`` (metadata),
``navigation``, ``page_type`` and the ``site_*`` shortcuts.  Page-specific
keys are added per type; see :func:`build_context`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from markupsafe import Markup

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from thypress._types import Context, PageType
    from thypress.content.navigation import NavigationNode
    from thypress.content.processor import Entry
    from thypress.render.pagination import Pagination


@dataclass(slots=True)
class PageData:
    """Page-specific inputs to the context builder.

    Attributes:
        entry: The entry being rendered (``entry`` pages, custom index).
        prev_entry: Older chronological neighbour.
        next_entry: Newer chronological neighbour.
        related: Related entries.
        entries: List-view entries (already sliced).
        pagination: Pagination for the home list.
        term: Current tag, category or series.

    """

    entry: Entry | None = None
    prev_entry: Entry | None = None
    next_entry: Entry | None = None
    related: list[Entry] = field(default_factory=list)
    entries: list[Entry] = field(default_factory=list)
    pagination: Pagination | None = None
    term: str | None = None


def entry_context(entry: Entry) -> dict[str, Any]:
    """Flattened entry with its HTML marked safe for autoescaping."""
    data = entry.to_context()
    data["html"] = Markup(entry.rendered)
    return data


def summary_context(entry: Entry) -> dict[str, Any]:
    """The subset used in lists and prev/next links."""
    return {
        "slug": entry.slug,
        "url": entry.url,
        "title": entry.title,
        "date": entry.created_at,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
        "tags": list(entry.tags),
        "categories": list(entry.categories),
        "series": entry.series,
        "description": entry.description,
        "reading_time": entry.reading_time,
        "og_image": entry.og_image,
    }


def build_context(
    page_type: PageType,
    data: PageData,
    site: Mapping[str, Any],
    navigation: Iterable[NavigationNode],
    theme_metadata: Mapping[str, Any],
) -> Context:
    """Assemble the template context for *page_type*."""
    context: Context = {
        "config": dict(site),
        "theme": dict(theme_metadata),
        "navigation": [node.to_dict() for node in navigation],
        "page_type": page_type,
        "site_title": site.get("title"),
        "site_description": site.get("description"),
        "site_url": site.get("url"),
        "author": site.get("author"),
        "title": None,
        "description": None,
        "og_image": None,
    }

    if page_type == "entry" and data.entry is not None:
        entry = data.entry
        toc = [node.to_dict() for node in entry.toc]
        context.update({
            "entry": entry_context(entry),
            "prev_entry": summary_context(data.prev_entry) if data.prev_entry else None,
            "next_entry": summary_context(data.next_entry) if data.next_entry else None,
            "related_entries": [summary_context(e) for e in data.related],
            "toc": toc,
            "has_toc": bool(toc),
            "show_toc": bool(toc),
            "title": entry.title,
            "description": entry.description or None,
            "og_image": entry.og_image,
        })
    elif page_type == "index":
        context.update({
            "entries": [summary_context(e) for e in data.entries],
            "has_entries_list": True,
            "pagination": data.pagination.to_dict() if data.pagination else None,
        })
    elif page_type in ("tag", "category", "series"):
        context.update({
            page_type: data.term,
            "entries": [summary_context(e) for e in data.entries],
            "has_entries_list": True,
            "pagination": None,
            "title": data.term,
        })
    elif page_type == "404":
        context["title"] = "Not Found"
    return context


def asset_context(site: Mapping[str, Any], theme_metadata: Mapping[str, Any], entries: Iterable[Entry]) -> Context:
    """Context for templated theme assets (robots.txt, llms.txt, CSS)."""
    entry_list = list(entries)
    return {
        "config": dict(site),
        "theme": dict(theme_metadata),
        "site_title": site.get("title"),
        "site_description": site.get("description"),
        "site_url": site.get("url"),
        "author": site.get("author"),
        "entries": [summary_context(e) for e in entry_list],
    }
