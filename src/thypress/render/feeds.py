"""Meta artifacts — search index, RSS, robots.txt, llms.txt, sitemap.

Each generator is a plain function of ``(entries, config)`` returning
bytes; the cache engine memoizes results in its dynamic-artifact layer.
"""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import TYPE_CHECKING
from xml.etree.ElementTree import Element, SubElement, register_namespace, tostring

from thypress.export.sitemap import generate_sitemap

if TYPE_CHECKING:
    from collections.abc import Callable

    from thypress.config import ThypressConfig
    from thypress.content.processor import Entry
    from thypress.render.renderer import Renderer

SEARCH_CONTENT_LIMIT = 5000
RSS_ITEM_LIMIT = 20
LLMS_RECENT_LIMIT = 10

_ATOM_NS = "http://www.w3.org/2005/Atom"
_SEARCH_STRIP_RE = re.compile(r"[#*`\[\]]")
_WHITESPACE_RE = re.compile(r"\s+")

register_namespace("atom", _ATOM_NS)


def search_index(entries: tuple[Entry, ...]) -> bytes:
    """``search.json``: one record per entry, newest first."""
    records = [
        {
            "id": e.slug,
            "title": e.title,
            "slug": e.slug,
            "url": e.url,
            "date": e.created_at,
            "tags": list(e.tags),
            "description": e.description,
            "content": _WHITESPACE_RE.sub(" ", _SEARCH_STRIP_RE.sub("", e.raw_content)).strip()[
                :SEARCH_CONTENT_LIMIT
            ],
        }
        for e in entries
    ]
    return json.dumps(records, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def _rfc822(iso_date: str) -> str:
    try:
        parsed = datetime.fromisoformat(iso_date)
    except ValueError:
        parsed = datetime.now(UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return format_datetime(parsed)


def rss_feed(entries: tuple[Entry, ...], config: ThypressConfig) -> bytes:
    """RSS 2.0 feed of the most recent entries."""
    base = config.url.rstrip("/")
    rss = Element("rss", {"version": "2.0"})
    channel = SubElement(rss, "channel")
    SubElement(channel, "title").text = config.title
    SubElement(channel, "link").text = base + "/"
    SubElement(channel, "description").text = config.description
    SubElement(channel, "language").text = "en"
    SubElement(channel, "generator").text = "THYPRESS"
    SubElement(
        channel,
        f"{{{_ATOM_NS}}}link",
        {"href": f"{base}/rss.xml", "rel": "self", "type": "application/rss+xml"},
    )
    year = datetime.now(UTC).year
    SubElement(channel, "copyright").text = f"All rights reserved {year}, {config.author}"

    for entry in entries[:RSS_ITEM_LIMIT]:
        item = SubElement(channel, "item")
        link = base + entry.url
        SubElement(item, "title").text = entry.title
        SubElement(item, "link").text = link
        SubElement(item, "guid", {"isPermaLink": "true"}).text = link
        SubElement(item, "description").text = entry.description or entry.raw_content[:200]
        SubElement(item, "author").text = config.author
        SubElement(item, "pubDate").text = _rfc822(entry.created_at)
        SubElement(item, f"{{{_ATOM_NS}}}updated").text = entry.updated_at
        for term in (*entry.tags, *entry.categories):
            SubElement(item, "category").text = term

    body = tostring(rss, encoding="unicode")
    return ('<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n").encode("utf-8")


def default_robots(config: ThypressConfig) -> str:
    return f"User-agent: *\nAllow: /\n\nSitemap: {config.url.rstrip('/')}/sitemap.xml\n"


def default_llms(entries: tuple[Entry, ...], config: ThypressConfig) -> str:
    base = config.url.rstrip("/")
    lines = [f"# {config.title}", "", f"> {config.description}", "", "## Recent Pages"]
    lines.extend(f"- [{e.title}]({base}{e.url})" for e in entries[:LLMS_RECENT_LIMIT])
    lines.extend(["", "## Full Sitemap", f"{base}/sitemap.xml", ""])
    return "\n".join(lines)


def _theme_text(renderer: Renderer, key: str) -> bytes | None:
    asset = renderer.theme.assets.get(key)
    if asset is None:
        return None
    if asset.is_templated:
        return renderer.render_asset(key)
    return asset.data


def robots_txt(renderer: Renderer) -> bytes:
    return _theme_text(renderer, "robots.txt") or default_robots(renderer.config).encode("utf-8")


def llms_txt(renderer: Renderer) -> bytes:
    text = _theme_text(renderer, "llms.txt")
    if text is not None:
        return text
    return default_llms(renderer.content.ordered, renderer.config).encode("utf-8")


def sitemap_xml(renderer: Renderer) -> bytes:
    return generate_sitemap(renderer.content.ordered, renderer.config.url).encode("utf-8")


# Request path -> (Layer D key, MIME type, generator)
META_FILES: dict[str, tuple[str, str, Callable[[Renderer], bytes]]] = {
    "/search.json": (
        "search.json",
        "application/json; charset=utf-8",
        lambda r: search_index(r.content.ordered),
    ),
    "/rss.xml": ("rss.xml", "application/xml; charset=utf-8", lambda r: rss_feed(r.content.ordered, r.config)),
    "/sitemap.xml": ("sitemap.xml", "application/xml; charset=utf-8", sitemap_xml),
    "/robots.txt": ("robots.txt", "text/plain; charset=utf-8", robots_txt),
    "/llms.txt": ("llms.txt", "text/plain; charset=utf-8", llms_txt),
}

# Artifacts that depend on entry content; dropped on any content change.
CONTENT_ARTIFACTS: tuple[str, ...] = ("search.json", "rss.xml", "sitemap.xml", "llms.txt")
