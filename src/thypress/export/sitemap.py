"""Sitemap generation — produce sitemap.xml from the Entry Map.

Lists the home page, every entry (with ``lastmod`` from ``updated_at``)
and every tag, category and series page.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from xml.etree.ElementTree import Element, SubElement, tostring

from thypress.render.taxonomy import TAXONOMIES, all_terms, taxonomy_url

if TYPE_CHECKING:
    from collections.abc import Sequence

    from thypress.content.processor import Entry

# XML namespace for sitemaps
_SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


def _add_url(
    urlset: Element,
    loc: str,
    changefreq: str,
    priority: float,
    lastmod: str | None = None,
) -> None:
    url_el = SubElement(urlset, "url")
    SubElement(url_el, "loc").text = loc
    if lastmod:
        SubElement(url_el, "lastmod").text = lastmod
    SubElement(url_el, "changefreq").text = changefreq
    SubElement(url_el, "priority").text = f"{priority:.1f}"


def generate_sitemap(entries: Sequence[Entry], base_url: str) -> str:
    """Generate a sitemap.xml string.

    Args:
        entries: Entries, newest first.
        base_url: Site base URL (e.g., ``"https://example.com"``).

    Returns:
        Complete XML string suitable for writing to ``sitemap.xml``.

    """
    base = base_url.rstrip("/")

    urlset = Element("urlset")
    urlset.set("xmlns", _SITEMAP_NS)

    _add_url(urlset, base + "/", "daily", 1.0)
    for entry in entries:
        if entry.url == "/":
            continue
        _add_url(urlset, base + entry.url, "monthly", 0.8, entry.updated_at)
    for taxonomy in TAXONOMIES:
        for term in all_terms(entries, taxonomy):
            _add_url(urlset, base + taxonomy_url(taxonomy, term), "weekly", 0.5)

    xml = tostring(urlset, encoding="unicode", xml_declaration=False)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n"
