"""Tests for thypress.render.feeds and thypress.export.sitemap — meta artifacts."""

from __future__ import annotations

import json
from xml.etree.ElementTree import fromstring

import pytest

from thypress.config import ThypressConfig
from thypress.content.processor import Entry
from thypress.export.sitemap import generate_sitemap
from thypress.render.feeds import (
    CONTENT_ARTIFACTS,
    META_FILES,
    RSS_ITEM_LIMIT,
    SEARCH_CONTENT_LIMIT,
    default_llms,
    default_robots,
    llms_txt,
    robots_txt,
    rss_feed,
    search_index,
)
from thypress.service import Service

_SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
_ATOM_NS = "http://www.w3.org/2005/Atom"


def _entry(slug: str, date: str = "2024-01-01", **kwargs: object) -> Entry:
    url = "/" if slug == "index" else f"/{slug}/"
    return Entry(
        slug=slug,
        url=url,
        type="markdown",
        title=slug.title(),
        created_at=date,
        updated_at=kwargs.pop("updated_at", date),  # type: ignore[arg-type]
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.fixture
def config() -> ThypressConfig:
    return ThypressConfig(title="Site", description="Desc", url="https://example.com/", author="Ann")


# ---------------------------------------------------------------------------
# search.json
# ---------------------------------------------------------------------------


class TestSearchIndex:
    def test_records(self) -> None:
        entry = _entry("post", tags=("a",), description="d", raw_content="# Title\n\nSome `code` and [link]")
        records = json.loads(search_index((entry,)))
        assert records == [{
            "id": "post",
            "title": "Post",
            "slug": "post",
            "url": "/post/",
            "date": "2024-01-01",
            "tags": ["a"],
            "description": "d",
            "content": "Title Some code and link",
        }]

    def test_content_truncated(self) -> None:
        entry = _entry("long", raw_content="word " * 5000)
        records = json.loads(search_index((entry,)))
        assert len(records[0]["content"]) == SEARCH_CONTENT_LIMIT

    def test_unicode_kept(self) -> None:
        body = search_index((_entry("cafe", raw_content="café"),))
        assert "café".encode() in body


# ---------------------------------------------------------------------------
# rss.xml
# ---------------------------------------------------------------------------


class TestRssFeed:
    def test_channel(self, config: ThypressConfig) -> None:
        root = fromstring(rss_feed((), config))
        channel = root.find("channel")
        assert root.get("version") == "2.0"
        assert channel.findtext("title") == "Site"
        assert channel.findtext("link") == "https://example.com/"
        self_link = channel.find(f"{{{_ATOM_NS}}}link")
        assert self_link.get("href") == "https://example.com/rss.xml"
        assert self_link.get("rel") == "self"

    def test_items(self, config: ThypressConfig) -> None:
        entry = _entry("post", date="2024-01-05", tags=("a",), categories=("c",), description="Summary")
        item = fromstring(rss_feed((entry,), config)).find("channel/item")
        assert item.findtext("link") == "https://example.com/post/"
        assert item.findtext("guid") == "https://example.com/post/"
        assert item.findtext("description") == "Summary"
        assert item.findtext("pubDate").startswith("Fri, 05 Jan 2024")
        assert [c.text for c in item.findall("category")] == ["a", "c"]

    def test_item_limit(self, config: ThypressConfig) -> None:
        entries = tuple(_entry(f"p{i}") for i in range(RSS_ITEM_LIMIT + 5))
        items = fromstring(rss_feed(entries, config)).findall("channel/item")
        assert len(items) == RSS_ITEM_LIMIT

    def test_description_falls_back_to_content(self, config: ThypressConfig) -> None:
        entry = _entry("post", raw_content="x" * 300)
        item = fromstring(rss_feed((entry,), config)).find("channel/item")
        assert item.findtext("description") == "x" * 200


# ---------------------------------------------------------------------------
# robots.txt / llms.txt
# ---------------------------------------------------------------------------


class TestTextArtifacts:
    def test_default_robots(self, config: ThypressConfig) -> None:
        assert default_robots(config) == (
            "User-agent: *\nAllow: /\n\nSitemap: https://example.com/sitemap.xml\n"
        )

    def test_default_llms(self, config: ThypressConfig) -> None:
        text = default_llms((_entry("post"),), config)
        assert text.startswith("# Site\n\n> Desc\n")
        assert "- [Post](https://example.com/post/)" in text
        assert text.rstrip().endswith("https://example.com/sitemap.xml")

    def test_robots_from_theme(self, service: Service) -> None:
        body = robots_txt(service.state.renderer)
        assert body.startswith(b"User-agent: *")
        assert b"Sitemap: https://example.com/sitemap.xml" in body

    def test_llms_default_when_theme_has_none(self, service: Service) -> None:
        body = llms_txt(service.state.renderer).decode()
        assert body.startswith("# Test Site")
        assert "(https://example.com/about/)" in body


class TestMetaFiles:
    def test_registry(self) -> None:
        assert set(META_FILES) == {"/search.json", "/rss.xml", "/sitemap.xml", "/robots.txt", "/llms.txt"}
        assert "robots.txt" not in CONTENT_ARTIFACTS

    def test_generators_run(self, service: Service) -> None:
        renderer = service.state.renderer
        for key, mime, generate in META_FILES.values():
            body = generate(renderer)
            assert body, key
            assert "charset=utf-8" in mime


# ---------------------------------------------------------------------------
# sitemap.xml
# ---------------------------------------------------------------------------


class TestGenerateSitemap:
    """generate_sitemap — XML string generation."""

    def _urls(self, xml: str) -> dict[str, dict[str, str | None]]:
        root = fromstring(xml.split("\n", 1)[1])
        return {
            url.findtext(f"{{{_SITEMAP_NS}}}loc"): {
                "lastmod": url.findtext(f"{{{_SITEMAP_NS}}}lastmod"),
                "changefreq": url.findtext(f"{{{_SITEMAP_NS}}}changefreq"),
                "priority": url.findtext(f"{{{_SITEMAP_NS}}}priority"),
            }
            for url in root.findall(f"{{{_SITEMAP_NS}}}url")
        }

    def test_valid_xml(self) -> None:
        xml = generate_sitemap([], "https://example.com")
        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        root = fromstring(xml.split("\n", 1)[1])
        assert root.tag == f"{{{_SITEMAP_NS}}}urlset"

    def test_home_entries_and_taxonomies(self) -> None:
        entries = [
            _entry("post", updated_at="2024-02-01", tags=("py",), categories=("guides",), series="Intro"),
        ]
        urls = self._urls(generate_sitemap(entries, "https://example.com/"))
        assert urls["https://example.com/"] == {"lastmod": None, "changefreq": "daily", "priority": "1.0"}
        assert urls["https://example.com/post/"] == {
            "lastmod": "2024-02-01",
            "changefreq": "monthly",
            "priority": "0.8",
        }
        assert urls["https://example.com/tag/py/"]["changefreq"] == "weekly"
        assert urls["https://example.com/category/guides/"]["priority"] == "0.5"
        assert "https://example.com/series/Intro/" in urls

    def test_index_entry_not_duplicated(self) -> None:
        xml = generate_sitemap([_entry("index")], "https://example.com")
        assert xml.count("<loc>https://example.com/</loc>") == 1
