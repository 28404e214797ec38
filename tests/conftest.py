"""Shared test fixtures for thypress."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from thypress.config_loader import load_config
from thypress.service import Service

_HELLO = """\
---
tags: [python, web]
categories: [tutorials]
series: Getting Started
description: First post
---
# Hello World

## Setup

Some text here.

### Install

More text.
"""

_SECOND = """\
---
title: Second Post
tags: python
---
Body of the second post.
"""

_ABOUT = """\
---
title: About
date: 2024-03-01
description: About this site
---
# About

Hello there.
"""

_RAW = """\
---
date: 2023-11-01
---
<!DOCTYPE html>
<html><body><h1>Raw</h1></body></html>
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment overrides from the host never leak into a test."""
    for name in ("PORT", "THYPRESS_MODE", "THYPRESS_IDLE_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def tmp_site(tmp_path: Path) -> Path:
    """Create a small site for testing.

    Five published entries (newest first): about, second-post,
    hello-world, plain (text) and raw (full HTML document).  A draft
    folder, a ``draft: true`` file and one static PDF are included.
    The embedded default theme is used.
    """
    (tmp_path / "config.json").write_text(json.dumps({
        "title": "Test Site",
        "description": "A test site",
        "url": "https://example.com",
        "author": "Tester",
        "customKey": "custom",
    }))

    content = tmp_path / "content"
    blog = content / "blog"
    blog.mkdir(parents=True)
    (blog / "2024-01-05-hello-world.md").write_text(_HELLO)
    (blog / "2024-02-10-second-post.md").write_text(_SECOND)
    (blog / "wip.md").write_text("---\ndraft: true\n---\nNot yet.\n")
    (content / "about.md").write_text(_ABOUT)

    notes = content / "notes"
    notes.mkdir()
    (notes / "plain.txt").write_text("---\ndate: 2023-12-01\n---\na < b & c\n")

    pages = content / "pages"
    pages.mkdir()
    (pages / "raw.html").write_text(_RAW)

    drafts = content / "drafts"
    drafts.mkdir()
    (drafts / "secret.md").write_text("# Secret\n")

    files = content / "files"
    files.mkdir()
    (files / "doc.pdf").write_bytes(b"%PDF-1.4 test")

    return tmp_path


@pytest.fixture
def disk_theme(tmp_site: Path) -> Path:
    """Add ``templates/custom/`` and select it in config.json."""
    theme = tmp_site / "templates" / "custom"
    (theme / "partials").mkdir(parents=True)
    (theme / "assets").mkdir()
    (theme / "index.html").write_text(
        "<html><body><h1>{{ config.title }}</h1>"
        "{% for item in entries %}<a href=\"{{ item.url }}\">{{ item.title }}</a>{% endfor %}"
        "{% if entry %}{{ entry.html }}{% endif %}</body></html>\n"
    )
    (theme / "entry.html").write_text(
        "<html><body>{% include \"header\" %}<article>{{ entry.html }}</article>"
        "<p class=\"custom\">{{ entry.title }}</p></body></html>\n"
    )
    (theme / "partials" / "_header.html").write_text("<header>{{ config.title }}</header>")
    (theme / "assets" / "app.css").write_text("body { color: red; }\n")
    (theme / "assets" / "site.js").write_text("var title = '{{ config.title }}';\n")

    config = json.loads((tmp_site / "config.json").read_text())
    config["theme"] = "custom"
    (tmp_site / "config.json").write_text(json.dumps(config))
    return tmp_site


@pytest.fixture
def service(tmp_site: Path) -> Service:
    """A loaded dynamic-mode service over ``tmp_site``."""
    svc = Service(load_config(tmp_site))
    svc.load()
    return svc


@pytest.fixture
def static_service(tmp_site: Path) -> Service:
    """A loaded static-mode service over ``tmp_site``."""
    svc = Service(load_config(tmp_site, mode="static"))
    svc.load()
    return svc


def write_redirects(root: Path, rules: dict[str, object]) -> Path:
    """Write ``redirects.json`` under *root*."""
    path = root / "redirects.json"
    path.write_text(json.dumps(rules))
    return path


@pytest.fixture
def redirects_site(tmp_site: Path) -> Path:
    """``tmp_site`` plus exact, parameterized and external redirect rules."""
    write_redirects(tmp_site, {
        "_comment": "ignored",
        "/old-about/": "/about/",
        "/archive/:slug/": {"to": "/blog/:slug/", "statusCode": 302},
        "/away/": "https://other.example.org/",
    })
    return tmp_site
