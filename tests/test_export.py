"""Tests for thypress.export — static export, fingerprinting and sitemap."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from thypress.config_loader import load_config
from thypress.export.assets import fingerprint_assets, rewrite_asset_refs, write_manifest
from thypress.export.static import REDIRECTS_FILENAME, StaticExporter
from thypress.service import Service


def _exported(root: Path, **overrides: object) -> tuple[Service, Path]:
    service = Service(load_config(root, mode="static", **overrides))
    service.load()
    result = StaticExporter(service).export()
    return service, result.output_dir


# ---------------------------------------------------------------------------
# StaticExporter
# ---------------------------------------------------------------------------


class TestStaticExporter:
    """StaticExporter — the whole site as clean-URL files under build/."""

    def test_clean_url_layout(self, tmp_site: Path) -> None:
        _, out = _exported(tmp_site)
        assert out == tmp_site / "build"
        for relative in (
            "index.html",
            "about/index.html",
            "blog/2024-01-05-hello-world/index.html",
            "notes/plain/index.html",
            "pages/raw/index.html",
            "page/1/index.html",
            "tag/python/index.html",
            "category/tutorials/index.html",
            "404.html",
        ):
            assert (out / relative).is_file(), relative

    def test_pages_match_the_live_renderer(self, tmp_site: Path) -> None:
        service, out = _exported(tmp_site)
        entry = service.state.content.get("about")
        assert (out / "about" / "index.html").read_text() == service.state.renderer.render_entry(entry)

    def test_no_live_reload_script(self, tmp_site: Path) -> None:
        _, out = _exported(tmp_site)
        assert "data-thypress-live-reload" not in (out / "about" / "index.html").read_text()

    def test_meta_files(self, tmp_site: Path) -> None:
        _, out = _exported(tmp_site)
        for name in ("search.json", "rss.xml", "sitemap.xml", "robots.txt", "llms.txt"):
            assert (out / name).is_file(), name
        records = json.loads((out / "search.json").read_text())
        assert records[0]["slug"] == "about"

    def test_assets_and_static_files(self, tmp_site: Path) -> None:
        _, out = _exported(tmp_site)
        assert (out / "assets" / "style.css").is_file()
        assert (out / "files" / "doc.pdf").read_bytes() == b"%PDF-1.4 test"
        assert not (out / "about.md").exists()
        assert not (out / "drafts").exists()

    def test_templated_theme_asset(self, disk_theme: Path) -> None:
        _, out = _exported(disk_theme)
        assert (out / "assets" / "site.js").read_text() == "var title = 'Test Site';\n"

    def test_result_counts(self, tmp_site: Path) -> None:
        service = Service(load_config(tmp_site, mode="static"))
        service.load()
        result = StaticExporter(service).export()
        pages = [f for f in result.files if f.source_type in ("content", "list", "taxonomy")]
        assert result.total_pages == len(pages)
        assert result.total_assets >= 2
        assert result.manifest == {}
        assert all(f.size_bytes == f.output_path.stat().st_size for f in result.files)

    def test_output_is_cleaned(self, tmp_site: Path) -> None:
        stale = tmp_site / "build" / "stale.html"
        stale.parent.mkdir()
        stale.write_text("old")
        _exported(tmp_site)
        assert not stale.exists()

    def test_custom_output_dir(self, tmp_site: Path, tmp_path_factory: pytest.TempPathFactory) -> None:
        target = tmp_path_factory.mktemp("out")
        service = Service(load_config(tmp_site, mode="static"))
        service.load()
        result = StaticExporter(service, output_dir=target).export()
        assert result.output_dir == target
        assert (target / "index.html").is_file()
        assert not (tmp_site / "build").exists()

    def test_home_entry_owns_root(self, tmp_site: Path) -> None:
        service, out = _exported(tmp_site, index="about")
        assert (out / "index.html").read_text() == service.state.renderer.render_entry(
            service.state.content.get("about"),
        )


class TestExportRedirects:
    def test_redirects_file_and_refresh_pages(self, redirects_site: Path) -> None:
        _, out = _exported(redirects_site)
        lines = (out / REDIRECTS_FILENAME).read_text().splitlines()
        assert lines == [
            "/old-about/ /about/ 301",
            "/archive/:slug/ /blog/:slug/ 302",
            "/away/ https://other.example.org/ 301",
        ]
        page = (out / "old-about" / "index.html").read_text()
        assert '<meta http-equiv="refresh" content="0; url=/about/">' in page
        assert '<link rel="canonical" href="/about/">' in page
        # Parameterized and external rules only appear in _redirects
        assert not (out / "archive").exists()
        assert not (out / "away").exists()

    def test_refresh_page_never_overwrites_a_page(self, tmp_site: Path) -> None:
        (tmp_site / "redirects.json").write_text(json.dumps({"/about/": "/blog/"}))
        _, out = _exported(tmp_site)
        assert "http-equiv" not in (out / "about" / "index.html").read_text()

    def test_no_rules_no_file(self, tmp_site: Path) -> None:
        _, out = _exported(tmp_site)
        assert not (out / REDIRECTS_FILENAME).exists()


# ---------------------------------------------------------------------------
# Fingerprinting
# ---------------------------------------------------------------------------


class TestFingerprinting:
    """fingerprint_assets / rewrite_asset_refs — content-hash filenames."""

    @pytest.fixture
    def out(self, tmp_path: Path) -> Path:
        out = tmp_path / "build"
        (out / "assets").mkdir(parents=True)
        (out / "assets" / "app.css").write_text("body{}")
        (out / "assets" / "app.css.map").write_text("{}")
        (out / "index.html").write_text('<link href="/assets/app.css"><a href="/assets/app.css.map">')
        return out

    def test_renames_with_digest(self, out: Path) -> None:
        manifest = fingerprint_assets(out)
        renamed = manifest["/assets/app.css"]
        assert renamed.startswith("/assets/app.")
        assert renamed.endswith(".css")
        assert len(Path(renamed).stem.split(".")[-1]) == 8
        assert (out / renamed.lstrip("/")).is_file()
        assert not (out / "assets" / "app.css").exists()

    def test_same_content_same_digest(self, out: Path, tmp_path: Path) -> None:
        other = tmp_path / "other"
        (other / "assets").mkdir(parents=True)
        (other / "assets" / "app.css").write_text("body{}")
        assert fingerprint_assets(out)["/assets/app.css"] == fingerprint_assets(other)["/assets/app.css"]

    def test_rewrites_longest_first(self, out: Path) -> None:
        manifest = fingerprint_assets(out)
        assert rewrite_asset_refs(out, manifest) == 1
        html = (out / "index.html").read_text()
        assert manifest["/assets/app.css"] in html
        assert manifest["/assets/app.css.map"] in html

    def test_no_assets_dir(self, tmp_path: Path) -> None:
        assert fingerprint_assets(tmp_path) == {}
        assert rewrite_asset_refs(tmp_path, {}) == 0

    def test_manifest_file(self, tmp_path: Path) -> None:
        path = write_manifest(tmp_path, {"/assets/a.css": "/assets/a.12345678.css"})
        assert json.loads(path.read_text()) == {"/assets/a.css": "/assets/a.12345678.css"}

    def test_export_with_fingerprinting(self, tmp_site: Path) -> None:
        service = Service(load_config(tmp_site, mode="static", fingerprint_assets=True))
        service.load()
        result = StaticExporter(service).export()
        renamed = result.manifest["/assets/style.css"]
        assert renamed in (result.output_dir / "about" / "index.html").read_text()
        assert (result.output_dir / "manifest.json").is_file()
