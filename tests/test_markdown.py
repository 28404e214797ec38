"""Tests for thypress.content.markdown — conversion and extensions."""

from __future__ import annotations

from pathlib import Path

from thypress.content.markdown import get_parser, highlight_code, render_markdown


class TestHeadings:
    """Heading ids and the flat heading list."""

    def test_ids_from_text(self) -> None:
        result = render_markdown("## Hello World\n")
        assert '<h2 id="hello-world">Hello World</h2>' in result.html

    def test_headings_recorded_in_order(self) -> None:
        result = render_markdown("# Title\n\n## One\n\n### Two `code`\n")
        assert [(h.level, h.id) for h in result.headings] == [
            (1, "title"),
            (2, "one"),
            (3, "two-code"),
        ]
        assert result.first_h1 == "Title"

    def test_no_h1(self) -> None:
        assert render_markdown("## Only two\n").first_h1 is None


class TestExtensions:
    """Admonitions, GitHub alerts, highlighting and GFM features."""

    def test_admonition_with_title(self) -> None:
        html = render_markdown("::: warning Careful now\nBody text\n:::\n").html
        assert '<div class="admonition admonition-warning">' in html
        assert '<p class="admonition-title">Careful now</p>' in html
        assert "Body text" in html

    def test_admonition_default_title(self) -> None:
        html = render_markdown("::: tip\nHint\n:::\n").html
        assert '<p class="admonition-title">Tip</p>' in html

    def test_github_alert(self) -> None:
        html = render_markdown("> [!NOTE]\n> Read this.\n").html
        assert 'class="markdown-alert markdown-alert-note"' in html
        assert '<p class="markdown-alert-title">Note</p>' in html
        assert "[!NOTE]" not in html
        assert "<blockquote>" not in html

    def test_plain_blockquote_untouched(self) -> None:
        html = render_markdown("> Just a quote.\n").html
        assert "<blockquote>" in html

    def test_fenced_code_highlighted(self) -> None:
        html = render_markdown("```python\nx = 1\n```\n").html
        assert "language-python" in html
        assert '<span class="' in html

    def test_unknown_language_is_escaped(self) -> None:
        assert highlight_code("<b>", "no-such-language") == ""
        html = render_markdown("```no-such-language\n<b>\n```\n").html
        assert "&lt;b&gt;" in html

    def test_tables(self) -> None:
        html = render_markdown("| a | b |\n|---|---|\n| 1 | 2 |\n").html
        assert "<table>" in html

    def test_linkify(self) -> None:
        html = render_markdown("Visit https://example.com today\n").html
        assert '<a href="https://example.com">' in html

    def test_raw_html_allowed(self) -> None:
        html = render_markdown('<div class="x">hi</div>\n').html
        assert '<div class="x">hi</div>' in html

    def test_parser_is_shared(self) -> None:
        assert get_parser() is get_parser()


class TestImages:
    """Local images become <picture> elements; missing ones are reported."""

    def test_local_image_becomes_picture(self, tmp_path: Path) -> None:
        content = tmp_path / "content"
        (content / "blog").mkdir(parents=True)
        (content / "blog" / "photo.png").write_bytes(b"not really a png")

        result = render_markdown(
            "![A photo](photo.png)\n",
            entry_relative="blog/post.md",
            content_root=content,
        )
        assert "<picture>" in result.html
        assert 'alt="A photo"' in result.html
        assert len(result.image_refs) == 1
        ref = result.image_refs[0]
        assert ref.output_key == "blog/photo"
        assert ref.variant_url(800, "webp").startswith("/blog/photo-800-")

    def test_missing_image_reported(self, tmp_path: Path) -> None:
        result = render_markdown(
            "![gone](missing.png)\n",
            entry_relative="post.md",
            content_root=tmp_path,
        )
        assert result.broken_images == ["missing.png"]
        assert "<picture>" not in result.html
        assert '<img src="missing.png"' in result.html

    def test_external_image_untouched(self, tmp_path: Path) -> None:
        result = render_markdown(
            "![x](https://cdn.example.com/a.png)\n",
            entry_relative="post.md",
            content_root=tmp_path,
        )
        assert result.image_refs == []
        assert result.broken_images == []
        assert 'src="https://cdn.example.com/a.png"' in result.html

    def test_without_content_root(self) -> None:
        result = render_markdown("![x](a.png)\n")
        assert "<img" in result.html
        assert result.broken_images == []
