"""Markdown conversion — CommonMark + GFM with THYPRESS extensions.

The parser is built once and shared; all per-document state travels in
the markdown-it ``env`` mapping, so concurrent conversions are safe.

Extensions on top of the GFM-like preset:
    - heading ids from :func:`slugify` (existing ids are kept) and a
      flat heading list for TOC construction
    - Pygments syntax highlighting for fenced code
    - ``::: note|tip|warning|danger|info`` admonition containers
    - GitHub alert blockquotes (``> [!NOTE]``)
    - local images rewritten to responsive ``<picture>`` elements
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from markdown_it import MarkdownIt
from markdown_it.token import Token
from mdit_py_plugins.container import container_plugin
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from thypress.content.images import is_external, make_image_ref, picture_markup
from thypress.content.text import escape_html, slugify

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from markdown_it.renderer import RendererHTML
    from markdown_it.utils import OptionsDict

    from thypress.content.images import DimensionCache, ImageRef

ADMONITION_TYPES: tuple[str, ...] = ("note", "tip", "warning", "danger", "info")
ALERT_TYPES: dict[str, str] = {
    "NOTE": "Note",
    "TIP": "Tip",
    "IMPORTANT": "Important",
    "WARNING": "Warning",
    "CAUTION": "Caution",
}

_ALERT_MARKER_RE = re.compile(r"^\[!(NOTE|TIP|IMPORTANT|WARNING|CAUTION)\][ \t]*\n?", re.IGNORECASE)
_FORMATTER = HtmlFormatter(nowrap=True)


@dataclass(frozen=True, slots=True)
class Heading:
    """A heading found while converting a document.

    Attributes:
        level: 1-6.
        id: Anchor id (slugified text unless the source supplied one).
        text: Plain heading text.

    """

    level: int
    id: str
    text: str


@dataclass(slots=True)
class MarkdownResult:
    """Output of :func:`render_markdown`."""

    html: str
    headings: list[Heading] = field(default_factory=list)
    image_refs: list[ImageRef] = field(default_factory=list)
    broken_images: list[str] = field(default_factory=list)

    @property
    def first_h1(self) -> str | None:
        for heading in self.headings:
            if heading.level == 1:
                return heading.text
        return None


# ---------------------------------------------------------------------------
# Highlighting
# ---------------------------------------------------------------------------


def highlight_code(code: str, lang: str, _attrs: Any = None) -> str:
    """Pygments highlight hook. Returns "" to let markdown-it escape plainly."""
    if not lang:
        return ""
    try:
        lexer = get_lexer_by_name(lang.split()[0], stripall=False)
    except ClassNotFound:
        return ""
    return highlight(code, lexer, _FORMATTER)


# ---------------------------------------------------------------------------
# Core rules
# ---------------------------------------------------------------------------


def _github_alerts(state: Any) -> None:
    """Turn ``> [!NOTE]`` blockquotes into alert ``<div>`` blocks."""
    tokens: list[Token] = state.tokens
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if (
            token.type != "blockquote_open"
            or i + 2 >= len(tokens)
            or tokens[i + 1].type != "paragraph_open"
            or tokens[i + 2].type != "inline"
        ):
            i += 1
            continue

        inline = tokens[i + 2]
        match = _ALERT_MARKER_RE.match(inline.content)
        if match is None:
            i += 1
            continue

        kind = match.group(1).upper()
        inline.content = inline.content[match.end():]
        token.tag = "div"
        token.attrSet("class", f"markdown-alert markdown-alert-{kind.lower()}")
        for j in range(i + 1, len(tokens)):
            closing = tokens[j]
            if closing.type == "blockquote_close" and closing.level == token.level:
                closing.tag = "div"
                break

        title = Token("html_block", "", 0)
        title.content = f'<p class="markdown-alert-title">{ALERT_TYPES[kind]}</p>\n'
        title.block = True
        tokens.insert(i + 1, title)
        i += 2


def _heading_ids(state: Any) -> None:
    """Assign slug ids to headings and record them in ``env["headings"]``."""
    tokens: list[Token] = state.tokens
    headings: list[Heading] = state.env.setdefault("headings", [])
    for i, token in enumerate(tokens):
        if token.type != "heading_open" or i + 1 >= len(tokens):
            continue
        inline = tokens[i + 1]
        text = "".join(
            child.content
            for child in inline.children or ()
            if child.type in ("text", "code_inline")
        ) or inline.content
        anchor = token.attrGet("id")
        if not anchor:
            anchor = slugify(text)
            if anchor:
                token.attrSet("id", anchor)
        headings.append(Heading(level=int(token.tag[1]), id=str(anchor or ""), text=text.strip()))


# ---------------------------------------------------------------------------
# Render rules
# ---------------------------------------------------------------------------


def _render_image(
    self: RendererHTML,
    tokens: Sequence[Token],
    idx: int,
    options: OptionsDict,
    env: dict[str, Any],
) -> str:
    token = tokens[idx]
    src = str(token.attrGet("src") or "")
    content_root: Path | None = env.get("content_root")
    if not src or is_external(src) or content_root is None:
        return self.image(tokens, idx, options, env)

    ref = make_image_ref(src, env.get("entry_relative", ""), content_root, env.get("dimensions"))
    if not ref.source_path.is_file():
        env.setdefault("broken_images", []).append(src)
        return self.image(tokens, idx, options, env)

    env.setdefault("image_refs", []).append(ref)
    alt = self.renderInlineAsText(token.children or [], options, env)
    return picture_markup(ref, alt)


def _admonition_renderer(kind: str):
    default_title = kind.capitalize()

    def render(
        self: RendererHTML,
        tokens: Sequence[Token],
        idx: int,
        options: OptionsDict,
        env: dict[str, Any],
    ) -> str:
        token = tokens[idx]
        if token.nesting != 1:
            return "</div>\n"
        info = token.info.strip()
        title = info[len(kind):].strip() or default_title
        return (
            f'<div class="admonition admonition-{kind}">\n'
            f'<p class="admonition-title">{escape_html(title)}</p>\n'
        )

    return render


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_parser() -> MarkdownIt:
    """Return the shared, fully configured parser."""
    md = MarkdownIt(
        "gfm-like",
        {"html": True, "linkify": True, "typographer": True, "highlight": highlight_code},
    )
    md.enable(["replacements", "smartquotes"])
    for kind in ADMONITION_TYPES:
        container_plugin(md, kind, render=_admonition_renderer(kind))
    md.core.ruler.before("inline", "github_alerts", _github_alerts)
    md.core.ruler.push("heading_ids", _heading_ids)
    md.add_render_rule("image", _render_image)
    return md


def render_markdown(
    text: str,
    *,
    entry_relative: str = "",
    content_root: Path | None = None,
    dimensions: DimensionCache | None = None,
) -> MarkdownResult:
    """Convert markdown *text* to an HTML fragment.

    Args:
        text: Markdown body (front matter already removed).
        entry_relative: Content-relative path of the source file; image
            ``src`` values are resolved against its directory.
        content_root: Absolute content root.  Without it, images are
            left as plain ``<img>`` tags.
        dimensions: Intrinsic-width cache used to choose variant sizes.

    """
    env: dict[str, Any] = {
        "entry_relative": entry_relative,
        "content_root": content_root,
        "dimensions": dimensions,
    }
    html = get_parser().render(text, env)
    return MarkdownResult(
        html=html,
        headings=env.get("headings", []),
        image_refs=env.get("image_refs", []),
        broken_images=env.get("broken_images", []),
    )
