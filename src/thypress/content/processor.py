"""Content ingestion — one file in, one Entry out.

:func:`process_file` is a pure function of the file's bytes, its path,
and the site configuration (plus the shared image-dimension cache).
Re-ingesting an unchanged file yields an equal Entry.
"""

from __future__ import annotations

import datetime
import hashlib
import math
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup, Doctype, Tag

from thypress._errors import ContentError
from thypress.content.frontmatter import FrontMatterError, as_list, parse_front_matter
from thypress.content.markdown import Heading, render_markdown
from thypress.content.text import date_prefix, escape_html, humanize_name, plain_text, slugify_path

if TYPE_CHECKING:
    from thypress._types import EntryType, Slug
    from thypress.config import ThypressConfig
    from thypress.content.images import DimensionCache, ImageRef

# Names owned by the pipeline; front matter keys with these names are not
# flattened into the template's ``entry`` mapping.
RESERVED_FIELDS = frozenset({
    "slug", "url", "filename", "title", "date", "createdAt", "updatedAt",
    "tags", "categories", "series", "html", "rawContent", "description",
    "ogImage", "wordCount", "readingTime", "section", "type", "toc",
    "headings", "relativePath", "dateISO", "createdAtISO", "updatedAtISO",
    "renderedHtml",
})

_EXTENSION_TYPES: dict[str, EntryType] = {
    ".md": "markdown",
    ".txt": "text",
    ".html": "html",
}

_URL_SUFFIX_RE = re.compile(r"\.(md|txt|html)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TocNode:
    """One heading in an entry's table of contents.

    Attributes:
        level: Heading level (2-4).
        id: Anchor id.
        text: Heading text.
        children: Deeper headings nested under this one.

    """

    level: int
    id: str
    text: str
    children: tuple[TocNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "id": self.id,
            "text": self.text,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True, slots=True)
class Entry:
    """An ingested content file.

    Prev/next neighbours are not stored; they are computed from a sorted
    snapshot at render time.

    Attributes:
        slug: Unique key in the Entry Map (``docs/intro``, ``index``).
        url: Site-relative URL ending in ``/``.
        type: ``markdown``, ``text`` or ``html``.
        title: Resolved title.
        created_at: ISO date (``YYYY-MM-DD``).
        updated_at: ISO date (``YYYY-MM-DD``).
        tags: Ordered, duplicate-free.
        categories: Ordered, duplicate-free.
        series: Optional series name.
        description: Front matter description or "".
        rendered: HTML body fragment.
        rendered_full: Full HTML document served verbatim (raw HTML only).
        toc: H2-H4 heading tree.
        headings: Every heading in source order.
        image_refs: Local images referenced by the body.
        broken_images: Image sources that did not resolve to a file.
        word_count: Words in the body, markup stripped.
        reading_time: ``ceil(word_count / reading_speed)`` minutes.
        front_matter: Raw front matter as parsed.
        section: First directory segment, or None at the content root.
        relative_path: Content-relative path of the source file.
        og_image: Front matter ``image`` or the first image's middle JPEG.
        raw_content: Source body with front matter removed.

    """

    slug: Slug
    url: str
    type: EntryType
    title: str
    created_at: str
    updated_at: str
    tags: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    series: str | None = None
    description: str = ""
    rendered: str = ""
    rendered_full: str | None = None
    toc: tuple[TocNode, ...] = ()
    headings: tuple[Heading, ...] = ()
    image_refs: tuple[ImageRef, ...] = ()
    broken_images: tuple[str, ...] = ()
    word_count: int = 0
    reading_time: int = 0
    front_matter: dict[str, Any] = field(default_factory=dict, hash=False, compare=True)
    section: str | None = None
    relative_path: str = ""
    og_image: str | None = None
    raw_content: str = ""

    @property
    def is_raw(self) -> bool:
        """True when the entry is a full HTML document served verbatim."""
        return self.rendered_full is not None

    @property
    def template(self) -> str | None:
        value = self.front_matter.get("template") or self.front_matter.get("layout")
        return str(value) if value else None

    def custom_fields(self) -> dict[str, Any]:
        """Front matter keys not owned by the pipeline."""
        return {k: v for k, v in self.front_matter.items() if k not in RESERVED_FIELDS}

    def to_context(self) -> dict[str, Any]:
        """Flatten the entry for template access (custom fields first)."""
        data: dict[str, Any] = dict(self.custom_fields())
        data.update({
            "slug": self.slug,
            "url": self.url,
            "type": self.type,
            "title": self.title,
            "date": self.created_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "tags": list(self.tags),
            "categories": list(self.categories),
            "series": self.series,
            "description": self.description,
            "html": self.rendered,
            "toc": [n.to_dict() for n in self.toc],
            "headings": [{"level": h.level, "id": h.id, "text": h.text} for h in self.headings],
            "word_count": self.word_count,
            "reading_time": self.reading_time,
            "section": self.section,
            "relative_path": self.relative_path,
            "filename": self.relative_path,
            "og_image": self.og_image,
            "front_matter": self.front_matter,
        })
        return data


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def entry_type_for(path: Path | str) -> EntryType | None:
    return _EXTENSION_TYPES.get(PurePosixPath(str(path)).suffix.lower())


def generate_url(relative: str) -> str:
    """Map a content-relative path to its site URL.

        >>> generate_url("blog/2024-01-05-Hello World.md")
        '/blog/2024-01-05-hello-world/'
        >>> generate_url("docs/index.md")
        '/docs/'
        >>> generate_url("index.md")
        '/'

    """
    stem = _URL_SUFFIX_RE.sub("", relative.replace("\\", "/"))
    if stem == "index":
        return "/"
    if stem.endswith("/index"):
        stem = stem[: -len("/index")]
    slug = slugify_path(stem)
    return f"/{slug}/" if slug else "/"


def normalize_permalink(permalink: str) -> str:
    url = str(permalink).strip()
    if not url.startswith("/"):
        url = "/" + url
    if not url.endswith("/"):
        url += "/"
    return url


def slug_for_url(url: str) -> Slug:
    return url.strip("/") or "index"


def build_toc(headings: list[Heading] | tuple[Heading, ...]) -> tuple[TocNode, ...]:
    """Nest H2-H4 headings by level, in source order."""
    root: list[dict[str, Any]] = []
    stack: list[dict[str, Any]] = []
    for heading in headings:
        if not 2 <= heading.level <= 4 or not heading.id:
            continue
        node = {"heading": heading, "children": []}
        while stack and stack[-1]["heading"].level >= heading.level:
            stack.pop()
        (stack[-1]["children"] if stack else root).append(node)
        stack.append(node)

    def freeze(node: dict[str, Any]) -> TocNode:
        h: Heading = node["heading"]
        return TocNode(h.level, h.id, h.text, tuple(freeze(c) for c in node["children"]))

    return tuple(freeze(n) for n in root)


def reading_stats(body: str, reading_speed: int) -> tuple[int, int]:
    """Return ``(word_count, reading_time_minutes)``."""
    text = plain_text(body)
    words = len(text.split()) if text else 0
    return words, math.ceil(words / max(reading_speed, 1))


def normalize_date(value: Any) -> str | None:
    """Coerce a front matter date to ``YYYY-MM-DD``; None if unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    text = str(value).strip()
    try:
        return datetime.datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass
    try:
        return datetime.date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return None


def _mtime_date(path: Path) -> str:
    try:
        ts = path.stat().st_mtime
    except OSError:
        ts = 0.0
    return datetime.datetime.fromtimestamp(ts, tz=datetime.UTC).date().isoformat()


def resolve_title(
    front_matter: dict[str, Any],
    first_h1: str | None,
    filename: str,
    path: Path,
) -> str:
    """Front matter -> first H1 -> humanized filename -> ``untitled-<hash>``."""
    title = front_matter.get("title")
    if title not in (None, ""):
        return str(title)
    if first_h1:
        return first_h1
    stem = PurePosixPath(filename).stem
    name = humanize_name(stem)
    if name:
        return name
    if stem:
        return stem
    return f"untitled-{hashlib.md5(str(path).encode('utf-8')).hexdigest()[:8]}"


def resolve_dates(front_matter: dict[str, Any], filename: str, path: Path) -> tuple[str, str]:
    """Return ``(created_at, updated_at)`` as ISO dates."""
    created = normalize_date(front_matter.get("createdAt")) or normalize_date(front_matter.get("date"))
    if created is None:
        created = date_prefix(PurePosixPath(filename).stem)
    mtime = _mtime_date(path)
    if created is None:
        created = mtime
    updated = (
        normalize_date(front_matter.get("updatedAt"))
        or normalize_date(front_matter.get("updated"))
        or mtime
    )
    return created, updated


# ---------------------------------------------------------------------------
# HTML intent
# ---------------------------------------------------------------------------


_DOCUMENT_TAGS = frozenset({"html", "head", "body"})
_HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


def _is_full_document(soup: BeautifulSoup) -> bool:
    for node in soup.contents:
        if isinstance(node, Doctype):
            return True
        if isinstance(node, Tag):
            return node.name in _DOCUMENT_TAGS
    return False


def _headings_with_ids(soup: BeautifulSoup) -> list[Heading]:
    return [
        Heading(int(tag.name[1]), str(tag["id"]), tag.get_text().strip())
        for tag in soup.find_all(_HEADING_TAGS, id=True)
        if tag["id"]
    ]


def detect_html_intent(body: str, front_matter: dict[str, Any]) -> tuple[bool, list[Heading]]:
    """Return ``(is_raw_document, headings_with_ids)`` for an HTML body.

    ``template: none|false`` forces raw; any other explicit template forces
    templated; otherwise a doctype or a leading ``html``/``head``/``body``
    element marks a complete document.

    """
    soup = BeautifulSoup(body, "html.parser")
    headings = _headings_with_ids(soup)

    template = front_matter.get("template", front_matter.get("layout"))
    if template in (None, ""):
        return _is_full_document(soup), headings
    if template is False or str(template).lower() in ("none", "false"):
        return True, headings
    return False, headings


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------


def process_file(
    path: Path,
    relative: str,
    config: ThypressConfig,
    *,
    dimensions: DimensionCache | None = None,
) -> Entry | None:
    """Ingest one content file.

    Args:
        path: Absolute path to the file.
        relative: Content-relative web path (forward slashes).
        config: Site configuration.
        dimensions: Intrinsic image widths for responsive variants.

    Returns:
        The Entry, or None for drafts and unsupported extensions.

    Raises:
        ContentError: If the file cannot be read or its front matter is
            malformed.

    """
    entry_type = entry_type_for(path)
    if entry_type is None:
        return None

    try:
        source = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read {relative}: {exc}"
        raise ContentError(msg) from exc

    try:
        front_matter, body = parse_front_matter(source)
    except FrontMatterError as exc:
        msg = f"{relative}: {exc}"
        raise ContentError(msg) from exc

    if front_matter.get("draft") is True:
        return None

    permalink = front_matter.get("permalink")
    url = normalize_permalink(permalink) if permalink else generate_url(relative)
    slug = slug_for_url(url)

    parts = relative.split("/")
    section = parts[0] if len(parts) > 1 else None
    filename = parts[-1]

    rendered_full: str | None = None
    image_refs: list[ImageRef] = []
    broken: list[str] = []
    first_h1: str | None = None

    if entry_type == "markdown":
        result = render_markdown(
            body,
            entry_relative=relative,
            content_root=config.content_path,
            dimensions=dimensions,
        )
        rendered = result.html
        headings = result.headings
        image_refs = result.image_refs
        broken = result.broken_images
        first_h1 = result.first_h1
    elif entry_type == "text":
        rendered = f"<pre>{escape_html(body) if config.escape_text_files else body}</pre>"
        headings = []
    else:
        is_raw, headings = detect_html_intent(body, front_matter)
        rendered = body
        if is_raw:
            rendered_full = body
            headings = []

    title = resolve_title(front_matter, first_h1, filename, path)
    created_at, updated_at = resolve_dates(front_matter, filename, path)
    word_count, reading_time = reading_stats(body, config.reading_speed)

    og_image = front_matter.get("image") or None
    if og_image is None and image_refs:
        og_image = image_refs[0].og_image

    series = front_matter.get("series")
    return Entry(
        slug=slug,
        url=url,
        type=entry_type,
        title=title,
        created_at=created_at,
        updated_at=updated_at,
        tags=tuple(as_list(front_matter.get("tags"))),
        categories=tuple(as_list(front_matter.get("categories"))),
        series=str(series) if series not in (None, "") else None,
        description=str(front_matter.get("description") or ""),
        rendered=rendered,
        rendered_full=rendered_full,
        toc=build_toc(headings),
        headings=tuple(headings),
        image_refs=tuple(image_refs),
        broken_images=tuple(broken),
        word_count=word_count,
        reading_time=reading_time,
        front_matter=front_matter,
        section=section,
        relative_path=relative,
        og_image=str(og_image) if og_image else None,
        raw_content=body,
    )
