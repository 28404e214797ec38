"""Theme layer loading and Jinja2 environment construction.

A layer is a directory of theme files.  Loading classifies every file:

- ``partials/**.html`` or ``_name.html`` -> partial, keyed by stem
- ``.html`` whose front matter sets ``partial: true`` -> partial
- other ``.html`` -> page template, keyed by stem
- non-HTML text containing ``{{`` or ``{%`` -> templated asset
- anything else -> static asset (raw bytes)

Layers are merged in order, later layers replacing earlier ones file by
file.  Partials and page templates are resolved through one loader that
accepts ``name``, ``_name``, ``partials/name`` and ``partials/_name``
(with or without ``.html``).
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jinja2

from thypress.content.frontmatter import FrontMatterError, parse_front_matter

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

TEXT_ASSET_EXTENSIONS = frozenset({
    ".css", ".js", ".mjs", ".txt", ".xml", ".json", ".svg", ".webmanifest", ".map", ".md",
})
_IGNORED_FILES = frozenset({"theme.json"})

mimetypes.add_type("application/manifest+json", ".webmanifest")
mimetypes.add_type("text/javascript", ".mjs")
mimetypes.add_type("image/avif", ".avif")
mimetypes.add_type("font/woff2", ".woff2")


def guess_mime(name: str) -> str:
    """MIME type for *name*, ``application/octet-stream`` when unknown."""
    mime, _ = mimetypes.guess_type(name)
    if mime is None:
        return "application/octet-stream"
    if mime.startswith("text/") or mime in ("application/javascript", "application/json"):
        return f"{mime}; charset=utf-8"
    return mime


def partial_candidates(name: str) -> list[str]:
    """Registry keys tried when resolving a partial reference."""
    base = name.removesuffix(".html").removeprefix("partials/")
    bare = base.lstrip("_")
    return [base, bare, f"_{bare}"]


def is_templated_text(text: str) -> bool:
    return "{{" in text or "{%" in text


# ---------------------------------------------------------------------------
# Layer contents
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Asset:
    """A non-HTML theme file.

    Exactly one of ``data`` and ``source`` is set: static assets carry
    bytes, templated assets carry template source rendered at serve time.

    Attributes:
        key: Path relative to the theme root (``assets/style.css``).
        mime: Content-Type to serve with.
        data: Raw bytes for static assets.
        source: Template source for templated assets.

    """

    key: str
    mime: str
    data: bytes | None = None
    source: str | None = None

    @property
    def is_templated(self) -> bool:
        return self.source is not None


@dataclass(slots=True)
class LayerFiles:
    """Files read from one theme layer."""

    templates: dict[str, str] = field(default_factory=dict)
    partials: dict[str, str] = field(default_factory=dict)
    assets: dict[str, Asset] = field(default_factory=dict)
    root_pages: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def _walk(directory: Path, prefix: str = "") -> Iterator[tuple[Path, str]]:
    try:
        children = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError:
        return
    for child in children:
        if child.name.startswith("."):
            continue
        rel = f"{prefix}{child.name}"
        if child.is_dir():
            yield from _walk(child, f"{rel}/")
        elif child.is_file():
            yield child, rel


def read_theme_metadata(directory: Path) -> dict[str, Any]:
    """Metadata from ``theme.json``, else from ``index.html`` front matter."""
    import json

    from thypress.console import warning

    theme_json = directory / "theme.json"
    if theme_json.is_file():
        try:
            data = json.loads(theme_json.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            warning(f"Could not parse {theme_json}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    index = directory / "index.html"
    if index.is_file():
        try:
            front_matter, _ = parse_front_matter(index.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, FrontMatterError):
            return {}
        if any(k in front_matter for k in ("name", "version", "requires", "singleFile", "handles")):
            return front_matter
    return {}


def read_layer(directory: Path) -> LayerFiles:
    """Classify every file in a theme directory.

    Unreadable files are logged and recorded in ``skipped``.

    """
    from thypress.console import warning

    layer = LayerFiles(metadata=read_theme_metadata(directory))
    for path, rel in _walk(directory):
        name = path.name
        if rel in _IGNORED_FILES:
            continue
        suffix = path.suffix.lower()
        try:
            if suffix == ".html":
                text = path.read_text(encoding="utf-8")
                _classify_html(layer, rel, name, text)
            else:
                layer.assets[rel] = _read_asset(path, rel)
        except (OSError, UnicodeDecodeError) as exc:
            warning(f"Could not read theme file {rel}: {exc}")
            layer.skipped.append(rel)
    return layer


def _classify_html(layer: LayerFiles, rel: str, name: str, text: str) -> None:
    stem = name[: -len(".html")]
    try:
        front_matter, body = parse_front_matter(text)
    except FrontMatterError:
        front_matter, body = {}, text

    if rel.startswith("partials/") or name.startswith("_") or front_matter.get("partial") is True:
        layer.partials[stem] = body
        return
    layer.templates[stem] = body
    if "/" not in rel:
        layer.root_pages.append(stem)


def _read_asset(path: Path, rel: str) -> Asset:
    mime = guess_mime(path.name)
    data = path.read_bytes()
    if path.suffix.lower() in TEXT_ASSET_EXTENSIONS:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return Asset(key=rel, mime=mime, data=data)
        if is_templated_text(text):
            return Asset(key=rel, mime=mime, source=text)
    return Asset(key=rel, mime=mime, data=data)


# ---------------------------------------------------------------------------
# Jinja2 integration
# ---------------------------------------------------------------------------


class LayeredLoader(jinja2.BaseLoader):
    """Resolve page templates and partials from the merged layer maps.

    The maps are built fresh on every theme load, so partials from a
    previous load never leak into the next one.

    """

    def __init__(self, templates: Mapping[str, str], partials: Mapping[str, str]) -> None:
        self._templates = templates
        self._partials = partials

    def resolve(self, name: str) -> str | None:
        stem = name.removesuffix(".html")
        if stem in self._templates:
            return self._templates[stem]
        for key in partial_candidates(name):
            if key in self._partials:
                return self._partials[key]
        return None

    def get_source(
        self, environment: jinja2.Environment, template: str,
    ) -> tuple[str, str | None, Callable[[], bool] | None]:
        source = self.resolve(template)
        if source is None:
            raise jinja2.TemplateNotFound(template)
        return source, None, lambda: True

    def list_templates(self) -> list[str]:
        return sorted(set(self._templates) | set(self._partials))


def _date_filter(value: Any, fmt: str = "%B %d, %Y") -> str:
    import datetime

    if not value:
        return ""
    try:
        parsed = datetime.date.fromisoformat(str(value)[:10])
    except ValueError:
        return str(value)
    return parsed.strftime(fmt)


def create_environment(
    templates: Mapping[str, str],
    partials: Mapping[str, str],
    *,
    autoescape: bool = True,
) -> jinja2.Environment:
    """Build a Jinja2 environment over the merged layer maps."""
    env = jinja2.Environment(
        loader=LayeredLoader(templates, partials),
        autoescape=autoescape,
        trim_blocks=True,
        lstrip_blocks=True,
        auto_reload=False,
    )
    env.filters["date"] = _date_filter
    return env
