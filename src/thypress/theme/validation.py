"""Theme validation — required templates, partial references, feature requirements.

Validation runs only for disk themes; embedded themes ship pre-validated.
Results are values, never exceptions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from thypress.content.processor import Entry
    from thypress.theme.loader import LayerFiles


# Features a theme may declare in ``requires``, with the release that
# introduced each.  Ids are the camelCase names theme.json files use.
THYPRESS_FEATURES: dict[str, str] = {
    "navigation": "0.1.0",
    "entry": "0.3.0",
    "siteTitle": "0.1.0",
    "siteDescription": "0.1.0",
    "siteUrl": "0.1.0",
    "author": "0.1.0",
    "title": "0.1.0",
    "date": "0.1.0",
    "createdAt": "0.1.0",
    "updatedAt": "0.1.0",
    "description": "0.1.0",
    "slug": "0.1.0",
    "url": "0.1.0",
    "tags": "0.1.0",
    "toc": "0.1.0",
    "pagination": "0.1.0",
    "entries": "0.3.0",
    "tag": "0.1.0",
    "categories": "0.2.0",
    "series": "0.2.0",
    "category": "0.2.0",
    "relatedEntries": "0.2.0",
    "prevEntry": "0.2.0",
    "nextEntry": "0.2.0",
    "wordCount": "0.2.0",
    "readingTime": "0.2.0",
    "ogImage": "0.2.0",
    "hasEntriesList": "0.3.0",
    "showToc": "0.2.0",
}

# Template context names (snake_case) accepted in place of their feature id
FEATURE_ALIASES: dict[str, str] = {
    "site_title": "siteTitle",
    "site_description": "siteDescription",
    "site_url": "siteUrl",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "related_entries": "relatedEntries",
    "prev_entry": "prevEntry",
    "next_entry": "nextEntry",
    "word_count": "wordCount",
    "reading_time": "readingTime",
    "og_image": "ogImage",
    "has_entries_list": "hasEntriesList",
    "show_toc": "showToc",
}

_TEMPLATE_REF_RE = re.compile(
    r"""\{%-?\s*(?:include|extends|import|from)\s+["']([^"']+)["']""",
)


def parse_version(version: str) -> tuple[int, ...]:
    """``"1.2.3-beta"`` -> ``(1, 2, 3)``; non-numeric parts count as 0."""
    core = str(version).split("-", 1)[0].split("+", 1)[0]
    parts: list[int] = []
    for piece in core.split("."):
        digits = re.match(r"\d+", piece)
        parts.append(int(digits.group()) if digits else 0)
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as *a* is older than, equal to, or newer than *b*."""
    va, vb = parse_version(a), parse_version(b)
    return (va > vb) - (va < vb)


@dataclass(slots=True)
class ThemeValidation:
    """Outcome of validating a theme."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False


def template_references(source: str) -> list[str]:
    """Literal template names referenced by include/extends/import/from."""
    return _TEMPLATE_REF_RE.findall(source)


def validate_requirements(
    requires: Iterable[Any],
    version: str,
    entries: Iterable[Entry] | None = None,
) -> ThemeValidation:
    """Check declared ``requires`` against the feature registry."""
    result = ThemeValidation()
    entry_list = list(entries) if entries is not None else None
    for raw in requires:
        feature = FEATURE_ALIASES.get(str(raw), str(raw))
        since = THYPRESS_FEATURES.get(feature)
        if since is None:
            result.error(f"Theme requires unknown feature '{feature}'")
            continue
        if compare_versions(version, since) < 0:
            result.error(
                f"Theme requires '{feature}' (added in THYPRESS {since}), "
                f"but you're running {version}"
            )
            continue
        if entry_list is None:
            continue
        if feature == "categories" and not any(e.categories for e in entry_list):
            result.warnings.append("Theme uses categories, but no content has categories defined")
        elif feature == "series" and not any(e.series for e in entry_list):
            result.warnings.append("Theme uses series, but no content has series defined")
        elif feature == "toc" and not any(e.toc for e in entry_list):
            result.warnings.append("Theme uses table of contents, but no content has headings")
    return result


def validate_theme(
    theme_id: str,
    layer: LayerFiles,
    resolve: Callable[[str], str | None],
    version: str,
    entries: Iterable[Entry] | None = None,
) -> ThemeValidation:
    """Validate a disk theme layer.

    Args:
        theme_id: Directory name under ``templates/``.
        layer: Files read from the disk theme.
        resolve: Lookup across all composed layers (returns template
            source or None).
        version: Running THYPRESS version.
        entries: Current content, for content-aware warnings.

    """
    result = ThemeValidation()
    if resolve("index") is None:
        result.error("Missing required template: index.html")

    missing: dict[str, None] = {}
    for source in (*layer.templates.values(), *layer.partials.values()):
        for ref in template_references(source):
            if resolve(ref) is None:
                missing.setdefault(ref.removesuffix(".html"), None)
    if missing:
        names = ", ".join(missing)
        expected = "\n".join(
            f"    - templates/{theme_id}/partials/_{name.removeprefix('partials/').lstrip('_')}.html"
            for name in missing
        )
        result.error(f"Missing partials: {names}\n  Expected locations:\n{expected}")

    requires = layer.metadata.get("requires") or []
    if isinstance(requires, str):
        requires = [requires]
    features = validate_requirements(requires, version, entries)
    for message in features.errors:
        result.error(message)
    result.warnings.extend(features.warnings)

    for rel in layer.skipped:
        result.warnings.append(f"Skipped unreadable file: {rel}")
    return result
