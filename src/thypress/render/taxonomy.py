"""Tags, categories and series across the Entry Map."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Iterable

    from thypress.content.processor import Entry

type Taxonomy = Literal["tag", "category", "series"]

TAXONOMIES: tuple[Taxonomy, ...] = ("tag", "category", "series")


def terms_of(entry: Entry, taxonomy: Taxonomy) -> tuple[str, ...]:
    """The entry's values for *taxonomy*."""
    if taxonomy == "tag":
        return entry.tags
    if taxonomy == "category":
        return entry.categories
    return (entry.series,) if entry.series else ()


def all_terms(entries: Iterable[Entry], taxonomy: Taxonomy) -> list[str]:
    """Every distinct value of *taxonomy*, sorted."""
    terms: set[str] = set()
    for entry in entries:
        terms.update(terms_of(entry, taxonomy))
    return sorted(terms)


def filter_by(entries: Iterable[Entry], taxonomy: Taxonomy, term: str) -> list[Entry]:
    """Entries carrying *term*, preserving input order."""
    return [e for e in entries if term in terms_of(e, taxonomy)]


def taxonomy_url(taxonomy: Taxonomy, term: str) -> str:
    return f"/{taxonomy}/{term}/"


def cache_key(taxonomy: Taxonomy, term: str) -> str:
    """Layer A key for a taxonomy page."""
    return f"__{taxonomy}_{term}"


def related_entries(entry: Entry, ordered: Iterable[Entry], limit: int = 3) -> list[Entry]:
    """Top *limit* entries by shared-tag count, then newest first.

    Entries sharing no tag are never related; *entry* itself is excluded.

    """
    if not entry.tags:
        return []
    tags = set(entry.tags)
    scored: list[tuple[int, Entry]] = []
    for other in ordered:
        if other.slug == entry.slug:
            continue
        shared = len(tags.intersection(other.tags))
        if shared:
            scored.append((shared, other))
    # ``ordered`` is newest first, and sort() is stable
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [other for _, other in scored[:limit]]


def neighbours(entry: Entry, ordered: tuple[Entry, ...]) -> tuple[Entry | None, Entry | None]:
    """``(prev, next)`` in chronological order: prev is older, next is newer."""
    for index, candidate in enumerate(ordered):
        if candidate.slug == entry.slug:
            newer = ordered[index - 1] if index > 0 else None
            older = ordered[index + 1] if index + 1 < len(ordered) else None
            return older, newer
    return None, None


def resolve_term(entries: Iterable[Entry], taxonomy: Taxonomy, segment: str) -> str | None:
    """The term a URL segment names: an exact value, else one whose slug matches."""
    from thypress.content.text import slugify

    terms = all_terms(entries, taxonomy)
    if segment in terms:
        return segment
    for term in terms:
        if slugify(term) == segment:
            return term
    return None
