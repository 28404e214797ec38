"""Text helpers shared by the content pipeline and the renderer."""

from __future__ import annotations

import re
import unicodedata

_COMBINING_RE = re.compile(r"[\u0300-\u036f]")
_NON_WORD_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-+")
_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})-?")


def slugify(text: str) -> str:
    """Unicode-safe slug: lowercase, accents folded, spaces to ``-``.

    Word characters from any script survive (``"日本語"`` stays as is);
    punctuation is stripped; runs of dashes collapse.

        >>> slugify("Hello, World!")
        'hello-world'
        >>> slugify("Café  au lait")
        'cafe-au-lait'

    """
    text = unicodedata.normalize("NFKD", text.lower())
    text = _COMBINING_RE.sub("", text)
    text = _NON_WORD_RE.sub("", text)
    text = _WHITESPACE_RE.sub("-", text.strip())
    text = _DASHES_RE.sub("-", text)
    return text.strip("-")


def slugify_path(relative: str) -> str:
    """Slugify each segment of a ``/``-separated path, keeping the separators."""
    segments = [slugify(part) for part in relative.split("/")]
    return "/".join(s for s in segments if s)


def strip_date_prefix(name: str) -> str:
    """Remove a leading ``YYYY-MM-DD-`` from a file or folder name."""
    return _DATE_PREFIX_RE.sub("", name)


def date_prefix(name: str) -> str | None:
    """Return the ``YYYY-MM-DD`` prefix of *name*, if any."""
    match = _DATE_PREFIX_RE.match(name)
    return match.group(1) if match else None


def humanize_name(name: str) -> str:
    """Turn ``2024-01-05-my_first-post`` into ``my first post``."""
    return re.sub(r"[-_]+", " ", strip_date_prefix(name)).strip()


def escape_html(text: str) -> str:
    """Escape the five HTML-significant characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
    )


def plain_text(markdown: str) -> str:
    """Strip images, link targets and inline markup for word counts."""
    text = re.sub(r"!\[.*?\]\(.*?\)", "", markdown)
    text = re.sub(r"\[([^\]]+)\]\(.*?\)", r"\1", text)
    text = re.sub(r"[#*`_~]", "", text)
    return _WHITESPACE_RE.sub(" ", text).strip()
