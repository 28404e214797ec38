"""Front matter parsing.

A YAML block delimited by ``---`` lines at the head of a file.  Dates
parsed by YAML are normalized to ISO ``YYYY-MM-DD`` strings so that
entries compare and serialize uniformly.
"""

from __future__ import annotations

import datetime
import re
from typing import Any

import yaml

_FRONT_MATTER_RE = re.compile(
    r"\A(?:\ufeff)?---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)


class FrontMatterError(ValueError):
    """Malformed YAML in a front matter block."""


def parse_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Split *text* into ``(front_matter, body)``.

    Returns an empty mapping and the original text when no block is present.

    Raises:
        FrontMatterError: If the block is present but not valid YAML or
            not a mapping.

    """
    match = _FRONT_MATTER_RE.match(text)
    if match is None:
        return {}, text

    raw = match.group(1)
    body = text[match.end():]
    if not raw.strip():
        return {}, body

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        msg = f"Invalid front matter: {exc}"
        raise FrontMatterError(msg) from exc

    if data is None:
        return {}, body
    if not isinstance(data, dict):
        msg = "Front matter must be a mapping"
        raise FrontMatterError(msg)
    return {str(k): _normalize(v) for k, v in data.items()}, body


def as_list(value: Any) -> list[str]:
    """Coerce a scalar-or-list front matter value to a de-duplicated list."""
    if value is None or value == "":
        return []
    items = value if isinstance(value, list) else [value]
    seen: dict[str, None] = {}
    for item in items:
        if item is None:
            continue
        seen.setdefault(str(item), None)
    return list(seen)


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    return value
