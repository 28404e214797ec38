"""Shared type definitions for thypress."""

from collections.abc import Callable
from typing import Any, Literal

# Process-wide serving mode, fixed before ingestion
type Mode = Literal["dynamic", "static", "static_preview"]

# Content file kinds accepted by the pipeline
type EntryType = Literal["markdown", "text", "html"]

# Page types understood by the context builder
type PageType = Literal["entry", "index", "tag", "category", "series", "404"]

# Compressed encodings held in the cache layers
type Encoding = Literal["gzip", "br"]

# URL path component identifying an entry (e.g. "docs/intro", "index")
type Slug = str

# Live-reload client identifier
type ClientID = str

# Template context passed to a compiled template
type Context = dict[str, Any]

# Opaque handler for the administrative prefix
type AdminHandler = Callable[..., Any]
