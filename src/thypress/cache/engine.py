"""Cache engine — five layers and the HTTP serving discipline.

Layers:
    A  rendered HTML            slug -> str
    B  precompressed HTML       "<slug>:<enc>" -> CachedBody
    C  static assets            key -> CachedAsset (byte budget)
    D  dynamic artifacts        key -> bytes (search index, feeds, 404)
    E  hot compression          "<enc>:<etag>" -> bytes (bounded, FIFO)

Serving:
    1. ETag = md5(body); ``If-None-Match`` match -> 304, no body.
    2. Compressible MIME types are served as br, else gzip, else identity,
       per ``Accept-Encoding``; compressed bytes are memoized in Layer E.
    3. Cache-Control is chosen by mode and MIME type.

Layer B is consulted only in ``static`` and ``static_preview`` modes.
"""

from __future__ import annotations

import asyncio
import gzip
import re
from typing import TYPE_CHECKING

import brotli
from starlette.responses import Response

from thypress.cache.layers import (
    MAX_ENTRIES,
    CachedBody,
    HotCompressionCache,
    StaticAssetCache,
    etag_for,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from thypress._types import Encoding, Mode
    from thypress.observability.metrics import RequestMetrics

HTML_MIME = "text/html; charset=utf-8"
ENCODINGS: tuple[Encoding, ...] = ("gzip", "br")

_COMPRESSIBLE_RE = re.compile(r"text|javascript|json|xml|css")
_LONG_LIVED_MIMES = frozenset({"text/css", "text/javascript", "application/javascript"})


def is_compressible(mime: str) -> bool:
    return _COMPRESSIBLE_RE.search(mime) is not None


def compress(data: bytes, encoding: Encoding) -> bytes:
    """Deterministic compression: identical input gives identical output."""
    if encoding == "br":
        return brotli.compress(data)
    return gzip.compress(data, mtime=0)


def parse_accept_encoding(header: str | None) -> set[str]:
    """Encodings the client accepts (``q=0`` entries excluded)."""
    accepted: set[str] = set()
    if not header:
        return accepted
    for part in header.split(","):
        token, _, params = part.strip().partition(";")
        token = token.strip().lower()
        if not token:
            continue
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        if q > 0:
            accepted.add(token)
    return accepted


def select_encoding(header: str | None) -> Encoding | None:
    """``br`` if advertised, else ``gzip`` if advertised, else None."""
    accepted = parse_accept_encoding(header)
    if "br" in accepted:
        return "br"
    if "gzip" in accepted:
        return "gzip"
    return None


def etag_matches(header: str | None, etag: str) -> bool:
    """Compare ``If-None-Match`` with *etag* (quotes and ``W/`` tolerated)."""
    if not header:
        return False
    for candidate in header.split(","):
        value = candidate.strip()
        if value.startswith("W/"):
            value = value[2:]
        if value.strip('"') == etag or value == "*":
            return True
    return False


def _base_mime(mime: str) -> str:
    return mime.split(";", 1)[0].strip().lower()


class CacheEngine:
    """Owns the five cache layers and builds HTTP responses from them.

    Args:
        mode: Serving mode; only static modes use Layer B and long-lived
            Cache-Control headers.
        max_size: Byte budget for Layer C.
        max_entries: Bound on Layer E.
        metrics: Counters incremented on 304s.

    Thread Safety:
        Layers C and E are internally locked.  Layers A, B and D are
        written only by the serializer and by request handlers storing
        fresh renders; a generation counter prevents a render that
        started before an invalidation from being stored after it.

    """

    def __init__(
        self,
        mode: Mode = "dynamic",
        *,
        max_size: int = 50 * 1024 * 1024,
        max_entries: int = MAX_ENTRIES,
        metrics: RequestMetrics | None = None,
    ) -> None:
        self.mode: Mode = mode
        self.metrics = metrics
        self.rendered: dict[str, str] = {}
        self.precompressed: dict[str, CachedBody] = {}
        self.hot = HotCompressionCache(max_entries)
        self.assets = StaticAssetCache(max_size, on_overflow=self.hot.clear)
        self.dynamic: dict[str, bytes] = {}
        self.generation = 0

    @property
    def is_dynamic(self) -> bool:
        return self.mode == "dynamic"

    # ------------------------------------------------------------------
    # Headers
    # ------------------------------------------------------------------

    def cache_control(self, mime: str) -> str:
        if self.is_dynamic:
            return "no-cache, no-store, must-revalidate"
        base = _base_mime(mime)
        if base.startswith(("image/", "font/")) or base in _LONG_LIVED_MIMES:
            return "public, max-age=31536000, immutable"
        if base == "text/html":
            return "public, max-age=3600"
        return "public, max-age=300"

    def _headers(self, mime: str, etag: str, encoding: str | None = None) -> dict[str, str]:
        headers = {
            "ETag": etag,
            "Cache-Control": self.cache_control(mime),
            "Vary": "Accept-Encoding",
        }
        if encoding:
            headers["Content-Encoding"] = encoding
        return headers

    def not_modified(self, mime: str, etag: str) -> Response:
        if self.metrics is not None:
            self.metrics.record("http_cache")
        return Response(status_code=304, headers=self._headers(mime, etag))

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    async def respond(
        self,
        body: bytes | str,
        mime: str,
        request_headers: Mapping[str, str],
        *,
        status_code: int = 200,
    ) -> Response:
        """Serve *body* with conditional-GET and content negotiation."""
        data = body.encode("utf-8") if isinstance(body, str) else body
        etag = etag_for(data)

        if status_code == 200 and etag_matches(request_headers.get("if-none-match"), etag):
            return self.not_modified(mime, etag)

        encoding = select_encoding(request_headers.get("accept-encoding")) if is_compressible(mime) else None
        if encoding is None:
            return Response(data, status_code=status_code, media_type=mime, headers=self._headers(mime, etag))

        key = HotCompressionCache.key(encoding, etag)
        compressed = self.hot.get(key)
        if compressed is None:
            compressed = await asyncio.to_thread(compress, data, encoding)
            self.hot.put(key, compressed)
        return Response(
            compressed,
            status_code=status_code,
            media_type=mime,
            headers=self._headers(mime, etag, encoding),
        )

    def serve_precompressed(self, key: str, request_headers: Mapping[str, str]) -> Response | None:
        """Serve Layer B for *key* (static modes only)."""
        if self.is_dynamic:
            return None
        accepted = parse_accept_encoding(request_headers.get("accept-encoding"))
        for encoding in ("br", "gzip"):
            if encoding not in accepted:
                continue
            cached = self.precompressed.get(f"{key}:{encoding}")
            if cached is None:
                continue
            if etag_matches(request_headers.get("if-none-match"), cached.etag):
                return self.not_modified(HTML_MIME, cached.etag)
            return Response(
                cached.data,
                media_type=HTML_MIME,
                headers=self._headers(HTML_MIME, cached.etag, encoding),
            )
        return None

    # ------------------------------------------------------------------
    # Layer A
    # ------------------------------------------------------------------

    def get_rendered(self, key: str) -> str | None:
        return self.rendered.get(key)

    def store_rendered(self, key: str, html: str, generation: int | None = None) -> bool:
        """Store a fresh render unless an invalidation happened since *generation*."""
        if generation is not None and generation != self.generation:
            return False
        self.rendered[key] = html
        return True

    # ------------------------------------------------------------------
    # Layer C / D
    # ------------------------------------------------------------------

    def add_static_asset(self, key: str, data: bytes, mime: str):
        return self.assets.add(key, data, mime)

    def get_static_asset(self, key: str):
        return self.assets.get(key)

    def get_dynamic(self, key: str) -> bytes | None:
        return self.dynamic.get(key)

    def store_dynamic(self, key: str, data: bytes, generation: int | None = None) -> bool:
        if generation is not None and generation != self.generation:
            return False
        self.dynamic[key] = data
        return True

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def delete(self, key: str) -> bool:
        """Drop Layer A and both precompressed entries for *key*."""
        self.generation += 1
        deleted = self.rendered.pop(key, None) is not None
        for encoding in ENCODINGS:
            if self.precompressed.pop(f"{key}:{encoding}", None) is not None:
                deleted = True
        if self.dynamic.pop(key, None) is not None:
            deleted = True
        return deleted

    def delete_dynamic(self, keys: Iterable[str]) -> int:
        self.generation += 1
        return sum(1 for key in keys if self.dynamic.pop(key, None) is not None)

    def delete_matching(self, prefix: str) -> int:
        """Drop every Layer A/B key starting with *prefix* (list pages)."""
        self.generation += 1
        keys = [k for k in self.rendered if k.startswith(prefix)]
        for key in keys:
            self.rendered.pop(key, None)
        stale = [k for k in self.precompressed if k.startswith(prefix)]
        for key in stale:
            self.precompressed.pop(key, None)
        return len(keys)

    def clear_all(self) -> int:
        """Empty every layer; returns the number of entries dropped."""
        self.generation += 1
        count = (
            len(self.rendered)
            + len(self.precompressed)
            + len(self.dynamic)
            + self.assets.clear()
            + self.hot.clear()
        )
        self.rendered.clear()
        self.precompressed.clear()
        self.dynamic.clear()
        return count

    # ------------------------------------------------------------------
    # Precompression
    # ------------------------------------------------------------------

    def precompress_all(self) -> int:
        """Compress every Layer A value into Layer B (static modes only).

        Layer E is left untouched.  Returns the number of bodies compressed.

        """
        if self.is_dynamic:
            return 0
        count = 0
        for key, html in list(self.rendered.items()):
            data = html.encode("utf-8")
            etag = etag_for(data)
            for encoding in ENCODINGS:
                self.precompressed[f"{key}:{encoding}"] = CachedBody(compress(data, encoding), etag)
            count += 1
        return count

    def precompress(self, key: str, data: bytes) -> None:
        """Store both encodings of *data* in Layer B under *key*."""
        etag = etag_for(data)
        for encoding in ENCODINGS:
            self.precompressed[f"{key}:{encoding}"] = CachedBody(compress(data, encoding), etag)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        return {
            "rendered": len(self.rendered),
            "precompressed": len(self.precompressed),
            "static_assets": len(self.assets),
            "static_bytes": self.assets.current_size,
            "dynamic": len(self.dynamic),
            "hot": len(self.hot),
        }
