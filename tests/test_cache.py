"""Tests for thypress.cache — layers, negotiation and conditional GET."""

from __future__ import annotations

import gzip

import brotli
import pytest

from thypress.cache.engine import (
    HTML_MIME,
    CacheEngine,
    compress,
    etag_matches,
    is_compressible,
    parse_accept_encoding,
    select_encoding,
)
from thypress.cache.layers import HotCompressionCache, StaticAssetCache, etag_for
from thypress.observability.metrics import RequestMetrics

BODY = "<html><body>" + "hello world " * 50 + "</body></html>"
BODY_ETAG = etag_for(BODY.encode())


# ---------------------------------------------------------------------------
# Negotiation helpers
# ---------------------------------------------------------------------------


class TestNegotiation:
    """Accept-Encoding and If-None-Match parsing."""

    def test_parse_accept_encoding(self) -> None:
        assert parse_accept_encoding("gzip, deflate, br") == {"gzip", "deflate", "br"}
        assert parse_accept_encoding("br;q=0, gzip;q=0.8") == {"gzip"}
        assert parse_accept_encoding("gzip;q=bogus") == set()
        assert parse_accept_encoding(None) == set()

    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("gzip, br", "br"),
            ("gzip", "gzip"),
            ("br;q=0, gzip", "gzip"),
            ("deflate", None),
            ("", None),
        ],
    )
    def test_select_encoding(self, header: str, expected: str | None) -> None:
        assert select_encoding(header) == expected

    def test_etag_matches(self) -> None:
        assert etag_matches("abc", "abc")
        assert etag_matches('"abc"', "abc")
        assert etag_matches('W/"abc"', "abc")
        assert etag_matches('"zzz", "abc"', "abc")
        assert etag_matches("*", "abc")
        assert not etag_matches('"zzz"', "abc")
        assert not etag_matches(None, "abc")

    @pytest.mark.parametrize(
        "mime",
        ["text/html; charset=utf-8", "application/json", "application/javascript", "image/svg+xml", "text/css"],
    )
    def test_compressible(self, mime: str) -> None:
        assert is_compressible(mime)

    @pytest.mark.parametrize("mime", ["image/png", "application/pdf", "font/woff2"])
    def test_not_compressible(self, mime: str) -> None:
        assert not is_compressible(mime)

    def test_compression_is_deterministic(self) -> None:
        data = BODY.encode()
        assert compress(data, "gzip") == compress(data, "gzip")
        assert compress(data, "br") == compress(data, "br")
        assert gzip.decompress(compress(data, "gzip")) == data
        assert brotli.decompress(compress(data, "br")) == data


# ---------------------------------------------------------------------------
# Layer E
# ---------------------------------------------------------------------------


class TestHotCompressionCache:
    """Layer E — bounded by entry count, oldest evicted first."""

    def test_key_format(self) -> None:
        assert HotCompressionCache.key("br", "abc") == "br:abc"

    def test_eviction_at_bound(self) -> None:
        cache = HotCompressionCache(max_entries=2000)
        for i in range(2001):
            cache.put(f"gzip:{i}", b"x")
        assert len(cache) == 2000
        assert "gzip:0" not in cache
        assert "gzip:1" in cache
        assert "gzip:2000" in cache

    def test_existing_key_not_reinserted(self) -> None:
        cache = HotCompressionCache(max_entries=2)
        cache.put("a", b"1")
        cache.put("b", b"2")
        cache.put("a", b"changed")
        assert cache.get("a") == b"1"
        assert cache.keys() == ["a", "b"]

    def test_lookup_does_not_refresh(self) -> None:
        cache = HotCompressionCache(max_entries=2)
        cache.put("a", b"1")
        cache.put("b", b"2")
        cache.get("a")
        cache.put("c", b"3")
        assert "a" not in cache

    def test_clear(self) -> None:
        cache = HotCompressionCache()
        cache.put("a", b"1")
        assert cache.clear() == 1
        assert len(cache) == 0


# ---------------------------------------------------------------------------
# Layer C
# ---------------------------------------------------------------------------


class TestStaticAssetCache:
    """Layer C — byte budget with whole-layer clear on overflow."""

    def test_add_and_get(self) -> None:
        cache = StaticAssetCache(1024)
        asset = cache.add("a.css", b"body{}", "text/css")
        assert asset.etag == etag_for(b"body{}")
        assert cache.get("a.css") is asset
        assert cache.current_size == 6

    def test_add_existing_returns_cached(self) -> None:
        cache = StaticAssetCache(1024)
        first = cache.add("a", b"one", "text/plain")
        assert cache.add("a", b"two!", "text/plain") is first
        assert cache.current_size == 3

    def test_overflow_clears_layer_and_hot_cache(self) -> None:
        hot = HotCompressionCache()
        hot.put("gzip:x", b"z")
        cache = StaticAssetCache(1024, on_overflow=hot.clear)
        cache.add("a", b"a" * 600, "application/octet-stream")
        cache.add("b", b"b" * 600, "application/octet-stream")
        assert cache.get("a") is None
        assert cache.get("b") is not None
        assert cache.current_size == 600
        assert len(hot) == 0

    def test_discard(self) -> None:
        cache = StaticAssetCache(1024)
        cache.add("a", b"abc", "text/plain")
        assert cache.discard("a") is True
        assert cache.discard("a") is False
        assert cache.current_size == 0


# ---------------------------------------------------------------------------
# Engine: headers
# ---------------------------------------------------------------------------


class TestCacheControl:
    def test_dynamic_never_caches(self) -> None:
        engine = CacheEngine("dynamic")
        assert engine.cache_control("image/png") == "no-cache, no-store, must-revalidate"
        assert engine.cache_control(HTML_MIME) == "no-cache, no-store, must-revalidate"

    @pytest.mark.parametrize(
        ("mime", "expected"),
        [
            ("image/webp", "public, max-age=31536000, immutable"),
            ("font/woff2", "public, max-age=31536000, immutable"),
            ("text/css; charset=utf-8", "public, max-age=31536000, immutable"),
            ("text/javascript; charset=utf-8", "public, max-age=31536000, immutable"),
            (HTML_MIME, "public, max-age=3600"),
            ("application/json", "public, max-age=300"),
            ("application/pdf", "public, max-age=300"),
        ],
    )
    def test_static_modes(self, mime: str, expected: str) -> None:
        assert CacheEngine("static").cache_control(mime) == expected
        assert CacheEngine("static_preview").cache_control(mime) == expected


# ---------------------------------------------------------------------------
# Engine: responses
# ---------------------------------------------------------------------------


class TestRespond:
    """CacheEngine.respond — ETag, 304 and content negotiation."""

    @pytest.mark.asyncio
    async def test_identity(self) -> None:
        engine = CacheEngine()
        response = await engine.respond(BODY, HTML_MIME, {})
        assert response.status_code == 200
        assert response.body == BODY.encode()
        assert response.headers["etag"] == BODY_ETAG
        assert response.headers["vary"] == "Accept-Encoding"
        assert "content-encoding" not in response.headers

    @pytest.mark.asyncio
    async def test_brotli_preferred(self) -> None:
        engine = CacheEngine()
        response = await engine.respond(BODY, HTML_MIME, {"accept-encoding": "gzip, br"})
        assert response.headers["content-encoding"] == "br"
        assert brotli.decompress(response.body) == BODY.encode()
        assert f"br:{BODY_ETAG}" in engine.hot

    @pytest.mark.asyncio
    async def test_gzip_when_br_refused(self) -> None:
        engine = CacheEngine()
        response = await engine.respond(BODY, HTML_MIME, {"accept-encoding": "br;q=0, gzip"})
        assert response.headers["content-encoding"] == "gzip"
        assert gzip.decompress(response.body) == BODY.encode()

    @pytest.mark.asyncio
    async def test_hot_cache_reused(self) -> None:
        engine = CacheEngine()
        engine.hot.put(f"gzip:{BODY_ETAG}", b"sentinel")
        response = await engine.respond(BODY, HTML_MIME, {"accept-encoding": "gzip"})
        assert response.body == b"sentinel"

    @pytest.mark.asyncio
    async def test_incompressible_mime_sent_as_is(self) -> None:
        engine = CacheEngine()
        response = await engine.respond(b"\x89PNG", "image/png", {"accept-encoding": "br"})
        assert response.body == b"\x89PNG"
        assert "content-encoding" not in response.headers
        assert len(engine.hot) == 0

    @pytest.mark.asyncio
    async def test_not_modified(self) -> None:
        metrics = RequestMetrics()
        engine = CacheEngine(metrics=metrics)
        response = await engine.respond(BODY, HTML_MIME, {"if-none-match": f'"{BODY_ETAG}"'})
        assert response.status_code == 304
        assert response.body == b""
        assert response.headers["etag"] == BODY_ETAG
        assert metrics.http_cache_hits == 1

    @pytest.mark.asyncio
    async def test_error_status_never_304(self) -> None:
        engine = CacheEngine()
        response = await engine.respond(BODY, HTML_MIME, {"if-none-match": BODY_ETAG}, status_code=404)
        assert response.status_code == 404
        assert response.body == BODY.encode()


class TestPrecompressed:
    """Layer B — static modes only."""

    def test_precompress_all_skipped_in_dynamic_mode(self) -> None:
        engine = CacheEngine("dynamic")
        engine.store_rendered("about", BODY)
        assert engine.precompress_all() == 0
        assert engine.precompressed == {}

    def test_precompress_all_in_static_mode(self) -> None:
        engine = CacheEngine("static")
        engine.store_rendered("about", BODY)
        engine.hot.put("gzip:other", b"x")
        assert engine.precompress_all() == 1
        assert set(engine.precompressed) == {"about:gzip", "about:br"}
        assert engine.precompressed["about:br"].etag == BODY_ETAG
        assert len(engine.hot) == 1

    def test_serve_precompressed(self) -> None:
        engine = CacheEngine("static")
        engine.precompress("about", BODY.encode())
        response = engine.serve_precompressed("about", {"accept-encoding": "gzip, br"})
        assert response is not None
        assert response.headers["content-encoding"] == "br"
        assert response.headers["cache-control"] == "public, max-age=3600"

    def test_serve_precompressed_gzip_only(self) -> None:
        engine = CacheEngine("static")
        engine.precompress("about", BODY.encode())
        response = engine.serve_precompressed("about", {"accept-encoding": "gzip"})
        assert gzip.decompress(response.body) == BODY.encode()

    def test_serve_precompressed_misses(self) -> None:
        engine = CacheEngine("static")
        engine.precompress("about", BODY.encode())
        assert engine.serve_precompressed("about", {}) is None
        assert engine.serve_precompressed("missing", {"accept-encoding": "br"}) is None
        assert CacheEngine("dynamic").serve_precompressed("about", {"accept-encoding": "br"}) is None

    def test_serve_precompressed_not_modified(self) -> None:
        engine = CacheEngine("static")
        engine.precompress("about", BODY.encode())
        response = engine.serve_precompressed("about", {"accept-encoding": "br", "if-none-match": BODY_ETAG})
        assert response.status_code == 304


# ---------------------------------------------------------------------------
# Engine: invalidation
# ---------------------------------------------------------------------------


class TestInvalidation:
    def test_store_refused_after_invalidation(self) -> None:
        engine = CacheEngine()
        generation = engine.generation
        engine.delete("about")
        assert engine.store_rendered("about", "stale", generation) is False
        assert engine.get_rendered("about") is None
        assert engine.store_rendered("about", "fresh", engine.generation) is True

    def test_store_dynamic_generation_guard(self) -> None:
        engine = CacheEngine()
        generation = engine.generation
        engine.delete_dynamic(["search.json"])
        assert engine.store_dynamic("search.json", b"[]", generation) is False
        assert engine.store_dynamic("search.json", b"[]") is True
        assert engine.get_dynamic("search.json") == b"[]"

    def test_delete_drops_rendered_and_precompressed(self) -> None:
        engine = CacheEngine("static")
        engine.store_rendered("about", BODY)
        engine.precompress_all()
        assert engine.delete("about") is True
        assert engine.precompressed == {}
        assert engine.delete("about") is False

    def test_delete_dynamic_counts(self) -> None:
        engine = CacheEngine()
        engine.store_dynamic("rss.xml", b"x")
        engine.store_dynamic("search.json", b"y")
        assert engine.delete_dynamic(["rss.xml", "search.json", "llms.txt"]) == 2

    def test_delete_matching(self) -> None:
        engine = CacheEngine("static")
        for key in ("__index_1", "__index_2", "__tag_python", "about"):
            engine.store_rendered(key, BODY)
        engine.precompress_all()
        assert engine.delete_matching("__index_") == 2
        assert set(engine.rendered) == {"__tag_python", "about"}
        assert not any(k.startswith("__index_") for k in engine.precompressed)

    def test_clear_all(self) -> None:
        engine = CacheEngine()
        engine.store_rendered("a", "x")
        engine.store_dynamic("b", b"y")
        engine.add_static_asset("c", b"z", "text/plain")
        engine.hot.put("gzip:d", b"w")
        assert engine.clear_all() == 4
        assert engine.stats() == {
            "rendered": 0,
            "precompressed": 0,
            "static_assets": 0,
            "static_bytes": 0,
            "dynamic": 0,
            "hot": 0,
        }

    def test_static_asset_overflow_clears_hot_layer(self) -> None:
        engine = CacheEngine(max_size=1024)
        engine.hot.put("gzip:x", b"z")
        engine.add_static_asset("a", b"a" * 600, "image/png")
        engine.add_static_asset("b", b"b" * 600, "image/png")
        assert engine.get_static_asset("a") is None
        assert len(engine.hot) == 0
