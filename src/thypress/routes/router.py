"""Request router — one catch-all endpoint, an ordered routing table.

Evaluated top to bottom; the first step that produces a response wins:

 1. Live-reload stream (dynamic mode only)
 2. Administrative prefix (opaque handler, when one is installed)
 3. Theme-root passthrough (non-HTML files of the active theme)
 4. Redirect rules
 5. Optimized image variants from ``.cache/images``
 6. Theme ``/assets/``
 7. Meta files (search index, feeds, sitemap, robots, llms)
 8. ``/tag/``, ``/category/``, ``/series/``
 9. ``/page/<n>/``
10. Home ``/``
11. Entry by slug
12. Static files from the content root
13. 404

HTML pages go through Layer B (static modes), then Layer A, then a fresh
render on a worker thread.  In dynamic mode the live-reload script is
injected into every HTML body on the way out; cached bodies never carry it.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import TYPE_CHECKING

from starlette.concurrency import run_in_threadpool
from starlette.responses import PlainTextResponse, RedirectResponse, Response, StreamingResponse

from thypress.cache.engine import HTML_MIME
from thypress.content.images import is_variant_name
from thypress.reactive.livereload import (
    LIVE_RELOAD_ENDPOINT,
    event_stream,
    idle_timeout_from_env,
    inject_live_reload,
)
from thypress.render.feeds import META_FILES
from thypress.render.renderer import page_key
from thypress.render.taxonomy import TAXONOMIES, all_terms, cache_key, resolve_term, taxonomy_url
from thypress.routes.redirects import is_allowed_destination, match_redirect
from thypress.theme.loader import guess_mime

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.requests import Request

    from thypress._types import AdminHandler
    from thypress.render.renderer import Renderer
    from thypress.render.taxonomy import Taxonomy
    from thypress.service import Service, SiteState

ADMIN_PREFIX = "/__thypress/"
ASSETS_PREFIX = "/assets/"

_TAXONOMY_PREFIXES: tuple[tuple[str, Taxonomy], ...] = (
    ("/tag/", "tag"),
    ("/category/", "category"),
    ("/series/", "series"),
)
_PAGE_RE = re.compile(r"^/page/(\d+)/?$")


class Router:
    """Dispatches every GET through the routing table.

    Args:
        service: Shared service value.
        admin: Handler for :data:`ADMIN_PREFIX`; the prefix 404s without one.

    """

    def __init__(self, service: Service, *, admin: AdminHandler | None = None) -> None:
        self.service = service
        self.admin = admin
        self.idle_timeout = idle_timeout_from_env()

    async def handle(self, request: Request) -> Response:
        """Starlette endpoint for every path."""
        path = request.url.path
        config = self.service.config
        if path == LIVE_RELOAD_ENDPOINT and config.live_reload:
            return StreamingResponse(
                event_stream(self.service.broadcaster, idle_timeout=self.idle_timeout),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        t0 = time.perf_counter()
        try:
            return await self.dispatch(request, path)
        except Exception as exc:
            from thypress.console import error

            error(f"{request.method} {path}: {exc}")
            return PlainTextResponse(f"Error: {exc}", status_code=500)
        finally:
            self.service.metrics.record_request((time.perf_counter() - t0) * 1000)

    async def dispatch(self, request: Request, path: str) -> Response:
        state = self.service.state

        if path.startswith(ADMIN_PREFIX):
            if self.admin is None:
                return await self.not_found(request, state)
            return await self.admin(request)

        if path != "/":
            response = await self.theme_asset(request, state, path.lstrip("/"), root=True)
            if response is not None:
                return response

        response = self.redirect(state, path)
        if response is not None:
            return response

        if is_variant_name(path):
            response = await self.optimized_image(request, path)
            if response is not None:
                return response

        if path.startswith(ASSETS_PREFIX):
            response = await self.theme_asset(request, state, path.lstrip("/"))
            return response if response is not None else await self.not_found(request, state)

        if path in META_FILES:
            return await self.meta_file(request, state, path)

        for prefix, taxonomy in _TAXONOMY_PREFIXES:
            if path.startswith(prefix):
                return await self.taxonomy_page(request, state, taxonomy, path[len(prefix):].strip("/"))

        m = _PAGE_RE.match(path)
        if m is not None:
            page = int(m.group(1))
            return await self.html_page(request, state, page_key(page), lambda r: r.render_list(page))

        if path == "/":
            home = state.renderer.home_entry()
            if home is not None:
                return await self.html_page(request, state, home.slug, lambda r: r.render_entry(home))
            return await self.html_page(request, state, page_key(1), lambda r: r.render_list(1))

        entry = state.content.by_url(path)
        if entry is not None:
            return await self.html_page(request, state, entry.slug, lambda r: r.render_entry(entry))

        response = await self.static_file(request, path)
        if response is not None:
            return response

        return await self.not_found(request, state)

    # ------------------------------------------------------------------
    # HTML pages
    # ------------------------------------------------------------------

    async def html_page(
        self,
        request: Request,
        state: SiteState,
        key: str,
        render: Callable[[Renderer], str | None],
    ) -> Response:
        """Serve Layer B, else Layer A, else render and store into Layer A."""
        cache = self.service.cache
        metrics = self.service.metrics

        precompressed = cache.serve_precompressed(key, request.headers)
        if precompressed is not None:
            metrics.record("server_cache")
            return precompressed

        html = cache.get_rendered(key)
        if html is not None:
            metrics.record("server_cache")
            return await self.html_response(request, html)

        if self.service.themes.state == "broken":
            from thypress.console import warning

            warning(f"Rendering '{key}' with a theme that failed validation")
        generation = cache.generation
        metrics.record("render")
        html = await run_in_threadpool(render, state.renderer)
        if html is None:
            return await self.not_found(request, state)
        cache.store_rendered(key, html, generation)
        return await self.html_response(request, html)

    async def html_response(self, request: Request, html: str, *, status_code: int = 200) -> Response:
        if self.service.config.live_reload:
            html = inject_live_reload(html)
        return await self.service.cache.respond(html, HTML_MIME, request.headers, status_code=status_code)

    async def taxonomy_page(
        self,
        request: Request,
        state: SiteState,
        taxonomy: Taxonomy,
        segment: str,
    ) -> Response:
        term = resolve_term(state.content.ordered, taxonomy, segment) if segment else None
        if term is None:
            return await self.not_found(request, state)
        return await self.html_page(
            request,
            state,
            cache_key(taxonomy, term),
            lambda r: r.render_taxonomy(taxonomy, term),
        )

    async def not_found(self, request: Request, state: SiteState) -> Response:
        cache = self.service.cache
        cached = cache.get_dynamic("404.html")
        if cached is not None:
            html = cached.decode("utf-8")
        else:
            generation = cache.generation
            html = await run_in_threadpool(state.renderer.render_404)
            cache.store_dynamic("404.html", html.encode("utf-8"), generation)
        return await self.html_response(request, html, status_code=404)

    # ------------------------------------------------------------------
    # Redirects
    # ------------------------------------------------------------------

    def redirect(self, state: SiteState, path: str) -> Response | None:
        match = match_redirect(path, state.redirects)
        if match is None:
            return None
        if not is_allowed_destination(match.to, state.config):
            from thypress.console import warning

            warning(f"Refusing external redirect {path} -> {match.to}")
            return None
        self.service.metrics.record("server_cache")
        return RedirectResponse(match.to, status_code=match.status_code)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def theme_asset(
        self,
        request: Request,
        state: SiteState,
        key: str,
        *,
        root: bool = False,
    ) -> Response | None:
        """Serve a theme asset: templated ones via Layer D, static ones via Layer C."""
        if root and key.endswith(".html"):
            return None
        asset = state.theme.assets.get(key)
        if asset is None:
            return None
        cache = self.service.cache
        metrics = self.service.metrics

        if asset.is_templated:
            body = cache.get_dynamic(key)
            if body is None:
                generation = cache.generation
                body = await run_in_threadpool(state.renderer.render_asset, key)
                if body is None:
                    return None
                cache.store_dynamic(key, body, generation)
                metrics.record("render")
            else:
                metrics.record("server_cache")
            return await cache.respond(body, asset.mime, request.headers)

        cache_key_ = f"theme:{key}"
        cached = cache.get_static_asset(cache_key_)
        if cached is None:
            cached = cache.add_static_asset(cache_key_, asset.data or b"", asset.mime)
        metrics.record("server_cache")
        return await cache.respond(cached.data, cached.mime, request.headers)

    async def optimized_image(self, request: Request, path: str) -> Response | None:
        cache = self.service.cache
        key = f"image:{path}"
        cached = cache.get_static_asset(key)
        if cached is None:
            root = self.service.config.images_cache_path
            target = (root / path.lstrip("/")).resolve()
            if not target.is_relative_to(root.resolve()) or not target.is_file():
                return None
            data = await asyncio.to_thread(target.read_bytes)
            cached = cache.add_static_asset(key, data, guess_mime(target.name))
        self.service.metrics.record("server_cache")
        return await cache.respond(cached.data, cached.mime, request.headers)

    async def meta_file(self, request: Request, state: SiteState, path: str) -> Response:
        key, mime, generate = META_FILES[path]
        cache = self.service.cache
        body = cache.get_dynamic(key)
        if body is None:
            generation = cache.generation
            body = await run_in_threadpool(generate, state.renderer)
            cache.store_dynamic(key, body, generation)
            self.service.metrics.record("render")
        else:
            self.service.metrics.record("server_cache")
        return await cache.respond(body, mime, request.headers)

    async def static_file(self, request: Request, path: str) -> Response | None:
        target = self.service.store.source.resolve_static(path)
        if target is None:
            return None
        data = await asyncio.to_thread(target.read_bytes)
        self.service.metrics.record("server_cache")
        return await self.service.cache.respond(data, guess_mime(target.name), request.headers)


def known_paths(state: SiteState) -> set[str]:
    """Every path answered with a page or generated file (not static files)."""
    content = state.content
    paths = {"/", *META_FILES}
    paths.update(entry.url for entry in content.ordered)
    paths.update(f"/page/{n}/" for n in range(1, state.renderer.page_count() + 1))
    for taxonomy in TAXONOMIES:
        paths.update(taxonomy_url(taxonomy, term) for term in all_terms(content.ordered, taxonomy))
    paths.update(f"/{key}" for key in state.theme.assets if not key.endswith(".html"))
    return paths
