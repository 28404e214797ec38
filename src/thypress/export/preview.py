"""Static preview — serve a finished ``build/`` through the cache engine.

Runs in ``static_preview`` mode: every HTML file is precompressed into
Layer B up front, other files go through Layer C on first request.
Directory URLs resolve to their ``index.html``; anything missing falls
back to ``404.html`` with status 404.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

from thypress.cache.engine import HTML_MIME, CacheEngine
from thypress.observability.metrics import RequestMetrics, report_periodically
from thypress.theme.loader import guess_mime

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from starlette.requests import Request

    from thypress.config import ThypressConfig

NOT_FOUND_PAGE = "404.html"


class PreviewServer:
    """Serves files from a build directory.

    Args:
        build_dir: Root of a completed static export.
        cache: Cache engine in ``static_preview`` mode.
        metrics: Request counters.

    """

    def __init__(self, build_dir: Path, cache: CacheEngine, metrics: RequestMetrics) -> None:
        self.build_dir = build_dir.resolve()
        self.cache = cache
        self.metrics = metrics
        self.page_count = 0

    def resolve(self, path: str) -> Path | None:
        """Map a request path to a file inside the build directory."""
        candidate = (self.build_dir / path.lstrip("/")).resolve()
        if not candidate.is_relative_to(self.build_dir):
            return None
        if candidate.is_dir():
            candidate = candidate / "index.html"
        return candidate if candidate.is_file() else None

    def key_for(self, target: Path) -> str:
        return target.relative_to(self.build_dir).as_posix()

    def precompress_html(self) -> int:
        """Load every HTML file into Layer B; returns the count."""
        count = 0
        for path in sorted(self.build_dir.rglob("*.html")):
            self.cache.precompress(self.key_for(path), path.read_bytes())
            count += 1
        self.page_count = count
        return count

    async def handle(self, request: Request) -> Response:
        """Starlette endpoint for every path."""
        t0 = time.perf_counter()
        try:
            target = self.resolve(request.url.path)
            if target is None:
                return await self.not_found(request)
            return await self.serve_file(request, target)
        except OSError as exc:
            return PlainTextResponse(f"Error: {exc}", status_code=500)
        finally:
            self.metrics.record_request((time.perf_counter() - t0) * 1000)

    async def serve_file(self, request: Request, target: Path, *, status_code: int = 200) -> Response:
        key = self.key_for(target)
        if target.suffix == ".html" and status_code == 200:
            precompressed = self.cache.serve_precompressed(key, request.headers)
            if precompressed is not None:
                self.metrics.record("server_cache")
                return precompressed

        cached = self.cache.get_static_asset(key)
        if cached is None:
            data = await asyncio.to_thread(target.read_bytes)
            mime = HTML_MIME if target.suffix == ".html" else guess_mime(target.name)
            cached = self.cache.add_static_asset(key, data, mime)
        self.metrics.record("server_cache")
        return await self.cache.respond(cached.data, cached.mime, request.headers, status_code=status_code)

    async def not_found(self, request: Request) -> Response:
        page = self.build_dir / NOT_FOUND_PAGE
        if page.is_file():
            return await self.serve_file(request, page, status_code=404)
        return PlainTextResponse("404 - Not Found", status_code=404)


def create_preview_app(config: ThypressConfig, *, metrics: RequestMetrics | None = None) -> Starlette:
    """Build the ASGI app serving ``config.build_path``.

    Raises:
        ExportError: If the build directory does not exist.

    """
    from thypress._errors import ExportError

    build_dir = config.build_path
    if not build_dir.is_dir():
        msg = f"No build found at {build_dir}; run 'thypress build' first"
        raise ExportError(msg)

    metrics = metrics if metrics is not None else RequestMetrics()
    cache = CacheEngine("static_preview", max_size=config.cache_max_size, metrics=metrics)
    server = PreviewServer(build_dir, cache, metrics)
    server.precompress_html()

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        reporter = asyncio.create_task(report_periodically(metrics))
        try:
            yield
        finally:
            reporter.cancel()

    app = Starlette(
        routes=[Route("/{path:path}", server.handle, methods=["GET", "HEAD"])],
        lifespan=lifespan,
    )
    app.state.preview = server
    return app
