"""THYPRESS application — Starlette assembly and the public entry points.

:func:`create_app` wires a loaded :class:`~thypress.service.Service` into
a Starlette app whose lifespan owns the background tasks (watcher
consumer, metrics reporter, image optimizer).  The three public
functions (serve, build, preview) are the primary entry points.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import socket
import sys
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.routing import Route

from thypress._errors import ConfigError, ContentError
from thypress.config_loader import load_config

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from thypress._types import AdminHandler
    from thypress.config import ThypressConfig
    from thypress.content.watcher import ContentWatcher
    from thypress.export.static import ExportResult
    from thypress.reactive.pipeline import ChangePipeline
    from thypress.service import PrerenderResult, Service

PORT_PROBE_LIMIT = 100


# ---------------------------------------------------------------------------
# Port selection
# ---------------------------------------------------------------------------


def port_available(host: str, port: int) -> bool:
    """Whether *port* can be bound on *host* right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_port(host: str, port: int, *, explicit: bool = False) -> int:
    """First bindable port starting at *port*.

    An explicit port (from ``PORT``) is never probed upward.

    Raises:
        ConfigError: If no candidate port can be bound.

    """
    attempts = 1 if explicit else PORT_PROBE_LIMIT
    last = min(port + attempts - 1, 65535)
    for candidate in range(port, last + 1):
        if port_available(host, candidate):
            return candidate
    if explicit:
        msg = f"Port {port} is already in use"
    else:
        msg = f"No available port in range {port}-{last}"
    raise ConfigError(msg)


def _with_free_port(config: ThypressConfig) -> ThypressConfig:
    from thypress.console import warning

    port = find_port(config.host, config.port, explicit=config.explicit_port)
    if port == config.port:
        return config
    warning(f"Port {config.port} in use, using {port}")
    return replace(config, port=port)


# ---------------------------------------------------------------------------
# App assembly
# ---------------------------------------------------------------------------


async def _consume_changes(app: Starlette, watcher: ContentWatcher, pipeline: ChangePipeline) -> None:
    """Run the serialized mutator; stop the server if the root disappears."""
    from thypress.console import error

    await pipeline.run(watcher)
    if watcher.root_lost:
        error("Site root is gone; shutting down")
        app.state.exit_code = 1
        signal.raise_signal(signal.SIGTERM)


def create_app(
    service: Service,
    *,
    admin: AdminHandler | None = None,
    watch: bool | None = None,
) -> Starlette:
    """Build the ASGI app for a loaded service.

    Args:
        service: Loaded service.
        admin: Optional handler for the administrative prefix.
        watch: Start the file watcher; defaults to dynamic mode.

    """
    from thypress.content.watcher import ContentWatcher
    from thypress.observability.metrics import report_periodically
    from thypress.reactive.pipeline import ChangePipeline
    from thypress.routes.router import Router

    router = Router(service, admin=admin)
    watching = service.config.is_dynamic if watch is None else watch

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        tasks = [asyncio.create_task(report_periodically(service.metrics))]
        watcher: ContentWatcher | None = None
        if watching:
            watcher = ContentWatcher(lambda: service.config)
            watcher.start()
            pipeline = ChangePipeline(service)
            app.state.pipeline = pipeline
            tasks.append(asyncio.create_task(_consume_changes(app, watcher, pipeline)))
        service.optimizer.schedule()
        try:
            yield
        finally:
            service.optimizer.cancel()
            if watcher is not None:
                await asyncio.to_thread(watcher.stop)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    app = Starlette(
        routes=[Route("/{path:path}", router.handle, methods=["GET", "HEAD"])],
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.router = router
    app.state.exit_code = 0
    return app


def warm_up(service: Service) -> PrerenderResult | None:
    """Pre-render into Layer A: always in static mode, in dynamic mode unless disabled.

    Raises:
        RenderError: On a failure with ``strictPreRender``.

    """
    from thypress.console import info

    config = service.config
    if config.is_dynamic and config.disable_pre_render:
        return None
    result = service.prerender()
    info(
        f"Pre-rendered {result.rendered} page{'s' if result.rendered != 1 else ''} "
        f"in {result.duration_ms:.0f}ms"
        + (f", {result.precompressed} precompressed" if result.precompressed else "")
    )
    return result


def _load_service(config: ThypressConfig) -> Service:
    from thypress.service import Service

    service = Service(config)
    service.load()
    return service


def _banner_warnings(service: Service) -> list[str]:
    warnings = [f"Skipped {path}" for path in service.store.skipped]
    if service.themes.state == "broken":
        warnings.append(f"Theme '{service.state.theme.active_id}' failed validation (forced)")
    return warnings


def _run_uvicorn(app: Starlette, config: ThypressConfig) -> None:
    import uvicorn

    uvicorn.run(app, host=config.host, port=config.port, log_level="warning")


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def serve(root: str | Path = ".", **kwargs: object) -> None:
    """Serve the site in the configured mode (``dynamic`` by default).

    Dynamic mode watches the site, renders just in time and pushes live
    reloads; the static modes pre-render everything and precompress it.

    Args:
        root: Path to the site root directory.
        **kwargs: Override ThypressConfig fields.

    Raises:
        ConfigError: On an invalid or bound explicit port.
        ContentError: On a strict ingest failure, or if the site root
            disappears while serving.
        ThemeError: If the theme cannot be loaded.
        RenderError: On a warm-up failure with ``strictPreRender``.

    """
    from thypress.banner import print_banner

    config = _with_free_port(load_config(Path(root), **kwargs))
    service = _load_service(config)
    warm_up(service)

    state = service.state
    print_banner(
        config,
        len(state.content),
        config.mode,
        theme_id=state.theme.active_id,
        live_reload=config.live_reload,
        load_ms=service.load_ms,
        warnings=_banner_warnings(service),
        cache_stats=service.cache.stats(),
    )

    app = create_app(service)
    _run_uvicorn(app, config)
    if app.state.exit_code:
        msg = f"Site root {config.root} was removed"
        raise ContentError(msg)


def build(root: str | Path = ".", **kwargs: object) -> ExportResult:
    """Export the site as static files under ``build/``.

    Args:
        root: Path to the site root directory.
        **kwargs: Override ThypressConfig fields.

    Returns:
        The export result.

    """
    from thypress.banner import print_banner
    from thypress.export.static import StaticExporter

    config = load_config(Path(root), **{**kwargs, "mode": "static"})
    service = _load_service(config)
    state = service.state

    print_banner(
        config,
        len(state.content),
        "build",
        theme_id=state.theme.active_id,
        load_ms=service.load_ms,
        warnings=_banner_warnings(service),
    )

    result = StaticExporter(service).export()
    _print_export_summary(result)
    return result


def _print_export_summary(result: ExportResult) -> None:
    """Print export completion summary to stderr."""
    lines = [
        "",
        "─" * 41,
        f"  Exported {result.total_pages} page{'s' if result.total_pages != 1 else ''}",
    ]
    if result.total_assets > 0:
        lines.append(
            f"  Copied {result.total_assets} asset{'s' if result.total_assets != 1 else ''}"
        )
    if result.manifest:
        lines.append(f"  Fingerprinted {len(result.manifest)} asset{'s' if len(result.manifest) != 1 else ''}")
    lines.append(f"  Output: {result.output_dir}")
    lines.append(f"  Done in {result.duration_ms:.0f}ms")

    print("\n".join(lines), file=sys.stderr)


def preview(root: str | Path = ".", **kwargs: object) -> None:
    """Serve an existing ``build/`` in ``static_preview`` mode.

    Raises:
        ExportError: If there is no build to serve.

    """
    from thypress.banner import print_banner
    from thypress.export.preview import create_preview_app

    config = _with_free_port(load_config(Path(root), **{**kwargs, "mode": "static_preview"}))
    app = create_preview_app(config)
    print_banner(config, app.state.preview.page_count, "static_preview")
    _run_uvicorn(app, config)

