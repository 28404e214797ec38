"""Service — the explicit state value threaded through every handler.

A :class:`Service` owns the mutable machinery (content store, theme
resolver, cache engine, broadcaster, metrics, image optimizer) and one
immutable :class:`SiteState`.  Request handlers read ``service.state``
once and work from that snapshot for the rest of the request; the
serialized mutator replaces it wholesale, never in place.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import TYPE_CHECKING

from thypress._errors import RenderError
from thypress.cache.engine import CacheEngine
from thypress.content.images import DimensionCache, ImageOptimizer
from thypress.content.store import ContentSnapshot, ContentStore
from thypress.observability.metrics import RequestMetrics
from thypress.reactive.broadcaster import Broadcaster
from thypress.render.renderer import Renderer, page_key
from thypress.render.taxonomy import TAXONOMIES, all_terms, cache_key
from thypress.routes.redirects import load_redirects
from thypress.theme import ThemeResolver

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from thypress.config import ThypressConfig
    from thypress.content.images import ImageRef
    from thypress.routes.redirects import RedirectRule
    from thypress.theme import Theme


@dataclass(frozen=True)
class SiteState:
    """One consistent view of the site.

    Attributes:
        config: Configuration in effect.
        content: Entry Map snapshot.
        theme: Composed theme.
        redirects: Redirect rules in file order.

    """

    config: ThypressConfig
    content: ContentSnapshot
    theme: Theme
    redirects: tuple[RedirectRule, ...] = ()

    @cached_property
    def renderer(self) -> Renderer:
        return Renderer(self.theme, self.content, self.config)


@dataclass(slots=True)
class PrerenderResult:
    """Outcome of a warm-up pass."""

    rendered: int = 0
    failed: list[str] = field(default_factory=list)
    precompressed: int = 0
    duration_ms: float = 0.0


class Service:
    """Everything a request or a mutation needs, in one place.

    Args:
        config: Site configuration.
        registry: Embedded theme directory override (tests).
        metrics: Request counters (created if omitted).

    """

    def __init__(
        self,
        config: ThypressConfig,
        *,
        registry: Path | None = None,
        metrics: RequestMetrics | None = None,
    ) -> None:
        self.metrics = metrics if metrics is not None else RequestMetrics()
        self.dimensions = DimensionCache()
        self.store = ContentStore(config, self.dimensions)
        self.themes = ThemeResolver(config, registry=registry)
        self.cache = CacheEngine(
            config.mode,
            max_size=config.cache_max_size,
            metrics=self.metrics,
        )
        self.broadcaster = Broadcaster()
        self.optimizer = ImageOptimizer(self._image_refs, config.images_cache_path)
        self._config = config
        self._state: SiteState | None = None
        self.load_ms = 0.0

    @property
    def state(self) -> SiteState:
        if self._state is None:
            msg = "Service.load() has not been called"
            raise RuntimeError(msg)
        return self._state

    @property
    def config(self) -> ThypressConfig:
        return self._state.config if self._state is not None else self._config

    def _image_refs(self) -> list[ImageRef]:
        return self.store.snapshot.image_refs()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> SiteState:
        """Ingest content, compose the theme and read redirects.

        Raises:
            ContentError: On a strict-mode ingest failure.
            ThemeError: If the theme cannot be composed or fails validation.

        """
        t0 = time.perf_counter()
        content = self.store.load_all()
        theme = self.themes.load(content.ordered)
        redirects = load_redirects(self._config.redirects_file)
        self._state = SiteState(self._config, content, theme, redirects)
        self.load_ms = (time.perf_counter() - t0) * 1000
        return self._state

    def publish(self, **changes: object) -> SiteState:
        """Install a new state with *changes* applied (mutator only)."""
        self._state = replace(self.state, **changes)  # type: ignore[arg-type]
        return self._state

    # ------------------------------------------------------------------
    # Warm-up
    # ------------------------------------------------------------------

    def page_jobs(self) -> list[tuple[str, Callable[[], str | None]]]:
        """Every Layer A key with a callable producing its HTML."""
        renderer = self.state.renderer
        content = self.state.content
        jobs: list[tuple[str, Callable[[], str | None]]] = [
            (entry.slug, lambda e=entry: renderer.render_entry(e)) for entry in content.ordered
        ]
        jobs.extend(
            (page_key(n), lambda n=n: renderer.render_list(n))
            for n in range(1, renderer.page_count() + 1)
        )
        for taxonomy in TAXONOMIES:
            jobs.extend(
                (cache_key(taxonomy, term), lambda t=taxonomy, v=term: renderer.render_taxonomy(t, v))
                for term in all_terms(content.ordered, taxonomy)
            )
        return jobs

    def prerender(self) -> PrerenderResult:
        """Render every page into Layer A, then precompress if configured.

        Raises:
            RenderError: On the first failure when ``strictPreRender`` is set.

        """
        from thypress.console import warning

        config = self.config
        t0 = time.perf_counter()
        result = PrerenderResult()
        for key, job in self.page_jobs():
            try:
                html = job()
            except RenderError as exc:
                if config.strict_pre_render:
                    msg = f"Pre-render failed for '{key}': {exc}"
                    raise RenderError(msg) from exc
                warning(f"Pre-render failed for '{key}': {exc}")
                result.failed.append(key)
                continue
            if html is not None:
                self.cache.store_rendered(key, html)
                result.rendered += 1
        if config.pre_compress_content or not config.is_dynamic:
            result.precompressed = self.cache.precompress_all()
        result.duration_ms = (time.perf_counter() - t0) * 1000
        return result
