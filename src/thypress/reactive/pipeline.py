"""Change pipeline — the single serialized mutator.

Every state mutation (ingest, theme reload, cache invalidation,
broadcast) goes through :meth:`ChangePipeline.handle_change`, called by
one consumer task in arrival order:

    content   re-ingest one file -> drop its cache keys, list pages,
              taxonomy pages and content artifacts -> reload browsers
    image     drop that image's variants -> schedule optimization
    template  recompose the theme -> on success clear every layer
    config    reload config.json -> recompose the theme -> clear
    redirects reload redirects.json

Heavy work (parsing, composing) runs on a worker thread; publishing the
new state and invalidating caches happen together on the loop thread, so
a request never observes new content alongside a stale Layer A entry.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from thypress._errors import ContentError
from thypress.content.images import remove_variants
from thypress.render.feeds import CONTENT_ARTIFACTS
from thypress.render.taxonomy import neighbours

if TYPE_CHECKING:
    from collections.abc import Iterator

    from thypress.content.processor import Entry
    from thypress.content.store import ChangeOutcome, ContentSnapshot
    from thypress.content.watcher import ChangeEvent, ContentWatcher
    from thypress.service import Service

# Layer A/B prefix shared by list and taxonomy pages
DERIVED_PAGE_PREFIX = "__"
NOT_FOUND_KEY = "404.html"


@dataclass(frozen=True, slots=True)
class ChangeReport:
    """What one handled change did.

    Attributes:
        category: The event category handled.
        invalidated: Number of cache keys dropped.
        reloaded: Whether browsers were told to reload.

    """

    category: str
    invalidated: int = 0
    reloaded: bool = False


def _affected_slugs(outcome: ChangeOutcome, before: ContentSnapshot, after: ContentSnapshot) -> set[str]:
    """Changed slugs plus their chronological neighbours, old and new."""
    slugs = set(outcome.removed) | set(outcome.updated)
    for snapshot in (before, after):
        for slug in list(slugs):
            entry = snapshot.get(slug)
            if entry is None:
                continue
            for neighbour in neighbours(entry, snapshot.ordered):
                if neighbour is not None:
                    slugs.add(neighbour.slug)
    return slugs


class ChangePipeline:
    """Applies watcher events to a :class:`~thypress.service.Service`.

    Args:
        service: The service whose state this pipeline owns.

    """

    def __init__(self, service: Service) -> None:
        self.service = service
        self.handled = 0

    async def run(self, watcher: ContentWatcher) -> None:
        """Consume *watcher* until it stops; errors never end the loop."""
        from thypress.console import error

        async for event in watcher.changes():
            try:
                await self.handle_change(event)
            except Exception as exc:
                error(f"Change pipeline error ({event.path.name}): {exc}")

    async def handle_change(self, event: ChangeEvent) -> ChangeReport:
        """Route one event to its handler."""
        self.handled += 1
        if event.category == "content":
            return await self._content_changed(event)
        if event.category == "image":
            return await self._image_changed(event)
        if event.category == "template":
            return await self._theme_changed()
        if event.category == "config":
            return await self._config_changed()
        return await self._redirects_changed()

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def _content_changed(self, event: ChangeEvent) -> ChangeReport:
        from thypress.console import error, info

        service = self.service
        store = service.store
        before = store.snapshot
        apply = store.apply_change if event.path.exists() else store.apply_removal
        try:
            outcome = await asyncio.to_thread(apply, event.path)
        except ContentError as exc:
            error(f"{exc} (keeping previous version)")
            return ChangeReport("content")
        if not outcome.changed:
            return ChangeReport("content")

        after = store.snapshot
        service.publish(content=after)
        invalidated = self.invalidate_content(outcome, before, after)
        if any(e.image_refs for e in _entries(outcome, before, after)):
            service.optimizer.schedule()

        verb = "Removed" if outcome.removed and not outcome.updated else "Updated"
        info(f"{verb}: {store.source.relative(event.path)}")
        return ChangeReport("content", invalidated, self._reload())

    def invalidate_content(
        self,
        outcome: ChangeOutcome,
        before: ContentSnapshot,
        after: ContentSnapshot,
    ) -> int:
        """Drop every cache key the change can have made stale."""
        cache = self.service.cache
        count = 0
        if outcome.navigation_changed:
            # Navigation is rendered into every page
            count += cache.delete_matching("")
        else:
            for slug in _affected_slugs(outcome, before, after):
                count += int(cache.delete(slug))
            count += cache.delete_matching(DERIVED_PAGE_PREFIX)
        # Templated theme assets see the entry list too
        templated = self.service.state.theme.asset_templates
        count += cache.delete_dynamic({*CONTENT_ARTIFACTS, NOT_FOUND_KEY, *templated})
        return count

    async def _image_changed(self, event: ChangeEvent) -> ChangeReport:
        service = self.service
        service.dimensions.discard(event.path)
        cache_dir = service.config.images_cache_path
        removed = 0
        for ref in service.store.snapshot.image_refs():
            if ref.source_path == event.path:
                removed += await asyncio.to_thread(remove_variants, ref, cache_dir)
        service.cache.assets.clear()
        service.optimizer.schedule()
        return ChangeReport("image", removed, self._reload())

    # ------------------------------------------------------------------
    # Theme, config, redirects
    # ------------------------------------------------------------------

    async def _theme_changed(self) -> ChangeReport:
        service = self.service
        entries = service.state.content.ordered
        installed = await asyncio.to_thread(service.themes.reload, None, entries)
        if not installed or service.themes.theme is None:
            return ChangeReport("template")
        service.publish(theme=service.themes.theme)
        count = service.cache.clear_all()
        return ChangeReport("template", count, self._reload())

    async def _config_changed(self) -> ChangeReport:
        from thypress._errors import ConfigError
        from thypress.config_loader import load_config
        from thypress.console import error, success

        service = self.service
        current = service.config
        try:
            config = load_config(
                current.root,
                mode=current.mode,
                host=current.host,
                port=current.port,
                explicit_port=current.explicit_port,
            )
        except ConfigError as exc:
            error(f"Config reload failed: {exc}")
            return ChangeReport("config")

        store = service.store
        store.reconfigure(config)
        try:
            content = await asyncio.to_thread(store.load_all)
        except ContentError as exc:
            error(f"{exc} (keeping previous content)")
            content = service.state.content
        service.publish(config=config, content=content)
        service.cache.assets.max_size = config.cache_max_size
        success("Config reloaded")

        installed = await asyncio.to_thread(service.themes.reload, config, content.ordered)
        if installed and service.themes.theme is not None:
            service.publish(theme=service.themes.theme)
        # Site settings are rendered into every page and artifact
        count = service.cache.clear_all()
        return ChangeReport("config", count, self._reload())

    async def _redirects_changed(self) -> ChangeReport:
        from thypress.console import success
        from thypress.routes.redirects import load_redirects

        service = self.service
        rules = await asyncio.to_thread(load_redirects, service.config.redirects_file)
        service.publish(redirects=rules)
        success("Redirects reloaded")
        return ChangeReport("redirects", reloaded=self._reload())

    def _reload(self) -> bool:
        self.service.broadcaster.reload()
        return True


def _entries(outcome: ChangeOutcome, before: ContentSnapshot, after: ContentSnapshot) -> Iterator[Entry]:
    for slug in (*outcome.removed, *outcome.updated):
        for snapshot in (before, after):
            entry = snapshot.get(slug)
            if entry is not None:
                yield entry
