"""Entry Map — ingested entries, reverse path index, navigation.

The store publishes immutable :class:`ContentSnapshot` values.  Request
handlers hold a snapshot for the duration of a request; the serialized
mutator replaces it wholesale after each change, so readers never see a
half-applied update.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from thypress._errors import ContentError
from thypress.content.images import DimensionCache
from thypress.content.navigation import build_navigation, navigation_key
from thypress.content.processor import process_file
from thypress.content.source import SourceStore

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from thypress.config import ThypressConfig
    from thypress.content.images import ImageRef
    from thypress.content.navigation import NavigationNode
    from thypress.content.processor import Entry


def sort_entries(entries: Iterable[Entry]) -> tuple[Entry, ...]:
    """Newest first by ``created_at``; ties keep slug order (stable)."""
    by_slug = sorted(entries, key=lambda e: e.slug)
    return tuple(sorted(by_slug, key=lambda e: e.created_at, reverse=True))


@dataclass(frozen=True, slots=True)
class ContentSnapshot:
    """A consistent view of all ingested content.

    Attributes:
        entries: slug -> Entry.
        ordered: Entries newest first.
        navigation: Navigation tree.
        navigation_key: Hash of the sorted slug list the tree was built from.
        paths: Content-relative path -> slug.

    """

    entries: MappingProxyType[str, Entry] = field(default_factory=lambda: MappingProxyType({}))
    ordered: tuple[Entry, ...] = ()
    navigation: tuple[NavigationNode, ...] = ()
    navigation_key: str = ""
    paths: MappingProxyType[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, slug: str) -> Entry | None:
        return self.entries.get(slug)

    def image_refs(self) -> list[ImageRef]:
        """Union of every entry's image references, in entry order."""
        return [ref for entry in self.ordered for ref in entry.image_refs]

    def by_url(self, url: str) -> Entry | None:
        slug = url.strip("/") or "index"
        return self.entries.get(slug)


@dataclass(frozen=True, slots=True)
class ChangeOutcome:
    """What a single-file update did to the Entry Map.

    Attributes:
        removed: Slugs that left the map.
        updated: Slugs added or replaced.
        navigation_changed: Whether the navigation tree was rebuilt.

    """

    removed: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    navigation_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.updated)


class ContentStore:
    """Owns ingestion and the current :class:`ContentSnapshot`.

    Only the serialized mutator calls the ``load``/``apply`` methods;
    anyone may read :attr:`snapshot`.

    Args:
        config: Site configuration.
        dimensions: Shared image-width cache (created if omitted).

    """

    def __init__(self, config: ThypressConfig, dimensions: DimensionCache | None = None) -> None:
        self._config = config
        self.source = SourceStore(config)
        self.dimensions = dimensions if dimensions is not None else DimensionCache()
        self.snapshot = ContentSnapshot()
        self.load_ms = 0.0
        self.skipped: list[str] = []

    @property
    def config(self) -> ThypressConfig:
        return self._config

    def reconfigure(self, config: ThypressConfig) -> None:
        """Adopt a reloaded configuration; takes effect on the next load."""
        self._config = config
        self.source = SourceStore(config)

    @property
    def _strict_urls(self) -> bool:
        return not self._config.is_dynamic

    # ------------------------------------------------------------------
    # Full load
    # ------------------------------------------------------------------

    def load_all(self) -> ContentSnapshot:
        """Ingest every content file and publish a fresh snapshot.

        Raises:
            ContentError: On a duplicate URL outside dynamic mode, or on a
                broken image reference with ``strictImages``.

        """
        from thypress.console import error, warning

        t0 = time.perf_counter()
        files = self.source.content_files()
        self._prescan(f.path for f in files)

        entries: dict[str, Entry] = {}
        paths: dict[str, str] = {}
        self.skipped = []
        for source in files:
            try:
                entry = process_file(source.path, source.relative, self._config, dimensions=self.dimensions)
            except ContentError as exc:
                error(str(exc))
                self.skipped.append(source.relative)
                continue
            if entry is None:
                continue
            self._check_images(entry)
            existing = entries.get(entry.slug)
            if existing is not None:
                msg = (
                    f'Duplicate URL "{entry.url}": {existing.relative_path} '
                    f"and {entry.relative_path}"
                )
                if self._strict_urls:
                    raise ContentError(msg)
                warning(f"{msg} (skipping {entry.relative_path})")
                continue
            entries[entry.slug] = entry
            paths[entry.relative_path] = entry.slug

        self.snapshot = self._publish(entries, paths, rebuild_navigation=True)
        self.load_ms = (time.perf_counter() - t0) * 1000
        return self.snapshot

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    def apply_change(self, path: Path) -> ChangeOutcome:
        """Re-ingest one file (``change`` or ``rename`` with existing target).

        A file that now yields no entry (it became a draft, or failed to
        parse) is removed from the map.

        """
        from thypress.console import error, warning

        if not path.is_file():
            return self.apply_removal(path)
        if self.source.is_ignored(path):
            return ChangeOutcome()

        relative = self.source.relative(path)
        old_slug = self.snapshot.paths.get(relative)
        self._prescan([path])
        try:
            entry = process_file(path, relative, self._config, dimensions=self.dimensions)
        except ContentError as exc:
            error(str(exc))
            entry = None
        if entry is None:
            return self.apply_removal(path)

        self._check_images(entry)
        owner = self.snapshot.entries.get(entry.slug)
        if owner is not None and owner.relative_path != relative:
            warning(
                f'Duplicate URL "{entry.url}": {owner.relative_path} and {relative} '
                f"(skipping {relative})"
            )
            return ChangeOutcome()

        entries = dict(self.snapshot.entries)
        paths = dict(self.snapshot.paths)
        removed: tuple[str, ...] = ()
        if old_slug is not None and old_slug != entry.slug:
            entries.pop(old_slug, None)
            removed = (old_slug,)
        entries[entry.slug] = entry
        paths[relative] = entry.slug

        before = self.snapshot.navigation_key
        self.snapshot = self._publish(entries, paths)
        return ChangeOutcome(
            removed=removed,
            updated=(entry.slug,),
            navigation_changed=self.snapshot.navigation_key != before,
        )

    def apply_removal(self, path: Path) -> ChangeOutcome:
        """Drop the entry whose source was *path*, found via the reverse index."""
        try:
            relative = self.source.relative(path)
        except ValueError:
            return ChangeOutcome()
        slug = self.snapshot.paths.get(relative)
        if slug is None:
            return ChangeOutcome()

        entries = dict(self.snapshot.entries)
        paths = dict(self.snapshot.paths)
        entries.pop(slug, None)
        paths.pop(relative, None)

        before = self.snapshot.navigation_key
        self.snapshot = self._publish(entries, paths)
        return ChangeOutcome(
            removed=(slug,),
            navigation_changed=self.snapshot.navigation_key != before,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _prescan(self, paths: Iterable[Path]) -> None:
        root = self._config.content_path
        for path in paths:
            if path.suffix.lower() != ".md":
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            self.dimensions.prescan(text, self.source.relative(path), root)

    def _check_images(self, entry: Entry) -> None:
        from thypress.console import warning

        for src in entry.broken_images:
            msg = f'Broken image reference "{src}" in {entry.relative_path}'
            if self._config.strict_images:
                raise ContentError(msg)
            warning(msg)

    def _publish(
        self,
        entries: dict[str, Entry],
        paths: dict[str, str],
        *,
        rebuild_navigation: bool = False,
    ) -> ContentSnapshot:
        key = navigation_key(entries)
        if rebuild_navigation or key != self.snapshot.navigation_key:
            navigation = build_navigation(entries)
        else:
            navigation = self.snapshot.navigation
        return ContentSnapshot(
            entries=MappingProxyType(entries),
            ordered=sort_entries(entries.values()),
            navigation=navigation,
            navigation_key=key,
            paths=MappingProxyType(paths),
        )
