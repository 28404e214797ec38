"""File watcher — feeds filesystem changes to the serialized mutator.

Monitors the content root, the themes directory, ``config.json`` and
``redirects.json``.  Each change is categorized and pushed onto an
asyncio queue; a single consumer task applies them in arrival order:

- Content file changed -> re-ingest that file -> invalidate its caches
- Content image changed -> schedule debounced image optimization
- Template changed -> full theme reload
- Config changed -> config + theme reload
- Redirects changed -> redirect table reload
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from watchfiles import Change

from thypress.content.source import (
    CONTENT_EXTENSIONS,
    IMAGE_EXTENSIONS,
    is_ignored_name,
    is_in_drafts,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from thypress.config import ThypressConfig


type ChangeKind = Literal["change", "rename"]
type ChangeCategory = Literal["content", "image", "template", "config", "redirects"]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A file change detected by the watcher.

    ``rename`` covers both creation and removal; the consumer checks
    whether the path still exists to tell them apart.

    Attributes:
        path: Absolute path to the changed file.
        kind: ``change`` for in-place edits, ``rename`` otherwise.
        category: What kind of file changed (determines the handler).

    """

    path: Path
    kind: ChangeKind
    category: ChangeCategory


_CHANGE_KIND_MAP: dict[Change, ChangeKind] = {
    Change.added: "rename",
    Change.modified: "change",
    Change.deleted: "rename",
}


def categorize_change(path: Path, config: ThypressConfig) -> ChangeCategory | None:
    """Determine the category of a changed file based on its location.

    Returns None for files that no handler cares about (dotfiles, drafts,
    build output, the cache directory).

    """
    if path == config.config_file:
        return "config"
    if path == config.redirects_file:
        return "redirects"

    try:
        rel = path.relative_to(config.templates_path)
    except ValueError:
        rel = None
    if rel is not None:
        # The active theme directory itself may be dot-prefixed (".default").
        if rel.parts and any(is_ignored_name(p) for p in rel.parts[1:]):
            return None
        return "template" if rel.parts else None

    try:
        rel = path.relative_to(config.content_path)
    except ValueError:
        return None
    if not rel.parts:
        return None
    if is_in_drafts(rel.as_posix()) or any(is_ignored_name(p) for p in rel.parts):
        return None
    suffix = path.suffix.lower()
    if suffix in CONTENT_EXTENSIONS:
        return "content"
    if suffix in IMAGE_EXTENSIONS:
        return "image"
    return None


class ContentWatcher:
    """Watches the site for file changes in a background thread.

    Uses watchfiles for efficient filesystem monitoring and bridges the
    events into an asyncio queue for the single serializer task.  I/O
    errors on individual files never stop the watcher; loss of the root
    directory ends the watch loop.

    Args:
        config: Returns the live config; read per change so a reloaded
            ``contentDir`` or ``theme`` takes effect without a restart.

    """

    def __init__(self, config: Callable[[], ThypressConfig]) -> None:
        self._config = config
        self._root = config().root
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.root_lost = False

    @property
    def is_running(self) -> bool:
        """Whether the watcher background thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start watching in a background thread.

        Must be called from the event loop that will consume :meth:`changes`.

        """
        if self.is_running:
            return

        self._loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="thypress-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the watcher to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def categorize(self, path: Path) -> ChangeCategory | None:
        return categorize_change(path, self._config())

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        """Async iterator that yields ChangeEvent objects as they occur."""
        while self.is_running or not self._queue.empty():
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield event
            except TimeoutError:
                if not self.is_running:
                    break

    def _watch_loop(self) -> None:
        """Background thread: run watchfiles and push events to the queue."""
        from watchfiles import watch

        from thypress.console import error

        try:
            for raw_changes in watch(
                self._root,
                stop_event=self._stop_event,
                debounce=300,
                step=100,
            ):
                for change_type, path_str in raw_changes:
                    path = Path(path_str)
                    category = self.categorize(path)
                    if category is None:
                        continue
                    kind = _CHANGE_KIND_MAP.get(change_type, "change")
                    self._publish(ChangeEvent(path=path, kind=kind, category=category))
        except FileNotFoundError as exc:
            self.root_lost = True
            error(f"Watched root disappeared: {exc}")

    def _publish(self, event: ChangeEvent) -> None:
        # asyncio.Queue is not thread-safe; hand off to the loop thread.
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
