"""Source store — on-disk layout and ignore rules.

Enumerates content files and static files under the content root.  The
store is read-only; nothing downstream writes through it.

Ignore rules (applied on every walk):
    - any path segment starting with ``.``
    - inside content, any segment named ``drafts`` (case-insensitive)
    - directories listed in ``DEFAULT_SKIP_DIRS`` or ``config.skip_dirs``
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from thypress.config import ThypressConfig


CONTENT_EXTENSIONS = frozenset({".md", ".txt", ".html"})
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif"})

DEFAULT_SKIP_DIRS = frozenset({
    "node_modules",
    "src",
    "templates",
    ".git",
    "build",
    "dist",
    ".cache",
    ".next",
    "vendor",
    ".vscode",
    ".idea",
    "coverage",
    "test",
    "tests",
    "__tests__",
})


def is_ignored_name(name: str) -> bool:
    """Dotfiles and dot-directories are never read."""
    return name.startswith(".")


def is_in_drafts(relative: str | PurePosixPath) -> bool:
    """True if any segment of *relative* is a ``drafts`` folder."""
    parts = PurePosixPath(str(relative).replace("\\", "/")).parts
    return any(part.lower() == "drafts" for part in parts)


def to_web_path(path: Path) -> str:
    """Normalize a relative filesystem path to forward slashes."""
    return path.as_posix()


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A content file discovered under the content root.

    Attributes:
        path: Absolute filesystem path.
        relative: Content-root-relative web path (forward slashes).

    """

    path: Path
    relative: str

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()


class SourceStore:
    """Enumerates files under the content root with the ignore rules applied.

    Args:
        config: Frozen site configuration.

    """

    def __init__(self, config: ThypressConfig) -> None:
        self._config = config
        self._skip = DEFAULT_SKIP_DIRS | frozenset(config.skip_dirs)

    @property
    def root(self) -> Path:
        """Absolute content root."""
        return self._config.content_path

    def is_ignored(self, path: Path) -> bool:
        """Apply the ignore rules to an absolute path under the content root."""
        try:
            rel = path.relative_to(self.root)
        except ValueError:
            return True
        for part in rel.parts:
            if is_ignored_name(part) or part.lower() == "drafts":
                return True
        return any(part in self._skip for part in rel.parts[:-1])

    def relative(self, path: Path) -> str:
        """Return the content-root-relative web path for *path*."""
        return to_web_path(path.relative_to(self.root))

    def content_files(self) -> list[SourceFile]:
        """All ``.md``, ``.txt`` and ``.html`` files, sorted by relative path."""
        return [
            SourceFile(path=p, relative=self.relative(p))
            for p in self._walk(self.root)
            if p.suffix.lower() in CONTENT_EXTENSIONS
        ]

    def static_files(self) -> list[SourceFile]:
        """All non-content files (images, PDFs, ...) under the content root."""
        return [
            SourceFile(path=p, relative=self.relative(p))
            for p in self._walk(self.root)
            if p.suffix.lower() not in CONTENT_EXTENSIONS
        ]

    def resolve_static(self, url_path: str) -> Path | None:
        """Map a request path to a static file under the content root.

        Returns None for ignored, missing, or out-of-root paths.

        """
        clean = url_path.lstrip("/")
        if not clean:
            return None
        candidate = (self.root / clean).resolve()
        try:
            candidate.relative_to(self.root.resolve())
        except ValueError:
            return None
        if not candidate.is_file() or self.is_ignored(self.root / clean):
            return None
        if candidate.suffix.lower() in CONTENT_EXTENSIONS:
            return None
        return candidate

    def _walk(self, directory: Path) -> Iterator[Path]:
        try:
            children = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError:
            return
        for child in children:
            if is_ignored_name(child.name):
                continue
            if child.is_dir():
                if child.name.lower() == "drafts" or child.name in self._skip:
                    continue
                yield from self._walk(child)
            elif child.is_file():
                yield child
