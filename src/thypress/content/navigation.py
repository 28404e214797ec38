"""Navigation tree built from the Entry Map's source paths."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from thypress.content.processor import Entry


@dataclass(frozen=True, slots=True)
class NavigationNode:
    """A folder or file in the navigation tree.

    Attributes:
        type: ``folder`` or ``file``.
        name: Directory or file name as on disk.
        title: Display title (entry title for files).
        children: Child nodes (folders only).
        slug: Entry slug (files only).
        path: Content-relative path.
        url: Entry URL (files only).

    """

    type: Literal["folder", "file"]
    name: str
    title: str
    children: tuple[NavigationNode, ...] = ()
    slug: str | None = None
    path: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "name": self.name,
            "title": self.title,
            "path": self.path,
        }
        if self.type == "folder":
            data["children"] = [c.to_dict() for c in self.children]
        else:
            data["slug"] = self.slug
            data["url"] = self.url
        return data


def navigation_key(slugs: Iterable[str]) -> str:
    """Hash of the sorted slug list; the tree is rebuilt only when it changes."""
    return hashlib.md5("\n".join(sorted(slugs)).encode("utf-8")).hexdigest()


def folder_title(name: str) -> str:
    """Folder names are shown as-is; reserved path segments get a placeholder."""
    if name in (".", "..") or not name.strip():
        return "folder-" + hashlib.md5(name.encode("utf-8")).hexdigest()[:8]
    return name


def build_navigation(entries: Mapping[str, Entry]) -> tuple[NavigationNode, ...]:
    """Build the tree: folders before files, each sorted by name.

    The root ``index`` entry is omitted; it is the home page.

    """
    root: dict[str, Any] = {"folders": {}, "files": []}
    for slug, entry in entries.items():
        if slug == "index" or not entry.relative_path:
            continue
        rel = PurePosixPath(entry.relative_path)
        node = root
        current: list[str] = []
        for part in rel.parts[:-1]:
            current.append(part)
            node = node["folders"].setdefault(
                part, {"folders": {}, "files": [], "path": "/".join(current)},
            )
        node["files"].append(entry)

    def freeze(node: dict[str, Any]) -> tuple[NavigationNode, ...]:
        folders = [
            NavigationNode(
                type="folder",
                name=name,
                title=folder_title(name),
                children=freeze(child),
                path=child["path"],
            )
            for name, child in sorted(node["folders"].items(), key=lambda kv: kv[0].casefold())
        ]
        files = [
            NavigationNode(
                type="file",
                name=PurePosixPath(e.relative_path).name,
                title=e.title or PurePosixPath(e.relative_path).name,
                slug=e.slug,
                path=e.relative_path,
                url=e.url,
            )
            for e in sorted(node["files"], key=lambda e: PurePosixPath(e.relative_path).name.casefold())
        ]
        return tuple(folders + files)

    return freeze(root)
