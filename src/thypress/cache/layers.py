"""Bounded cache layers.

Layer C (static assets) is accounted against a byte budget; Layer E (hot
compression) is bounded by entry count.  Layers A, B and D are plain
dicts owned by :class:`~thypress.cache.engine.CacheEngine`.
"""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

MAX_ENTRIES = 2000


def etag_for(body: bytes) -> str:
    """MD5 hex digest of the uncompressed body."""
    return hashlib.md5(body).hexdigest()


@dataclass(frozen=True, slots=True)
class CachedBody:
    """Bytes with their ETag (Layer B values)."""

    data: bytes
    etag: str


@dataclass(frozen=True, slots=True)
class CachedAsset:
    """A static asset held in Layer C."""

    data: bytes
    mime: str
    etag: str


class HotCompressionCache:
    """Layer E: ``"<enc>:<etag>"`` -> compressed bytes.

    Eviction is by insertion order: when full, the oldest key is removed
    before inserting.  Lookups do not refresh position.

    Thread Safety:
        The read-then-insert eviction step runs under a lock.

    """

    __slots__ = ("_data", "_lock", "max_entries")

    def __init__(self, max_entries: int = MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._data: OrderedDict[str, bytes] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key(encoding: str, etag: str) -> str:
        return f"{encoding}:{etag}"

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            if key in self._data:
                return
            while len(self._data) >= self.max_entries:
                self._data.popitem(last=False)
            self._data[key] = data

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def clear(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count


class StaticAssetCache:
    """Layer C: static assets within a byte budget.

    An insertion that would exceed the budget first clears this layer
    (and, through ``on_overflow``, Layer E) and resets the byte counter.

    Args:
        max_size: Byte budget.
        on_overflow: Called when the budget forces a full clear.

    """

    __slots__ = ("_data", "_lock", "_on_overflow", "current_size", "max_size")

    def __init__(self, max_size: int, on_overflow: Callable[[], object] | None = None) -> None:
        self.max_size = max_size
        self.current_size = 0
        self._data: dict[str, CachedAsset] = {}
        self._on_overflow = on_overflow
        self._lock = threading.Lock()

    def get(self, key: str) -> CachedAsset | None:
        with self._lock:
            return self._data.get(key)

    def add(self, key: str, data: bytes, mime: str) -> CachedAsset:
        """Insert *key* unless present; returns the cached asset."""
        overflow = False
        with self._lock:
            existing = self._data.get(key)
            if existing is not None:
                return existing
            if self.current_size + len(data) > self.max_size:
                self._data.clear()
                self.current_size = 0
                overflow = True
            asset = CachedAsset(data=data, mime=mime, etag=etag_for(data))
            self._data[key] = asset
            self.current_size += len(data)
        if overflow and self._on_overflow is not None:
            self._on_overflow()
        return asset

    def discard(self, key: str) -> bool:
        with self._lock:
            asset = self._data.pop(key, None)
            if asset is None:
                return False
            self.current_size -= len(asset.data)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def clear(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
            self.current_size = 0
            return count
