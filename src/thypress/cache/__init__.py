"""Cache engine — five response layers with ETag and encoding-aware serving."""

from thypress.cache.engine import CacheEngine
from thypress.cache.layers import MAX_ENTRIES, HotCompressionCache, StaticAssetCache

__all__ = ["MAX_ENTRIES", "CacheEngine", "HotCompressionCache", "StaticAssetCache"]
