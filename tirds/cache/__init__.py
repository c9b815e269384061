"""Two-tier market intelligence cache (hot LRU over durable SQLite)."""

from .memory import HotCache
from .reader import CacheReader
from .sqlite_store import SqliteCacheStore

__all__ = ["CacheReader", "HotCache", "SqliteCacheStore"]
