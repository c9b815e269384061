"""
Hot layer: a bounded in-memory LRU map in front of the durable store.

An item is served only while both its hot TTL and the entry's own
``expires_at`` lie in the future.
"""

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Optional

from ..schemas import CacheEntry

logger = logging.getLogger("tirds.cache.memory")


class _HotItem:
    __slots__ = ("entry", "deadline")

    def __init__(self, entry: CacheEntry, deadline: datetime):
        self.entry = entry
        self.deadline = deadline

    def is_expired(self, now: datetime) -> bool:
        return now >= self.deadline


class HotCache:
    """
    LRU cache of CacheEntry objects with TTL expiration.

    Guarded by a lock so it can be shared between evaluations and the
    worker threads that serve durable reads. Concurrent inserts of the
    same key are last-writer-wins.
    """

    def __init__(self, max_size: int = 10_000, ttl_seconds: float = 60.0):
        self._items: "OrderedDict[str, _HotItem]" = OrderedDict()
        self._lock = threading.Lock()
        self._max_size = max_size
        self._ttl = timedelta(seconds=ttl_seconds)
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str, now: datetime) -> Optional[CacheEntry]:
        """Return the entry if present and unexpired; expired items are dropped."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                self._misses += 1
                return None
            if item.is_expired(now):
                del self._items[key]
                self._misses += 1
                logger.debug(f"Evicted expired hot entry {key}")
                return None
            self._items.move_to_end(key)
            self._hits += 1
            return item.entry

    def put(self, entry: CacheEntry, now: datetime) -> None:
        deadline = min(entry.expires_at, now + self._ttl)
        with self._lock:
            if entry.key in self._items:
                self._items.move_to_end(entry.key)
            self._items[entry.key] = _HotItem(entry, deadline)
            while len(self._items) > self._max_size:
                self._items.popitem(last=False)
                self._evictions += 1

    def invalidate(self, key: Optional[str] = None) -> int:
        """Drop one key, or everything when key is None. Returns the count removed."""
        with self._lock:
            if key is None:
                count = len(self._items)
                self._items.clear()
                return count
            return 1 if self._items.pop(key, None) is not None else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._items),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }
