"""
Two-tier read-through cache reader.

Lookups check the hot layer first, then the durable store. A durable hit is
promoted into the hot layer (never written back). An entry whose
``expires_at`` has passed is absent no matter which layer holds it.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from ..config import CacheConfig
from ..errors import CacheUnavailable
from ..schemas import CacheEntry, DomainSnapshot, utcnow
from . import keys
from .memory import HotCache
from .sqlite_store import SqliteCacheStore

logger = logging.getLogger("tirds.cache.reader")

Clock = Callable[[], datetime]


class CacheReader:
    """Read-only view over the hot layer and the durable store."""

    def __init__(
        self,
        config: CacheConfig,
        store: Optional[SqliteCacheStore] = None,
        hot: Optional[HotCache] = None,
        clock: Clock = utcnow,
    ):
        self.config = config
        self.store = store or SqliteCacheStore(config.sqlite_path, read_only=True)
        self.hot = hot or HotCache(config.memory_max_capacity, config.memory_ttl_seconds)
        self._clock = clock

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        now = self._clock()
        entry = self.hot.get(key, now)
        if entry is not None:
            return entry

        entry = await asyncio.to_thread(self.store.get, key)
        if entry is None:
            return None
        if entry.is_expired(now):
            logger.debug(f"Durable entry {key} expired at {entry.expires_at.isoformat()}")
            return None

        self.hot.put(entry, now)
        logger.debug(f"Promoted {key} into hot layer")
        return entry

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached document for ``key`` or None."""
        entry = await self.get_entry(key)
        return entry.value if entry is not None else None

    async def get_by_symbol(self, symbol: str) -> list[CacheEntry]:
        return await asyncio.to_thread(self.store.get_by_symbol, symbol, self._clock())

    async def get_by_prefix(self, prefix: str) -> list[CacheEntry]:
        return await asyncio.to_thread(self.store.get_by_prefix, prefix, self._clock())

    async def build_domain_snapshot(self, symbol: str) -> DomainSnapshot:
        """
        Assemble everything cached for ``symbol`` into one snapshot.

        Missing entries are left out. Any CacheUnavailable aborts the whole
        snapshot; a partial snapshot is never returned in that case.
        """
        cfg = self.config
        lookups: list[tuple[str, Optional[str], str]] = []
        for tf in cfg.timeframes:
            lookups.append(("bars", tf, keys.bars_key(symbol, tf)))
        lookups.append(("quote", None, keys.quote_key(symbol)))
        for name in cfg.indicators:
            lookups.append(("indicators", name, keys.indicator_key(name, symbol)))
        for ref in cfg.reference_symbols:
            lookups.append(("reference", ref, keys.reference_key(ref)))
        for source in cfg.sentiment_sources:
            lookups.append(("sentiment", source, keys.sentiment_key(source, symbol)))

        results = await asyncio.gather(
            *(self.get(key) for _, _, key in lookups), return_exceptions=True
        )

        for result in results:
            if isinstance(result, CacheUnavailable):
                logger.error(f"Snapshot for {symbol} aborted: {result}")
                raise result
            if isinstance(result, BaseException):
                raise result

        snapshot = DomainSnapshot(symbol=symbol, built_at=self._clock())
        for (section, name, key), value in zip(lookups, results):
            if value is None:
                continue
            snapshot.sources.append(key)
            if section == "quote":
                snapshot.quote = value
            else:
                getattr(snapshot, section)[name] = value

        logger.info(f"Snapshot for {symbol}: {len(snapshot.sources)}/{len(lookups)} entries")
        return snapshot

    def hot_cache_stats(self) -> dict[str, Any]:
        return self.hot.stats()

    def close(self) -> None:
        self.store.close()
