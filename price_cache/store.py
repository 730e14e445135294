"""
Price Cache - Store.

In-memory CacheKey -> CachedPriceEntry map guarded by a
reader/writer lock. The lock is held only around the dict
access; callers never hold it across an upstream fetch.

Entries are never evicted. A stale entry stays in place as a
fallback until a successful fetch overwrites it.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from core.rwlock import ReadWriteLock
from price_cache.models import CACHE_TTL, CacheKey, CachedPriceEntry, is_fresh


logger = logging.getLogger(__name__)


class PriceCacheStore:
    """Concurrency-safe price cache."""
    
    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CachedPriceEntry] = {}
        self._lock = ReadWriteLock()
    
    def get(self, key: CacheKey) -> Optional[CachedPriceEntry]:
        """Return the entry for ``key`` (fresh or stale), or None if never stored."""
        with self._lock.read():
            return self._entries.get(key)
    
    def put(self, key: CacheKey, entry: CachedPriceEntry) -> None:
        """Store ``entry`` under ``key``, replacing any previous entry."""
        if not isinstance(entry, CachedPriceEntry):
            raise TypeError(f"expected CachedPriceEntry, got {type(entry).__name__}")
        with self._lock.write():
            self._entries[key] = entry
        logger.debug(f"Cached {key} @ {entry.price}")
    
    def stats(self, now: datetime, ttl: timedelta = CACHE_TTL) -> Dict[str, int]:
        """Entry counts split by freshness at ``now``."""
        with self._lock.read():
            entries = list(self._entries.values())
        fresh = sum(1 for entry in entries if is_fresh(entry, now, ttl))
        return {
            "entries": len(entries),
            "fresh": fresh,
            "stale": len(entries) - fresh,
        }
    
    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)
    
    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._entries
    
    def __repr__(self) -> str:
        return f"<PriceCacheStore(entries={len(self)})>"
