"""
Price Cache - Resolver.

============================================================
RESPONSIBILITY
============================================================
Answers price lookups from the cache, falling back to the
upstream source when an entry is missing or stale.

- Single-key lookups with stale-entry fallback on failure
- Batch lookups split into cache hits and one upstream call
- Write-back of every successfully fetched record

============================================================
FAILURE POLICY
============================================================
Single key: a failed fetch is answered with the stale entry
when one exists; otherwise the FetchError propagates.

Batch: a failed fetch is logged and the result holds only the
ids that were fresh in cache. No stale fallback is attempted
in this path.

============================================================
CONCURRENCY
============================================================
Concurrent lookups of the same expired key each fetch by
default and the last write wins. With
``collapse_duplicate_fetches`` they share one pending fetch
through an in-flight registry keyed by CacheKey.

============================================================
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from core.clock import ClockProtocol, SystemClock
from data_sources.base import BaseMarketDataSource
from data_sources.exceptions import FetchError
from data_sources.models import ProviderRecord
from price_cache.models import (
    CACHE_TTL,
    DEFAULT_CURRENCY,
    CacheKey,
    CachedPriceEntry,
    MultiPriceResult,
    PriceRecord,
    is_fresh,
)
from price_cache.store import PriceCacheStore


logger = logging.getLogger(__name__)


class InFlightFetches:
    """Registry of pending single-key fetches, one task per CacheKey."""
    
    def __init__(self) -> None:
        self._pending: Dict[CacheKey, asyncio.Task] = {}
    
    async def join(
        self,
        key: CacheKey,
        start: Callable[[], Awaitable[ProviderRecord]],
    ) -> ProviderRecord:
        """Await the pending fetch for ``key``, starting one if none is running."""
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(start())
            self._pending[key] = task
            task.add_done_callback(lambda done: self._finish(key, done))
        else:
            logger.debug(f"Joining in-flight fetch for {key}")
        # One waiter being cancelled must not cancel the shared fetch
        return await asyncio.shield(task)
    
    def _finish(self, key: CacheKey, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter was cancelled
            task.exception()
    
    def __len__(self) -> int:
        return len(self._pending)


class PriceResolver:
    """
    Read-through price cache.
    
    Collaborators are injected so tests can swap in a fake source
    and a mock clock.
    """
    
    def __init__(
        self,
        source: BaseMarketDataSource,
        store: Optional[PriceCacheStore] = None,
        clock: Optional[ClockProtocol] = None,
        ttl: timedelta = CACHE_TTL,
        collapse_duplicate_fetches: bool = False,
    ) -> None:
        """
        Initialize the resolver.
        
        Args:
            source: Upstream market data source
            store: Cache store (a fresh one is created if omitted)
            clock: Time source for stamping and freshness checks
            ttl: Age after which an entry is stale
            collapse_duplicate_fetches: Share one fetch per expired key
        """
        self._source = source
        self._store = store if store is not None else PriceCacheStore()
        self._clock = clock or SystemClock()
        self._ttl = ttl
        self._in_flight = InFlightFetches() if collapse_duplicate_fetches else None
    
    @property
    def store(self) -> PriceCacheStore:
        return self._store
    
    @property
    def ttl(self) -> timedelta:
        return self._ttl
    
    # =========================================================
    # SINGLE KEY
    # =========================================================
    
    async def get_price(
        self,
        asset_id: str,
        currency: str = DEFAULT_CURRENCY,
    ) -> PriceRecord:
        """
        Resolve the price of one asset.
        
        Returns:
            PriceRecord flagged ``cached=True`` when served from the
            cache (fresh, or stale after a failed fetch)
            
        Raises:
            FetchError: If the fetch failed and nothing was cached
        """
        key = CacheKey(asset_id, currency)
        entry = self._store.get(key)
        
        if entry is not None and is_fresh(entry, self._clock.now(), self._ttl):
            logger.debug(f"Cache hit for {key}")
            return PriceRecord.from_entry(asset_id, entry, cached=True)
        
        try:
            record = await self._fetch_one(key)
        except FetchError as e:
            if entry is None:
                logger.info(f"Lookup failed for {key} with nothing cached: {e}")
                raise
            logger.warning(
                f"Serving stale price for {key} "
                f"(age {entry.age(self._clock.now())}) after fetch failure: {e}"
            )
            return PriceRecord.from_entry(asset_id, entry, cached=True)
        
        fresh_entry = CachedPriceEntry.from_record(record, currency, self._clock.now())
        self._store.put(key, fresh_entry)
        return PriceRecord.from_entry(asset_id, fresh_entry, cached=False)
    
    async def _fetch_one(self, key: CacheKey) -> ProviderRecord:
        if self._in_flight is None:
            return await self._source.fetch_one(key.asset_id, key.currency)
        return await self._in_flight.join(
            key,
            lambda: self._source.fetch_one(key.asset_id, key.currency),
        )
    
    # =========================================================
    # BATCH
    # =========================================================
    
    async def get_prices(
        self,
        asset_ids: Sequence[str],
        currency: str = DEFAULT_CURRENCY,
    ) -> MultiPriceResult:
        """
        Resolve prices of many assets in one currency.
        
        Fresh cache entries are served directly; everything else is
        fetched with a single upstream call. Never raises for an
        upstream failure: ids that could not be resolved are absent
        from the result.
        """
        result = MultiPriceResult(updated_at=self._clock.now())
        to_fetch = self._partition(asset_ids, currency, result)
        
        if not to_fetch:
            return result
        
        try:
            records = await self._source.fetch_many(to_fetch, currency)
        except FetchError as e:
            logger.error(
                f"Batch fetch of {len(to_fetch)} ids in {currency} failed; "
                f"returning {len(result)} cached prices: {e}"
            )
            return result
        
        fetched_at = self._clock.now()
        for record in records:
            entry = CachedPriceEntry.from_record(record, currency, fetched_at)
            self._store.put(CacheKey(record.id, currency), entry)
            result.prices[record.id] = PriceRecord.from_entry(record.id, entry, cached=False)
        
        missing = len(to_fetch) - len(records)
        if missing > 0:
            logger.info(f"Provider returned no record for {missing} of {len(to_fetch)} requested ids")
        
        return result
    
    def _partition(
        self,
        asset_ids: Sequence[str],
        currency: str,
        result: MultiPriceResult,
    ) -> List[str]:
        """Fill ``result`` with fresh hits; return ids to fetch, deduplicated in order."""
        now = self._clock.now()
        to_fetch: List[str] = []
        queued = set()
        
        for asset_id in asset_ids:
            entry = self._store.get(CacheKey(asset_id, currency))
            if entry is not None and is_fresh(entry, now, self._ttl):
                result.prices[asset_id] = PriceRecord.from_entry(asset_id, entry, cached=True)
            elif asset_id not in queued:
                queued.add(asset_id)
                to_fetch.append(asset_id)
        
        return to_fetch
