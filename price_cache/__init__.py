"""
Price Cache Package.

Read-through, TTL-bounded cache in front of the upstream
market data source.

Modules:
- models: Cache key, entries, freshness rule, response records
- store: Reader/writer-locked in-memory store
- resolver: Single-key and batch lookup orchestration
"""

from price_cache.models import (
    CACHE_TTL,
    DEFAULT_CURRENCY,
    CacheKey,
    CachedPriceEntry,
    MultiPriceResult,
    PriceRecord,
    is_fresh,
)
from price_cache.resolver import InFlightFetches, PriceResolver
from price_cache.store import PriceCacheStore

__all__ = [
    "CACHE_TTL",
    "DEFAULT_CURRENCY",
    "CacheKey",
    "CachedPriceEntry",
    "MultiPriceResult",
    "PriceRecord",
    "is_fresh",
    "PriceCacheStore",
    "PriceResolver",
    "InFlightFetches",
]
