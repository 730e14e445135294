"""
Price Cache - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the cache/fetch core.

- Cache key and cached entry
- Freshness rule
- Response records returned to the HTTP layer

============================================================
DESIGN PRINCIPLES
============================================================
- Entries are immutable and replaced wholesale
- Freshness is computed at read time, never stored
- Serializable for the HTTP layer

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict

from data_sources.models import ProviderRecord


# =============================================================
# CONSTANTS
# =============================================================

CACHE_TTL = timedelta(hours=1)
DEFAULT_CURRENCY = "usd"


# =============================================================
# CACHE TYPES
# =============================================================

@dataclass(frozen=True)
class CacheKey:
    """Cache slot identifier. Case-sensitive, never normalized."""
    asset_id: str
    currency: str
    
    def __str__(self) -> str:
        return f"{self.asset_id}:{self.currency}"


@dataclass(frozen=True)
class CachedPriceEntry:
    """A price snapshot as stored in the cache."""
    price: Decimal
    currency: str
    last_updated: datetime
    change_24h: Decimal
    market_cap: Decimal
    volume_24h: Decimal
    symbol: str = ""
    name: str = ""
    
    @classmethod
    def from_record(
        cls,
        record: ProviderRecord,
        currency: str,
        fetched_at: datetime,
    ) -> "CachedPriceEntry":
        """Build the entry produced by a successful fetch at ``fetched_at``."""
        return cls(
            price=record.current_price,
            currency=currency,
            last_updated=fetched_at,
            change_24h=record.price_change_percentage_24h,
            market_cap=record.market_cap,
            volume_24h=record.total_volume,
            symbol=record.symbol,
            name=record.name,
        )
    
    def age(self, now: datetime) -> timedelta:
        return now - self.last_updated


def is_fresh(
    entry: CachedPriceEntry,
    now: datetime,
    ttl: timedelta = CACHE_TTL,
) -> bool:
    """An entry is fresh while younger than the TTL; stale otherwise."""
    return now - entry.last_updated < ttl


# =============================================================
# RESPONSE TYPES
# =============================================================

@dataclass(frozen=True)
class PriceRecord:
    """Price lookup result handed to callers."""
    id: str
    price: Decimal
    currency: str
    updated_at: datetime
    cached: bool
    symbol: str = ""
    name: str = ""
    change_24h: Decimal = Decimal("0")
    market_cap: Decimal = Decimal("0")
    volume_24h: Decimal = Decimal("0")
    
    @classmethod
    def from_entry(
        cls,
        asset_id: str,
        entry: CachedPriceEntry,
        cached: bool,
    ) -> "PriceRecord":
        return cls(
            id=asset_id,
            price=entry.price,
            currency=entry.currency,
            updated_at=entry.last_updated,
            cached=cached,
            symbol=entry.symbol,
            name=entry.name,
            change_24h=entry.change_24h,
            market_cap=entry.market_cap,
            volume_24h=entry.volume_24h,
        )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "currency": self.currency,
            "change_24h": self.change_24h,
            "market_cap": self.market_cap,
            "volume_24h": self.volume_24h,
            "updated_at": self.updated_at,
            "cached": self.cached,
        }


@dataclass
class MultiPriceResult:
    """Batch lookup result; ids that failed to resolve are absent."""
    updated_at: datetime
    prices: Dict[str, PriceRecord] = field(default_factory=dict)
    
    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self.prices
    
    def __len__(self) -> int:
        return len(self.prices)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "prices": {asset_id: record.to_dict() for asset_id, record in self.prices.items()},
            "updated_at": self.updated_at,
        }
