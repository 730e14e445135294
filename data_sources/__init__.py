"""
Data Sources Package - Upstream market data fetchers.

Provides typed, fail-safe price lookups against external providers.

Features:
- Single-asset and batch lookups, one HTTP request each
- Normalized ProviderRecord output across providers
- Typed failures: transport, status, decode, not found
- Health tracking per source

Quick Start:
    from data_sources import CoinGeckoMarketSource
    
    async def lookup():
        async with CoinGeckoMarketSource(api_key="CG-...") as source:
            record = await source.fetch_one("bitcoin", "usd")
            print(record.current_price)

Adding New Providers:
    1. Create class extending BaseMarketDataSource
    2. Implement: name, fetch_one(), fetch_many()
    3. Pass it to PriceResolver / MarketListingService
"""

from data_sources.base import BaseMarketDataSource
from data_sources.exceptions import (
    ConfigurationError,
    DataSourceError,
    DecodeError,
    FetchError,
    NotFoundError,
    TransportError,
    UpstreamStatusError,
)
from data_sources.health import HealthTracker, SourceHealth, SourceStatus
from data_sources.models import ProviderRecord
from data_sources.providers import CoinGeckoMarketSource


__version__ = "1.0.0"

__all__ = [
    # Base
    "BaseMarketDataSource",
    "HealthTracker",
    
    # Models
    "ProviderRecord",
    "SourceHealth",
    "SourceStatus",
    
    # Exceptions
    "DataSourceError",
    "FetchError",
    "TransportError",
    "UpstreamStatusError",
    "DecodeError",
    "NotFoundError",
    "ConfigurationError",
    
    # Providers
    "CoinGeckoMarketSource",
]
