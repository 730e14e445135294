"""
Providers package - Market data source implementations.
"""

from data_sources.providers.coingecko import CoinGeckoMarketSource


__all__ = [
    "CoinGeckoMarketSource",
]
