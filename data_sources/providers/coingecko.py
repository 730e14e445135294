"""
CoinGecko Market Data Source - /coins/markets adapter.

Implements single and batch price lookups against the CoinGecko API.
Demo and Pro plans differ only in base URL and auth header.
"""

import logging
from typing import Any, Optional, Sequence

import aiohttp

from data_sources.base import BaseMarketDataSource
from data_sources.exceptions import (
    ConfigurationError,
    DecodeError,
    NotFoundError,
)
from data_sources.models import ProviderRecord


logger = logging.getLogger(__name__)


class CoinGeckoMarketSource(BaseMarketDataSource):
    """
    CoinGecko API data source.
    
    Endpoints used:
    - /coins/markets - Price, market cap, volume, supply and ATH per coin
    
    Batch lookups send every id in one request; the provider caps a
    page at 250 rows and no pagination is attempted here.
    """
    
    DEMO_BASE_URL = "https://api.coingecko.com/api/v3"
    PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"
    MARKETS_ENDPOINT = "/coins/markets"
    MAX_BATCH_SIZE = 250
    
    # Plan -> (base URL, auth header)
    PLANS = {
        "demo": (DEMO_BASE_URL, "x-cg-demo-api-key"),
        "pro": (PRO_BASE_URL, "x-cg-pro-api-key"),
    }
    
    def __init__(
        self,
        api_key: str,
        plan: str = "demo",
        base_url: Optional[str] = None,
        timeout: float = BaseMarketDataSource.DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout, session)
        if plan not in self.PLANS:
            raise ConfigurationError(
                message=f"Unknown CoinGecko plan {plan!r}; expected one of {sorted(self.PLANS)}",
                source_name=self.name,
                config_key="coingecko_plan",
            )
        default_url, auth_header = self.PLANS[plan]
        self._api_key = api_key
        self._plan = plan
        self._auth_header = auth_header
        self._base_url = (base_url or default_url).rstrip("/")
    
    @property
    def name(self) -> str:
        """Unique identifier."""
        return "coingecko"
    
    @property
    def base_url(self) -> str:
        return self._base_url
    
    async def fetch_one(
        self,
        asset_id: str,
        currency: str,
    ) -> ProviderRecord:
        """Fetch a single asset's market record."""
        records = await self._fetch_markets([asset_id], currency, per_page=1)
        
        if not records:
            raise NotFoundError(
                message=f"token not found: {asset_id}",
                asset_id=asset_id,
                source_name=self.name,
                request_url=self._markets_url(),
            )
        
        return records[0]
    
    async def fetch_many(
        self,
        asset_ids: Sequence[str],
        currency: str,
        include_7d_change: bool = False,
    ) -> list[ProviderRecord]:
        """Fetch market records for many assets in one request."""
        if not asset_ids:
            return []
        
        if len(asset_ids) > self.MAX_BATCH_SIZE:
            logger.warning(
                f"[{self.name}] Batch of {len(asset_ids)} ids exceeds the provider "
                f"page size of {self.MAX_BATCH_SIZE}; extra ids may be dropped"
            )
        
        return await self._fetch_markets(
            asset_ids,
            currency,
            per_page=self.MAX_BATCH_SIZE,
            include_7d_change=include_7d_change,
        )
    
    def normalize(self, payload: Any) -> list[ProviderRecord]:
        """
        Translate a /coins/markets response envelope.
        
        Raises:
            DecodeError: If the envelope is not a list or a row is malformed
        """
        if not isinstance(payload, list):
            raise DecodeError(
                message=f"Expected a list of market rows, got {type(payload).__name__}",
                source_name=self.name,
                raw_data=payload,
                request_url=self._markets_url(),
            )
        return [ProviderRecord.from_payload(row, self.name) for row in payload]
    
    async def _fetch_markets(
        self,
        asset_ids: Sequence[str],
        currency: str,
        per_page: int,
        include_7d_change: bool = False,
    ) -> list[ProviderRecord]:
        params: dict[str, Any] = {
            "vs_currency": currency,
            "ids": ",".join(asset_ids),
            "order": "market_cap_desc",
            "per_page": per_page,
            "page": 1,
            "sparkline": "false",
        }
        if include_7d_change:
            params["price_change_percentage"] = "7d"
        
        return await self._get_json(
            self._markets_url(),
            params=params,
            headers={self._auth_header: self._api_key},
            transform=self.normalize,
        )
    
    def _markets_url(self) -> str:
        return f"{self._base_url}{self.MARKETS_ENDPOINT}"
