"""
Scoring Engine - Market Listing.

============================================================
RESPONSIBILITY
============================================================
Builds the ranked market overview of every asset in the
staking reference table.

- One batch fetch for all reference assets (with 7d change)
- Staked tokens and TVL derived from reference ratios
- Composite score per asset
- Stable sort by descending score (ties keep provider order)

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.clock import ClockProtocol, SystemClock
from data_sources.base import BaseMarketDataSource
from data_sources.models import ProviderRecord
from reference_data.staking import StakingDataset, StakingReference
from scoring_engine.asset_score import ScoreBreakdown, score_asset


logger = logging.getLogger(__name__)

LISTING_CURRENCY = "usd"
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class StakingSnapshot:
    """Reference staking attributes plus values derived from live supply and price."""
    apy: Decimal
    staking_ratio: Decimal
    staked_tokens: Decimal
    tvl: Decimal
    validator_fee: Decimal
    min_stake: Decimal
    unbonding_days: int
    
    @classmethod
    def derive(cls, record: ProviderRecord, reference: StakingReference) -> "StakingSnapshot":
        staked_tokens = record.circulating_supply * (reference.staking_ratio / HUNDRED)
        return cls(
            apy=reference.apy,
            staking_ratio=reference.staking_ratio,
            staked_tokens=staked_tokens,
            tvl=staked_tokens * record.current_price,
            validator_fee=reference.validator_fee,
            min_stake=reference.min_stake,
            unbonding_days=reference.unbonding_days,
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "apy": self.apy,
            "staking_ratio": self.staking_ratio,
            "staked_tokens": self.staked_tokens,
            "tvl": self.tvl,
            "validator_fee": self.validator_fee,
            "min_stake": self.min_stake,
            "unbonding_days": self.unbonding_days,
        }


@dataclass(frozen=True)
class MarketAsset:
    """One row of the market listing."""
    id: str
    symbol: str
    name: str
    image: str
    price: Decimal
    price_change_24h: Decimal
    price_change_7d: Decimal
    market_cap: Decimal
    market_cap_rank: Optional[int]
    volume_24h: Decimal
    circulating_supply: Decimal
    total_supply: Decimal
    ath: Decimal
    ath_change_percentage: Decimal
    staking: Optional[StakingSnapshot]
    score: Decimal
    score_breakdown: ScoreBreakdown
    updated_at: datetime
    
    @classmethod
    def build(
        cls,
        record: ProviderRecord,
        reference: Optional[StakingReference],
        updated_at: datetime,
    ) -> "MarketAsset":
        asset_score = score_asset(record, reference)
        return cls(
            id=record.id,
            symbol=record.symbol.upper(),
            name=record.name,
            image=record.image,
            price=record.current_price,
            price_change_24h=record.price_change_percentage_24h,
            price_change_7d=record.price_change_percentage_7d,
            market_cap=record.market_cap,
            market_cap_rank=record.market_cap_rank,
            volume_24h=record.total_volume,
            circulating_supply=record.circulating_supply,
            total_supply=record.total_supply,
            ath=record.ath,
            ath_change_percentage=record.ath_change_percentage,
            staking=StakingSnapshot.derive(record, reference) if reference else None,
            score=asset_score.total,
            score_breakdown=asset_score.breakdown,
            updated_at=updated_at,
        )
    
    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "image": self.image,
            "price": self.price,
            "price_change_24h": self.price_change_24h,
            "price_change_7d": self.price_change_7d,
            "market_cap": self.market_cap,
            "market_cap_rank": self.market_cap_rank,
            "volume_24h": self.volume_24h,
            "circulating_supply": self.circulating_supply,
            "total_supply": self.total_supply,
            "ath": self.ath,
            "ath_change_percentage": self.ath_change_percentage,
            "score": self.score,
            "score_breakdown": self.score_breakdown.to_dict(),
            "updated_at": self.updated_at,
        }
        if self.staking is not None:
            data["staking"] = self.staking.to_dict()
        return data


@dataclass
class MarketListing:
    """Ranked listing."""
    updated_at: datetime
    assets: List[MarketAsset] = field(default_factory=list)
    
    @property
    def count(self) -> int:
        return len(self.assets)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "assets": [asset.to_dict() for asset in self.assets],
            "count": self.count,
            "updated_at": self.updated_at,
        }


def rank_assets(assets: List[MarketAsset]) -> List[MarketAsset]:
    """Sort by descending score; equal scores keep their input order."""
    return sorted(assets, key=lambda asset: asset.score, reverse=True)


class MarketListingService:
    """Fetches, enriches, scores and ranks the reference assets."""
    
    def __init__(
        self,
        source: BaseMarketDataSource,
        dataset: StakingDataset,
        clock: Optional[ClockProtocol] = None,
        currency: str = LISTING_CURRENCY,
    ) -> None:
        self._source = source
        self._dataset = dataset
        self._clock = clock or SystemClock()
        self._currency = currency
    
    async def list_markets(self, staking_only: bool = False) -> MarketListing:
        """
        Build the ranked listing.
        
        Args:
            staking_only: Keep only assets with a staking reference entry
            
        Raises:
            FetchError: If the batch fetch fails
        """
        records = await self._source.fetch_many(
            list(self._dataset.asset_ids()),
            self._currency,
            include_7d_change=True,
        )
        updated_at = self._clock.now()
        
        assets = []
        for record in records:
            reference = self._dataset.get(record.id)
            if staking_only and reference is None:
                continue
            assets.append(MarketAsset.build(record, reference, updated_at))
        
        logger.info(f"Built market listing of {len(assets)} assets from {len(records)} records")
        return MarketListing(updated_at=updated_at, assets=rank_assets(assets))
