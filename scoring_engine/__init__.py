"""
Scoring Engine Package.

This package scores assets from provider market records and
static staking reference data.

Modules:
- asset_score: Composite 0-100 score and its breakdown
- market_listing: Enriched, ranked market overview
"""

from scoring_engine.asset_score import (
    AssetScore,
    ScoreBreakdown,
    score_adoption,
    score_asset,
    score_market,
    score_security,
    score_staking,
    score_tech,
)
from scoring_engine.market_listing import (
    MarketAsset,
    MarketListing,
    MarketListingService,
    StakingSnapshot,
    rank_assets,
)

__all__ = [
    "AssetScore",
    "ScoreBreakdown",
    "score_asset",
    "score_market",
    "score_staking",
    "score_security",
    "score_adoption",
    "score_tech",
    "MarketAsset",
    "MarketListing",
    "MarketListingService",
    "StakingSnapshot",
    "rank_assets",
]
