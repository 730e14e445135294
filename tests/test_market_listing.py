"""
Tests for the market listing.

============================================================
TEST SCENARIOS
============================================================
1. One batch fetch of every reference id with 7d change
2. Staked tokens and TVL derived from the reference ratio
3. Ranking by descending score, ties keep provider order
4. staking_only drops assets without reference data
5. Upstream failure propagates

============================================================
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from data_sources.exceptions import UpstreamStatusError
from reference_data.staking import StakingDataset, StakingReference
from scoring_engine.market_listing import (
    MarketListingService,
    StakingSnapshot,
    rank_assets,
)


@pytest.fixture
def dataset():
    return StakingDataset({
        "ethereum": StakingReference(
            apy=Decimal("3.13"),
            staking_ratio=Decimal("30"),
            unbonding_days=27,
            min_stake=Decimal("32"),
        ),
        "cosmos": StakingReference(apy=Decimal("20.21"), staking_ratio=Decimal("61.02")),
    })


@pytest.fixture
def listing_source(empty_source, record_factory):
    empty_source.add(record_factory(
        "ethereum", "2000",
        symbol="eth",
        market_cap=Decimal("240000000000"),
        market_cap_rank=2,
        total_volume=Decimal("12000000000"),
        circulating_supply=Decimal("120000000"),
        price_change_percentage_7d=Decimal("-3.5"),
        ath_change_percentage=Decimal("-58"),
    ))
    empty_source.add(record_factory(
        "cosmos", "5",
        symbol="atom",
        market_cap=Decimal("2000000000"),
        market_cap_rank=40,
        total_volume=Decimal("150000000"),
        circulating_supply=Decimal("400000000"),
        ath_change_percentage=Decimal("-88"),
    ))
    return empty_source


# ============================================================
# TEST: LISTING
# ============================================================

class TestListMarkets:

    @pytest.mark.asyncio
    async def test_single_batch_fetch_with_7d_change(self, listing_source, dataset, clock):
        service = MarketListingService(listing_source, dataset, clock=clock)

        await service.list_markets()

        assert listing_source.fetch_many_calls == [(["ethereum", "cosmos"], "usd", True)]

    @pytest.mark.asyncio
    async def test_assets_are_enriched(self, listing_source, dataset, clock):
        service = MarketListingService(listing_source, dataset, clock=clock)

        listing = await service.list_markets()
        eth = next(a for a in listing.assets if a.id == "ethereum")

        assert eth.symbol == "ETH"
        assert eth.price == Decimal("2000")
        assert eth.price_change_7d == Decimal("-3.5")
        assert eth.updated_at == clock.now()
        assert eth.staking.staked_tokens == Decimal("36000000")
        assert eth.staking.tvl == Decimal("72000000000")
        assert eth.staking.unbonding_days == 27

    @pytest.mark.asyncio
    async def test_ranked_by_score(self, listing_source, dataset, clock):
        service = MarketListingService(listing_source, dataset, clock=clock)

        listing = await service.list_markets()

        scores = [a.score for a in listing.assets]
        assert scores == sorted(scores, reverse=True)
        assert listing.count == 2
        assert listing.updated_at == clock.now()

    @pytest.mark.asyncio
    async def test_only_reference_ids_are_requested(self, listing_source, dataset, clock, record_factory):
        listing_source.add(record_factory("bitcoin", "60000", market_cap_rank=1))
        service = MarketListingService(listing_source, dataset, clock=clock)

        listing = await service.list_markets()

        assert {a.id for a in listing.assets} == {"ethereum", "cosmos"}

    @pytest.mark.asyncio
    async def test_staking_only_filters_unreferenced(self, record_factory, clock):
        dataset = StakingDataset({
            "cosmos": StakingReference(apy=Decimal("20"), staking_ratio=Decimal("60")),
            "bitcoin": StakingReference(apy=Decimal("0"), staking_ratio=Decimal("0")),
        })
        source = MagicMock()
        # Provider also returns a row for an id outside the table
        source.fetch_many = AsyncMock(return_value=[
            record_factory("cosmos", "5"),
            record_factory("bitcoin", "60000"),
            record_factory("dogecoin", "0.1"),
        ])
        service = MarketListingService(source, dataset, clock=clock)

        full = await service.list_markets()
        staking = await service.list_markets(staking_only=True)

        source.fetch_many.assert_awaited_with(["cosmos", "bitcoin"], "usd", include_7d_change=True)
        assert {a.id for a in full.assets} == {"cosmos", "bitcoin", "dogecoin"}
        doge = next(a for a in full.assets if a.id == "dogecoin")
        assert "staking" not in doge.to_dict()
        assert {a.id for a in staking.assets} == {"cosmos", "bitcoin"}
        assert all(a.staking is not None for a in staking.assets)

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, listing_source, dataset, clock):
        listing_source.error = UpstreamStatusError("HTTP 500", status_code=500)
        service = MarketListingService(listing_source, dataset, clock=clock)

        with pytest.raises(UpstreamStatusError):
            await service.list_markets()

    @pytest.mark.asyncio
    async def test_to_dict_includes_staking_and_breakdown(self, empty_source, record_factory, clock):
        dataset = StakingDataset({
            "ethereum": StakingReference(apy=Decimal("3"), staking_ratio=Decimal("30")),
        })
        empty_source.add(record_factory("ethereum", "2000"))
        service = MarketListingService(empty_source, dataset, clock=clock)

        data = (await service.list_markets()).to_dict()

        assert data["count"] == 1
        assert "staking" in data["assets"][0]
        assert data["assets"][0]["score_breakdown"]["staking_score"] == Decimal("10")


# ============================================================
# TEST: RANKING
# ============================================================

class TestRankAssets:

    @pytest.mark.asyncio
    async def test_ties_keep_provider_order(self, empty_source, record_factory, clock):
        dataset = StakingDataset({
            asset_id: StakingReference(apy=Decimal("5"), staking_ratio=Decimal("10"))
            for asset_id in ("alpha", "bravo", "charlie")
        })
        for asset_id in ("alpha", "bravo", "charlie"):
            empty_source.add(record_factory(asset_id, "1"))
        service = MarketListingService(empty_source, dataset, clock=clock)

        listing = await service.list_markets()

        assert [a.id for a in listing.assets] == ["alpha", "bravo", "charlie"]
        assert [a.id for a in rank_assets(list(reversed(listing.assets)))] == ["charlie", "bravo", "alpha"]


class TestStakingSnapshot:

    def test_zero_supply_gives_zero_tvl(self, record_factory):
        record = record_factory("near", "5", circulating_supply=Decimal("0"))
        snapshot = StakingSnapshot.derive(
            record, StakingReference(apy=Decimal("4.47"), staking_ratio=Decimal("47.2"))
        )

        assert snapshot.staked_tokens == Decimal("0")
        assert snapshot.tvl == Decimal("0")
