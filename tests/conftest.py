"""
Shared test fixtures.

Provides an in-memory market data source and a controllable
clock so resolver, listing and API tests run without network.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import pytest

from core.clock import MockClock
from data_sources.base import BaseMarketDataSource
from data_sources.exceptions import FetchError, NotFoundError
from data_sources.models import ProviderRecord


START_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_record(asset_id: str, price: str = "100", **overrides: Any) -> ProviderRecord:
    """Build a provider record with sensible defaults."""
    values: Dict[str, Any] = {
        "id": asset_id,
        "symbol": asset_id[:3],
        "name": asset_id.title(),
        "current_price": Decimal(price),
        "market_cap": Decimal("1000000"),
        "total_volume": Decimal("1000"),
    }
    values.update(overrides)
    return ProviderRecord(**values)


class FakeMarketSource(BaseMarketDataSource):
    """
    In-memory market data source.

    - ``records``: asset id -> record served by fetch_one/fetch_many
    - ``error``: raised by every fetch while set
    - ``gate``: when set, fetches wait on this event before answering
    - fetch_one answers with the record present when the call began
    """

    def __init__(self) -> None:
        super().__init__()
        self.records: Dict[str, ProviderRecord] = {}
        self.error: Optional[FetchError] = None
        self.gate: Optional[asyncio.Event] = None
        self.fetch_one_calls: List[tuple] = []
        self.fetch_many_calls: List[tuple] = []

    @property
    def name(self) -> str:
        return "fake"

    def add(self, record: ProviderRecord) -> None:
        self.records[record.id] = record

    async def fetch_one(self, asset_id: str, currency: str) -> ProviderRecord:
        self.fetch_one_calls.append((asset_id, currency))
        # Answer with the record as it was when the call started
        record = self.records.get(asset_id)
        await self._wait()
        if self.error is not None:
            raise self.error
        if record is None:
            raise NotFoundError(f"token not found: {asset_id}", asset_id=asset_id)
        return record

    async def fetch_many(
        self,
        asset_ids: Sequence[str],
        currency: str,
        include_7d_change: bool = False,
    ) -> List[ProviderRecord]:
        self.fetch_many_calls.append((list(asset_ids), currency, include_7d_change))
        await self._wait()
        if self.error is not None:
            raise self.error
        return [self.records[a] for a in asset_ids if a in self.records]

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    """Mock clock pinned to a fixed start time."""
    return MockClock(START_TIME)


@pytest.fixture
def source():
    """Fake source preloaded with bitcoin and ethereum."""
    fake = FakeMarketSource()
    fake.add(make_record("bitcoin", "50000", symbol="btc", name="Bitcoin"))
    fake.add(make_record("ethereum", "3000", symbol="eth", name="Ethereum"))
    return fake


@pytest.fixture
def empty_source():
    """Fake source with no records."""
    return FakeMarketSource()


@pytest.fixture
def record_factory():
    """Factory for provider records."""
    return make_record
