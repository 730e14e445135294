"""
Tests for the CoinGecko market data source.

============================================================
TEST SCENARIOS
============================================================
1. Request shape: path, query parameters, auth header per plan
2. Rows decode into ProviderRecord (nulls → zero / None)
3. Empty single lookup → NotFoundError
4. Non-2xx → UpstreamStatusError with body
5. Invalid JSON, invalid UTF-8, non-finite numbers, wrong envelope → DecodeError
6. Slow upstream → TransportError(timeout=True)
7. Health transitions after consecutive failures, decode failures included

A local aiohttp server stands in for the provider.

============================================================
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.clock import MockClock
from data_sources.exceptions import (
    ConfigurationError,
    DecodeError,
    NotFoundError,
    TransportError,
    UpstreamStatusError,
)
from data_sources.health import SourceStatus
from data_sources.models import ProviderRecord
from data_sources.providers.coingecko import CoinGeckoMarketSource
from price_cache.resolver import PriceResolver


BITCOIN_ROW = {
    "id": "bitcoin",
    "symbol": "btc",
    "name": "Bitcoin",
    "image": "https://example.invalid/btc.png",
    "current_price": 50000.5,
    "market_cap": 980000000000,
    "market_cap_rank": 1,
    "total_volume": 25000000000,
    "price_change_percentage_24h": -1.25,
    "price_change_percentage_7d_in_currency": 4.5,
    "circulating_supply": 19600000,
    "total_supply": 21000000,
    "ath": 73000,
    "ath_change_percentage": -31.5,
    "last_updated": "2025-01-01T11:59:30.000Z",
}

ETHEREUM_ROW = {
    "id": "ethereum",
    "symbol": "eth",
    "name": "Ethereum",
    "current_price": 3000,
    "market_cap": 360000000000,
    "market_cap_rank": 2,
    "total_volume": None,
    "total_supply": None,
}

INVALID_UTF8_BODY = b'[{"id": "bitcoin", "name": "\xff\xfe"}]'


@asynccontextmanager
async def coingecko(handler, **source_kwargs):
    """Run ``handler`` as /api/v3/coins/markets and yield a source pointed at it."""
    app = web.Application()
    app.router.add_get("/api/v3/coins/markets", handler)
    server = TestServer(app)
    await server.start_server()

    source_kwargs.setdefault("api_key", "test-key")
    source = CoinGeckoMarketSource(base_url=str(server.make_url("/api/v3")), **source_kwargs)
    try:
        yield source
    finally:
        await source.close()
        await server.close()


def bytes_handler(body: bytes):
    """Handler answering 200 with a raw JSON-typed body."""
    async def handler(request: web.Request) -> web.Response:
        return web.Response(body=body, content_type="application/json", charset="utf-8")
    return handler


def rows_handler(rows, seen=None):
    """Handler returning ``rows`` and recording each request."""
    async def handler(request: web.Request) -> web.Response:
        if seen is not None:
            seen.append(request)
        return web.json_response(rows)
    return handler


# ============================================================
# TEST: REQUEST SHAPE
# ============================================================

class TestRequestShape:

    @pytest.mark.asyncio
    async def test_single_lookup_params(self):
        seen = []
        async with coingecko(rows_handler([BITCOIN_ROW], seen)) as source:
            await source.fetch_one("bitcoin", "usd")

        query = seen[0].query
        assert query["vs_currency"] == "usd"
        assert query["ids"] == "bitcoin"
        assert query["order"] == "market_cap_desc"
        assert query["per_page"] == "1"
        assert query["page"] == "1"
        assert query["sparkline"] == "false"
        assert "price_change_percentage" not in query

    @pytest.mark.asyncio
    async def test_batch_lookup_params(self):
        seen = []
        async with coingecko(rows_handler([BITCOIN_ROW, ETHEREUM_ROW], seen)) as source:
            await source.fetch_many(["bitcoin", "ethereum"], "eur", include_7d_change=True)

        query = seen[0].query
        assert query["ids"] == "bitcoin,ethereum"
        assert query["vs_currency"] == "eur"
        assert query["per_page"] == "250"
        assert query["price_change_percentage"] == "7d"

    @pytest.mark.asyncio
    async def test_demo_plan_header(self):
        seen = []
        async with coingecko(rows_handler([BITCOIN_ROW], seen), api_key="demo-key") as source:
            await source.fetch_one("bitcoin", "usd")

        assert seen[0].headers["x-cg-demo-api-key"] == "demo-key"
        assert "x-cg-pro-api-key" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_pro_plan_header(self):
        seen = []
        async with coingecko(rows_handler([BITCOIN_ROW], seen), api_key="pro-key", plan="pro") as source:
            await source.fetch_one("bitcoin", "usd")

        assert seen[0].headers["x-cg-pro-api-key"] == "pro-key"

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self):
        seen = []
        async with coingecko(rows_handler([], seen)) as source:
            assert await source.fetch_many([], "usd") == []

        assert seen == []


class TestPlans:

    def test_default_urls(self):
        assert CoinGeckoMarketSource("k").base_url == "https://api.coingecko.com/api/v3"
        assert CoinGeckoMarketSource("k", plan="pro").base_url == "https://pro-api.coingecko.com/api/v3"

    def test_unknown_plan_rejected(self):
        with pytest.raises(ConfigurationError):
            CoinGeckoMarketSource("k", plan="enterprise")


# ============================================================
# TEST: DECODING
# ============================================================

class TestDecoding:

    @pytest.mark.asyncio
    async def test_single_lookup_decodes_row(self):
        async with coingecko(rows_handler([BITCOIN_ROW])) as source:
            record = await source.fetch_one("bitcoin", "usd")

        assert record.id == "bitcoin"
        assert record.symbol == "btc"
        assert record.current_price == Decimal("50000.5")
        assert record.market_cap_rank == 1
        assert record.price_change_percentage_7d == Decimal("4.5")
        assert record.ath_change_percentage == Decimal("-31.5")
        assert record.last_updated.year == 2025

    @pytest.mark.asyncio
    async def test_null_fields_decode_to_zero(self):
        async with coingecko(rows_handler([ETHEREUM_ROW])) as source:
            records = await source.fetch_many(["ethereum"], "usd")

        assert records[0].total_volume == Decimal("0")
        assert records[0].total_supply == Decimal("0")
        assert records[0].last_updated is None

    @pytest.mark.asyncio
    async def test_empty_single_lookup_is_not_found(self):
        async with coingecko(rows_handler([])) as source:
            with pytest.raises(NotFoundError) as exc_info:
                await source.fetch_one("no-such-coin", "usd")

        assert exc_info.value.asset_id == "no-such-coin"
        assert str(exc_info.value.message) == "token not found: no-such-coin"

    @pytest.mark.asyncio
    async def test_batch_omits_unknown_ids(self):
        async with coingecko(rows_handler([BITCOIN_ROW])) as source:
            records = await source.fetch_many(["bitcoin", "no-such-coin"], "usd")

        assert [r.id for r in records] == ["bitcoin"]

    @pytest.mark.asyncio
    async def test_invalid_json_is_decode_error(self):
        async def handler(request):
            return web.Response(text="<html>oops</html>", content_type="text/html")

        async with coingecko(handler) as source:
            with pytest.raises(DecodeError):
                await source.fetch_one("bitcoin", "usd")

    @pytest.mark.asyncio
    async def test_object_envelope_is_decode_error(self):
        async with coingecko(rows_handler({"error": "rate limited"})) as source:
            with pytest.raises(DecodeError):
                await source.fetch_many(["bitcoin"], "usd")

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_decode_error(self):
        async with coingecko(bytes_handler(INVALID_UTF8_BODY)) as source:
            with pytest.raises(DecodeError) as exc_info:
                await source.fetch_one("bitcoin", "usd")

        assert isinstance(exc_info.value.original_error, UnicodeDecodeError)
        assert "bitcoin" in exc_info.value.raw_data

    @pytest.mark.asyncio
    async def test_invalid_utf8_batch_returns_empty_result(self):
        async with coingecko(bytes_handler(INVALID_UTF8_BODY)) as source:
            result = await PriceResolver(source).get_prices(["bitcoin"], "usd")

        assert result.prices == {}

    @pytest.mark.asyncio
    async def test_invalid_utf8_serves_stale_price(self):
        clock = MockClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        state = {"body": None}

        async def handler(request):
            if state["body"] is not None:
                return web.Response(body=state["body"], content_type="application/json")
            return web.json_response([BITCOIN_ROW])

        async with coingecko(handler) as source:
            resolver = PriceResolver(source, clock=clock)
            await resolver.get_price("bitcoin", "usd")
            clock.advance(hours=2)
            state["body"] = INVALID_UTF8_BODY
            result = await resolver.get_price("bitcoin", "usd")

        assert result.cached is True
        assert result.price == Decimal("50000.5")

    @pytest.mark.asyncio
    async def test_non_finite_number_is_decode_error(self):
        body = b'[{"id": "bitcoin", "current_price": NaN}]'
        async with coingecko(bytes_handler(body)) as source:
            with pytest.raises(DecodeError) as exc_info:
                await source.fetch_one("bitcoin", "usd")

        assert exc_info.value.field_name == "current_price"

    def test_infinite_values_are_decode_errors(self):
        with pytest.raises(DecodeError):
            ProviderRecord.from_payload({"id": "bitcoin", "market_cap": float("inf")})
        with pytest.raises(DecodeError):
            ProviderRecord.from_payload({"id": "bitcoin", "market_cap_rank": float("inf")})

    def test_non_numeric_field_is_decode_error(self):
        with pytest.raises(DecodeError) as exc_info:
            ProviderRecord.from_payload({"id": "bitcoin", "current_price": "abc"})
        assert exc_info.value.field_name == "current_price"

    def test_row_without_id_is_decode_error(self):
        with pytest.raises(DecodeError):
            ProviderRecord.from_payload({"symbol": "btc"})


# ============================================================
# TEST: FAILURES
# ============================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_server_error_is_status_error(self):
        async def handler(request):
            return web.Response(status=500, text="internal error")

        async with coingecko(handler) as source:
            with pytest.raises(UpstreamStatusError) as exc_info:
                await source.fetch_one("bitcoin", "usd")

        assert exc_info.value.status_code == 500
        assert exc_info.value.response_body == "internal error"
        assert exc_info.value.is_server_error()

    @pytest.mark.asyncio
    async def test_rate_limit_is_status_error(self):
        async def handler(request):
            return web.Response(status=429, text="slow down")

        async with coingecko(handler) as source:
            with pytest.raises(UpstreamStatusError) as exc_info:
                await source.fetch_many(["bitcoin"], "usd")

        assert exc_info.value.is_rate_limited()

    @pytest.mark.asyncio
    async def test_slow_upstream_times_out(self):
        async def handler(request):
            await asyncio.sleep(2)
            return web.json_response([BITCOIN_ROW])

        async with coingecko(handler, timeout=0.2) as source:
            with pytest.raises(TransportError) as exc_info:
                await source.fetch_one("bitcoin", "usd")

        assert exc_info.value.timeout is True

    @pytest.mark.asyncio
    async def test_connection_refused_is_transport_error(self):
        source = CoinGeckoMarketSource("k", base_url="http://127.0.0.1:1/api/v3", timeout=2)
        try:
            with pytest.raises(TransportError) as exc_info:
                await source.fetch_one("bitcoin", "usd")
        finally:
            await source.close()

        assert exc_info.value.timeout is False


# ============================================================
# TEST: HEALTH
# ============================================================

class TestHealth:

    @pytest.mark.asyncio
    async def test_health_transitions(self):
        state = {"fail": True}

        async def handler(request):
            if state["fail"]:
                return web.Response(status=503)
            return web.json_response([BITCOIN_ROW])

        async with coingecko(handler) as source:
            assert source.get_health().status == SourceStatus.UNKNOWN

            for _ in range(3):
                with pytest.raises(UpstreamStatusError):
                    await source.fetch_one("bitcoin", "usd")
            assert source.get_health().status == SourceStatus.DEGRADED

            for _ in range(2):
                with pytest.raises(UpstreamStatusError):
                    await source.fetch_one("bitcoin", "usd")
            assert source.get_health().status == SourceStatus.UNAVAILABLE
            assert source.get_health().consecutive_failures == 5

            state["fail"] = False
            await source.fetch_one("bitcoin", "usd")
            health = source.get_health()

        assert health.status == SourceStatus.HEALTHY
        assert health.consecutive_failures == 0
        assert health.uptime_percentage == pytest.approx(100 / 6)

    @pytest.mark.asyncio
    async def test_malformed_payload_counts_as_failure(self):
        async with coingecko(rows_handler({"error": "rate limited"})) as source:
            for _ in range(3):
                with pytest.raises(DecodeError):
                    await source.fetch_many(["bitcoin"], "usd")
            health = source.get_health()

        assert health.status == SourceStatus.DEGRADED
        assert health.consecutive_failures == 3

    @pytest.mark.asyncio
    async def test_malformed_row_does_not_reset_failures(self):
        state = {"rows": None}

        async def handler(request):
            if state["rows"] is None:
                return web.Response(status=503)
            return web.json_response(state["rows"])

        async with coingecko(handler) as source:
            with pytest.raises(UpstreamStatusError):
                await source.fetch_one("bitcoin", "usd")
            state["rows"] = [{"symbol": "btc"}]
            with pytest.raises(DecodeError):
                await source.fetch_one("bitcoin", "usd")
            health = source.get_health()

        assert health.consecutive_failures == 2
        assert health.status != SourceStatus.HEALTHY
