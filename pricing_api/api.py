"""
Pricing API Endpoints.

============================================================
PURPOSE
============================================================
HTTP surface over the price cache and market listing.

PRINCIPLES:
- ALL endpoints are READ-ONLY (GET, plus CORS preflight)
- Handlers only parse input and serialize output
- Upstream failures become JSON error bodies, never crashes

============================================================
ENDPOINTS
============================================================
    GET /health                         Liveness, cache and upstream status
    GET /price/{token_id}?currency=usd  Single token price
    GET /prices?ids=a,b&currency=usd    Several prices, one currency
    GET /simple/price?ids=a&vs_currencies=usd,eur
                                        CoinGecko-compatible price map
    GET /markets, /v1/markets           Ranked listing with staking data
    GET /staking, /v1/staking           Staking assets only

============================================================
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from aiohttp import web

from core.clock import ClockProtocol, SystemClock, to_iso8601
from data_sources.base import BaseMarketDataSource
from data_sources.exceptions import FetchError, NotFoundError
from price_cache.models import DEFAULT_CURRENCY
from price_cache.resolver import PriceResolver
from scoring_engine.market_listing import MarketListingService


logger = logging.getLogger(__name__)

PRICE_CACHE_CONTROL = "public, max-age=3600"
MARKETS_CACHE_CONTROL = "public, max-age=300"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


# ============================================================
# JSON ENCODER
# ============================================================

class PricingEncoder(json.JSONEncoder):
    """JSON encoder for pricing data."""
    
    def default(self, obj):
        if isinstance(obj, datetime):
            return to_iso8601(obj)
        if isinstance(obj, Decimal):
            return float(obj)
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def json_response(
    data: Any,
    status: int = 200,
    cache_control: Optional[str] = None,
) -> web.Response:
    """Create JSON response."""
    headers = {"Cache-Control": cache_control} if cache_control else None
    return web.Response(
        text=json.dumps(data, cls=PricingEncoder),
        status=status,
        content_type="application/json",
        headers=headers,
    )


def error_response(message: str, status: int) -> web.Response:
    return json_response({"error": message}, status=status)


def _split_ids(raw: str) -> List[str]:
    return [token for token in raw.split(",") if token]


# ============================================================
# MIDDLEWARE
# ============================================================

@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Add permissive CORS headers; answer preflight requests directly."""
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)
    
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


# ============================================================
# API HANDLERS
# ============================================================

class PricingAPI:
    """HTTP handlers for price lookups and market listings."""
    
    def __init__(
        self,
        resolver: PriceResolver,
        listing: MarketListingService,
        source: BaseMarketDataSource,
        clock: Optional[ClockProtocol] = None,
    ):
        """Initialize API."""
        self._resolver = resolver
        self._listing = listing
        self._source = source
        self._clock = clock or SystemClock()
    
    # --------------------------------------------------------
    # HEALTH
    # --------------------------------------------------------
    
    async def health(self, request: web.Request) -> web.Response:
        """
        GET /health
        
        Liveness check; makes no upstream call.
        """
        now = self._clock.now()
        return json_response({
            "status": "ok",
            "time": now,
            "cache": self._resolver.store.stats(now, self._resolver.ttl),
            "upstream": self._source.get_health().to_dict(),
        })
    
    # --------------------------------------------------------
    # PRICE ENDPOINTS
    # --------------------------------------------------------
    
    async def get_price(self, request: web.Request) -> web.Response:
        """
        GET /price/{token_id}?currency=usd
        
        Single token price.
        """
        token_id = request.match_info.get("token_id", "")
        if not token_id:
            return error_response("token_id required", 400)
        
        currency = request.query.get("currency") or DEFAULT_CURRENCY
        
        try:
            price = await self._resolver.get_price(token_id, currency)
        except NotFoundError as e:
            return error_response(e.message, 404)
        except FetchError as e:
            return error_response(e.message, 502)
        
        return json_response(price.to_dict(), cache_control=PRICE_CACHE_CONTROL)
    
    async def missing_token(self, request: web.Request) -> web.Response:
        """GET /price/ without a token id."""
        return error_response("token_id required", 400)
    
    async def get_prices(self, request: web.Request) -> web.Response:
        """
        GET /prices?ids=bitcoin,ethereum&currency=usd
        
        Several prices in one currency; unresolved ids are omitted.
        """
        ids = _split_ids(request.query.get("ids", ""))
        if not ids:
            return error_response("ids query parameter required", 400)
        
        currency = request.query.get("currency") or DEFAULT_CURRENCY
        result = await self._resolver.get_prices(ids, currency)
        return json_response(result.to_dict(), cache_control=PRICE_CACHE_CONTROL)
    
    async def get_simple_price(self, request: web.Request) -> web.Response:
        """
        GET /simple/price?ids=bitcoin&vs_currencies=usd,eur
        
        CoinGecko-compatible {id: {currency: price}} map.
        """
        ids = _split_ids(request.query.get("ids", ""))
        if not ids:
            return error_response("ids query parameter required", 400)
        
        currencies = _split_ids(request.query.get("vs_currencies", "")) or [DEFAULT_CURRENCY]
        
        prices: Dict[str, Dict[str, Decimal]] = {}
        for currency in currencies:
            result = await self._resolver.get_prices(ids, currency)
            for asset_id, record in result.prices.items():
                prices.setdefault(asset_id, {})[currency] = record.price
        
        return json_response(prices, cache_control=PRICE_CACHE_CONTROL)
    
    # --------------------------------------------------------
    # MARKET ENDPOINTS
    # --------------------------------------------------------
    
    async def get_markets(self, request: web.Request) -> web.Response:
        """
        GET /markets
        
        Ranked listing of all reference assets.
        """
        return await self._listing_response(staking_only=False)
    
    async def get_staking(self, request: web.Request) -> web.Response:
        """
        GET /staking
        
        Ranked listing restricted to assets with staking data.
        """
        return await self._listing_response(staking_only=True)
    
    async def _listing_response(self, staking_only: bool) -> web.Response:
        try:
            listing = await self._listing.list_markets(staking_only=staking_only)
        except FetchError as e:
            logger.error(f"Market listing failed: {e}")
            return error_response(e.message, 502)
        return json_response(listing.to_dict(), cache_control=MARKETS_CACHE_CONTROL)


# ============================================================
# APPLICATION
# ============================================================

def create_app(
    resolver: PriceResolver,
    listing: MarketListingService,
    source: BaseMarketDataSource,
    clock: Optional[ClockProtocol] = None,
) -> web.Application:
    """
    Create the pricing web application.
    
    The upstream source's HTTP session is closed on app cleanup.
    """
    api = PricingAPI(resolver, listing, source, clock)
    
    app = web.Application(middlewares=[cors_middleware])
    
    app.router.add_get("/health", api.health)
    app.router.add_get("/price/", api.missing_token)
    app.router.add_get("/price/{token_id}", api.get_price)
    app.router.add_get("/prices", api.get_prices)
    app.router.add_get("/simple/price", api.get_simple_price)
    
    for prefix in ("", "/v1"):
        app.router.add_get(f"{prefix}/markets", api.get_markets)
        app.router.add_get(f"{prefix}/staking", api.get_staking)
    
    async def _close_source(_app: web.Application) -> None:
        await source.close()
    
    app.on_cleanup.append(_close_source)
    
    return app
