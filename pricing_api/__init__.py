"""
Pricing API Package.

aiohttp web application exposing price lookups and market
listings over HTTP.
"""

from pricing_api.api import PricingAPI, PricingEncoder, create_app, json_response

__all__ = [
    "PricingAPI",
    "PricingEncoder",
    "create_app",
    "json_response",
]
