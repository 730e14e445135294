#!/usr/bin/env python3
"""
Market Price Cache - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Wires the upstream source, the price cache, the market
listing and the HTTP API into one process.

- Configuration comes from the environment (.env supported)
- CLI flags override environment values
- Refuses to start without an upstream API key

============================================================
USAGE
============================================================
Direct execution:
    COINGECKO_API_KEY=... python app.py --port 8080

Installed console script:
    pricing-api --log-format json

============================================================
"""

import argparse
import dataclasses
import json
import logging
import sys
from typing import List, Optional

from aiohttp import web

from core.clock import SystemClock
from core.config import SUPPORTED_LOG_FORMATS, SUPPORTED_PLANS, ConfigError, PricingConfig
from data_sources.providers.coingecko import CoinGeckoMarketSource
from price_cache.resolver import PriceResolver
from pricing_api.api import create_app
from reference_data.staking import ReferenceDataError, load_dataset
from scoring_engine.market_listing import MarketListingService


# ============================================================
# LOGGING
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Set up process-wide logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Application logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("pricing")


# ============================================================
# CLI
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="pricing-api",
        description="Read-through price cache and market listing API",
    )

    server_group = parser.add_argument_group("Server Options")
    server_group.add_argument("--host", type=str, help="Bind address (env: HOST)")
    server_group.add_argument("--port", type=int, help="Listen port (env: PORT)")

    upstream_group = parser.add_argument_group("Upstream Options")
    upstream_group.add_argument(
        "--plan",
        type=str,
        choices=list(SUPPORTED_PLANS),
        help="CoinGecko plan (env: COINGECKO_API_PLAN)",
    )
    upstream_group.add_argument(
        "--staking-data",
        type=str,
        metavar="PATH",
        help="Staking reference YAML (env: STAKING_DATA_PATH)",
    )
    upstream_group.add_argument(
        "--collapse-duplicate-fetches",
        action="store_true",
        default=None,
        help="Share one upstream fetch between concurrent lookups of a key",
    )

    logging_group = parser.add_argument_group("Logging Options")
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (env: LOG_LEVEL)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=list(SUPPORTED_LOG_FORMATS),
        help="Log format (env: LOG_FORMAT)",
    )

    return parser


def build_config(args: argparse.Namespace) -> PricingConfig:
    """Environment configuration with CLI overrides applied."""
    config = PricingConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "coingecko_plan": args.plan,
        "staking_data_path": args.staking_data,
        "collapse_duplicate_fetches": args.collapse_duplicate_fetches,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}

    return dataclasses.replace(config, **overrides)


def build_app(config: PricingConfig) -> web.Application:
    """Wire all components for the given configuration."""
    clock = SystemClock()
    source = CoinGeckoMarketSource(
        api_key=config.coingecko_api_key,
        plan=config.coingecko_plan,
        base_url=config.coingecko_base_url,
        timeout=config.upstream_timeout_seconds,
    )
    resolver = PriceResolver(
        source,
        clock=clock,
        collapse_duplicate_fetches=config.collapse_duplicate_fetches,
    )
    dataset = load_dataset(config.staking_data_path)
    listing = MarketListingService(source, dataset, clock=clock)

    return create_app(resolver, listing, source, clock)


# ============================================================
# MAIN
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger = setup_logging(args.log_level or "INFO", args.log_format or "text")
        logger.error(f"Configuration error: {e}")
        return 1
    logger = setup_logging(config.log_level, config.log_format)

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return 1

    logger.info(f"Starting pricing API with config: {config.to_dict()}")

    try:
        app = build_app(config)
    except ReferenceDataError as e:
        logger.error(f"Configuration error: invalid staking data: {e}")
        return 1
    web.run_app(app, host=config.host, port=config.port, print=None)

    logger.info("Pricing API stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
