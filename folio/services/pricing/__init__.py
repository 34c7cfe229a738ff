# folio/services/pricing/__init__.py
"""
Price oracle package.

This package contains:
- Abstract interface for price providers (base.py)
- CoinMarketCap implementation (coinmarketcap.py)

Usage:
    from folio.services.pricing import CoinMarketCapOracle, PriceQuote

    oracle = CoinMarketCapOracle(api_key=settings.cmc_api_key)
    quotes = oracle.get_current_quotes([1, 1027])

Architecture:
    PriceOracle (ABC)
    └── CoinMarketCapOracle (concrete, httpx + tenacity + CircuitBreaker)
"""

from folio.services.pricing.base import (
    PriceOracle,
    PriceQuote,
    HistoricalQuote,
    VALID_INTERVALS,
)
from folio.services.pricing.coinmarketcap import CoinMarketCapOracle

__all__ = [
    # Abstract interface
    "PriceOracle",
    # Data classes
    "PriceQuote",
    "HistoricalQuote",
    "VALID_INTERVALS",
    # Concrete implementations
    "CoinMarketCapOracle",
]
