# folio/services/__init__.py
"""
Service layer for business logic.

This package contains the service layer which encapsulates business logic
separate from the API (router) layer. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)
- Are easily testable via dependency injection

Usage:
    from folio.services import HoldingsAggregator
    from folio.services import HistoricalValuationReconstructor
    from folio.services import (
        PortfolioNotFoundError,
        InvalidPeriodError,
        MarketDataError,
    )

Architecture:
    services/
    ├── __init__.py          # This file - main exports
    ├── exceptions.py        # Domain exceptions
    ├── constants.py         # Business constants and limits
    ├── protocols.py         # Service interfaces (Protocol classes)
    ├── circuit_breaker.py   # Circuit breaker for external APIs
    ├── cache.py             # In-process TTL/LRU cache
    ├── ledger.py            # Transaction queries and writes
    ├── auth/                # JWT access tokens
    ├── pricing/             # Price oracles
    │   ├── base.py          # Abstract oracle interface
    │   └── coinmarketcap.py # CoinMarketCap implementation
    └── valuation/           # Valuation services
        ├── types.py         # Valuation data types
        ├── fifo.py          # FIFO lot accounting
        ├── holdings.py      # Priced holdings and overview
        └── history.py       # Time series reconstruction
"""

from folio.services.cache import InMemoryCache
from folio.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitState
from folio.services.exceptions import (
    # Base exceptions
    ServiceError,
    ValidationError,
    NotFoundError,
    # Domain exceptions
    InvalidPeriodError,
    InsufficientQuantityError,
    PortfolioNotFoundError,
    TransactionNotFoundError,
    # Auth exceptions
    AuthenticationError,
    InvalidCredentialsError,
    TokenExpiredError,
    # Market data exceptions
    MarketDataError,
    ProviderUnavailableError,
    RateLimitError,
)
from folio.services.ledger import AssetAggregate, TransactionLedger
from folio.services.pricing import CoinMarketCapOracle, HistoricalQuote, PriceOracle, PriceQuote
from folio.services.valuation import (
    FIFOLotAccountant,
    HistoricalValuationReconstructor,
    HoldingsAggregator,
)

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "TransactionLedger",
    "AssetAggregate",
    "FIFOLotAccountant",
    "HoldingsAggregator",
    "HistoricalValuationReconstructor",

    # Pricing
    "PriceOracle",
    "PriceQuote",
    "HistoricalQuote",
    "CoinMarketCapOracle",

    # Infrastructure
    "InMemoryCache",
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "CircuitState",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "InvalidPeriodError",
    "InsufficientQuantityError",
    "PortfolioNotFoundError",
    "TransactionNotFoundError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "TokenExpiredError",
    "MarketDataError",
    "ProviderUnavailableError",
    "RateLimitError",
]
