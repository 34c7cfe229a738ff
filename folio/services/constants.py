# folio/services/constants.py
"""
Centralized constants for the Folio services.

This module provides a single source of truth for all business constants
used across the application. Centralizing these values:

1. Prevents inconsistencies from duplicate definitions
2. Makes it easy to tune parameters in one place
3. Documents the meaning and units of each constant

Usage:
    from folio.services.constants import (
        HISTORY_CACHE_TTL_SECONDS,
        VALID_HISTORY_PERIODS,
        CURRENCY_PRECISION,
    )
"""

from decimal import Decimal


# =============================================================================
# HISTORY PERIODS
# =============================================================================

# Supported chart periods for portfolio history
# 24h = hourly grid, 7d / 30d = daily grid at local midnight
VALID_HISTORY_PERIODS: tuple[str, ...] = ("24h", "7d", "30d")

# Period used when the client does not specify one
DEFAULT_HISTORY_PERIOD: str = "24h"

# Number of grid points generated for each period
HISTORY_POINT_COUNTS: dict[str, int] = {
    "24h": 24,
    "7d": 7,
    "30d": 30,
}

# Provider interval name requested for each period
HISTORY_INTERVALS: dict[str, str] = {
    "24h": "hourly",
    "7d": "daily",
    "30d": "daily",
}


# =============================================================================
# CACHE SETTINGS
# =============================================================================

# Time-to-live for cached portfolio history results in seconds
# 10 minutes is a reasonable freshness window for volatile crypto markets
HISTORY_CACHE_TTL_SECONDS: int = 600

# Default time-to-live for generic cache entries
# 5 minutes when the caller does not pass an explicit TTL
DEFAULT_CACHE_TTL_SECONDS: int = 300

# Maximum number of entries held by the in-process cache before LRU eviction
DEFAULT_CACHE_MAX_SIZE: int = 256


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Number of failures before circuit opens and blocks requests
# 5 failures = service is likely having issues
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds to wait before testing if service has recovered
# 60 seconds = give service time to recover before retrying
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# Maximum calls allowed in half-open state to test recovery
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 3

# Time window (seconds) for counting failures (0 = count all failures)
# 300 = 5 minutes, only count recent failures
CIRCUIT_BREAKER_FAILURE_WINDOW: float = 300.0


# =============================================================================
# EXTERNAL API TIMEOUT SETTINGS
# =============================================================================

# Timeout for current quote calls to the price provider
EXTERNAL_API_TIMEOUT_SECONDS: int = 10

# Timeout for historical OHLCV batch fetches
# 30 seconds allows for larger multi-asset batches
EXTERNAL_API_HISTORY_TIMEOUT_SECONDS: int = 30

# Quote currency requested from the price provider
QUOTE_CURRENCY: str = "USD"


# =============================================================================
# DECIMAL PRECISION CONSTANTS
# =============================================================================

# Currency amounts: 2 decimal places (e.g., $1234.56)
# Used for: holding value, cost basis, P&L amounts, history points
CURRENCY_PRECISION: Decimal = Decimal("0.01")

# Quantities and per-unit prices: 8 decimal places
# BTC and most tokens use 8 decimals
QUANTITY_PRECISION: Decimal = Decimal("0.00000001")

# Display percentage: 2 decimal places (e.g., 12.34%)
DISPLAY_PERCENTAGE_PRECISION: Decimal = Decimal("0.01")

# Type-safe zero for Decimal comparisons
ZERO: Decimal = Decimal("0")

HUNDRED: Decimal = Decimal("100")


# =============================================================================
# RATE LIMITING CONSTANTS
# =============================================================================
# Limits are expressed as "X per Y" where Y is the time window
# Format follows slowapi/limits syntax: "100/minute", "10/hour", etc.

# Default rate limit for read endpoints (GET requests)
RATE_LIMIT_DEFAULT: str = "100/minute"

# Rate limit for write endpoints (POST, DELETE)
RATE_LIMIT_WRITE: str = "30/minute"

# Rate limit for endpoints that call the price provider
# Holdings and history fan out to CoinMarketCap on a cache miss
RATE_LIMIT_PRICED: str = "60/minute"

# Rate limit for health check endpoints
# Higher limit for monitoring tools that poll frequently
RATE_LIMIT_HEALTH: str = "300/minute"


# =============================================================================
# RESOURCE LIMIT CONSTANTS
# =============================================================================

# Maximum number of items returned in a single transaction list response
MAX_LIST_LIMIT: int = 1000

# Page size when a list request does not pass a limit
DEFAULT_LIST_LIMIT: int = 100
