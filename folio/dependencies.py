# folio/dependencies.py
"""
Dependency injection module for FastAPI services.

Service instances are singletons shared across all requests, so the
oracle's circuit breaker and the history cache hold state globally.
They are created lazily on first use to avoid import-time side effects.

Usage in routers:
    from folio.dependencies import (
        get_holdings_aggregator,
        get_current_user,
        get_owned_portfolio,
    )

    @router.get("/{portfolio_id}/holdings")
    def list_holdings(
        portfolio: Portfolio = Depends(get_owned_portfolio),
        aggregator: HoldingsAggregator = Depends(get_holdings_aggregator),
    ):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from folio.config import settings
from folio.database import get_db
from folio.models import User, Portfolio
from folio.services.auth import JWTHandler
from folio.services.cache import InMemoryCache
from folio.services.exceptions import AuthenticationError, TokenExpiredError
from folio.services.ledger import TransactionLedger
from folio.services.pricing import CoinMarketCapOracle, PriceOracle
from folio.services.valuation import HistoricalValuationReconstructor, HoldingsAggregator

logger = logging.getLogger(__name__)

# auto_error=False so a missing header becomes our own 401, not FastAPI's 403
_bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_price_oracle, get_history_cache, get_ledger (no deps)
# 2. get_holdings_aggregator (oracle, ledger)
# 3. get_history_reconstructor (oracle, cache, ledger)


@lru_cache(maxsize=1)
def get_price_oracle() -> PriceOracle:
    """
    Shared CoinMarketCap oracle.

    One instance means one circuit breaker for the whole process.
    """
    logger.debug("Initializing singleton CoinMarketCapOracle")
    return CoinMarketCapOracle(api_key=settings.cmc_api_key or "", base_url=settings.cmc_base_url)


@lru_cache(maxsize=1)
def get_history_cache() -> InMemoryCache:
    logger.debug("Initializing singleton history cache")
    return InMemoryCache(namespace=settings.cache_key_prefix, max_size=settings.cache_max_size)


@lru_cache(maxsize=1)
def get_ledger() -> TransactionLedger:
    return TransactionLedger()


@lru_cache(maxsize=1)
def get_holdings_aggregator() -> HoldingsAggregator:
    logger.debug("Initializing singleton HoldingsAggregator")
    return HoldingsAggregator(oracle=get_price_oracle(), ledger=get_ledger())


@lru_cache(maxsize=1)
def get_history_reconstructor() -> HistoricalValuationReconstructor:
    """
    Shared reconstructor.

    Holds the history cache, so invalidation after a write reaches the
    same cache that reads populate.
    """
    logger.debug("Initializing singleton HistoricalValuationReconstructor")
    return HistoricalValuationReconstructor(
        oracle=get_price_oracle(),
        cache=get_history_cache(),
        ledger=get_ledger(),
        timezone_name=settings.timezone,
    )


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """
    Resolve the authenticated user from the bearer token.

    Raises:
        HTTPException 401: Missing, invalid or expired token; unknown or inactive user
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        user_id = JWTHandler.user_id_from_token(credentials.credentials)
    except TokenExpiredError:
        raise _unauthorized("Token has expired")
    except AuthenticationError as e:
        raise _unauthorized(str(e))

    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User account is inactive")

    return user


def get_owned_portfolio(
    portfolio_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    ledger: Annotated[TransactionLedger, Depends(get_ledger)],
) -> Portfolio:
    """
    Portfolio from the path, owned by the current user.

    A portfolio owned by someone else is reported exactly like a missing
    one, so ids of other users' portfolios are not disclosed.

    Raises:
        PortfolioNotFoundError: Mapped to 404 by the application handler
    """
    return ledger.get_owned_portfolio(db, portfolio_id, current_user.id)


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """
    Drop all singleton instances (next call creates fresh ones).

    Useful for testing or when settings change.
    """
    get_price_oracle.cache_clear()
    get_history_cache.cache_clear()
    get_ledger.cache_clear()
    get_holdings_aggregator.cache_clear()
    get_history_reconstructor.cache_clear()
    logger.info("Cleared all service singleton caches")
