# folio/routers/holdings.py
"""
Holdings endpoints.

- GET /portfolios/{id}/holdings - Priced open positions of one portfolio
- GET /portfolios/{id}/overview - Totals, best/worst performer, allocation
- GET /holdings                 - Open positions across all of the user's portfolios

Prices come from the price oracle on every call. If it is unreachable
the response still succeeds, with values at 0 and prices_available=false.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from folio.database import get_db
from folio.dependencies import get_current_user, get_holdings_aggregator, get_owned_portfolio
from folio.middleware.rate_limit import limiter, RATE_LIMIT_PRICED
from folio.models import Portfolio, User
from folio.schemas.holdings import HoldingsResponse, PortfolioOverviewResponse
from folio.services.valuation import HoldingsAggregator

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(tags=["Holdings"])


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "/portfolios/{portfolio_id}/holdings",
    response_model=HoldingsResponse,
    summary="Get portfolio holdings",
    response_description="Open positions with FIFO cost basis and live valuation",
)
@limiter.limit(RATE_LIMIT_PRICED)
def get_portfolio_holdings(
        request: Request,  # Required for rate limiting
        portfolio: Annotated[Portfolio, Depends(get_owned_portfolio)],
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        aggregator: Annotated[HoldingsAggregator, Depends(get_holdings_aggregator)],
) -> HoldingsResponse:
    """
    Open positions of a portfolio, largest cost basis first.

    Per holding:
    - **cost_basis / avg_buy_price / realized_gain_loss**: FIFO lot matching
    - **current_value / profit_loss**: quantity × live price
    - **price_change_1h/24h/7d**: provider percent changes

    Returns **404** if the portfolio does not exist or is not yours.
    """
    result = aggregator.build_holdings(db, portfolio.id, current_user.id)
    return HoldingsResponse.model_validate(result)


@router.get(
    "/portfolios/{portfolio_id}/overview",
    response_model=PortfolioOverviewResponse,
    summary="Get portfolio overview",
)
@limiter.limit(RATE_LIMIT_PRICED)
def get_portfolio_overview(
        request: Request,  # Required for rate limiting
        portfolio: Annotated[Portfolio, Depends(get_owned_portfolio)],
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        aggregator: Annotated[HoldingsAggregator, Depends(get_holdings_aggregator)],
) -> PortfolioOverviewResponse:
    """
    Dashboard view: totals, best and worst holding by unrealized P/L, and
    allocation by value (largest share first).
    """
    overview = aggregator.build_overview(db, portfolio.id, current_user.id)
    return PortfolioOverviewResponse.model_validate(overview)


@router.get(
    "/holdings",
    response_model=HoldingsResponse,
    summary="Get holdings across all portfolios",
)
@limiter.limit(RATE_LIMIT_PRICED)
def get_all_holdings(
        request: Request,  # Required for rate limiting
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        aggregator: Annotated[HoldingsAggregator, Depends(get_holdings_aggregator)],
) -> HoldingsResponse:
    """
    One row per (portfolio, asset) across every portfolio you own.

    `summary.unique_assets` counts each asset once even when it is held in
    several portfolios. `portfolio` is null.
    """
    result = aggregator.build_all_holdings(db, current_user.id)
    return HoldingsResponse.model_validate(result)
