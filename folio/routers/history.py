# folio/routers/history.py
"""
Portfolio value history (chart data).

- GET /portfolios/{id}/history?period=24h - One portfolio
- GET /history?period=7d                  - All of the user's portfolios

Periods: 24h (hourly points), 7d and 30d (daily points at local midnight).
Results are cached for 10 minutes; recording or deleting a transaction
clears the user's cached series.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from folio.database import get_db
from folio.dependencies import get_current_user, get_history_reconstructor
from folio.middleware.rate_limit import limiter, RATE_LIMIT_PRICED
from folio.models import User
from folio.schemas.history import PortfolioHistoryResponse
from folio.services.constants import DEFAULT_HISTORY_PERIOD, VALID_HISTORY_PERIODS
from folio.services.valuation import HistoricalValuationReconstructor

router = APIRouter(tags=["History"])

# Validated by the service so an unknown period is a 400, not a 422
PeriodQuery = Annotated[
    str,
    Query(description=f"One of: {', '.join(VALID_HISTORY_PERIODS)}"),
]


@router.get(
    "/portfolios/{portfolio_id}/history",
    response_model=PortfolioHistoryResponse,
    summary="Get portfolio value history",
)
@limiter.limit(RATE_LIMIT_PRICED)
def get_portfolio_history(
        request: Request,  # Required for rate limiting
        portfolio_id: int,
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        reconstructor: Annotated[HistoricalValuationReconstructor, Depends(get_history_reconstructor)],
        period: PeriodQuery = DEFAULT_HISTORY_PERIOD,
) -> PortfolioHistoryResponse:
    """
    Value of one portfolio over the period, oldest point first.

    Returns **400** for an unknown period and **404** if the portfolio does
    not exist or is not yours.
    """
    history = reconstructor.build_history(db, current_user.id, portfolio_id, period)
    return PortfolioHistoryResponse.model_validate(history)


@router.get(
    "/history",
    response_model=PortfolioHistoryResponse,
    summary="Get value history across all portfolios",
)
@limiter.limit(RATE_LIMIT_PRICED)
def get_user_history(
        request: Request,  # Required for rate limiting
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        reconstructor: Annotated[HistoricalValuationReconstructor, Depends(get_history_reconstructor)],
        period: PeriodQuery = DEFAULT_HISTORY_PERIOD,
) -> PortfolioHistoryResponse:
    """Combined value of every portfolio you own over the period."""
    history = reconstructor.build_history(db, current_user.id, None, period)
    return PortfolioHistoryResponse.model_validate(history)
