# folio/routers/transactions.py
"""
Transaction endpoints.

Transactions are immutable records of buys and sells inside a portfolio.
To correct one, delete it and record it again.

- POST   /portfolios/{id}/transactions - Record a buy or sell
- GET    /portfolios/{id}/transactions - Newest-first page of a portfolio's transactions
- GET    /transactions/{id}            - A single transaction
- DELETE /transactions/{id}            - Remove a transaction

All endpoints require authentication. Transactions in portfolios owned by
other users are reported as not found.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from folio.database import get_db
from folio.dependencies import (
    get_current_user,
    get_history_reconstructor,
    get_ledger,
    get_owned_portfolio,
)
from folio.middleware.rate_limit import limiter, RATE_LIMIT_WRITE
from folio.models import Portfolio, Transaction, User
from folio.schemas.common import PaginationMeta
from folio.schemas.transactions import (
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from folio.services.constants import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from folio.services.ledger import TransactionLedger
from folio.services.valuation import HistoricalValuationReconstructor

logger = logging.getLogger(__name__)

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(tags=["Transactions"])


# =============================================================================
# PORTFOLIO-SCOPED ENDPOINTS
# =============================================================================

@router.post(
    "/portfolios/{portfolio_id}/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a transaction",
    response_description="The recorded transaction"
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_transaction(
        request: Request,  # Required for rate limiting
        transaction: TransactionCreate,
        portfolio: Annotated[Portfolio, Depends(get_owned_portfolio)],
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        ledger: Annotated[TransactionLedger, Depends(get_ledger)],
        reconstructor: Annotated[HistoricalValuationReconstructor, Depends(get_history_reconstructor)],
) -> Transaction:
    """
    Record a buy or sell.

    - **asset_id / asset_symbol / asset_name**: CoinMarketCap identity of the asset
    - **quantity / price_per_unit**: Must be positive
    - **total_amount**: Optional; defaults to quantity × price_per_unit (+ fee for buys)
    - **fee**: Negative values are stored as 0
    - **occurred_at**: Cannot be in the future

    **Errors:**
    - 404: Portfolio not found (or not yours)
    - 400: Sell exceeds the quantity held at that time
    - 422: Request body failed validation
    """
    created = ledger.record_transaction(
        db,
        portfolio,
        transaction_type=transaction.transaction_type,
        asset_id=transaction.asset_id,
        asset_symbol=transaction.asset_symbol,
        asset_name=transaction.asset_name,
        quantity=transaction.quantity,
        price_per_unit=transaction.price_per_unit,
        occurred_at=transaction.occurred_at,
        total_amount=transaction.total_amount,
        fee=transaction.fee,
        currency=transaction.currency,
        notes=transaction.notes,
    )

    # Cached history no longer matches the ledger
    reconstructor.invalidate_user(current_user.id)

    return created


@router.get(
    "/portfolios/{portfolio_id}/transactions",
    response_model=TransactionListResponse,
    summary="List a portfolio's transactions",
    response_description="Newest-first page of transactions"
)
def list_portfolio_transactions(
        portfolio: Annotated[Portfolio, Depends(get_owned_portfolio)],
        db: Annotated[Session, Depends(get_db)],
        ledger: Annotated[TransactionLedger, Depends(get_ledger)],
        skip: int = Query(default=0, ge=0),
        limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
) -> TransactionListResponse:
    """
    Transactions of a portfolio, newest first.

    Raises **404** if the portfolio does not exist or is not yours.
    """
    transactions, total = ledger.list_portfolio_transactions(
        db, portfolio.id, limit=limit, offset=skip
    )

    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in transactions],
        pagination=PaginationMeta.create(total=total, skip=skip, limit=limit),
    )


# =============================================================================
# SINGLE TRANSACTION ENDPOINTS
# =============================================================================

@router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a transaction",
)
def get_transaction(
        transaction_id: int,
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        ledger: Annotated[TransactionLedger, Depends(get_ledger)],
) -> Transaction:
    """Raises **404** if the transaction does not exist or is not yours."""
    return ledger.get_owned_transaction(db, transaction_id, current_user.id)


@router.delete(
    "/transactions/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a transaction",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_transaction(
        request: Request,  # Required for rate limiting
        transaction_id: int,
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        ledger: Annotated[TransactionLedger, Depends(get_ledger)],
        reconstructor: Annotated[HistoricalValuationReconstructor, Depends(get_history_reconstructor)],
) -> None:
    """
    Delete a transaction permanently.

    **Warning:** This cannot be undone and changes every valuation that
    includes the transaction.

    **Errors:**
    - 404: Transaction not found (or not yours)
    - 400: Removing this buy would leave a later sell without inventory
    """
    transaction = ledger.get_owned_transaction(db, transaction_id, current_user.id)
    ledger.delete_transaction(db, transaction)

    reconstructor.invalidate_user(current_user.id)

    return None
