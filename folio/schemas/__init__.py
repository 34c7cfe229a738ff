# folio/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

Organized by domain:
- common: JSON-number Decimals, error bodies, pagination metadata
- history: Portfolio value history
- holdings: Holdings and portfolio overview
- transactions: Transaction create and response

Usage:
    from folio.schemas import HoldingsResponse, PortfolioHistoryResponse
    from folio.schemas import TransactionCreate, TransactionResponse
"""

from folio.schemas.common import ErrorDetail, JsonDecimal, PaginationMeta, ValidationErrorDetail
from folio.schemas.history import (
    HistorySummaryResponse,
    PortfolioHistoryResponse,
    ValuationPointResponse,
)
from folio.schemas.holdings import (
    AllocationResponse,
    HoldingResponse,
    HoldingsResponse,
    HoldingsSummaryResponse,
    PerformerResponse,
    PortfolioOverviewResponse,
    PortfolioRefResponse,
)
from folio.schemas.transactions import (
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)

__all__ = [
    # Common
    "JsonDecimal",
    # Errors
    "ErrorDetail",
    "ValidationErrorDetail",
    # History
    "ValuationPointResponse",
    "HistorySummaryResponse",
    "PortfolioHistoryResponse",
    # Holdings
    "PortfolioRefResponse",
    "HoldingResponse",
    "HoldingsSummaryResponse",
    "HoldingsResponse",
    "PerformerResponse",
    "AllocationResponse",
    "PortfolioOverviewResponse",
    # Pagination
    "PaginationMeta",
    # Transactions
    "TransactionCreate",
    "TransactionResponse",
    "TransactionListResponse",
]
