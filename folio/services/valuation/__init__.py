# folio/services/valuation/__init__.py
"""
Valuation Service Package.

This package turns the transaction ledger into money:
- FIFO cost basis and realized gains (FIFOLotAccountant)
- Priced holdings, totals and overview (HoldingsAggregator)
- Value time series for charts (HistoricalValuationReconstructor)

Usage:
    from folio.services.valuation import HoldingsAggregator

    aggregator = HoldingsAggregator(oracle=oracle)

    # Open positions of one portfolio
    holdings = aggregator.build_holdings(db, portfolio_id=1, user_id=7)

    # Time series for charts
    history = reconstructor.build_history(db, user_id=7, portfolio_id=1, period="7d")

Architecture:
    valuation/
    ├── __init__.py    # This file - package exports
    ├── types.py       # Internal data classes
    ├── fifo.py        # FIFO lot accountant
    ├── holdings.py    # Holdings aggregator
    └── history.py     # Historical valuation reconstructor

Data Flow:
    Transactions → FIFOLotAccountant → CostBasisResult
    CostBasisResult + PriceQuote → HoldingSnapshot → PortfolioHoldings
    Transactions + HistoricalQuote → ValuationPoint → PortfolioHistory
"""

from folio.services.valuation.fifo import FIFOLotAccountant, fifo_order_key
from folio.services.valuation.history import HistoricalValuationReconstructor
from folio.services.valuation.holdings import HoldingsAggregator
from folio.services.valuation.types import (
    AllocationSlice,
    CostBasisResult,
    HistorySummary,
    HoldingSnapshot,
    HoldingsSummary,
    OpenLot,
    PerformerSummary,
    PortfolioHistory,
    PortfolioHoldings,
    PortfolioOverview,
    PortfolioRef,
    ValuationPoint,
)

__all__ = [
    # Services
    "FIFOLotAccountant",
    "HoldingsAggregator",
    "HistoricalValuationReconstructor",
    "fifo_order_key",

    # Data types
    "OpenLot",
    "CostBasisResult",
    "HoldingSnapshot",
    "HoldingsSummary",
    "PortfolioRef",
    "PortfolioHoldings",
    "PerformerSummary",
    "AllocationSlice",
    "PortfolioOverview",
    "ValuationPoint",
    "HistorySummary",
    "PortfolioHistory",
]
