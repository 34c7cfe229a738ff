# folio/routers/__init__.py
"""
API routers for Folio.

Each router handles a specific domain:
- holdings: Open positions and portfolio overview (FIFO + live prices)
- history: Portfolio value time series for charts
- transactions: Buy/sell transaction records
"""

from folio.routers.history import router as history_router
from folio.routers.holdings import router as holdings_router
from folio.routers.transactions import router as transactions_router

__all__ = [
    "holdings_router",
    "history_router",
    "transactions_router",
]
