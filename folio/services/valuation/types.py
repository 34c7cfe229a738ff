# folio/services/valuation/types.py
"""
Internal data types for the valuation services.

These dataclasses are produced by the FIFO accountant, the holdings
aggregator and the history reconstructor. They are NOT Pydantic schemas;
those live in folio/schemas/ for API serialization.

Design Principles:
- Immutable where possible (frozen=True for value objects)
- Use Decimal for ALL financial values (never float)
- Derived values are recomputed per request and never persisted
- Data quality problems become warnings, not exceptions

Type Hierarchy:
    OpenLot             - One partially or fully unsold buy lot
    CostBasisResult     - FIFO output for one portfolio+asset
    HoldingSnapshot     - Priced holding with P/L
    HoldingsSummary     - Portfolio totals
    PortfolioHoldings   - Holdings + summary response
    PortfolioOverview   - Totals, best/worst performer, allocation
    ValuationPoint      - Single point in a value time series
    HistorySummary      - Start/end/change of a time series
    PortfolioHistory    - Time series result
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


# =============================================================================
# FIFO
# =============================================================================

@dataclass(frozen=True)
class OpenLot:
    """
    A buy lot that still has unsold quantity after FIFO replay.

    Attributes:
        quantity: Remaining unsold quantity
        unit_cost: Fee-inclusive cost per unit of the originating buy
        cost: Remaining cost, tracked independently of quantity × unit_cost
    """

    quantity: Decimal
    unit_cost: Decimal
    cost: Decimal


@dataclass(frozen=True)
class CostBasisResult:
    """
    Result of FIFO lot matching for one portfolio+asset.

    Attributes:
        cost_basis: Remaining cost of all open lots (fee-inclusive)
        realized_gain_loss: Sum of gains/losses locked in by sells
        avg_buy_price: cost_basis / quantity_remaining (0 when nothing is held)
        quantity_remaining: Sum of open lot quantities
        open_lots: Open lots, oldest first
        oversold_quantity: Sell quantity that found no lot to consume
        unmatched_proceeds: Proceeds of that unmatched quantity (realized at zero cost)
        warnings: Human-readable data-integrity messages

    Note:
        Values are exact Decimal results; rounding for display happens in
        the aggregator. A non-zero oversold_quantity means the ledger broke
        the sell invariant: the numbers are still well defined (the
        unmatched quantity is valued as zero-cost inventory) but the
        realized gain is overstated by its missing cost.
    """

    cost_basis: Decimal
    realized_gain_loss: Decimal
    avg_buy_price: Decimal
    quantity_remaining: Decimal
    open_lots: tuple[OpenLot, ...] = ()
    oversold_quantity: Decimal = Decimal("0")
    unmatched_proceeds: Decimal = Decimal("0")
    warnings: tuple[str, ...] = ()

    @property
    def has_position(self) -> bool:
        return self.quantity_remaining > Decimal("0")

    @property
    def is_oversold(self) -> bool:
        return self.oversold_quantity > Decimal("0")


# =============================================================================
# HOLDINGS
# =============================================================================

@dataclass(frozen=True)
class HoldingSnapshot:
    """
    A priced holding.

    Money values are rounded to 2 decimals, quantities and per-unit prices
    to 8 decimals, percentages to 2 decimals.

    Attributes:
        profit_loss: Unrealized P/L = current_value - cost_basis
        profit_loss_percent: profit_loss / cost_basis × 100 (0 if cost_basis is 0)
        realized_gain_loss: FIFO realized gains for this asset
        value_change_24h: current_value × price_change_24h / 100
            (only meaningful in the all-portfolios view)
    """

    portfolio_id: int
    portfolio_name: str
    asset_id: int
    asset_symbol: str
    asset_name: str
    total_quantity: Decimal
    avg_buy_price: Decimal
    cost_basis: Decimal
    realized_gain_loss: Decimal
    transaction_count: int
    first_buy_date: datetime | None
    last_transaction_date: datetime | None
    current_price: Decimal
    current_value: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    price_change_1h: Decimal
    price_change_24h: Decimal
    price_change_7d: Decimal
    value_change_24h: Decimal


@dataclass(frozen=True)
class HoldingsSummary:
    """
    Portfolio-level totals.

    Attributes:
        unique_assets: Count of distinct assets held (not a sum)
        total_realized_gain_loss: Realized gains, including closed positions
    """

    total_value: Decimal
    total_cost: Decimal
    total_profit_loss: Decimal
    total_profit_loss_percent: Decimal
    total_realized_gain_loss: Decimal
    unique_assets: int


@dataclass(frozen=True)
class PortfolioRef:
    """Minimal portfolio identity echoed in responses."""

    id: int
    name: str
    description: str | None = None


@dataclass
class PortfolioHoldings:
    """
    Holdings response for one portfolio or for all of a user's portfolios.

    Attributes:
        portfolio: The portfolio, or None for the all-portfolios view
        holdings: Open positions ordered by cost basis (descending)
        summary: Totals over holdings
        prices_available: False if the price oracle failed and every
            holding was priced at 0
        warnings: Data-integrity warnings (over-sells)
    """

    portfolio: PortfolioRef | None
    holdings: list[HoldingSnapshot]
    summary: HoldingsSummary
    prices_available: bool = True
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PerformerSummary:
    """Best or worst holding by unrealized P/L."""

    symbol: str
    value: Decimal
    cost: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal


@dataclass(frozen=True)
class AllocationSlice:
    """Share of portfolio value held in one asset."""

    token: str
    percent: Decimal
    value: Decimal


@dataclass
class PortfolioOverview:
    """
    Dashboard overview for one portfolio.

    Attributes:
        best_performer: Holding with the highest P/L (None if empty)
        worst_performer: Holding with the lowest P/L (None if empty)
        allocation: Value share per asset, largest first
    """

    portfolio: PortfolioRef
    total_value: Decimal
    total_cost: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal
    best_performer: PerformerSummary | None
    worst_performer: PerformerSummary | None
    allocation: list[AllocationSlice] = field(default_factory=list)


# =============================================================================
# HISTORY
# =============================================================================

@dataclass(frozen=True)
class ValuationPoint:
    """
    Portfolio value at one grid timestamp.

    Attributes:
        timestamp: Unix seconds
        value: Σ quantity × price, rounded to 2 decimals
        date_formatted: "8:00 AM" (hourly) or "Oct 16" (daily)
    """

    timestamp: int
    value: Decimal
    date_formatted: str


@dataclass(frozen=True)
class HistorySummary:
    """
    Change between the first and last point of a series.

    change_percent is 0 when start_value is 0, never a division error.
    """

    start_value: Decimal
    end_value: Decimal
    change: Decimal
    change_percent: Decimal
    is_profit: bool

    @classmethod
    def empty(cls) -> HistorySummary:
        zero = Decimal("0")
        return cls(
            start_value=zero,
            end_value=zero,
            change=zero,
            change_percent=zero,
            is_profit=False,
        )


@dataclass(frozen=True)
class PortfolioHistory:
    """
    Reconstructed value time series.

    Attributes:
        period: "24h", "7d" or "30d"
        points: Oldest first
        summary: Series summary
        price_source: "historical", "current" (fallback) or "none"
    """

    period: str
    points: tuple[ValuationPoint, ...]
    summary: HistorySummary
    price_source: str = "historical"
