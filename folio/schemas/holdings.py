# folio/schemas/holdings.py
"""
Pydantic schemas for holdings and portfolio overview.

Responses are built from the valuation dataclasses with
`Model.model_validate(result)` (from_attributes=True).

Money values carry 2 decimals, quantities and per-unit prices 8 decimals,
percentages 2 decimals. All are serialized as JSON numbers.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from folio.schemas.common import JsonDecimal


class PortfolioRefResponse(BaseModel):
    """Portfolio identity echoed in holdings and overview responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None


# =============================================================================
# HOLDINGS
# =============================================================================

class HoldingResponse(BaseModel):
    """One open position with FIFO cost basis and live valuation."""

    model_config = ConfigDict(from_attributes=True)

    # Identity
    portfolio_id: int
    portfolio_name: str = Field(..., description="Owning portfolio (useful in the all-portfolios view)")
    asset_id: int = Field(..., description="Provider asset id (CoinMarketCap id)")
    asset_symbol: str
    asset_name: str

    # FIFO
    total_quantity: JsonDecimal = Field(..., description="Quantity still held")
    avg_buy_price: JsonDecimal = Field(..., description="cost_basis / total_quantity")
    cost_basis: JsonDecimal = Field(..., description="Fee-inclusive cost of the open lots")
    realized_gain_loss: JsonDecimal = Field(..., description="Gains locked in by sells (FIFO)")

    # Ledger stats
    transaction_count: int
    first_buy_date: datetime | None
    last_transaction_date: datetime | None

    # Pricing
    current_price: JsonDecimal
    current_value: JsonDecimal
    profit_loss: JsonDecimal = Field(..., description="Unrealized P/L = current_value - cost_basis")
    profit_loss_percent: JsonDecimal = Field(..., description="profit_loss / cost_basis × 100")
    price_change_1h: JsonDecimal
    price_change_24h: JsonDecimal
    price_change_7d: JsonDecimal
    value_change_24h: JsonDecimal = Field(..., description="current_value × price_change_24h / 100")


class HoldingsSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_value: JsonDecimal
    total_cost: JsonDecimal
    total_profit_loss: JsonDecimal
    total_profit_loss_percent: JsonDecimal
    total_realized_gain_loss: JsonDecimal
    unique_assets: int = Field(..., description="Count of distinct assets held")


class HoldingsResponse(BaseModel):
    """
    Holdings of one portfolio, or of every portfolio of the user.

    `prices_available` is false when the price provider could not be reached
    and every holding was valued at 0.
    """

    model_config = ConfigDict(from_attributes=True)

    portfolio: PortfolioRefResponse | None = Field(
        ...,
        description="The portfolio (null in the all-portfolios view)"
    )
    holdings: list[HoldingResponse]
    summary: HoldingsSummaryResponse
    prices_available: bool = True
    warnings: list[str] = Field(default_factory=list, description="Ledger data-integrity warnings")


# =============================================================================
# OVERVIEW
# =============================================================================

class PerformerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    value: JsonDecimal
    cost: JsonDecimal
    profit_loss: JsonDecimal
    profit_loss_percent: JsonDecimal


class AllocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    percent: JsonDecimal = Field(..., description="Share of total value, in percent")
    value: JsonDecimal


class PortfolioOverviewResponse(BaseModel):
    """Dashboard overview: totals, best/worst holding and allocation."""

    model_config = ConfigDict(from_attributes=True)

    portfolio: PortfolioRefResponse
    total_value: JsonDecimal
    total_cost: JsonDecimal
    profit_loss: JsonDecimal
    profit_loss_percent: JsonDecimal
    best_performer: PerformerResponse | None
    worst_performer: PerformerResponse | None
    allocation: list[AllocationResponse]
