# folio/schemas/history.py
"""
Pydantic schemas for portfolio value history (chart data).
"""

from pydantic import BaseModel, ConfigDict, Field

from folio.schemas.common import JsonDecimal


class ValuationPointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: int = Field(..., description="Unix seconds")
    value: JsonDecimal = Field(..., description="Portfolio value at timestamp (2 decimals)")
    date_formatted: str = Field(..., examples=["8:00 AM", "Oct 16"])


class HistorySummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_value: JsonDecimal
    end_value: JsonDecimal
    change: JsonDecimal
    change_percent: JsonDecimal = Field(..., description="0 when start_value is 0")
    is_profit: bool


class PortfolioHistoryResponse(BaseModel):
    """
    Value time series, oldest point first.

    `price_source` tells how points were priced: "historical" closes,
    "current" prices applied to every point (provider history failed), or
    "none" (no prices, or no assets).
    """

    model_config = ConfigDict(from_attributes=True)

    period: str = Field(..., examples=["24h", "7d", "30d"])
    points: list[ValuationPointResponse]
    summary: HistorySummaryResponse
    price_source: str = "historical"
