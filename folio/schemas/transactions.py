# folio/schemas/transactions.py
"""
Pydantic schemas for Transaction validation.

These schemas define:
- What data clients must send (Create)
- What data the API returns (Response)

Transactions are immutable: to correct one, delete it and record a new one.

Validation layers:
- Field constraints: type, length, numeric limits
- Field validators: normalization (uppercase, trim, fee clamp), logical checks
- Ledger: sell availability, ownership

IMPORTANT: All financial values use Decimal for precision.
Never use float for money!
"""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from folio.models import TransactionType
from folio.schemas.common import JsonDecimal, PaginationMeta


# =============================================================================
# CREATE SCHEMA
# =============================================================================

class TransactionCreate(BaseModel):
    """
    Schema for recording a buy or sell.

    total_amount is optional: when omitted it is quantity × price_per_unit,
    plus the fee for buys. A negative fee is treated as 0.
    """

    transaction_type: TransactionType = Field(
        ...,
        description="buy or sell",
        examples=[TransactionType.BUY, TransactionType.SELL]
    )

    asset_id: int = Field(
        ...,
        gt=0,
        description="Provider asset id (CoinMarketCap id, e.g. 1 = BTC)",
        examples=[1, 1027]
    )

    asset_symbol: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Ticker symbol",
        examples=["BTC", "ETH"]
    )

    asset_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        examples=["Bitcoin", "Ethereum"]
    )

    quantity: Decimal = Field(
        ...,
        gt=0,
        max_digits=18,
        decimal_places=8,
        description="Units traded (must be positive)",
        examples=["0.5", "1.25000000"]
    )

    price_per_unit: Decimal = Field(
        ...,
        gt=0,
        max_digits=18,
        decimal_places=8,
        description="Price per unit at time of trade (must be positive)",
        examples=["30000", "0.00001234"]
    )

    total_amount: Decimal | None = Field(
        default=None,
        ge=0,
        max_digits=18,
        decimal_places=8,
        description="Buy: fee-inclusive cost. Sell: proceeds before fee."
    )

    fee: Decimal = Field(
        default=Decimal("0"),
        max_digits=18,
        decimal_places=8,
        description="Transaction fee (negative values are treated as 0)",
        examples=["0", "1.5"]
    )

    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency of the trade (ISO 4217)",
        examples=["USD"]
    )

    occurred_at: datetime = Field(
        ...,
        description="When the trade happened",
        examples=["2026-01-15T14:30:00Z"]
    )

    notes: str | None = Field(default=None, max_length=1000)

    # =========================================================================
    # FIELD VALIDATORS (Normalization & Validation)
    # =========================================================================

    @field_validator('asset_symbol')
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("asset_symbol cannot be blank")
        return v

    @field_validator('asset_name')
    @classmethod
    def normalize_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("asset_name cannot be blank")
        return v

    @field_validator('fee')
    @classmethod
    def clamp_fee(cls, v: Decimal) -> Decimal:
        """Negative fees are recorded as 0."""
        return max(v, Decimal("0"))

    @field_validator('currency', mode='before')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Normalize currency: trim whitespace and uppercase."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator('occurred_at')
    @classmethod
    def validate_not_in_future(cls, v: datetime) -> datetime:
        """Prevent recording transactions that haven't happened yet."""
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)

        if v > datetime.now(timezone.utc):
            raise ValueError("occurred_at cannot be in the future")
        return v


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class TransactionResponse(BaseModel):
    """A recorded transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique identifier (FIFO tie-break)")
    portfolio_id: int
    transaction_type: TransactionType
    asset_id: int
    asset_symbol: str
    asset_name: str
    quantity: JsonDecimal
    price_per_unit: JsonDecimal
    total_amount: JsonDecimal
    fee: JsonDecimal
    currency: str
    occurred_at: datetime = Field(..., description="Trade time (UTC)")
    notes: str | None
    created_at: datetime = Field(..., description="When the transaction was recorded")


class TransactionListResponse(BaseModel):
    """Newest-first page of a portfolio's transactions."""

    items: list[TransactionResponse] = Field(..., description="Transactions for current page")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")
