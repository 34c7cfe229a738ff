# folio/models.py
import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Enum, Numeric, Boolean, Integer, Text, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class TransactionType(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Relationship: One User has Many Portfolios
    portfolios: Mapped[list["Portfolio"]] = relationship(back_populates="owner")


class Portfolio(Base):
    __tablename__ = "portfolios"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    owner: Mapped["User"] = relationship(back_populates="portfolios")
    transactions: Mapped[list["Transaction"]] = relationship(
        back_populates="portfolio",
        cascade="all, delete-orphan"
    )


class Transaction(Base):
    """
    One buy or sell in a portfolio's ledger.

    Rows are immutable once written (they may be deleted, never edited).
    `id` is the FIFO tie-break for transactions sharing an `occurred_at`.

    Money conventions:
        - BUY total_amount includes the fee (it is the lot's cost)
        - SELL total_amount is before the fee (proceeds = total_amount - fee)
    """
    __tablename__ = "transactions"
    __table_args__ = (
        # FIFO replay: "all transactions for asset A in portfolio X, in order"
        Index('ix_transaction_portfolio_asset_occurred', 'portfolio_id', 'asset_id', 'occurred_at'),
        # History reconstruction: "all transactions for portfolio X up to time T"
        Index('ix_transaction_portfolio_occurred', 'portfolio_id', 'occurred_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"), index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))

    # Provider asset identity (CoinMarketCap id, e.g. 1 = BTC)
    asset_id: Mapped[int] = mapped_column(Integer, index=True)
    asset_symbol: Mapped[str] = mapped_column(String(20))
    asset_name: Mapped[str] = mapped_column(String(100))

    # Numeric(18, 8) supports crypto quantities down to 1 satoshi
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    fee: Mapped[Decimal] = mapped_column(Numeric(18, 8), default=Decimal(0))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # Economic event time (naive UTC), distinct from created_at
    occurred_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))  # When it was recorded

    portfolio: Mapped["Portfolio"] = relationship(back_populates="transactions")
