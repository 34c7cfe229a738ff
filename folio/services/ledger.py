# folio/services/ledger.py
"""
Transaction ledger.

All reads and writes of the transactions table go through TransactionLedger.
The valuation services depend only on its query contract:

- list_transactions(portfolio_id, asset_id): one asset's history in FIFO
  order (occurred_at, id)
- transactions_by_asset(portfolio_ids): the same, for every asset of
  several portfolios, in a single query
- list_asset_aggregates(user_id, portfolio_id | None): per (portfolio,
  asset) statistics
- list_user_transactions / distinct_asset_ids: inputs for history
  reconstruction

Writes enforce the sell invariant: at no timestamp may the quantity sold
exceed the quantity bought up to and including that timestamp. A backdated
sell is checked against every later balance too, and deleting a buy is
refused when a later sell depends on it.

Like the other services, the ledger is stateless; the SQLAlchemy session
is passed to each call.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from itertools import groupby

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from folio.models import Portfolio, Transaction, TransactionType
from folio.services.exceptions import (
    InsufficientQuantityError,
    PortfolioNotFoundError,
    TransactionNotFoundError,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class AssetAggregate:
    """
    Ledger statistics for one asset in one portfolio.

    Attributes:
        portfolio_id: Portfolio holding the asset
        portfolio_name: Name of that portfolio
        asset_id: Provider asset id (e.g., CoinMarketCap id)
        asset_symbol: Ticker symbol (e.g., "BTC")
        asset_name: Display name (e.g., "Bitcoin")
        net_quantity: Bought minus sold (signed)
        transaction_count: Number of ledger rows
        first_buy_date: Earliest buy, None if only sells exist
        last_transaction_date: Most recent transaction of any type
    """

    portfolio_id: int
    portfolio_name: str
    asset_id: int
    asset_symbol: str
    asset_name: str
    net_quantity: Decimal
    transaction_count: int
    first_buy_date: datetime | None
    last_transaction_date: datetime | None


def signed_quantity(transaction: Transaction) -> Decimal:
    """Quantity with sells negative."""
    if transaction.transaction_type == TransactionType.SELL:
        return -transaction.quantity
    return transaction.quantity


def to_naive_utc(value: datetime) -> datetime:
    """Normalize a datetime to the naive-UTC form stored in occurred_at."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def min_balance_since(transactions: Sequence[Transaction], since: datetime) -> Decimal:
    """
    Lowest holding balance at `since` or at any later timestamp.

    Balances are evaluated per timestamp (all rows with occurred_at <= t),
    matching the as-of semantics of the sell invariant.

    Args:
        transactions: One asset's rows sorted by (occurred_at, id)
        since: First timestamp to consider
    """
    balance = _ZERO
    balance_at_since = _ZERO
    later_balances: list[Decimal] = []

    for occurred_at, group in groupby(transactions, key=lambda t: t.occurred_at):
        balance += sum((signed_quantity(t) for t in group), _ZERO)
        if occurred_at <= since:
            balance_at_since = balance
        else:
            later_balances.append(balance)

    return min([balance_at_since, *later_balances])


class TransactionLedger:
    """Query and write access to portfolio transactions."""

    # =========================================================================
    # OWNERSHIP
    # =========================================================================

    def get_owned_portfolio(self, db: Session, portfolio_id: int, user_id: int) -> Portfolio:
        """
        Fetch a portfolio owned by user_id.

        Raises:
            PortfolioNotFoundError: If it does not exist or belongs to someone else
        """
        portfolio = db.get(Portfolio, portfolio_id)
        if portfolio is None or portfolio.user_id != user_id:
            raise PortfolioNotFoundError(portfolio_id)
        return portfolio

    def list_user_portfolios(self, db: Session, user_id: int) -> list[Portfolio]:
        query = select(Portfolio).where(Portfolio.user_id == user_id).order_by(Portfolio.id)
        return list(db.scalars(query).all())

    # =========================================================================
    # READS FOR VALUATION
    # =========================================================================

    def list_transactions(self, db: Session, portfolio_id: int, asset_id: int) -> list[Transaction]:
        """One asset's transactions in FIFO order (occurred_at, id)."""
        query = (
            select(Transaction)
            .where(
                Transaction.portfolio_id == portfolio_id,
                Transaction.asset_id == asset_id,
            )
            .order_by(Transaction.occurred_at, Transaction.id)
        )
        return list(db.scalars(query).all())

    def transactions_by_asset(
            self,
            db: Session,
            portfolio_ids: Iterable[int],
    ) -> dict[tuple[int, int], list[Transaction]]:
        """
        All transactions of the given portfolios grouped by (portfolio_id, asset_id).

        Each group keeps FIFO order. One query regardless of asset count.
        """
        ids = list(portfolio_ids)
        if not ids:
            return {}

        query = (
            select(Transaction)
            .where(Transaction.portfolio_id.in_(ids))
            .order_by(
                Transaction.portfolio_id,
                Transaction.asset_id,
                Transaction.occurred_at,
                Transaction.id,
            )
        )

        grouped: dict[tuple[int, int], list[Transaction]] = defaultdict(list)
        for txn in db.scalars(query):
            grouped[(txn.portfolio_id, txn.asset_id)].append(txn)
        return dict(grouped)

    def list_asset_aggregates(
            self,
            db: Session,
            user_id: int,
            portfolio_id: int | None = None,
    ) -> list[AssetAggregate]:
        """
        Per (portfolio, asset) statistics for a user's portfolios.

        Args:
            db: Database session
            user_id: Owner of the portfolios
            portfolio_id: Restrict to one portfolio (None = all of the user's)
        """
        signed_qty = case(
            (Transaction.transaction_type == TransactionType.SELL, -Transaction.quantity),
            else_=Transaction.quantity,
        )
        first_buy = case(
            (Transaction.transaction_type == TransactionType.BUY, Transaction.occurred_at),
            else_=None,
        )

        query = (
            select(
                Transaction.portfolio_id,
                Portfolio.name.label("portfolio_name"),
                Transaction.asset_id,
                func.max(Transaction.asset_symbol).label("asset_symbol"),
                func.max(Transaction.asset_name).label("asset_name"),
                func.sum(signed_qty).label("net_quantity"),
                func.count(Transaction.id).label("transaction_count"),
                func.min(first_buy).label("first_buy_date"),
                func.max(Transaction.occurred_at).label("last_transaction_date"),
            )
            .join(Portfolio, Portfolio.id == Transaction.portfolio_id)
            .where(Portfolio.user_id == user_id)
            .group_by(Transaction.portfolio_id, Portfolio.name, Transaction.asset_id)
            .order_by(Transaction.portfolio_id, Transaction.asset_id)
        )
        if portfolio_id is not None:
            query = query.where(Transaction.portfolio_id == portfolio_id)

        return [
            AssetAggregate(
                portfolio_id=row.portfolio_id,
                portfolio_name=row.portfolio_name,
                asset_id=row.asset_id,
                asset_symbol=row.asset_symbol,
                asset_name=row.asset_name,
                net_quantity=Decimal(str(row.net_quantity or 0)),
                transaction_count=row.transaction_count,
                first_buy_date=row.first_buy_date,
                last_transaction_date=row.last_transaction_date,
            )
            for row in db.execute(query).all()
        ]

    def list_user_transactions(
            self,
            db: Session,
            user_id: int,
            portfolio_id: int | None = None,
    ) -> list[Transaction]:
        """A user's transactions (optionally one portfolio) ordered by (occurred_at, id)."""
        query = (
            select(Transaction)
            .join(Portfolio, Portfolio.id == Transaction.portfolio_id)
            .where(Portfolio.user_id == user_id)
            .order_by(Transaction.occurred_at, Transaction.id)
        )
        if portfolio_id is not None:
            query = query.where(Transaction.portfolio_id == portfolio_id)
        return list(db.scalars(query).all())

    def distinct_asset_ids(
            self,
            db: Session,
            user_id: int,
            portfolio_id: int | None = None,
    ) -> list[int]:
        """Asset ids that ever appeared in the user's ledger, ascending."""
        query = (
            select(Transaction.asset_id)
            .join(Portfolio, Portfolio.id == Transaction.portfolio_id)
            .where(Portfolio.user_id == user_id)
            .distinct()
            .order_by(Transaction.asset_id)
        )
        if portfolio_id is not None:
            query = query.where(Transaction.portfolio_id == portfolio_id)
        return list(db.scalars(query).all())

    def quantity_held(
            self,
            db: Session,
            portfolio_id: int,
            asset_id: int,
            as_of: datetime | None = None,
    ) -> Decimal:
        """Net quantity of an asset, optionally as of a timestamp (inclusive)."""
        signed_qty = case(
            (Transaction.transaction_type == TransactionType.SELL, -Transaction.quantity),
            else_=Transaction.quantity,
        )
        query = select(func.coalesce(func.sum(signed_qty), 0)).where(
            Transaction.portfolio_id == portfolio_id,
            Transaction.asset_id == asset_id,
        )
        if as_of is not None:
            query = query.where(Transaction.occurred_at <= to_naive_utc(as_of))
        return Decimal(str(db.scalar(query)))

    # =========================================================================
    # TRANSACTION CRUD
    # =========================================================================

    def list_portfolio_transactions(
            self,
            db: Session,
            portfolio_id: int,
            limit: int | None = None,
            offset: int = 0,
    ) -> tuple[list[Transaction], int]:
        """
        Newest-first page of a portfolio's transactions.

        Returns:
            Tuple of (transactions, total count)
        """
        total = db.scalar(
            select(func.count(Transaction.id)).where(Transaction.portfolio_id == portfolio_id)
        ) or 0

        query = (
            select(Transaction)
            .where(Transaction.portfolio_id == portfolio_id)
            .order_by(
                Transaction.occurred_at.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)

        return list(db.scalars(query).all()), total

    def get_owned_transaction(self, db: Session, transaction_id: int, user_id: int) -> Transaction:
        """
        Raises:
            TransactionNotFoundError: If missing or in another user's portfolio
        """
        query = (
            select(Transaction)
            .join(Portfolio, Portfolio.id == Transaction.portfolio_id)
            .where(Transaction.id == transaction_id, Portfolio.user_id == user_id)
        )
        transaction = db.scalar(query)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def record_transaction(
            self,
            db: Session,
            portfolio: Portfolio,
            transaction_type: TransactionType,
            asset_id: int,
            asset_symbol: str,
            asset_name: str,
            quantity: Decimal,
            price_per_unit: Decimal,
            occurred_at: datetime,
            total_amount: Decimal | None = None,
            fee: Decimal | None = None,
            currency: str = "USD",
            notes: str | None = None,
    ) -> Transaction:
        """
        Validate and persist a new transaction.

        total_amount defaults to quantity × price_per_unit, plus the fee for
        buys. A negative fee is clamped to 0.

        Raises:
            InsufficientQuantityError: If a sell exceeds the quantity held at
                its timestamp or would drive any later balance negative
        """
        occurred_at = to_naive_utc(occurred_at)
        fee = max(_ZERO, fee if fee is not None else _ZERO)

        if total_amount is None:
            total_amount = quantity * price_per_unit
            if transaction_type == TransactionType.BUY:
                total_amount += fee

        if transaction_type == TransactionType.SELL:
            history = self.list_transactions(db, portfolio.id, asset_id)
            available = min_balance_since(history, occurred_at)
            if quantity > available:
                raise InsufficientQuantityError(asset_symbol, quantity, max(available, _ZERO))

        transaction = Transaction(
            portfolio_id=portfolio.id,
            transaction_type=transaction_type,
            asset_id=asset_id,
            asset_symbol=asset_symbol.upper(),
            asset_name=asset_name,
            quantity=quantity,
            price_per_unit=price_per_unit,
            total_amount=total_amount,
            fee=fee,
            currency=currency.upper(),
            occurred_at=occurred_at,
            notes=notes,
        )
        db.add(transaction)
        db.commit()
        db.refresh(transaction)

        logger.info(
            f"Recorded {transaction_type.value} of {quantity} {transaction.asset_symbol} "
            f"in portfolio {portfolio.id} (transaction {transaction.id})"
        )
        return transaction

    def delete_transaction(self, db: Session, transaction: Transaction) -> None:
        """
        Delete a transaction.

        Raises:
            InsufficientQuantityError: If removing a buy would leave a later
                sell without inventory
        """
        if transaction.transaction_type == TransactionType.BUY:
            history = self.list_transactions(db, transaction.portfolio_id, transaction.asset_id)
            headroom = min_balance_since(history, transaction.occurred_at)
            if transaction.quantity > headroom:
                raise InsufficientQuantityError(
                    transaction.asset_symbol,
                    transaction.quantity,
                    max(headroom, _ZERO),
                )

        transaction_id = transaction.id
        portfolio_id = transaction.portfolio_id
        db.delete(transaction)
        db.commit()
        logger.info(f"Deleted transaction {transaction_id} from portfolio {portfolio_id}")
