# folio/services/valuation/holdings.py
"""
Holdings aggregation.

Combines FIFO cost basis with live quotes into per-holding and
portfolio-level profit/loss.

Views:
- build_holdings:     one portfolio
- build_all_holdings: every portfolio of a user (one row per portfolio+asset,
                      with portfolio_name and value_change_24h)
- build_overview:     totals, best/worst performer and allocation

Price failures are fail-open: a missing quote prices that asset at 0 and a
provider outage prices every asset at 0. The response still succeeds; the
caller can see prices_available=False. Over-sells found during FIFO replay
are logged here as data-integrity warnings.
"""

import logging
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from folio.models import Portfolio, Transaction
from folio.services.circuit_breaker import CircuitBreakerOpen
from folio.services.constants import (
    CURRENCY_PRECISION,
    DISPLAY_PERCENTAGE_PRECISION,
    HUNDRED,
    QUANTITY_PRECISION,
    ZERO,
)
from folio.services.exceptions import MarketDataError
from folio.services.ledger import AssetAggregate, TransactionLedger
from folio.services.pricing.base import PriceOracle, PriceQuote
from folio.services.valuation.fifo import FIFOLotAccountant
from folio.services.valuation.types import (
    AllocationSlice,
    CostBasisResult,
    HoldingSnapshot,
    HoldingsSummary,
    PerformerSummary,
    PortfolioHoldings,
    PortfolioOverview,
    PortfolioRef,
)

logger = logging.getLogger(__name__)


# Display rounding is half-up, as in history.py
def _round_money(value: Decimal) -> Decimal:
    return value.quantize(CURRENCY_PRECISION, rounding=ROUND_HALF_UP)


def _round_units(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_PRECISION, rounding=ROUND_HALF_UP)


def _round_percent(value: Decimal) -> Decimal:
    return value.quantize(DISPLAY_PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP)


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole × 100, rounded to 2 decimals; 0 when whole is not positive."""
    if whole <= ZERO:
        return ZERO
    return _round_percent(part / whole * HUNDRED)


class HoldingsAggregator:
    """
    Builds priced holdings from the ledger.

    Example:
        aggregator = HoldingsAggregator(oracle=CoinMarketCapOracle(api_key))
        result = aggregator.build_holdings(db, portfolio_id=1, user_id=7)
        for holding in result.holdings:
            print(holding.asset_symbol, holding.profit_loss)
    """

    def __init__(
            self,
            oracle: PriceOracle,
            ledger: TransactionLedger | None = None,
            accountant: FIFOLotAccountant | None = None,
    ):
        self._oracle = oracle
        self._ledger = ledger or TransactionLedger()
        self._accountant = accountant or FIFOLotAccountant()
        logger.info("HoldingsAggregator initialized")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def build_holdings(self, db: Session, portfolio_id: int, user_id: int) -> PortfolioHoldings:
        """
        Priced open positions of one portfolio.

        Raises:
            PortfolioNotFoundError: If the portfolio does not exist or is not owned by user_id
        """
        portfolio = self._ledger.get_owned_portfolio(db, portfolio_id, user_id)
        aggregates = self._ledger.list_asset_aggregates(db, user_id, portfolio_id)
        transactions = self._ledger.transactions_by_asset(db, [portfolio_id])

        result = self._build(aggregates, transactions)
        result.portfolio = self._portfolio_ref(portfolio)

        logger.debug(
            f"Built holdings for portfolio {portfolio_id}: "
            f"{len(result.holdings)} open positions, total value {result.summary.total_value}"
        )
        return result

    def build_all_holdings(self, db: Session, user_id: int) -> PortfolioHoldings:
        """
        Priced open positions across every portfolio of a user.

        The same asset held in two portfolios yields two rows; unique_assets
        counts it once.
        """
        portfolio_ids = [p.id for p in self._ledger.list_user_portfolios(db, user_id)]
        aggregates = self._ledger.list_asset_aggregates(db, user_id)
        transactions = self._ledger.transactions_by_asset(db, portfolio_ids)

        result = self._build(aggregates, transactions)
        logger.debug(
            f"Built holdings for user {user_id} across {len(portfolio_ids)} portfolios: "
            f"{len(result.holdings)} rows"
        )
        return result

    def build_overview(self, db: Session, portfolio_id: int, user_id: int) -> PortfolioOverview:
        """
        Dashboard overview of one portfolio.

        Best/worst performers are picked by unrealized profit_loss (first
        holding wins ties). Allocation is sorted by percent, largest first.
        """
        holdings = self.build_holdings(db, portfolio_id, user_id)
        summary = holdings.summary

        best: HoldingSnapshot | None = None
        worst: HoldingSnapshot | None = None
        for holding in holdings.holdings:
            if best is None or holding.profit_loss > best.profit_loss:
                best = holding
            if worst is None or holding.profit_loss < worst.profit_loss:
                worst = holding

        allocation = [
            AllocationSlice(
                token=h.asset_symbol,
                percent=percent_of(h.current_value, summary.total_value),
                value=h.current_value,
            )
            for h in holdings.holdings
        ]
        allocation.sort(key=lambda s: s.percent, reverse=True)

        return PortfolioOverview(
            portfolio=holdings.portfolio,
            total_value=summary.total_value,
            total_cost=summary.total_cost,
            profit_loss=summary.total_profit_loss,
            profit_loss_percent=summary.total_profit_loss_percent,
            best_performer=self._performer(best),
            worst_performer=self._performer(worst),
            allocation=allocation,
        )

    # =========================================================================
    # ASSEMBLY
    # =========================================================================

    def _build(
            self,
            aggregates: Sequence[AssetAggregate],
            transactions: dict[tuple[int, int], list[Transaction]],
    ) -> PortfolioHoldings:
        # Step 1: FIFO per (portfolio, asset) over its full history
        evaluated: list[tuple[AssetAggregate, CostBasisResult]] = []
        warnings: list[str] = []
        for aggregate in aggregates:
            history = transactions.get((aggregate.portfolio_id, aggregate.asset_id), [])
            fifo = self._accountant.compute_cost_basis(history)
            if fifo.is_oversold:
                for message in fifo.warnings:
                    logger.warning(
                        f"Ledger inconsistency in portfolio {aggregate.portfolio_id} "
                        f"({aggregate.asset_symbol}): {message}"
                    )
                warnings.extend(fifo.warnings)
            evaluated.append((aggregate, fifo))

        realized_total = sum((fifo.realized_gain_loss for _, fifo in evaluated), ZERO)
        open_positions = [(agg, fifo) for agg, fifo in evaluated if fifo.has_position]

        # Step 2: one batch quote call for every open asset
        quotes, prices_available = self._fetch_quotes(agg.asset_id for agg, _ in open_positions)

        # Step 3: price each position
        holdings = [
            self._snapshot(agg, fifo, quotes.get(agg.asset_id, PriceQuote.empty()))
            for agg, fifo in open_positions
        ]
        holdings.sort(key=lambda h: h.cost_basis, reverse=True)

        return PortfolioHoldings(
            portfolio=None,
            holdings=holdings,
            summary=self._summarize(holdings, realized_total),
            prices_available=prices_available,
            warnings=warnings,
        )

    def _fetch_quotes(self, asset_ids: Iterable[int]) -> tuple[dict[int, PriceQuote], bool]:
        ids = sorted(set(asset_ids))
        if not ids:
            return {}, True

        try:
            return self._oracle.get_current_quotes(ids), True
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"Current quotes unavailable for {len(ids)} assets, pricing at 0: {e}")
            return {}, False

    @staticmethod
    def _snapshot(aggregate: AssetAggregate, fifo: CostBasisResult, quote: PriceQuote) -> HoldingSnapshot:
        current_value = fifo.quantity_remaining * quote.price
        profit_loss = current_value - fifo.cost_basis

        if fifo.cost_basis > ZERO:
            profit_loss_percent = profit_loss / fifo.cost_basis * HUNDRED
        else:
            profit_loss_percent = ZERO

        return HoldingSnapshot(
            portfolio_id=aggregate.portfolio_id,
            portfolio_name=aggregate.portfolio_name,
            asset_id=aggregate.asset_id,
            asset_symbol=aggregate.asset_symbol,
            asset_name=aggregate.asset_name,
            total_quantity=_round_units(fifo.quantity_remaining),
            avg_buy_price=_round_units(fifo.avg_buy_price),
            cost_basis=_round_money(fifo.cost_basis),
            realized_gain_loss=_round_money(fifo.realized_gain_loss),
            transaction_count=aggregate.transaction_count,
            first_buy_date=aggregate.first_buy_date,
            last_transaction_date=aggregate.last_transaction_date,
            current_price=_round_units(quote.price),
            current_value=_round_money(current_value),
            profit_loss=_round_money(profit_loss),
            profit_loss_percent=_round_percent(profit_loss_percent),
            price_change_1h=_round_percent(quote.percent_change_1h),
            price_change_24h=_round_percent(quote.percent_change_24h),
            price_change_7d=_round_percent(quote.percent_change_7d),
            value_change_24h=_round_money(current_value * quote.percent_change_24h / HUNDRED),
        )

    @staticmethod
    def _summarize(holdings: Sequence[HoldingSnapshot], realized_total: Decimal) -> HoldingsSummary:
        total_value = sum((h.current_value for h in holdings), ZERO)
        total_cost = sum((h.cost_basis for h in holdings), ZERO)
        total_profit_loss = total_value - total_cost

        return HoldingsSummary(
            total_value=total_value,
            total_cost=total_cost,
            total_profit_loss=total_profit_loss,
            total_profit_loss_percent=percent_of(total_profit_loss, total_cost),
            total_realized_gain_loss=_round_money(realized_total),
            unique_assets=len({h.asset_id for h in holdings}),
        )

    @staticmethod
    def _performer(holding: HoldingSnapshot | None) -> PerformerSummary | None:
        if holding is None:
            return None
        return PerformerSummary(
            symbol=holding.asset_symbol,
            value=holding.current_value,
            cost=holding.cost_basis,
            profit_loss=holding.profit_loss,
            profit_loss_percent=holding.profit_loss_percent,
        )

    @staticmethod
    def _portfolio_ref(portfolio: Portfolio) -> PortfolioRef:
        return PortfolioRef(id=portfolio.id, name=portfolio.name, description=portfolio.description)
