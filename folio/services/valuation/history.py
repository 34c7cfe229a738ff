# folio/services/valuation/history.py
"""
Historical valuation of a user's holdings.

Rebuilds "what was the portfolio worth at time t" for a fixed grid of
timestamps by combining the ledger with one batch of historical prices:

1. Generate the grid (24 hourly points, or 7 / 30 local midnights)
2. Batch-fetch prices for every asset ever held (1 provider call)
3. Walk the grid once, applying transactions as they become effective

Performance:
    Holdings at t are rebuilt with the Rolling State pattern: transactions
    are sorted once and a single pointer advances through them as the grid
    moves forward, so the cost is O(transactions + grid points) rather than
    a ledger scan per point.

Degradation:
    historical closes -> current price applied to every point -> 0.
    The chosen source is reported in PortfolioHistory.price_source.

Results are cached per (user, portfolio, period) for
HISTORY_CACHE_TTL_SECONDS. Writes to the ledger call invalidate_user().
"""

import logging
from collections.abc import Sequence
from datetime import datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from folio.models import Transaction
from folio.services.circuit_breaker import CircuitBreakerOpen
from folio.services.constants import (
    CURRENCY_PRECISION,
    DEFAULT_HISTORY_PERIOD,
    HISTORY_CACHE_TTL_SECONDS,
    HISTORY_INTERVALS,
    HISTORY_POINT_COUNTS,
    HUNDRED,
    VALID_HISTORY_PERIODS,
    ZERO,
)
from folio.services.exceptions import InvalidPeriodError, MarketDataError
from folio.services.ledger import TransactionLedger, signed_quantity, to_naive_utc
from folio.services.pricing.base import HistoricalQuote, PriceOracle
from folio.services.protocols import CacheProtocol, ClockProtocol
from folio.services.valuation.types import HistorySummary, PortfolioHistory, ValuationPoint

logger = logging.getLogger(__name__)

# asset_id -> one price per grid point
PriceTable = dict[int, list[Decimal]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _round_money(value: Decimal) -> Decimal:
    return value.quantize(CURRENCY_PRECISION, rounding=ROUND_HALF_UP)


class HistoricalValuationReconstructor:
    """
    Builds a portfolio value time series for a chart.

    Key Insight:
        Holdings CHANGE over the period as buys/sells occur, so today's
        holdings cannot simply be multiplied by old prices. Each grid point
        uses the quantity held at that instant.

    Attributes:
        _oracle: Price provider (historical and current quotes)
        _cache: Result cache shared across requests
        _ledger: Transaction queries
        _tz: Zone used for daily midnights and date labels
        _clock: Returns the current (aware) time
    """

    CACHE_KEY_PREFIX: str = "portfolio_history_"

    def __init__(
            self,
            oracle: PriceOracle,
            cache: CacheProtocol,
            ledger: TransactionLedger | None = None,
            timezone_name: str = "UTC",
            clock: ClockProtocol | None = None,
            cache_ttl: int = HISTORY_CACHE_TTL_SECONDS,
    ) -> None:
        self._oracle = oracle
        self._cache = cache
        self._ledger = ledger or TransactionLedger()
        self._tz = ZoneInfo(timezone_name)
        self._clock = clock or _utc_now
        self._cache_ttl = cache_ttl

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def build_history(
            self,
            db: Session,
            user_id: int,
            portfolio_id: int | None = None,
            period: str = DEFAULT_HISTORY_PERIOD,
    ) -> PortfolioHistory:
        """
        Reconstruct portfolio value over a period.

        Args:
            db: Database session
            user_id: Owner of the data
            portfolio_id: One portfolio, or None for all of the user's portfolios
            period: "24h", "7d" or "30d"

        Returns:
            PortfolioHistory with points ordered oldest first

        Raises:
            InvalidPeriodError: If period is not supported
            PortfolioNotFoundError: If portfolio_id is not owned by user_id
        """
        # Step 0: Validate input before touching the cache
        if period not in VALID_HISTORY_PERIODS:
            raise InvalidPeriodError(period, VALID_HISTORY_PERIODS)

        if portfolio_id is not None:
            self._ledger.get_owned_portfolio(db, portfolio_id, user_id)

        cache_key = self.cache_key(user_id, portfolio_id, period)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"History cache hit: {cache_key}")
            return cached

        # Step 1: Assets ever held; nothing to chart without them
        asset_ids = self._ledger.distinct_asset_ids(db, user_id, portfolio_id)
        if not asset_ids:
            return PortfolioHistory(
                period=period,
                points=(),
                summary=HistorySummary.empty(),
                price_source="none",
            )

        # Step 2: Grid of timestamps (SORTED, oldest first)
        grid = self._generate_timestamps(period, self._now())

        # Step 3: Batch fetch prices for every grid point
        prices, price_source = self._fetch_price_table(asset_ids, len(grid), HISTORY_INTERVALS[period])

        # Step 4: ROLLING STATE - O(T + G)
        transactions = self._ledger.list_user_transactions(db, user_id, portfolio_id)
        points = self._calculate_history_rolling(transactions, grid, prices, period)

        history = PortfolioHistory(
            period=period,
            points=tuple(points),
            summary=self._summarize(points),
            price_source=price_source,
        )

        self._cache.set(cache_key, history, self._cache_ttl)
        logger.debug(
            f"Built {period} history for user {user_id} "
            f"(portfolio={portfolio_id}, assets={len(asset_ids)}, source={price_source})"
        )
        return history

    def invalidate_user(self, user_id: int) -> int:
        """Drop every cached history of a user. Returns the number of entries removed."""
        removed = self._cache.invalidate_prefix(f"{self.CACHE_KEY_PREFIX}{user_id}_")
        if removed:
            logger.debug(f"Invalidated {removed} cached histories for user {user_id}")
        return removed

    @classmethod
    def cache_key(cls, user_id: int, portfolio_id: int | None, period: str) -> str:
        portfolio_part = "" if portfolio_id is None else str(portfolio_id)
        return f"{cls.CACHE_KEY_PREFIX}{user_id}_{portfolio_part}_{period}"

    # =========================================================================
    # CALCULATION
    # =========================================================================

    def _calculate_history_rolling(
            self,
            transactions: Sequence[Transaction],
            grid: Sequence[datetime],
            prices: PriceTable,
            period: str,
    ) -> list[ValuationPoint]:
        """
        Value holdings at each grid timestamp.

        Args:
            transactions: ALL relevant transactions, sorted by occurred_at
            grid: Aware timestamps, sorted ascending
            prices: Price per asset per grid index
            period: Selects the label format

        Returns:
            One ValuationPoint per grid timestamp
        """
        points: list[ValuationPoint] = []
        holdings: dict[int, Decimal] = {}

        txn_index = 0
        num_txns = len(transactions)

        for i, moment in enumerate(grid):
            cutoff = to_naive_utc(moment)

            # Apply everything effective at or before this instant
            while txn_index < num_txns:
                txn = transactions[txn_index]
                if txn.occurred_at > cutoff:
                    break
                holdings[txn.asset_id] = holdings.get(txn.asset_id, ZERO) + signed_quantity(txn)
                txn_index += 1

            value = ZERO
            for asset_id, quantity in holdings.items():
                if quantity <= ZERO:
                    continue
                series = prices.get(asset_id)
                if series is not None:
                    value += quantity * series[i]

            points.append(ValuationPoint(
                timestamp=int(moment.timestamp()),
                value=_round_money(value),
                date_formatted=self._format_label(moment, period),
            ))

        return points

    @staticmethod
    def _summarize(points: Sequence[ValuationPoint]) -> HistorySummary:
        if not points:
            return HistorySummary.empty()

        start_value = points[0].value
        end_value = points[-1].value
        change = end_value - start_value
        change_percent = change / start_value * HUNDRED if start_value > ZERO else ZERO

        return HistorySummary(
            start_value=_round_money(start_value),
            end_value=_round_money(end_value),
            change=_round_money(change),
            change_percent=_round_money(change_percent),
            is_profit=change >= ZERO,
        )

    # =========================================================================
    # DATA FETCHING
    # =========================================================================

    def _fetch_price_table(
            self,
            asset_ids: Sequence[int],
            point_count: int,
            interval: str,
    ) -> tuple[PriceTable, str]:
        """
        Price of every asset at every grid index.

        Returns:
            Tuple of (price table, source) where source is "historical",
            "current" or "none"
        """
        try:
            series = self._oracle.get_historical_quotes(asset_ids, count=point_count, interval=interval)
            return self._align_historical(asset_ids, series, point_count), "historical"
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"Historical quotes unavailable, falling back to current prices: {e}")

        try:
            quotes = self._oracle.get_current_quotes(asset_ids)
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"Current quotes unavailable, history valued at 0: {e}")
            return {}, "none"

        return {
            asset_id: [quote.price] * point_count
            for asset_id, quote in quotes.items()
        }, "current"

    @staticmethod
    def _align_historical(
            asset_ids: Sequence[int],
            series: dict[int, list[HistoricalQuote]],
            point_count: int,
    ) -> PriceTable:
        """
        Map provider series onto grid indexes.

        Index i uses quotes[i].close, falling back to quotes[0].close when
        that entry is missing or has no close. Assets the provider did not
        return are priced at 0.
        """
        table: PriceTable = {}
        for asset_id in asset_ids:
            quotes = series.get(asset_id) or []
            first_close = quotes[0].close if quotes and quotes[0].close is not None else ZERO

            prices: list[Decimal] = []
            for i in range(point_count):
                close = quotes[i].close if i < len(quotes) else None
                prices.append(close if close is not None else first_close)
            table[asset_id] = prices
        return table

    # =========================================================================
    # DATE GENERATION
    # =========================================================================

    def _generate_timestamps(self, period: str, now: datetime) -> list[datetime]:
        """
        Grid for a period, oldest first.

        - 24h: now - 23h, ..., now - 1h, now
        - 7d / 30d: local midnight of each day, ending with today
        """
        if period not in HISTORY_POINT_COUNTS:
            raise InvalidPeriodError(period, VALID_HISTORY_PERIODS)

        count = HISTORY_POINT_COUNTS[period]

        if HISTORY_INTERVALS[period] == "hourly":
            return [now - timedelta(hours=i) for i in range(count - 1, -1, -1)]

        today = now.astimezone(self._tz).date()
        return [
            datetime.combine(today - timedelta(days=i), time.min, tzinfo=self._tz)
            for i in range(count - 1, -1, -1)
        ]

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now

    def _format_label(self, moment: datetime, period: str) -> str:
        """Chart label: "8:00 AM" for hourly points, "Oct 16" for daily points."""
        local = moment.astimezone(self._tz)
        if HISTORY_INTERVALS[period] == "hourly":
            suffix = "AM" if local.hour < 12 else "PM"
            return f"{local.hour % 12 or 12}:{local.minute:02d} {suffix}"
        return f"{local.strftime('%b')} {local.day}"
