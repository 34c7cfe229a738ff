# tests/services/test_history_reconstructor.py
"""
Tests for HistoricalValuationReconstructor.

A fixed clock pins "now" to 2026-03-10 12:00 UTC, so grids and labels are
deterministic.

Test Coverage:
- Grid generation (hourly, daily at local midnight across a DST change)
- Holdings replay at each grid point
- Price fallbacks: historical -> current -> none
- Caching and invalidation
- Ownership and period validation
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.orm import Session

from folio.models import Portfolio, TransactionType, User
from folio.services.cache import InMemoryCache
from folio.services.exceptions import InvalidPeriodError, PortfolioNotFoundError
from folio.services.pricing import CoinMarketCapOracle
from folio.services.valuation import HistoricalValuationReconstructor
from tests.conftest import MockPriceOracle, create_portfolio, create_transaction, create_user

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
BTC, ETH = 1, 1027


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def reconstructor(mock_oracle: MockPriceOracle, cache: InMemoryCache) -> HistoricalValuationReconstructor:
    return HistoricalValuationReconstructor(oracle=mock_oracle, cache=cache, clock=lambda: NOW)


def values(history) -> list[Decimal]:
    return [p.value for p in history.points]


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidation:

    def test_invalid_period(self, db: Session, reconstructor: HistoricalValuationReconstructor,
                            sample_user: User):
        with pytest.raises(InvalidPeriodError) as exc_info:
            reconstructor.build_history(db, sample_user.id, period="1y")

        assert exc_info.value.period == "1y"

    def test_other_users_portfolio(self, db: Session, reconstructor: HistoricalValuationReconstructor,
                                   sample_portfolio: Portfolio):
        intruder = create_user(db, email="intruder@example.com")

        with pytest.raises(PortfolioNotFoundError):
            reconstructor.build_history(db, intruder.id, sample_portfolio.id, "24h")

    def test_no_assets_returns_empty_series(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            cache: InMemoryCache,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "7d")

        assert history.points == ()
        assert history.price_source == "none"
        assert history.summary.end_value == Decimal("0")
        assert history.summary.is_profit is False
        assert mock_oracle.history_calls == []
        assert cache.stats()["size"] == 0


# =============================================================================
# HOURLY GRID
# =============================================================================

class TestHourlyHistory:

    def test_grid_and_labels(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="90",
                           occurred_at=datetime(2026, 3, 1))
        mock_oracle.set_history(BTC, ["100"] * 24)

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert len(history.points) == 24
        assert history.points[-1].timestamp == int(NOW.timestamp())
        assert history.points[0].timestamp == int((NOW - timedelta(hours=23)).timestamp())
        assert history.points[0].date_formatted == "1:00 PM"
        assert history.points[-1].date_formatted == "12:00 PM"
        assert history.points[11].date_formatted == "12:00 AM"
        assert mock_oracle.history_calls == [([BTC], 24, "hourly")]

    def test_holdings_apply_from_their_timestamp(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        # Between grid points 11 (00:00) and 12 (01:00)
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="100",
                           occurred_at=datetime(2026, 3, 10, 0, 30))
        mock_oracle.set_history(BTC, [str(100 + i) for i in range(24)])

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert values(history)[:12] == [Decimal("0")] * 12
        assert values(history)[12] == Decimal("112")
        assert values(history)[-1] == Decimal("123")
        assert history.price_source == "historical"
        # Start value 0: percent is 0, not a division error
        assert history.summary.change == Decimal("123")
        assert history.summary.change_percent == Decimal("0")
        assert history.summary.is_profit is True

    def test_sell_reduces_later_points(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="2", price="100",
                           occurred_at=datetime(2026, 3, 1))
        create_transaction(db, sample_portfolio, TransactionType.SELL, asset_id=BTC, quantity="1.5",
                           price="100", occurred_at=datetime(2026, 3, 10, 6, 0))
        mock_oracle.set_history(BTC, ["10"] * 24)

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        # Grid point 17 is exactly 06:00: the sell counts there
        assert values(history)[16] == Decimal("20")
        assert values(history)[17] == Decimal("5")
        assert history.summary.change_percent == Decimal("-75")
        assert history.summary.is_profit is False

    def test_value_rounds_half_up(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 3, 1))
        mock_oracle.set_history(BTC, ["10.005"] * 24)

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert values(history)[0] == Decimal("10.01")

    def test_negative_holdings_are_not_valued(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        # Over-sold legacy data, inserted without ledger validation
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 3, 1))
        create_transaction(db, sample_portfolio, TransactionType.SELL, asset_id=BTC, quantity="3",
                           price="10", occurred_at=datetime(2026, 3, 2))
        create_transaction(db, sample_portfolio, asset_id=ETH, quantity="1", price="10",
                           occurred_at=datetime(2026, 3, 2))
        mock_oracle.set_history(BTC, ["100"] * 24)
        mock_oracle.set_history(ETH, ["7"] * 24)

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert set(values(history)) == {Decimal("7")}


# =============================================================================
# DAILY GRID
# =============================================================================

class TestDailyHistory:

    def test_local_midnights_across_dst(
            self,
            db: Session,
            mock_oracle: MockPriceOracle,
            cache: InMemoryCache,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        # US daylight saving time starts on 2026-03-08
        reconstructor = HistoricalValuationReconstructor(
            oracle=mock_oracle,
            cache=cache,
            timezone_name="America/New_York",
            clock=lambda: NOW,
        )
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 2, 1))
        mock_oracle.set_history(BTC, ["50"] * 7)

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "7d")

        labels = [p.date_formatted for p in history.points]
        assert labels == ["Mar 4", "Mar 5", "Mar 6", "Mar 7", "Mar 8", "Mar 9", "Mar 10"]

        gaps = [b.timestamp - a.timestamp for a, b in zip(history.points, history.points[1:])]
        assert gaps == [86400, 86400, 86400, 86400, 82800, 86400]

        # Mar 4 00:00 EST
        assert history.points[0].timestamp == int(datetime(2026, 3, 4, 5, 0, tzinfo=timezone.utc).timestamp())
        assert mock_oracle.history_calls == [([BTC], 7, "daily")]

    def test_thirty_day_grid(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 1, 1))
        mock_oracle.set_history(BTC, ["1"] * 30)

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "30d")

        assert len(history.points) == 30
        assert history.points[0].date_formatted == "Feb 9"
        assert history.points[-1].date_formatted == "Mar 10"

    def test_missing_closes_use_first_close(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 1, 1))
        # Short series with a gap
        mock_oracle.set_history(BTC, ["10", None, "12"])

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "7d")

        assert values(history) == [Decimal(v) for v in ("10", "10", "12", "10", "10", "10", "10")]

    def test_asset_without_series_is_zero(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 1, 1))
        create_transaction(db, sample_portfolio, asset_id=ETH, quantity="1", price="10",
                           occurred_at=datetime(2026, 1, 1))
        mock_oracle.set_history(BTC, ["3"] * 7)

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "7d")

        assert set(values(history)) == {Decimal("3")}


# =============================================================================
# PRICE FALLBACKS
# =============================================================================

class TestPriceFallbacks:

    def test_current_prices_when_history_fails(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="2", price="10",
                           occurred_at=datetime(2026, 3, 1))
        mock_oracle.fail_history()
        mock_oracle.set_price(BTC, "50")

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert history.price_source == "current"
        assert set(values(history)) == {Decimal("100")}
        assert history.summary.change == Decimal("0")
        assert history.summary.is_profit is True

    def test_malformed_close_falls_back_to_current_prices(
            self,
            db: Session,
            cache: InMemoryCache,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/ohlcv/historical"):
                return httpx.Response(200, json={"data": {"1": {"quotes": [
                    {"quote": {"USD": {"close": -1}}},
                ]}}})
            return httpx.Response(200, json={"data": {"1": {"quote": {"USD": {"price": 50}}}}})

        client = httpx.Client(base_url="https://cmc.test", transport=httpx.MockTransport(handler))
        oracle = CoinMarketCapOracle(api_key="secret", client=client)
        reconstructor = HistoricalValuationReconstructor(oracle=oracle, cache=cache, clock=lambda: NOW)
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="2", price="10",
                           occurred_at=datetime(2026, 3, 1))

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "7d")

        assert history.price_source == "current"
        assert set(values(history)) == {Decimal("100")}

    def test_zero_values_when_everything_fails(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="2", price="10",
                           occurred_at=datetime(2026, 3, 1))
        mock_oracle.fail_history()
        mock_oracle.fail_current()

        history = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert history.price_source == "none"
        assert len(history.points) == 24
        assert set(values(history)) == {Decimal("0")}


# =============================================================================
# SCOPE
# =============================================================================

class TestScope:

    def test_all_portfolios_are_combined(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        second = create_portfolio(db, sample_user, name="Second")
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 3, 1))
        create_transaction(db, second, asset_id=BTC, quantity="2", price="10",
                           occurred_at=datetime(2026, 3, 1))
        mock_oracle.set_history(BTC, ["10"] * 24)

        combined = reconstructor.build_history(db, sample_user.id, None, "24h")
        single = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert values(combined)[-1] == Decimal("30")
        assert values(single)[-1] == Decimal("10")


# =============================================================================
# CACHING
# =============================================================================

class TestCaching:

    def test_cache_key_format(self):
        assert HistoricalValuationReconstructor.cache_key(7, 3, "24h") == "portfolio_history_7_3_24h"
        assert HistoricalValuationReconstructor.cache_key(7, None, "30d") == "portfolio_history_7__30d"

    def test_second_call_is_served_from_cache(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 3, 1))
        mock_oracle.set_history(BTC, ["10"] * 24)

        first = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")
        second = reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")

        assert second is first
        assert len(mock_oracle.history_calls) == 1

    def test_invalidate_user_drops_every_period(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
            sample_portfolio: Portfolio,
    ):
        create_transaction(db, sample_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 1, 1))
        mock_oracle.set_history(BTC, ["10"] * 30)

        reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")
        reconstructor.build_history(db, sample_user.id, None, "7d")

        assert reconstructor.invalidate_user(sample_user.id) == 2

        reconstructor.build_history(db, sample_user.id, sample_portfolio.id, "24h")
        assert len(mock_oracle.history_calls) == 3

    def test_invalidate_user_keeps_other_users(
            self,
            db: Session,
            reconstructor: HistoricalValuationReconstructor,
            mock_oracle: MockPriceOracle,
            sample_user: User,
    ):
        # user ids 1 and 11 share a textual prefix
        for i in range(10):
            create_user(db, email=f"user{i}@example.com")
        other = db.get(User, 11)
        other_portfolio = create_portfolio(db, other)
        create_transaction(db, other_portfolio, asset_id=BTC, quantity="1", price="10",
                           occurred_at=datetime(2026, 1, 1))
        mock_oracle.set_history(BTC, ["10"] * 24)
        reconstructor.build_history(db, other.id, None, "24h")

        assert reconstructor.invalidate_user(sample_user.id) == 0
