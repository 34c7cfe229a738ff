# tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Mock price oracle
- Sample data factories
- TestClient with dependency overrides and bearer headers
"""

import os

# Must be set before any folio module reads settings
os.environ.setdefault("ENVIRONMENT", "test")

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from folio.database import get_db
from folio.dependencies import (
    get_history_reconstructor,
    get_holdings_aggregator,
    get_ledger,
    get_price_oracle,
)
from folio.main import app
from folio.models import Base, Portfolio, Transaction, TransactionType, User
from folio.services.auth import JWTHandler
from folio.services.cache import InMemoryCache
from folio.services.exceptions import ProviderUnavailableError
from folio.services.ledger import TransactionLedger
from folio.services.pricing.base import HistoricalQuote, PriceOracle, PriceQuote, normalize_ids
from folio.services.valuation import HistoricalValuationReconstructor, HoldingsAggregator


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# MOCK PRICE ORACLE
# =============================================================================

class MockPriceOracle(PriceOracle):
    """
    In-memory PriceOracle for tests.

    Prices are configured per asset id. Either endpoint can be made to
    fail with a configured exception to exercise the fallbacks.
    """

    def __init__(self):
        self._prices: dict[int, PriceQuote] = {}
        self._history: dict[int, list[HistoricalQuote]] = {}
        self._current_error: Exception | None = None
        self._history_error: Exception | None = None
        self.current_calls: list[list[int]] = []
        self.history_calls: list[tuple[list[int], int, str]] = []

    @property
    def name(self) -> str:
        return "mock"

    def set_price(
            self,
            asset_id: int,
            price: Decimal | str,
            change_1h: Decimal | str = "0",
            change_24h: Decimal | str = "0",
            change_7d: Decimal | str = "0",
    ) -> None:
        self._prices[asset_id] = PriceQuote(
            price=Decimal(price),
            percent_change_1h=Decimal(change_1h),
            percent_change_24h=Decimal(change_24h),
            percent_change_7d=Decimal(change_7d),
        )

    def set_history(self, asset_id: int, closes: Iterable[Decimal | str | None]) -> None:
        """Configure closes (oldest first); None entries have no close."""
        self._history[asset_id] = [
            HistoricalQuote(close_time=None, close=Decimal(c) if c is not None else None)
            for c in closes
        ]

    def fail_current(self, error: Exception | None = None) -> None:
        self._current_error = error or ProviderUnavailableError("mock", "down")

    def fail_history(self, error: Exception | None = None) -> None:
        self._history_error = error or ProviderUnavailableError("mock", "down")

    def get_current_quotes(self, asset_ids: Iterable[int]) -> dict[int, PriceQuote]:
        ids = normalize_ids(asset_ids)
        self.current_calls.append(ids)
        if self._current_error is not None:
            raise self._current_error
        return {asset_id: self._prices.get(asset_id, PriceQuote.empty()) for asset_id in ids}

    def get_historical_quotes(
            self,
            asset_ids: Iterable[int],
            count: int,
            interval: str,
    ) -> dict[int, list[HistoricalQuote]]:
        ids = normalize_ids(asset_ids)
        self.history_calls.append((ids, count, interval))
        if self._history_error is not None:
            raise self._history_error
        return {asset_id: self._history[asset_id][-count:] for asset_id in ids if asset_id in self._history}


@pytest.fixture
def mock_oracle() -> MockPriceOracle:
    """Create a fresh mock oracle for each test."""
    return MockPriceOracle()


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

ASSET_NAMES = {1: ("BTC", "Bitcoin"), 1027: ("ETH", "Ethereum"), 5426: ("SOL", "Solana")}


def create_user(db: Session, email: str = "test@example.com", is_active: bool = True) -> User:
    """Factory function for creating User entities in the database."""
    user = User(email=email, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_portfolio(
        db: Session,
        user: User,
        name: str = "Test Portfolio",
        description: str | None = None,
) -> Portfolio:
    """Factory function for creating Portfolio entities in the database."""
    portfolio = Portfolio(user_id=user.id, name=name, description=description)
    db.add(portfolio)
    db.commit()
    db.refresh(portfolio)
    return portfolio


def create_transaction(
        db: Session,
        portfolio: Portfolio,
        transaction_type: TransactionType = TransactionType.BUY,
        asset_id: int = 1,
        quantity: Decimal | str = "1",
        price: Decimal | str = "100",
        fee: Decimal | str = "0",
        occurred_at: datetime = datetime(2026, 1, 1, 12, 0),
        total_amount: Decimal | str | None = None,
) -> Transaction:
    """
    Insert a transaction directly, bypassing ledger validation.

    total_amount defaults the same way the ledger does:
    quantity × price, plus the fee for buys.
    """
    quantity = Decimal(quantity)
    price = Decimal(price)
    fee = Decimal(fee)
    if total_amount is None:
        total = quantity * price
        if transaction_type == TransactionType.BUY:
            total += fee
    else:
        total = Decimal(total_amount)

    symbol, name = ASSET_NAMES.get(asset_id, (f"A{asset_id}", f"Asset {asset_id}"))
    txn = Transaction(
        portfolio_id=portfolio.id,
        transaction_type=transaction_type,
        asset_id=asset_id,
        asset_symbol=symbol,
        asset_name=name,
        quantity=quantity,
        price_per_unit=price,
        total_amount=total,
        fee=fee,
        currency="USD",
        occurred_at=occurred_at,
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn


# =============================================================================
# FIXTURE EXPORTS (for convenience imports in tests)
# =============================================================================

@pytest.fixture
def sample_user(db: Session) -> User:
    """Provide a sample User for tests."""
    return create_user(db)


@pytest.fixture
def sample_portfolio(db: Session, sample_user: User) -> Portfolio:
    """Provide a sample Portfolio for tests."""
    return create_portfolio(db, sample_user)


# =============================================================================
# API FIXTURES
# =============================================================================

# "Now" for history endpoints, so chart grids are deterministic
API_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def auth_headers_for(user: User, expires_delta: timedelta | None = None) -> dict[str, str]:
    """Bearer header with a freshly signed access token for user."""
    token = JWTHandler.create_access_token(user.id, user.email, expires_delta=expires_delta)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(sample_user: User) -> dict[str, str]:
    return auth_headers_for(sample_user)


@pytest.fixture
def history_cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def client(db: Session, mock_oracle: MockPriceOracle, history_cache: InMemoryCache) -> Iterator[TestClient]:
    """
    TestClient wired to the test session and the mock oracle.

    History endpoints use a fixed clock (API_NOW) and a per-test cache.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass

    ledger = TransactionLedger()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_price_oracle] = lambda: mock_oracle
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_holdings_aggregator] = lambda: HoldingsAggregator(
        oracle=mock_oracle, ledger=ledger
    )
    app.dependency_overrides[get_history_reconstructor] = lambda: HistoricalValuationReconstructor(
        oracle=mock_oracle, cache=history_cache, ledger=ledger, clock=lambda: API_NOW
    )

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
