#!/usr/bin/env python3
# scripts/seed_sample_data.py
"""
Seed a demo user with one portfolio of BTC/ETH trades and print an
access token for it.

    python scripts/seed_sample_data.py
    curl -H "Authorization: Bearer <token>" localhost:8000/portfolios/1/holdings
"""
import logging
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Setup path to import folio modules
root_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(root_dir))

from sqlalchemy import select

from folio.database import SessionLocal, engine
from folio.models import Base, Portfolio, TransactionType, User
from folio.services.auth import JWTHandler
from folio.services.ledger import TransactionLedger

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@example.com"

# (days ago, type, CMC id, symbol, name, quantity, price, fee)
SAMPLE_TRADES = [
    (60, TransactionType.BUY, 1, "BTC", "Bitcoin", "0.5", "58000", "12.50"),
    (45, TransactionType.BUY, 1027, "ETH", "Ethereum", "4", "2400", "6"),
    (30, TransactionType.BUY, 1, "BTC", "Bitcoin", "0.25", "62000", "8"),
    (10, TransactionType.SELL, 1, "BTC", "Bitcoin", "0.3", "67000", "9"),
    (3, TransactionType.SELL, 1027, "ETH", "Ethereum", "1", "2650", "3"),
]


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    ledger = TransactionLedger()

    with SessionLocal() as db:
        user = db.scalar(select(User).where(User.email == DEMO_EMAIL))
        if user is None:
            user = User(email=DEMO_EMAIL)
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info(f"Created user: {user.email}")
        else:
            logger.info(f"User exists: {user.email}")

        portfolio = db.scalar(select(Portfolio).where(Portfolio.user_id == user.id))
        if portfolio is None:
            portfolio = Portfolio(user_id=user.id, name="Long-term crypto", description="Demo data")
            db.add(portfolio)
            db.commit()
            db.refresh(portfolio)
            logger.info(f"Created portfolio: {portfolio.name}")

            now = datetime.now(timezone.utc)
            for days_ago, txn_type, asset_id, symbol, name, qty, price, fee in SAMPLE_TRADES:
                ledger.record_transaction(
                    db,
                    portfolio,
                    transaction_type=txn_type,
                    asset_id=asset_id,
                    asset_symbol=symbol,
                    asset_name=name,
                    quantity=Decimal(qty),
                    price_per_unit=Decimal(price),
                    occurred_at=now - timedelta(days=days_ago),
                    fee=Decimal(fee),
                )
        else:
            logger.info(f"Portfolio exists: {portfolio.name} (skipping trades)")

        portfolio_id = portfolio.id
        token = JWTHandler.create_access_token(user.id, user.email, expires_delta=timedelta(days=1))

    logger.info(f"Portfolio id: {portfolio_id}")
    logger.info(f"Access token (24h): {token}")


if __name__ == "__main__":
    seed()
