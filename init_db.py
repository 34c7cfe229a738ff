#!/usr/bin/env python3
# init_db.py
"""
Create the database tables.

Run from the repository root (DATABASE_URL must be set):
    python init_db.py
"""
import sys
from pathlib import Path

# Make the 'folio' package importable without installing it
sys.path.insert(0, str(Path(__file__).parent))

from folio.database import engine
from folio.models import Base


def init_db() -> None:
    """Create users, portfolios and transactions tables if missing."""
    print(f"Creating tables: {', '.join(Base.metadata.tables)}")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")


if __name__ == "__main__":
    init_db()
