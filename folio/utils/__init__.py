# folio/utils/__init__.py
"""
Cross-cutting utilities.

- logging: Logging setup with correlation ID support
- context: Request context (correlation ID)

Usage:
    from folio.utils import setup_logging
    from folio.utils import get_correlation_id, set_correlation_id
"""

from folio.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
)
from folio.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
