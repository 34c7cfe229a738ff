# folio/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- Existing classes satisfy protocols without modification
- Test doubles work without explicit inheritance
- Clear documentation of required interfaces
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol


class CacheProtocol(Protocol):
    """
    Key/value store used by HistoricalValuationReconstructor.

    Values are returned exactly as stored. A miss (absent or expired key)
    returns None. Implementations must be safe for concurrent use.
    """

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    def invalidate_prefix(self, prefix: str) -> int:
        ...


class ClockProtocol(Protocol):
    """Returns the current time as a timezone-aware datetime."""

    def __call__(self) -> datetime:
        ...
