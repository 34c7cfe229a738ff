# folio/services/pricing/base.py
"""
Abstract interface for price oracles.

The valuation services only ever talk to a PriceOracle, never to a concrete
HTTP client. This keeps the accounting code testable with an in-memory
double and lets the provider change without touching valuation logic.

Contract:
- get_current_quotes: one batch call for many assets. Every requested id
  is present in the result; ids the provider did not return map to
  PriceQuote.empty() (all zeros).
- get_historical_quotes: one batch call returning, per asset, the ordered
  list of closes for the last `count` intervals. Assets the provider did
  not return are simply absent.

Both methods raise MarketDataError subclasses (or CircuitBreakerOpen) on
failure. Deciding how to degrade is the caller's job.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, TypeVar

from tenacity import (
    retry,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from folio.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

VALID_INTERVALS: tuple[str, ...] = ("hourly", "daily")


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PriceQuote:
    """
    Latest price of one asset with its recent percent changes.

    Attributes:
        price: Last price in the quote currency
        percent_change_1h: Change over the last hour, in percent
        percent_change_24h: Change over the last 24 hours, in percent
        percent_change_7d: Change over the last 7 days, in percent
    """

    price: Decimal
    percent_change_1h: Decimal = Decimal("0")
    percent_change_24h: Decimal = Decimal("0")
    percent_change_7d: Decimal = Decimal("0")

    @classmethod
    def empty(cls) -> "PriceQuote":
        """Quote used when the provider has no data for an asset."""
        return cls(price=Decimal("0"))


@dataclass(frozen=True)
class HistoricalQuote:
    """
    One close price in a historical series.

    Attributes:
        close_time: End of the interval (UTC), None if the provider omitted it
        close: Close price in the quote currency, None if the provider sent
            an interval without a close (keeps list positions aligned)
    """

    close_time: datetime | None
    close: Decimal | None

    def __post_init__(self) -> None:
        if self.close is not None and self.close < 0:
            raise ValueError("close cannot be negative")


# =============================================================================
# ABSTRACT ORACLE
# =============================================================================

class PriceOracle(ABC):
    """
    Abstract base class for price providers.

    Retry Configuration (class attributes, overridable by subclasses):
        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)

    Callers may pass a time_budget (seconds) to _execute_with_retry: no
    attempt is started once the next backoff would cross it.

    Retryable Exceptions:
        - ProviderUnavailableError: Network issues, timeouts, server errors
        - RateLimitError: API rate limit exceeded
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 10
    RETRY_MULTIPLIER: int = 1

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider (used in logs and errors)."""
        pass

    @abstractmethod
    def get_current_quotes(self, asset_ids: Iterable[int]) -> dict[int, PriceQuote]:
        """
        Fetch the latest quote for each asset in a single request.

        Args:
            asset_ids: Provider asset ids (duplicates are ignored)

        Returns:
            Dict with an entry for every requested id

        Raises:
            MarketDataError: On any provider failure
            CircuitBreakerOpen: If the provider is being short-circuited
        """
        pass

    @abstractmethod
    def get_historical_quotes(
            self,
            asset_ids: Iterable[int],
            count: int,
            interval: str,
    ) -> dict[int, list[HistoricalQuote]]:
        """
        Fetch the last `count` closes per asset in a single request.

        Args:
            asset_ids: Provider asset ids
            count: Number of intervals to return per asset
            interval: "hourly" or "daily"

        Returns:
            Dict mapping asset id to quotes ordered oldest first

        Raises:
            ValueError: If interval is not supported
            MarketDataError: On any provider failure
            CircuitBreakerOpen: If the provider is being short-circuited
        """
        pass

    def is_available(self) -> bool:
        """Default availability check; subclasses with a breaker override it."""
        return True

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            time_budget: float | None = None,
            **kwargs: Any,
    ) -> T:
        """
        Execute a function with exponential backoff for transient failures.

        Only ProviderUnavailableError and RateLimitError are retried; the last
        exception is re-raised once attempts are exhausted.
        """
        stop = stop_after_attempt(self.MAX_RETRY_ATTEMPTS)
        if time_budget is not None:
            stop = stop | stop_before_delay(time_budget)

        @retry(
            stop=stop,
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()


def normalize_ids(asset_ids: Iterable[int]) -> list[int]:
    """Deduplicate ids preserving first-seen order."""
    return list(dict.fromkeys(int(asset_id) for asset_id in asset_ids))
