# folio/services/pricing/coinmarketcap.py
"""
CoinMarketCap price oracle.

Implements PriceOracle against the CoinMarketCap Pro API using a
synchronous httpx client.

Endpoints used:
- GET /v2/cryptocurrency/quotes/latest?id=1,1027&convert=USD
      data[id].quote.USD.{price, percent_change_1h, percent_change_24h, percent_change_7d}
- GET /v2/cryptocurrency/ohlcv/historical?id=1,1027&count=24&interval=hourly&convert=USD
      data[id].quotes[i].{time_close, quote.USD.close}

Error mapping:
- HTTP 429                    → RateLimitError (retried)
- HTTP 5xx, any httpx error   → ProviderUnavailableError (retried)
- other non-200, bad payload  → MarketDataError (not retried)
  (a negative or non-numeric OHLCV close is a bad payload)

Each public call is bounded by its timeout as a whole, retries and
backoff included: an attempt only gets the time left in that budget.

Every HTTP attempt runs inside the oracle's CircuitBreaker, so a provider
outage quickly turns into fast CircuitBreakerOpen failures that the
valuation services absorb with their fallbacks.
"""

import logging
import time
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from folio.services.circuit_breaker import CircuitBreaker
from folio.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    EXTERNAL_API_HISTORY_TIMEOUT_SECONDS,
    EXTERNAL_API_TIMEOUT_SECONDS,
    QUOTE_CURRENCY,
)
from folio.services.exceptions import (
    MarketDataError,
    ProviderUnavailableError,
    RateLimitError,
)
from folio.services.pricing.base import (
    VALID_INTERVALS,
    HistoricalQuote,
    PriceOracle,
    PriceQuote,
    normalize_ids,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://pro-api.coinmarketcap.com"
QUOTES_LATEST_PATH = "/v2/cryptocurrency/quotes/latest"
OHLCV_HISTORICAL_PATH = "/v2/cryptocurrency/ohlcv/historical"


class CoinMarketCapOracle(PriceOracle):
    """
    CoinMarketCap implementation of PriceOracle.

    Configuration:
        api_key: CoinMarketCap Pro API key (sent as X-CMC_PRO_API_KEY)
        base_url: API root, overridable for sandbox or tests
        timeout: Timeout for current quotes (default: 10s)
        history_timeout: Timeout for historical batches (default: 30s)
        client: Pre-built httpx.Client (tests pass one with a MockTransport)
        circuit_breaker: Breaker guarding every request

    Example:
        oracle = CoinMarketCapOracle(api_key="...")
        quotes = oracle.get_current_quotes([1, 1027])
        print(quotes[1].price)
    """

    def __init__(
            self,
            api_key: str | None,
            base_url: str = DEFAULT_BASE_URL,
            timeout: float = EXTERNAL_API_TIMEOUT_SECONDS,
            history_timeout: float = EXTERNAL_API_HISTORY_TIMEOUT_SECONDS,
            client: httpx.Client | None = None,
            circuit_breaker: CircuitBreaker | None = None,
    ):
        self._timeout = timeout
        self._history_timeout = history_timeout
        self._client = client or httpx.Client(base_url=base_url)
        if client is None and not api_key:
            logger.warning("CoinMarketCapOracle created without an API key; requests will be rejected")
        self._headers = {
            "Accept": "application/json",
            "X-CMC_PRO_API_KEY": api_key or "",
        }
        self._breaker = circuit_breaker or CircuitBreaker(
            name="coinmarketcap",
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            failure_window=CIRCUIT_BREAKER_FAILURE_WINDOW,
        )
        logger.info(f"CoinMarketCapOracle initialized (timeout={timeout}s, history_timeout={history_timeout}s)")

    @property
    def name(self) -> str:
        return "coinmarketcap"

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    def is_available(self) -> bool:
        return not self._breaker.is_open

    def close(self) -> None:
        self._client.close()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_current_quotes(self, asset_ids: Iterable[int]) -> dict[int, PriceQuote]:
        ids = normalize_ids(asset_ids)
        if not ids:
            return {}

        data = self._execute_with_retry(
            self._request,
            QUOTES_LATEST_PATH,
            {"id": ",".join(str(i) for i in ids), "convert": QUOTE_CURRENCY},
            time.monotonic() + self._timeout,
            time_budget=self._timeout,
        )

        quotes: dict[int, PriceQuote] = {}
        for asset_id in ids:
            entry = self._entry_for(data, asset_id)
            usd = self._usd_block(entry.get("quote")) if entry else {}
            if not usd:
                quotes[asset_id] = PriceQuote.empty()
                continue
            quotes[asset_id] = PriceQuote(
                price=self._to_decimal(usd.get("price")),
                percent_change_1h=self._to_decimal(usd.get("percent_change_1h")),
                percent_change_24h=self._to_decimal(usd.get("percent_change_24h")),
                percent_change_7d=self._to_decimal(usd.get("percent_change_7d")),
            )

        missing = [i for i in ids if quotes[i].price == 0]
        logger.debug(f"Fetched {len(ids) - len(missing)} current quotes from CoinMarketCap (missing: {missing})")
        return quotes

    def get_historical_quotes(
            self,
            asset_ids: Iterable[int],
            count: int,
            interval: str,
    ) -> dict[int, list[HistoricalQuote]]:
        if interval not in VALID_INTERVALS:
            raise ValueError(f"Invalid interval: {interval}. Use: {', '.join(VALID_INTERVALS)}")
        if count < 1:
            raise ValueError("count must be at least 1")

        ids = normalize_ids(asset_ids)
        if not ids:
            return {}

        data = self._execute_with_retry(
            self._request,
            OHLCV_HISTORICAL_PATH,
            {
                "id": ",".join(str(i) for i in ids),
                "count": count,
                "interval": interval,
                "convert": QUOTE_CURRENCY,
            },
            time.monotonic() + self._history_timeout,
            time_budget=self._history_timeout,
        )

        result: dict[int, list[HistoricalQuote]] = {}
        for asset_id in ids:
            entry = self._entry_for(data, asset_id)
            raw_quotes = entry.get("quotes") if entry else None
            if not isinstance(raw_quotes, list):
                continue
            result[asset_id] = [self._parse_ohlcv(q) for q in raw_quotes if isinstance(q, dict)]

        logger.debug(
            f"Fetched {interval} history for {len(result)}/{len(ids)} assets "
            f"({count} points requested)"
        )
        return result

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request(self, path: str, params: dict[str, Any], deadline: float) -> dict[str, Any]:
        """
        Perform one guarded GET and return the payload's `data` object.

        `deadline` is a time.monotonic() value; the attempt's timeout is
        whatever is left before it.
        """
        timeout = deadline - time.monotonic()
        if timeout <= 0:
            raise ProviderUnavailableError(self.name, "time budget exhausted before request")

        with self._breaker:
            try:
                response = self._client.get(path, params=params, headers=self._headers, timeout=timeout)
            except httpx.TimeoutException as e:
                raise ProviderUnavailableError(self.name, f"timeout after {timeout:.1f}s") from e
            except httpx.HTTPError as e:
                # Transport, decoding and redirect errors alike
                raise ProviderUnavailableError(self.name, f"HTTP error: {e}") from e

            if response.status_code == 429:
                raise RateLimitError(self.name, retry_after=self._retry_after(response))
            if response.status_code >= 500:
                raise ProviderUnavailableError(self.name, f"HTTP {response.status_code}")
            if response.status_code != 200:
                raise MarketDataError(
                    f"CoinMarketCap returned HTTP {response.status_code} for {path}",
                    provider=self.name,
                )

            try:
                payload = response.json()
            except ValueError as e:
                raise MarketDataError(f"Malformed JSON from CoinMarketCap for {path}", provider=self.name) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise MarketDataError(f"CoinMarketCap response for {path} has no data object", provider=self.name)
        return data

    # =========================================================================
    # PARSING HELPERS
    # =========================================================================

    @staticmethod
    def _entry_for(data: dict[str, Any], asset_id: int) -> dict[str, Any] | None:
        entry = data.get(str(asset_id))
        # Symbol-keyed lookups return a list per key
        if isinstance(entry, list):
            entry = entry[0] if entry else None
        return entry if isinstance(entry, dict) else None

    @staticmethod
    def _usd_block(quote: Any) -> dict[str, Any]:
        if not isinstance(quote, dict):
            return {}
        usd = quote.get(QUOTE_CURRENCY)
        return usd if isinstance(usd, dict) else {}

    def _parse_ohlcv(self, raw: dict[str, Any]) -> HistoricalQuote:
        usd = self._usd_block(raw.get("quote"))
        return HistoricalQuote(
            close_time=self._parse_time(raw.get("time_close")),
            close=self._parse_close(usd.get("close")),
        )

    def _parse_close(self, value: Any) -> Decimal | None:
        """None for an interval without a close; MarketDataError for garbage."""
        if value is None:
            return None
        try:
            close = Decimal(str(value)) if not isinstance(value, bool) else None
        except (InvalidOperation, ValueError):
            close = None
        if close is None or not close.is_finite() or close < 0:
            raise MarketDataError(f"Invalid OHLCV close from CoinMarketCap: {value!r}", provider=self.name)
        return close

    @staticmethod
    def _parse_time(value: Any) -> datetime | None:
        if not isinstance(value, str):
            return None
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None

    @staticmethod
    def _retry_after(response: httpx.Response) -> int | None:
        value = response.headers.get("Retry-After")
        return int(value) if value and value.isdigit() else None

    @staticmethod
    def _to_decimal(value: Any) -> Decimal:
        """Convert a JSON number to Decimal, mapping None and garbage to zero."""
        if value is None or isinstance(value, bool):
            return Decimal("0")
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return Decimal("0")
        return result if result.is_finite() else Decimal("0")
