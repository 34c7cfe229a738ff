# tests/services/test_coinmarketcap_oracle.py
"""
Tests for CoinMarketCapOracle.

HTTP is served by httpx.MockTransport, so these tests never touch the
network. Retry waits are set to zero.

Test Coverage:
- Payload parsing for latest quotes and OHLCV history
- Request shape (ids, convert, API key header)
- Error mapping and retry behavior
- Circuit breaker integration
- Whole-call time budget across retries
"""

import json
from decimal import Decimal

import httpx
import pytest

from folio.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from folio.services.exceptions import MarketDataError, ProviderUnavailableError, RateLimitError
from folio.services.pricing import CoinMarketCapOracle
from folio.services.pricing.base import PriceQuote


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(CoinMarketCapOracle, "RETRY_MIN_WAIT", 0)
    monkeypatch.setattr(CoinMarketCapOracle, "RETRY_MAX_WAIT", 0)


class Recorder:
    """MockTransport handler replaying a list of responses and recording requests."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        # Fresh copy: a Response instance is bound to a single request
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


def make_oracle(handler: Recorder, breaker: CircuitBreaker | None = None) -> CoinMarketCapOracle:
    client = httpx.Client(base_url="https://cmc.test", transport=httpx.MockTransport(handler))
    return CoinMarketCapOracle(api_key="secret", client=client, circuit_breaker=breaker)


def ok(payload: dict) -> httpx.Response:
    return httpx.Response(200, json=payload)


QUOTES_PAYLOAD = {
    "status": {"error_code": 0},
    "data": {
        "1": {
            "id": 1,
            "symbol": "BTC",
            "quote": {"USD": {
                "price": 65000.5,
                "percent_change_1h": 0.12,
                "percent_change_24h": -2.5,
                "percent_change_7d": 8,
            }},
        },
        # Some responses key a list per id
        "1027": [{
            "id": 1027,
            "symbol": "ETH",
            "quote": {"USD": {"price": 3200, "percent_change_24h": None}},
        }],
    },
}

OHLCV_PAYLOAD = {
    "data": {
        "1": {
            "id": 1,
            "quotes": [
                {"time_close": "2026-03-09T23:59:59.999Z", "quote": {"USD": {"close": 64000.25}}},
                {"time_close": "2026-03-10T23:59:59.999Z", "quote": {"USD": {}}},
                {"time_close": None, "quote": {"USD": {"close": 65000}}},
            ],
        },
    },
}


# =============================================================================
# CURRENT QUOTES
# =============================================================================

class TestCurrentQuotes:

    def test_parses_quotes(self):
        oracle = make_oracle(Recorder(ok(QUOTES_PAYLOAD)))

        quotes = oracle.get_current_quotes([1, 1027])

        assert quotes[1].price == Decimal("65000.5")
        assert quotes[1].percent_change_1h == Decimal("0.12")
        assert quotes[1].percent_change_24h == Decimal("-2.5")
        assert quotes[1].percent_change_7d == Decimal("8")
        assert quotes[1027].price == Decimal("3200")
        assert quotes[1027].percent_change_24h == Decimal("0")

    def test_request_shape(self):
        handler = Recorder(ok(QUOTES_PAYLOAD))
        oracle = make_oracle(handler)

        oracle.get_current_quotes([1027, 1, 1027])

        request = handler.requests[0]
        assert request.url.path == "/v2/cryptocurrency/quotes/latest"
        assert request.url.params["id"] == "1027,1"
        assert request.url.params["convert"] == "USD"
        assert request.headers["X-CMC_PRO_API_KEY"] == "secret"

    def test_unknown_asset_gets_empty_quote(self):
        oracle = make_oracle(Recorder(ok(QUOTES_PAYLOAD)))

        quotes = oracle.get_current_quotes([1, 999])

        assert quotes[999] == PriceQuote.empty()

    def test_no_ids_makes_no_request(self):
        handler = Recorder(ok(QUOTES_PAYLOAD))
        oracle = make_oracle(handler)

        assert oracle.get_current_quotes([]) == {}
        assert handler.requests == []


# =============================================================================
# HISTORICAL QUOTES
# =============================================================================

class TestHistoricalQuotes:

    def test_parses_series(self):
        handler = Recorder(ok(OHLCV_PAYLOAD))
        oracle = make_oracle(handler)

        series = oracle.get_historical_quotes([1, 1027], count=3, interval="daily")

        assert list(series) == [1]
        quotes = series[1]
        assert quotes[0].close == Decimal("64000.25")
        assert quotes[0].close_time.year == 2026
        # Interval without a close keeps its position
        assert quotes[1].close is None
        assert quotes[2].close_time is None

        params = handler.requests[0].url.params
        assert handler.requests[0].url.path == "/v2/cryptocurrency/ohlcv/historical"
        assert params["count"] == "3"
        assert params["interval"] == "daily"

    def test_invalid_interval(self):
        oracle = make_oracle(Recorder(ok(OHLCV_PAYLOAD)))

        with pytest.raises(ValueError, match="Invalid interval"):
            oracle.get_historical_quotes([1], count=7, interval="weekly")

    def test_invalid_count(self):
        oracle = make_oracle(Recorder(ok(OHLCV_PAYLOAD)))

        with pytest.raises(ValueError):
            oracle.get_historical_quotes([1], count=0, interval="hourly")

    @pytest.mark.parametrize("close", [-1, "abc", "NaN", "Infinity", True])
    def test_invalid_close_is_a_malformed_payload(self, close):
        payload = {"data": {"1": {"quotes": [
            {"time_close": "2026-03-09T23:59:59.999Z", "quote": {"USD": {"close": 64000}}},
            {"quote": {"USD": {"close": close}}},
        ]}}}
        handler = Recorder(ok(payload))
        oracle = make_oracle(handler)

        with pytest.raises(MarketDataError, match="Invalid OHLCV close"):
            oracle.get_historical_quotes([1], count=2, interval="daily")

        assert len(handler.requests) == 1


# =============================================================================
# ERROR MAPPING AND RETRIES
# =============================================================================

class TestErrors:

    def test_server_error_is_retried(self):
        handler = Recorder(httpx.Response(503), ok(QUOTES_PAYLOAD))
        oracle = make_oracle(handler)

        quotes = oracle.get_current_quotes([1])

        assert quotes[1].price == Decimal("65000.5")
        assert len(handler.requests) == 2

    def test_persistent_server_error(self):
        handler = Recorder(httpx.Response(500))
        oracle = make_oracle(handler)

        with pytest.raises(ProviderUnavailableError):
            oracle.get_current_quotes([1])

        assert len(handler.requests) == CoinMarketCapOracle.MAX_RETRY_ATTEMPTS

    def test_rate_limit(self):
        handler = Recorder(httpx.Response(429, headers={"Retry-After": "30"}))
        oracle = make_oracle(handler)

        with pytest.raises(RateLimitError) as exc_info:
            oracle.get_current_quotes([1])

        assert exc_info.value.retry_after == 30
        assert len(handler.requests) == CoinMarketCapOracle.MAX_RETRY_ATTEMPTS

    def test_client_error_is_not_retried(self):
        handler = Recorder(httpx.Response(401, json={"status": {"error_message": "bad key"}}))
        oracle = make_oracle(handler)

        with pytest.raises(MarketDataError, match="HTTP 401"):
            oracle.get_current_quotes([1])

        assert len(handler.requests) == 1

    def test_timeout(self):
        handler = Recorder(httpx.ReadTimeout("slow"))
        oracle = make_oracle(handler)

        with pytest.raises(ProviderUnavailableError, match="timeout"):
            oracle.get_current_quotes([1])

    @pytest.mark.parametrize("error", [
        httpx.DecodingError("bad gzip stream"),
        httpx.TooManyRedirects("redirect loop"),
        httpx.ConnectError("connection refused"),
    ])
    def test_any_httpx_error_is_provider_unavailable(self, error):
        handler = Recorder(error)
        oracle = make_oracle(handler)

        with pytest.raises(ProviderUnavailableError, match="HTTP error"):
            oracle.get_current_quotes([1])

        assert len(handler.requests) == CoinMarketCapOracle.MAX_RETRY_ATTEMPTS

    def test_malformed_json(self):
        handler = Recorder(httpx.Response(200, content=b"<html>"))
        oracle = make_oracle(handler)

        with pytest.raises(MarketDataError, match="Malformed JSON"):
            oracle.get_current_quotes([1])

    def test_missing_data_object(self):
        handler = Recorder(httpx.Response(200, content=json.dumps({"status": {}}).encode()))
        oracle = make_oracle(handler)

        with pytest.raises(MarketDataError, match="no data object"):
            oracle.get_current_quotes([1])


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================

class TestCircuitBreaker:

    def test_repeated_failures_open_the_breaker(self):
        breaker = CircuitBreaker(name="coinmarketcap", failure_threshold=2, recovery_timeout=60)
        handler = Recorder(httpx.Response(500))
        oracle = make_oracle(handler, breaker)

        # Third attempt is rejected without a request
        with pytest.raises(CircuitBreakerOpen):
            oracle.get_current_quotes([1])

        assert len(handler.requests) == 2
        assert oracle.is_available() is False

    def test_open_breaker_short_circuits(self):
        breaker = CircuitBreaker(name="coinmarketcap")
        breaker.force_open()
        handler = Recorder(ok(QUOTES_PAYLOAD))
        oracle = make_oracle(handler, breaker)

        with pytest.raises(CircuitBreakerOpen):
            oracle.get_historical_quotes([1], count=24, interval="hourly")

        assert handler.requests == []


# =============================================================================
# TIME BUDGET
# =============================================================================

class TestTimeBudget:

    def test_no_retry_when_backoff_would_cross_budget(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(CoinMarketCapOracle, "RETRY_MIN_WAIT", 5)
        monkeypatch.setattr(CoinMarketCapOracle, "RETRY_MAX_WAIT", 5)
        handler = Recorder(httpx.Response(503))
        client = httpx.Client(base_url="https://cmc.test", transport=httpx.MockTransport(handler))
        oracle = CoinMarketCapOracle(api_key="secret", client=client, timeout=1)

        with pytest.raises(ProviderUnavailableError):
            oracle.get_current_quotes([1])

        assert len(handler.requests) == 1

    def test_attempt_timeout_never_exceeds_budget(self):
        handler = Recorder(ok(OHLCV_PAYLOAD))
        client = httpx.Client(base_url="https://cmc.test", transport=httpx.MockTransport(handler))
        oracle = CoinMarketCapOracle(api_key="secret", client=client, history_timeout=2.5)

        oracle.get_historical_quotes([1], count=3, interval="daily")

        read_timeout = handler.requests[0].extensions["timeout"]["read"]
        assert 0 < read_timeout <= 2.5
