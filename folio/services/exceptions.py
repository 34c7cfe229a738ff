# folio/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The application layer (main.py) is responsible for mapping these to HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InvalidPeriodError
    │   └── InsufficientQuantityError
    ├── NotFoundError
    │   ├── PortfolioNotFoundError
    │   └── TransactionNotFoundError
    ├── AuthenticationError
    │   ├── InvalidCredentialsError
    │   └── TokenExpiredError
    └── MarketDataError
        ├── ProviderUnavailableError
        └── RateLimitError

    CircuitBreakerOpen (from circuit_breaker module)
        - Raised when circuit breaker is open and blocking requests

Data-quality problems (over-sells, missing quotes, provider outages) are
never raised to callers of the valuation services. They are recovered
locally and logged.
"""

from decimal import Decimal


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    This is for programmatic validation errors (invalid parameters, ledger
    rules), NOT for request body validation which is handled by Pydantic.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidPeriodError(ValidationError):
    """
    Raised when an unsupported history period is requested.

    Valid periods are: 24h, 7d, 30d
    """

    def __init__(self, period: str, valid_periods: tuple[str, ...] = ("24h", "7d", "30d")) -> None:
        self.period = period
        self.valid_periods = valid_periods
        super().__init__(
            f"Invalid period: '{period}'. Valid options: {', '.join(valid_periods)}",
            field="period"
        )


class InsufficientQuantityError(ValidationError):
    """
    Raised when a sell would exceed the quantity held at its timestamp.

    Attributes:
        asset_symbol: Symbol of the asset being sold
        requested: Quantity the sell asked for
        available: Quantity held as of the sell's occurred_at
    """

    def __init__(self, asset_symbol: str, requested: Decimal, available: Decimal) -> None:
        self.asset_symbol = asset_symbol
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot sell {requested} {asset_symbol}. Only {available} available at that time.",
            field="quantity"
        )


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Portfolio", "Transaction")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class PortfolioNotFoundError(NotFoundError):
    """
    Raised when a portfolio cannot be found for the requesting user.

    Portfolios owned by someone else are reported the same way, so callers
    cannot probe for the existence of other users' portfolios.

    Attributes:
        portfolio_id: ID of the portfolio that was not found
    """

    def __init__(self, portfolio_id: int) -> None:
        self.portfolio_id = portfolio_id
        super().__init__(
            f"Portfolio {portfolio_id} not found",
            resource_type="Portfolio",
            resource_id=portfolio_id,
        )


class TransactionNotFoundError(NotFoundError):
    """
    Raised when a transaction cannot be found for the requesting user.

    Attributes:
        transaction_id: ID of the transaction that was not found
    """

    def __init__(self, transaction_id: int) -> None:
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction {transaction_id} not found",
            resource_type="Transaction",
            resource_id=transaction_id,
        )


# =============================================================================
# AUTHENTICATION ERRORS
# =============================================================================


class AuthenticationError(ServiceError):
    """Base exception for authentication failures (HTTP 401)."""
    pass


class InvalidCredentialsError(AuthenticationError):
    """Raised when a bearer token is malformed, tampered with or of the wrong type."""
    pass


class TokenExpiredError(AuthenticationError):
    """Raised when a bearer token has expired."""
    pass


# =============================================================================
# MARKET DATA PROVIDER ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for price provider failures.

    Also raised directly for non-retryable failures such as an unexpected
    status code or a malformed payload.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when a price provider is temporarily unavailable.

    Examples:
    - Network timeout
    - Server errors (500, 502, 503)

    This is a retryable error.
    """

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class RateLimitError(MarketDataError):
    """
    Raised when the provider's rate limit has been exceeded.

    This is a retryable error (with backoff).

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


# =============================================================================
# CIRCUIT BREAKER (re-exported for convenience)
# =============================================================================

# Re-export CircuitBreakerOpen for easier importing alongside other exceptions
from folio.services.circuit_breaker import CircuitBreakerOpen

__all__ = [
    # Base
    "ServiceError",
    # Validation
    "ValidationError",
    "InvalidPeriodError",
    "InsufficientQuantityError",
    # Not Found
    "NotFoundError",
    "PortfolioNotFoundError",
    "TransactionNotFoundError",
    # Authentication
    "AuthenticationError",
    "InvalidCredentialsError",
    "TokenExpiredError",
    # Market Data
    "MarketDataError",
    "ProviderUnavailableError",
    "RateLimitError",
    # Circuit Breaker
    "CircuitBreakerOpen",
]
