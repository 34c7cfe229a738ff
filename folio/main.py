# folio/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from folio.config import settings
from folio.database import check_database_health
from folio.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_HEALTH,
)
from folio.routers import history_router, holdings_router, transactions_router
from folio.schemas.common import ErrorDetail, ValidationErrorDetail
from folio.services.exceptions import (
    ServiceError,
    ValidationError,
    InvalidPeriodError,
    InsufficientQuantityError,
    NotFoundError,
    AuthenticationError,
    MarketDataError,
    RateLimitError,
    CircuitBreakerOpen,
)
from folio.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()

# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Crypto portfolio tracking: FIFO cost basis, live holdings and value history",
    version="0.1.0",
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Attach limiter to app state (required by slowapi)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# Outermost, so every log line of the request carries the ID
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service-layer exceptions carry no HTTP knowledge; they are mapped here.
# Starlette picks the handler of the most specific class in the MRO.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error_response(
        status_code: int,
        error: str,
        message: str,
        details: dict | None = None,
        headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(error=error, message=message, details=details).model_dump(),
        headers=headers,
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Portfolio or transaction missing, or owned by someone else (404)."""
    logger.warning(f"{exc.resource_type or 'Resource'} not found: {exc.resource_id}")
    return _error_response(
        404,
        type(exc).__name__,
        str(exc),
        details={"resource_type": exc.resource_type, "resource_id": exc.resource_id},
    )


@app.exception_handler(InvalidPeriodError)
async def invalid_period_handler(request: Request, exc: InvalidPeriodError) -> JSONResponse:
    """Unsupported history period (400)."""
    logger.warning(f"Invalid period: {exc.period}")
    return _error_response(
        400,
        "InvalidPeriodError",
        str(exc),
        details={"period": exc.period, "valid_options": list(exc.valid_periods)},
    )


@app.exception_handler(InsufficientQuantityError)
async def insufficient_quantity_handler(
    request: Request, exc: InsufficientQuantityError
) -> JSONResponse:
    """Sell (or buy deletion) that the ledger cannot cover (400)."""
    logger.warning(f"Insufficient quantity: {exc}")
    return _error_response(
        400,
        "InsufficientQuantityError",
        str(exc),
        details={
            "asset_symbol": exc.asset_symbol,
            "requested": str(exc.requested),
            "available": str(exc.available),
        },
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return _error_response(
        400,
        "ValidationError",
        str(exc),
        details={"field": exc.field} if exc.field else None,
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(
    request: Request, exc: AuthenticationError
) -> JSONResponse:
    """Handle authentication errors (401)."""
    logger.warning(f"Authentication error: {exc}")
    return _error_response(
        401,
        type(exc).__name__,
        str(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1  # Round up
    return _error_response(
        503,
        "CircuitBreakerOpen",
        f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
        details={"breaker_name": exc.breaker_name, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RateLimitError)
async def provider_rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Price provider rate limit exceeded (429)."""
    logger.warning(f"Provider rate limit exceeded: {exc}")
    return _error_response(
        429,
        "RateLimitError",
        str(exc),
        details={"retry_after": exc.retry_after} if exc.retry_after else None,
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    """Price provider failure that reached the API layer (502)."""
    logger.error(f"Market data error: {exc}")
    return _error_response(
        502,
        type(exc).__name__,
        str(exc),
        details={"provider": exc.provider} if exc.provider else None,
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return _error_response(500, "ServiceError", str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Convert FastAPI's default {"detail": "..."} body to ErrorDetail.
    """
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        403: "ForbiddenError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    return _error_response(
        exc.status_code,
        error_types.get(exc.status_code, "HTTPError"),
        str(exc.detail) if exc.detail else "An error occurred",
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request body or query failed Pydantic validation (422)."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(details=errors).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(holdings_router)  # /portfolios/{id}/holdings, /portfolios/{id}/overview, /holdings
app.include_router(history_router)  # /portfolios/{id}/history, /history
app.include_router(transactions_router)  # /portfolios/{id}/transactions, /transactions/{id}


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    """API root - returns basic application info."""
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request):
    """
    Health of every dependency.

    **Response Status Codes:**
    - 200: Healthy, or degraded because the price provider's breaker is open
    - 503: Database unreachable; do not route traffic here

    Holdings and history stay available while the provider is down
    (values fall back to 0 or current prices), so the provider is
    non-critical.
    """
    from folio.dependencies import get_price_oracle

    checks = {}
    overall_status = "healthy"

    database = check_database_health()
    checks["database"] = {**database, "critical": True}
    if database["status"] != "healthy":
        overall_status = "unhealthy"

    oracle = get_price_oracle()
    if oracle.is_available():
        checks["price_provider"] = {"status": "healthy", "critical": False, "provider": oracle.name}
    else:
        checks["price_provider"] = {"status": "unhealthy", "critical": False, "provider": oracle.name}
        if overall_status == "healthy":
            overall_status = "degraded"

    response_data = {"status": overall_status, "checks": checks}

    if overall_status == "unhealthy":
        return JSONResponse(status_code=503, content=response_data)

    return response_data


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """
    Liveness probe. Always 200 while the process is running; does not
    check dependencies.
    """
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request):
    """
    Readiness probe. 503 while the database is unreachable.
    """
    if check_database_health()["status"] != "healthy":
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "error": "Database unavailable"},
        )
    return {"status": "ready"}
