# folio/middleware/rate_limit.py
"""
Rate limiting with slowapi.

Priced endpoints (holdings, overview, history) fan out to CoinMarketCap on
a cache miss, so they get their own limit to protect the provider quota.

Key by: Client IP (X-Forwarded-For only from trusted proxies)
Storage: In-memory (single instance)

Usage:
    from folio.middleware.rate_limit import limiter, RATE_LIMIT_PRICED

    @router.get("/holdings")
    @limiter.limit(RATE_LIMIT_PRICED)
    def list_holdings(request: Request, ...):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from folio.config import settings
from folio.services.constants import (
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_WRITE,
    RATE_LIMIT_PRICED,
    RATE_LIMIT_HEALTH,
)

logger = logging.getLogger(__name__)

# Seconds advertised in Retry-After when a limit is hit
RETRY_AFTER_SECONDS = 60


def _is_trusted_proxy(request: Request) -> bool:
    """True when forwarded headers from this peer may be believed."""
    if settings.trust_proxy_headers:
        return True
    return get_remote_address(request) in settings.trusted_proxy_ips


def _get_client_ip(request: Request) -> str:
    """
    Client address used as the rate limit key.

    X-Forwarded-For / X-Real-IP are honored only from trusted proxies so a
    client cannot pick its own bucket.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_client_ip,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=not settings.is_test,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the standard error format, with a Retry-After header."""
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"
    logger.warning(f"Rate limit exceeded for {_get_client_ip(request)}: {limit_info}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {"retry_after": RETRY_AFTER_SECONDS},
        },
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


__all__ = [
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_WRITE",
    "RATE_LIMIT_PRICED",
    "RATE_LIMIT_HEALTH",
]
