# folio/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

Every request gets an ID that is stored in context (so each log record
carries it) and echoed back in the X-Correlation-ID response header.

Correlation ID Sources (in order of precedence):
1. X-Correlation-ID header
2. X-Request-ID header
3. Generated UUID4

Client Usage:
    curl -H "X-Correlation-ID: my-trace-123" http://localhost:8000/holdings
    # X-Correlation-ID: my-trace-123
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from folio.utils.context import set_correlation_id, clear_correlation_id

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Upper bound for client-supplied IDs; longer values are replaced
MAX_CORRELATION_ID_LENGTH = 128


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Assigns a correlation ID to each request and returns it in the response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        correlation_id = self._get_correlation_id(request)
        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()

    @staticmethod
    def _get_correlation_id(request: Request) -> str:
        for header in (CORRELATION_ID_HEADER, REQUEST_ID_HEADER):
            value = request.headers.get(header, "").strip()
            if value and len(value) <= MAX_CORRELATION_ID_LENGTH:
                return value
        return str(uuid.uuid4())
