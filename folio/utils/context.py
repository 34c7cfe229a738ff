# folio/utils/context.py
"""
Request-scoped context.

Holds the correlation ID of the request being served. contextvars keeps
the value isolated per request, both across threadpool workers and across
async tasks.

Usage:
    from folio.utils.context import get_correlation_id, set_correlation_id

    set_correlation_id("abc-123")      # middleware, start of request
    get_correlation_id()               # anywhere, returns "abc-123"
"""

from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Correlation ID of the current request, or None outside a request."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)
