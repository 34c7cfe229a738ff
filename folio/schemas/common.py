# folio/schemas/common.py
"""
Response shapes shared by every router.

- JsonDecimal: exact Decimal in Python, plain number in JSON
- ErrorDetail / ValidationErrorDetail: bodies built by the exception
  handlers in main.py
- PaginationMeta: offset pagination block of list responses
"""

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer, computed_field

# Decimal in Python mode, number in JSON mode
JsonDecimal = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


# =============================================================================
# ERRORS
# =============================================================================

class ErrorDetail(BaseModel):
    """Body of every 4xx/5xx response except request validation."""

    error: str = Field(..., description="Exception name, e.g. 'PortfolioNotFoundError'")
    message: str = Field(..., description="Human-readable explanation")
    details: dict | None = Field(default=None, description="Structured context, when there is any")


class ValidationErrorDetail(BaseModel):
    """Body of a 422: one entry per failing field ({field, message, type})."""

    error: str = "ValidationError"
    message: str = "Request validation failed"
    details: list[dict]


# =============================================================================
# PAGINATION
# =============================================================================

class PaginationMeta(BaseModel):
    """
    Offset pagination block.

    `page` is 1-based and derived from skip // limit, so an unaligned skip
    reports the page it falls in. `pages` is at least 1, even for an empty
    result.

    Usage:
        rows, total = ledger.list_portfolio_transactions(db, portfolio_id, limit, skip)
        PaginationMeta.create(total=total, skip=skip, limit=limit)
    """

    total: int = Field(..., ge=0, description="Rows matching the query")
    skip: int = Field(..., ge=0, description="Rows skipped (offset)")
    limit: int = Field(..., ge=1, description="Page size")

    @computed_field
    @property
    def page(self) -> int:
        return self.skip // self.limit + 1

    @computed_field
    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.limit))

    @computed_field
    @property
    def has_next(self) -> bool:
        return self.skip + self.limit < self.total

    @computed_field
    @property
    def has_previous(self) -> bool:
        return self.skip > 0

    @classmethod
    def create(cls, total: int, skip: int, limit: int) -> "PaginationMeta":
        return cls(total=total, skip=skip, limit=limit)
