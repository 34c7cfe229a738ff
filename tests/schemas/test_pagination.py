# tests/schemas/test_pagination.py
"""
Tests for PaginationMeta computed fields.
"""

import pytest
from pydantic import ValidationError

from folio.schemas.common import PaginationMeta


class TestPaginationMeta:

    @pytest.mark.parametrize("skip,limit,expected_page", [
        (0, 10, 1),
        (10, 10, 2),
        (25, 10, 3),  # skip not aligned to limit
        (90, 10, 10),
    ])
    def test_page(self, skip: int, limit: int, expected_page: int):
        assert PaginationMeta.create(total=100, skip=skip, limit=limit).page == expected_page

    @pytest.mark.parametrize("total,limit,expected_pages", [
        (100, 10, 10),
        (101, 10, 11),
        (5, 10, 1),
        (10, 10, 1),
        (0, 10, 1),
    ])
    def test_pages(self, total: int, limit: int, expected_pages: int):
        assert PaginationMeta.create(total=total, skip=0, limit=limit).pages == expected_pages

    def test_first_page_flags(self):
        meta = PaginationMeta.create(total=30, skip=0, limit=10)

        assert meta.has_next is True
        assert meta.has_previous is False

    def test_last_page_flags(self):
        meta = PaginationMeta.create(total=30, skip=20, limit=10)

        assert meta.has_next is False
        assert meta.has_previous is True

    def test_skip_beyond_total(self):
        meta = PaginationMeta.create(total=5, skip=50, limit=10)

        assert meta.has_next is False
        assert meta.page == 6

    @pytest.mark.parametrize("kwargs", [
        {"total": -1, "skip": 0, "limit": 10},
        {"total": 0, "skip": -1, "limit": 10},
        {"total": 0, "skip": 0, "limit": 0},
    ])
    def test_rejects_invalid_values(self, kwargs: dict):
        with pytest.raises(ValidationError):
            PaginationMeta(**kwargs)

    def test_serialization_includes_computed_fields(self):
        dumped = PaginationMeta.create(total=45, skip=10, limit=10).model_dump()

        assert dumped == {
            "total": 45,
            "skip": 10,
            "limit": 10,
            "page": 2,
            "pages": 5,
            "has_next": True,
            "has_previous": True,
        }
