"""
Unit tests for offset pagination.
"""

import pytest
from pydantic import ValidationError

from billsync.infrastructure.pagination import OffsetPagination, PaginationParams, paginate


class TestOffsetPagination:
    """Test cases for OffsetPagination."""

    def setup_method(self):
        """Set up test fixtures."""
        self.paginator = OffsetPagination(default_page_size=2, max_page_size=3)
        self.items = ["a", "b", "c", "d", "e"]

    def test_first_page(self):
        page, meta = self.paginator.paginate(self.items)

        assert page == ["a", "b"]
        assert meta.total_items == 5
        assert meta.total_pages == 3
        assert meta.has_next is True
        assert meta.has_previous is False

    def test_last_page(self):
        page, meta = self.paginator.paginate(self.items, page=3)

        assert page == ["e"]
        assert meta.has_next is False
        assert meta.has_previous is True

    def test_page_past_the_end_is_empty(self):
        page, meta = self.paginator.paginate(self.items, page=9)

        assert page == []
        assert meta.page == 9

    def test_page_size_is_capped(self):
        page, meta = self.paginator.paginate(self.items, page_size=50)

        assert page == ["a", "b", "c"]
        assert meta.limit == 3

    def test_empty_sequence(self):
        page, meta = self.paginator.paginate([])

        assert page == []
        assert meta.total_pages == 0
        assert meta.has_next is False


class TestPaginate:
    """Test cases for the paginate helper."""

    def test_without_params_returns_everything(self):
        items, meta = paginate([1, 2, 3], PaginationParams())

        assert items == [1, 2, 3]
        assert meta is None

    def test_limit_alone_starts_at_first_page(self):
        items, meta = paginate(list(range(10)), PaginationParams(limit=4))

        assert items == [0, 1, 2, 3]
        assert meta.page == 1
        assert meta.total_pages == 3

    def test_page_alone_uses_default_size(self):
        items, meta = paginate(list(range(60)), PaginationParams(page=2))

        assert items == list(range(50, 60))
        assert meta.limit == 50

    def test_rejects_bad_values(self):
        with pytest.raises(ValidationError):
            PaginationParams(page=0)
        with pytest.raises(ValidationError):
            PaginationParams(limit=101)
