"""
Offset pagination for list endpoints.
Pages are taken from the ordered results the backing store returns.
"""

from dataclasses import dataclass
from math import ceil
from typing import List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, Field

T = TypeVar('T')


@dataclass
class PaginationMetadata:
    """Pagination metadata for responses."""
    page: int
    limit: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


class OffsetPagination:
    """
    Page/limit pagination over an ordered sequence.
    Pages are 1-based; a page past the end is empty.
    """

    def __init__(self, default_page_size: int = 50, max_page_size: int = 100):
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def paginate(
        self,
        items: Sequence[T],
        page: Optional[int] = 1,
        page_size: Optional[int] = None
    ) -> Tuple[List[T], PaginationMetadata]:
        """
        Slice one page out of ``items``.

        Returns:
            Tuple of (page items, pagination metadata)
        """
        if page_size is None:
            page_size = self.default_page_size
        page_size = max(1, min(page_size, self.max_page_size))
        page = max(1, page or 1)

        total_items = len(items)
        total_pages = ceil(total_items / page_size)
        offset = (page - 1) * page_size

        metadata = PaginationMetadata(
            page=page,
            limit=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        )
        return list(items[offset:offset + page_size]), metadata


class PaginationParams(BaseModel):
    """Common pagination parameters. Without either one the full list is returned."""
    page: Optional[int] = Field(None, ge=1, description="Page number")
    limit: Optional[int] = Field(None, ge=1, le=100, description="Items per page")

    @property
    def requested(self) -> bool:
        return self.page is not None or self.limit is not None


offset_paginator = OffsetPagination()


def paginate(items: Sequence[T], params: Optional[PaginationParams]) -> Tuple[List[T], Optional[PaginationMetadata]]:
    """Apply pagination when it was requested; otherwise return everything without metadata."""
    if params is None or not params.requested:
        return list(items), None
    return offset_paginator.paginate(items, params.page, params.limit)
