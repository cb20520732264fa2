# recipehub/pagination.py
from __future__ import annotations

from typing import Generic, List, Tuple, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 60


def clamp_window(limit: int | None, offset: int | None, *, default: int = DEFAULT_PAGE_SIZE, maximum: int = MAX_PAGE_SIZE) -> Tuple[int, int]:
    lim = default if limit is None else int(limit)
    lim = max(1, min(lim, maximum))
    off = max(0, int(offset or 0))
    return lim, off


class Page(BaseModel, Generic[T]):
    """
    One "load more" step. The client asks for the next page only while
    `has_more` is set; a short page ends the listing.
    """

    items: List[T] = Field(default_factory=list)
    offset: int = 0
    limit: int = DEFAULT_PAGE_SIZE
    has_more: bool = False
    next_offset: int = 0
    total: int | None = None

    @classmethod
    def from_rows(
        cls, items: List[T], *, limit: int, offset: int, total: int | None = None, fetched: int | None = None
    ) -> "Page[T]":
        # `fetched` is the raw row count when items were filtered after the query
        n = len(items) if fetched is None else fetched
        return cls(
            items=items,
            offset=offset,
            limit=limit,
            has_more=n == limit,
            next_offset=offset + n,
            total=total,
        )
