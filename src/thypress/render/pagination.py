"""Pagination for the home list (``/`` and ``/page/<n>/``)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

POSTS_PER_PAGE = 10
ELLIPSIS = "..."

# Up to this many pages, every page number is listed.
_MAX_FULL_PAGES = 7


def total_pages(count: int, per_page: int = POSTS_PER_PAGE) -> int:
    """``ceil(count / per_page)``; an empty site still has one page."""
    return max(1, math.ceil(count / per_page))


def page_numbers(current: int, total: int) -> list[int | str]:
    """Page links with ``'...'`` sentinels for skipped runs.

        >>> page_numbers(1, 5)
        [1, 2, 3, 4, 5]
        >>> page_numbers(5, 8)
        [1, '...', 4, 5, 6, '...', 8]

    """
    if total <= _MAX_FULL_PAGES:
        return list(range(1, total + 1))

    pages: list[int | str] = [1]
    if current > 3:
        pages.append(ELLIPSIS)
    pages.extend(range(max(2, current - 1), min(total - 1, current + 1) + 1))
    if current < total - 2:
        pages.append(ELLIPSIS)
    pages.append(total)
    return pages


def page_url(number: int) -> str:
    return "/" if number <= 1 else f"/page/{number}/"


@dataclass(frozen=True, slots=True)
class Pagination:
    """Pagination state for one list page.

    Attributes:
        current_page: 1-based page number.
        total_pages: Total number of pages.
        pages: Page numbers and ellipsis sentinels to render.

    """

    current_page: int
    total_pages: int
    pages: tuple[int | str, ...]

    @classmethod
    def for_page(cls, current: int, count: int, per_page: int = POSTS_PER_PAGE) -> Pagination:
        total = total_pages(count, per_page)
        return cls(current, total, tuple(page_numbers(current, total)))

    @property
    def has_prev(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    def slice_bounds(self, per_page: int = POSTS_PER_PAGE) -> tuple[int, int]:
        start = (self.current_page - 1) * per_page
        return start, start + per_page

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "pages": list(self.pages),
            "has_prev": self.has_prev,
            "has_next": self.has_next,
            "prev_page": self.current_page - 1,
            "next_page": self.current_page + 1,
            "prev_url": page_url(self.current_page - 1) if self.has_prev else None,
            "next_url": page_url(self.current_page + 1) if self.has_next else None,
        }
