"""
Pagination policy for explorer listings
Clamps client-supplied page parameters and maps them onto indexer ranges
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 40


@dataclass(frozen=True)
class PageWindow:
    """1-indexed page with a bounded page size"""

    page_number: int
    page_size: int

    @property
    def offset(self) -> int:
        """0-indexed page number used by the indexer"""
        return max(self.page_number - 1, 0)


@dataclass(frozen=True)
class HeightRange:
    """Inclusive block height range"""

    start_height: int
    end_height: int

    @property
    def is_empty(self) -> bool:
        return self.end_height < self.start_height


def _positive_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(str(value).strip(), 10)
    except ValueError:
        return None
    return number if number > 0 else None


def parse_page_window(
    page: Any = None,
    page_size: Any = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> PageWindow:
    """Normalize raw query values; never raises."""
    page_number = _positive_int(page) or 1
    size = _positive_int(page_size) or default_page_size
    return PageWindow(page_number=page_number, page_size=min(size, max_page_size))


def block_height_range(tip_height: int, window: PageWindow) -> HeightRange:
    """
    Heights shown on a page of the block listing, newest page first.

    Page 1 ends at the tip. The lower bound never goes below height 1, so
    the genesis block is not part of range listings.
    """
    top_of_previous = tip_height - window.page_size * window.page_number
    return HeightRange(
        start_height=max(top_of_previous + 1, 1),
        end_height=top_of_previous + window.page_size,
    )
