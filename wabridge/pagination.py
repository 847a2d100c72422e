"""Contact pagination for the inline contact picker.

Stateless on purpose: callers pass the full, freshly fetched contact
list every time. If chats arrive between two "Next" presses the same
page index can show different rows; that drift is accepted.
"""

from dataclasses import dataclass
from typing import Sequence

DEFAULT_PAGE_SIZE = 8


@dataclass
class Page:
    rows: list
    has_prev: bool
    has_next: bool
    page_index: int


def page(items: Sequence, page_size: int = DEFAULT_PAGE_SIZE, page_index: int = 0) -> Page:
    """Return window `page_index` of `items`, `page_size` rows per page."""
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    if page_index < 0:
        raise ValueError("page_index must be >= 0")
    start = page_index * page_size
    end = start + page_size
    return Page(
        rows=list(items[start:end]),
        has_prev=page_index > 0,
        has_next=end < len(items),
        page_index=page_index,
    )


def page_count(total: int, page_size: int = DEFAULT_PAGE_SIZE) -> int:
    """Number of pages needed for total items (at least 1)."""
    return max(1, -(-total // page_size))
