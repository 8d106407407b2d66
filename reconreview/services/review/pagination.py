"""Page slicing and the review table's view state."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, Optional, Sequence, TypeVar

from reconreview.services.review.sorting import SortConfig

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    total_items: int
    total_pages: int
    start_index: int
    end_index: int
    items: list[T]


def paginate(items: Sequence[T], current_page: int, items_per_page: int) -> Page[T]:
    """Slice *items* for the 1-based *current_page*.

    ``end_index`` is the exclusive slice bound and may exceed
    ``total_items`` on the last page.
    """
    if items_per_page < 1:
        raise ValueError("items_per_page must be at least 1")
    total_items = len(items)
    total_pages = math.ceil(total_items / items_per_page)
    start_index = (max(current_page, 1) - 1) * items_per_page
    end_index = start_index + items_per_page
    return Page(
        total_items=total_items,
        total_pages=total_pages,
        start_index=start_index,
        end_index=end_index,
        items=list(items[start_index:end_index]),
    )


@dataclass
class ViewState:
    """Search / filter / sort / page inputs of the review table.

    Changing the search term, the filters, the sort or the page size
    sends the reader back to page 1.
    """

    search_term: str = ""
    selected_filters: frozenset[str] = field(default_factory=frozenset)
    sort: SortConfig = field(default_factory=SortConfig)
    current_page: int = 1
    items_per_page: int = 10

    def set_search(self, term: Optional[str]) -> None:
        term = term or ""
        if term != self.search_term:
            self.search_term = term
            self.current_page = 1

    def set_filters(self, filters) -> None:
        filters = frozenset(filters or ())
        if filters != self.selected_filters:
            self.selected_filters = filters
            self.current_page = 1

    def set_sort(self, sort: SortConfig) -> None:
        if sort != self.sort:
            self.sort = sort
            self.current_page = 1

    def set_items_per_page(self, items_per_page: int) -> None:
        if items_per_page != self.items_per_page:
            self.items_per_page = items_per_page
            self.current_page = 1

    def go_to_page(self, page: int) -> None:
        self.current_page = max(page, 1)

    @property
    def has_active_filters(self) -> bool:
        return bool(self.search_term) or bool(self.selected_filters)
