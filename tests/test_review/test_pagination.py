"""Unit tests for page slicing and view state transitions."""

from __future__ import annotations

import pytest

from reconreview.services.review.pagination import ViewState, paginate
from reconreview.services.review.sorting import SortConfig


class TestPaginate:
    """Tests for paginate()."""

    def test_first_page(self) -> None:
        page = paginate(list(range(25)), 1, 10)
        assert page.total_items == 25
        assert page.total_pages == 3
        assert page.start_index == 0
        assert page.end_index == 10
        assert page.items == list(range(10))

    def test_last_page_is_partial(self) -> None:
        page = paginate(list(range(25)), 3, 10)
        assert page.items == [20, 21, 22, 23, 24]
        assert page.end_index == 30

    @pytest.mark.parametrize("total,per_page", [(0, 10), (1, 1), (25, 10), (30, 10), (7, 3)])
    def test_pages_add_up_to_total(self, total, per_page) -> None:
        items = list(range(total))
        first = paginate(items, 1, per_page)
        sizes = [len(paginate(items, n, per_page).items) for n in range(1, first.total_pages + 1)]
        assert sum(sizes) == total

    def test_empty(self) -> None:
        page = paginate([], 1, 10)
        assert page.total_pages == 0
        assert page.items == []

    def test_page_past_the_end_is_empty(self) -> None:
        assert paginate(list(range(5)), 4, 10).items == []

    def test_rejects_zero_page_size(self) -> None:
        with pytest.raises(ValueError):
            paginate([1], 1, 0)


class TestViewState:
    """Changing any input sends the reader back to page 1."""

    @pytest.fixture
    def state(self) -> ViewState:
        state = ViewState()
        state.go_to_page(4)
        return state

    def test_search_resets_page(self, state) -> None:
        state.set_search("dupont")
        assert state.current_page == 1
        assert state.has_active_filters

    def test_filters_reset_page(self, state) -> None:
        state.set_filters(["MULTIPLE"])
        assert state.current_page == 1
        assert state.selected_filters == frozenset({"MULTIPLE"})

    def test_sort_resets_page(self, state) -> None:
        state.set_sort(SortConfig("amount", "asc"))
        assert state.current_page == 1

    def test_page_size_resets_page(self, state) -> None:
        state.set_items_per_page(50)
        assert state.current_page == 1

    def test_unchanged_inputs_keep_page(self, state) -> None:
        state.set_search("")
        state.set_filters([])
        state.set_sort(SortConfig())
        state.set_items_per_page(10)
        assert state.current_page == 4
        assert not state.has_active_filters

    def test_go_to_page_floors_at_one(self, state) -> None:
        state.go_to_page(0)
        assert state.current_page == 1
