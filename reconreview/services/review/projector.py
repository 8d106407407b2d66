"""Review table projection: grouping, filters, sort and paging composed.

Every call starts again from a freshly fetched snapshot; nothing derived
here is cached between requests, so a reload after a mutation always
reflects what the remote store holds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reconreview.core.logging import get_logger
from reconreview.services.review.filters import (
    DisplayItem,
    apply_search,
    available_filter_types,
    build_display_items,
    filter_type_counts,
)
from reconreview.services.review.grouping import (
    InvoiceGroup,
    SnapshotIndex,
    group_matches,
    invoices_with_multiple_matches,
    unmatched_invoices,
    unmatched_transactions,
)
from reconreview.services.review.pagination import Page, ViewState, paginate
from reconreview.services.review.sorting import sort_items

logger = get_logger(__name__)


@dataclass
class ProjectedView:
    """Everything the review table and the export need for one snapshot.

    Attributes:
        items: Filtered and sorted rows, not paginated (what the export uses).
        page: The slice of ``items`` for the requested page.
        available_filters: Filter types offered for the unfiltered data.
        filter_counts: Unfiltered group count per available filter type.
        total_groups: Number of invoices that have at least one match.
        groups: Unfiltered invoice groups keyed by invoice id.
    """

    items: list[DisplayItem]
    page: Page[DisplayItem]
    available_filters: list[str]
    filter_counts: dict[str, int]
    total_groups: int
    groups: dict[str, InvoiceGroup] = field(default_factory=dict)

    @property
    def multiple_groups(self) -> list[InvoiceGroup]:
        return invoices_with_multiple_matches(self.groups)


def filtered_sorted_items(
    groups: dict[str, InvoiceGroup],
    index: SnapshotIndex,
    state: ViewState,
    available: list[str],
) -> list[DisplayItem]:
    searched = apply_search(groups, state.search_term, index.transaction_of)
    items = build_display_items(searched, state.selected_filters, available)
    return sort_items(items, state.sort, index.transaction_of)


def project(details: Any, state: ViewState) -> ProjectedView:
    """Project *details* into the review table described by *state*."""
    index = SnapshotIndex.from_details(details)
    groups = group_matches(details.matches, index.invoice_of)
    available = available_filter_types(groups)

    items = filtered_sorted_items(groups, index, state, available)
    page = paginate(items, state.current_page, state.items_per_page)

    logger.info(
        "Projected reconciliation %s: groups=%d rows=%d page=%d/%d",
        details.id,
        len(groups),
        len(items),
        state.current_page,
        page.total_pages,
    )

    return ProjectedView(
        items=items,
        page=page,
        available_filters=available,
        filter_counts=filter_type_counts(groups, available),
        total_groups=len(groups),
        groups=groups,
    )


def unmatched(details: Any) -> dict[str, list[Any]]:
    """Invoices and transactions still waiting for a pairing."""
    return {
        "invoices": unmatched_invoices(details.invoices, details.matches),
        "transactions": unmatched_transactions(details.transactions, details.matches),
    }
