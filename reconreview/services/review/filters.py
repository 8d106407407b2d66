"""Search and type filtering over invoice groups.

Produces the display rows of the review table.  A row is either a
:class:`SingleItem` (one match for the invoice) or a :class:`MultipleItem`
(several candidate matches waiting for a decision).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from reconreview.core.logging import get_logger
from reconreview.services.review.confidence import MANUAL, MULTIPLE
from reconreview.services.review.grouping import InvoiceGroup

logger = get_logger(__name__)

_MULTIPLE_SEARCH_WORDS = ("multiple", "correspondances multiples")


@dataclass
class SingleItem:
    invoice_id: str
    invoice: Optional[Any]
    match: Any
    sort_value: str
    type: str = field(default="single", init=False)


@dataclass
class MultipleItem:
    invoice_id: str
    invoice: Optional[Any]
    matches: list[Any]
    sort_value: str = field(default=MULTIPLE, init=False)
    type: str = field(default="multiple", init=False)


DisplayItem = Union[SingleItem, MultipleItem]


def _contains(value: Optional[str], term: str) -> bool:
    return bool(value) and term in value.lower()


def apply_search(
    groups: dict[str, InvoiceGroup],
    search_term: str,
    transaction_of: Callable[[Any], Optional[Any]],
) -> dict[str, InvoiceGroup]:
    """Keep the groups (and, for singles, the matches) hit by *search_term*.

    * ``ref`` / ``tiers`` of the invoice hit -> the whole group is kept.
    * Otherwise a match is kept when its transaction's ``libelles`` or
      ``detailsMouvement``, or its ``matchType``, contains the term.
    * A multiple group is also kept when the term is part of "multiple" or
      "correspondances multiples", even without any match hit.

    Kept multiple groups always carry their full original match list.
    The ``is_originally_multiple`` flag is copied, never recomputed.
    """
    if not search_term:
        return groups

    term = search_term.lower()
    generic_multiple_hit = any(term in word for word in _MULTIPLE_SEARCH_WORDS)
    filtered: dict[str, InvoiceGroup] = {}

    for invoice_id, group in groups.items():
        invoice = group.invoice
        invoice_hit = invoice is not None and (
            _contains(invoice.ref, term) or _contains(invoice.tiers, term)
        )

        hits = []
        for match in group.matches:
            if invoice_hit:
                hits.append(match)
                continue
            transaction = transaction_of(match)
            if (
                (transaction is not None and _contains(transaction.libelles, term))
                or (transaction is not None and _contains(transaction.details_mouvement, term))
                or _contains(match.match_type, term)
            ):
                hits.append(match)

        if hits or (group.is_originally_multiple and generic_multiple_hit):
            filtered[invoice_id] = InvoiceGroup(
                invoice_id=invoice_id,
                invoice=invoice,
                matches=list(group.matches) if group.is_originally_multiple else hits,
                is_originally_multiple=group.is_originally_multiple,
            )

    logger.debug(
        "Search %r kept %d of %d groups", search_term, len(filtered), len(groups)
    )
    return filtered


def available_filter_types(groups: dict[str, InvoiceGroup]) -> list[str]:
    """Filter types offered for the current (unfiltered) data.

    Match types of single groups, plus ``MULTIPLE`` if any group is
    multiple, plus ``MANUAL`` if any single match is manual.
    """
    types: list[str] = []
    has_manual = False
    for group in groups.values():
        if group.is_originally_multiple:
            candidate = MULTIPLE
        else:
            match = group.matches[0]
            has_manual = has_manual or match.is_manual_match
            candidate = match.match_type
        if candidate not in types:
            types.append(candidate)
    if has_manual:
        types.append(MANUAL)
    return types


def is_unfiltered(selected_filters: Iterable[str], available: list[str]) -> bool:
    """No selection and a full selection both mean "all types"."""
    selected = set(selected_filters)
    return not selected or len(selected) == len(available)


def _single_selected(match: Any, selected: set[str]) -> bool:
    if match.is_manual_match:
        return MANUAL in selected
    return match.match_type in selected


def build_display_items(
    groups: dict[str, InvoiceGroup],
    selected_filters: Iterable[str],
    available: list[str],
) -> list[DisplayItem]:
    """Apply the type filter and turn surviving groups into display rows."""
    selected = set(selected_filters)
    show_all = is_unfiltered(selected, available)
    items: list[DisplayItem] = []

    for invoice_id, group in groups.items():
        if group.is_originally_multiple:
            if show_all or MULTIPLE in selected:
                items.append(
                    MultipleItem(
                        invoice_id=invoice_id,
                        invoice=group.invoice,
                        matches=list(group.matches),
                    )
                )
            continue

        if not group.matches:
            continue
        match = group.matches[0]
        if show_all or _single_selected(match, selected):
            items.append(
                SingleItem(
                    invoice_id=invoice_id,
                    invoice=group.invoice,
                    match=match,
                    sort_value=MANUAL if match.is_manual_match else match.match_type,
                )
            )

    return items


def filter_type_counts(
    groups: dict[str, InvoiceGroup],
    available: list[str],
) -> dict[str, int]:
    """How many unfiltered groups each available filter type would select."""
    counts = {filter_type: 0 for filter_type in available}
    for group in groups.values():
        if group.is_originally_multiple:
            if MULTIPLE in counts:
                counts[MULTIPLE] += 1
            continue
        match = group.matches[0]
        if match.is_manual_match:
            if MANUAL in counts:
                counts[MANUAL] += 1
        elif match.match_type in counts:
            counts[match.match_type] += 1
    return counts
