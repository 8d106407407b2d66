"""Grouping of raw matches by invoice.

The "multiple" classification of a group is decided here, once, from the
complete match list.  Search and type filters downstream narrow what is
shown but must never re-derive it, otherwise an invoice with three
candidates would turn into a "single" as soon as a search hid two of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from reconreview.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class InvoiceGroup:
    """All matches of one invoice.

    Attributes:
        invoice_id: The invoice every match in ``matches`` points to.
        invoice: The resolved invoice, or ``None`` if the snapshot lacks it.
        matches: Matches in their original order.
        is_originally_multiple: ``True`` when the *unfiltered* list had
            more than one match for this invoice.
    """

    invoice_id: str
    invoice: Optional[Any]
    matches: list[Any] = field(default_factory=list)
    is_originally_multiple: bool = False


class SnapshotIndex:
    """Id lookups over one reconciliation snapshot.

    Unknown ids resolve to ``None`` rather than raising; callers render
    ``"N/A"`` placeholders for them.
    """

    def __init__(self, invoices: Iterable[Any], transactions: Iterable[Any]) -> None:
        self.invoices: dict[str, Any] = {inv.id: inv for inv in invoices}
        self.transactions: dict[str, Any] = {t.id: t for t in transactions}

    @classmethod
    def from_details(cls, details: Any) -> "SnapshotIndex":
        return cls(details.invoices, details.transactions)

    def invoice_of(self, match: Any) -> Optional[Any]:
        return self.invoices.get(match.invoice_id)

    def transaction_of(self, match: Any) -> Optional[Any]:
        if not match.transaction_id:
            return None
        return self.transactions.get(match.transaction_id)


def group_matches(
    matches: Iterable[Any],
    invoice_of: Callable[[Any], Optional[Any]],
) -> dict[str, InvoiceGroup]:
    """Partition *matches* by ``invoice_id``.

    Groups keep the order in which their invoice first appears.  An
    invoice without any match never produces a group.
    """
    groups: dict[str, InvoiceGroup] = {}
    for match in matches:
        group = groups.get(match.invoice_id)
        if group is None:
            group = InvoiceGroup(invoice_id=match.invoice_id, invoice=invoice_of(match))
            groups[match.invoice_id] = group
        group.matches.append(match)

    for group in groups.values():
        group.is_originally_multiple = len(group.matches) > 1

    multiple = sum(1 for g in groups.values() if g.is_originally_multiple)
    logger.debug("Grouped matches: groups=%d multiple=%d", len(groups), multiple)
    return groups


def invoices_with_multiple_matches(groups: dict[str, InvoiceGroup]) -> list[InvoiceGroup]:
    return [g for g in groups.values() if g.is_originally_multiple]


def unmatched_invoices(invoices: Iterable[Any], matches: Iterable[Any]) -> list[Any]:
    """Invoices with no match, or whose first match has no usable transaction."""
    first_match: dict[str, Any] = {}
    for match in matches:
        first_match.setdefault(match.invoice_id, match)

    result = []
    for invoice in invoices:
        match = first_match.get(invoice.id)
        if match is None or match.match_type == "NONE" or not match.transaction_id:
            result.append(invoice)
    return result


def unmatched_transactions(transactions: Iterable[Any], matches: Iterable[Any]) -> list[Any]:
    """Transactions that no match refers to."""
    used = {m.transaction_id for m in matches if m.transaction_id}
    return [t for t in transactions if t.id not in used]
