"""Ordering of display rows.

Python's ``sorted`` is stable, so rows with equal keys keep the order the
grouping produced.  ``reverse=True`` preserves that stability as well.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from reconreview.services.review.confidence import (
    effective_confidence,
    effective_transaction,
    is_effectively_validated,
    validation_ordinal,
)
from reconreview.services.review.filters import DisplayItem, MultipleItem

SortDirection = Literal["asc", "desc"]

SORT_FIELDS: tuple[str, ...] = ("type", "confidence", "validated", "amount", "date")

SORT_LABELS: dict[Optional[str], str] = {
    None: "Tri par défaut",
    "confidence": "Confiance",
    "type": "Type de correspondance",
    "validated": "Statut de validation",
    "amount": "Montant",
    "date": "Date",
}


@dataclass(frozen=True)
class SortConfig:
    """Active sort: ``field=None`` is the default "validated last" order."""

    field: Optional[str] = None
    direction: SortDirection = "desc"

    def __post_init__(self) -> None:
        if self.field is not None and self.field not in SORT_FIELDS:
            raise ValueError(f"Unknown sort field: {self.field!r}")
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"Unknown sort direction: {self.direction!r}")

    @property
    def label(self) -> str:
        """French label shown next to the sort selector."""
        return SORT_LABELS[self.field]

    def describe(self) -> str:
        if self.field is None:
            return "Aucun"
        return f"{self.field} ({self.direction})"


def next_sort_config(current: SortConfig, field: str) -> SortConfig:
    """Column-header click cycle: asc, then desc, then back to default."""
    if current.field != field:
        return SortConfig(field=field, direction="asc")
    if current.direction == "asc":
        return SortConfig(field=field, direction="desc")
    return SortConfig(field=None, direction="asc")


TransactionLookup = Callable[[Any], Optional[Any]]


def _confidence_key(item: DisplayItem, transaction_of: TransactionLookup) -> float:
    if isinstance(item, MultipleItem):
        return -1
    return effective_confidence(item.match, transaction_of(item.match))


def _validated_key(item: DisplayItem, transaction_of: TransactionLookup) -> int:
    if isinstance(item, MultipleItem):
        return validation_ordinal(None, None)
    return validation_ordinal(item.match, transaction_of(item.match))


def _amount_key(item: DisplayItem, transaction_of: TransactionLookup) -> float:
    # Every row of a group shares the same invoice, multiples included.
    if item.invoice is None:
        return 0
    return item.invoice.montant_ttc or 0


def _date_key(item: DisplayItem, transaction_of: TransactionLookup) -> str:
    if isinstance(item, MultipleItem):
        return ""
    transaction = effective_transaction(item.match, transaction_of(item.match))
    if transaction is None:
        return ""
    return transaction.date_comptable or ""


def _type_key(item: DisplayItem, transaction_of: TransactionLookup) -> str:
    return item.sort_value or ""


_KEYS: dict[str, Callable[[DisplayItem, TransactionLookup], Any]] = {
    "type": _type_key,
    "confidence": _confidence_key,
    "validated": _validated_key,
    "amount": _amount_key,
    "date": _date_key,
}


def _validated_bucket(item: DisplayItem, transaction_of: TransactionLookup) -> int:
    if isinstance(item, MultipleItem):
        return 0
    return 1 if is_effectively_validated(item.match, transaction_of(item.match)) else 0


def sort_items(
    items: list[DisplayItem],
    config: SortConfig,
    transaction_of: TransactionLookup,
) -> list[DisplayItem]:
    """Return a new list of *items* ordered according to *config*.

    Default order (``config.field is None``): rows that are validated with
    a resolved transaction always come last, whatever the direction; each
    bucket is ordered by effective confidence in ``config.direction``.
    """
    descending = config.direction == "desc"

    if config.field is None:
        by_confidence = sorted(
            items,
            key=lambda item: _confidence_key(item, transaction_of),
            reverse=descending,
        )
        return sorted(by_confidence, key=lambda item: _validated_bucket(item, transaction_of))

    key = _KEYS[config.field]
    return sorted(items, key=lambda item: key(item, transaction_of), reverse=descending)
