"""Confidence and validation-status projection for a single match.

A match's raw ``confidence`` is never shown as-is: manual choices and
validated pairings count as certain, rejected or transaction-less ones as
zero.  The table, the sort engine and the Excel export all go through
:func:`effective_confidence` so the number never disagrees across them.
"""

from __future__ import annotations

from typing import Any, Optional

MANUAL = "MANUAL"
MULTIPLE = "MULTIPLE"

_MATCH_TYPE_LABELS: dict[str, str] = {
    "EXACT_REF": "Référence exacte",
    "EXACT_AMOUNT": "Montant exact",
    "REFINED_AMOUNT": "Montant raffiné",
    "SIMPLE_NAME": "Nom exact",
    "FUZZY_NAME": "Nom approchant",
    "COMBINED": "Combiné",
    "NONE": "Non appariée",
}

_VALIDATION_ORDINALS: dict[str, int] = {
    "VALIDATED": 3,
    "PENDING": 2,
    "REJECTED": 1,
}


def effective_confidence(match: Any, transaction: Optional[Any]) -> float:
    """Return the displayed confidence (0-100) of *match*.

    Rules, first hit wins:
      1. manual match with a resolved transaction -> 100
      2. rejected, or no resolved transaction     -> 0
      3. validated with a resolved transaction    -> 100
      4. otherwise the raw ``confidence``
    """
    if match.is_manual_match and transaction is not None:
        return 100
    if match.validation_status == "REJECTED" or transaction is None:
        return 0
    if match.validation_status == "VALIDATED":
        return 100
    return match.confidence or 0


def effective_transaction(match: Any, transaction: Optional[Any]) -> Optional[Any]:
    """A rejected match is shown as having no transaction at all."""
    if match.validation_status == "REJECTED":
        return None
    return transaction


def is_effectively_validated(match: Any, transaction: Optional[Any]) -> bool:
    return match.validation_status == "VALIDATED" and transaction is not None


def validation_ordinal(match: Optional[Any], transaction: Optional[Any]) -> int:
    """Ordering key for the "validated" sort.

    VALIDATED=3, PENDING=2, REJECTED=1, no transaction=0.  ``match=None``
    stands for a multiple-match row and sorts below everything (-1).
    """
    if match is None:
        return -1
    if match.validation_status == "REJECTED":
        return _VALIDATION_ORDINALS["REJECTED"]
    if transaction is None:
        return 0
    return _VALIDATION_ORDINALS.get(match.validation_status, 0)


def match_type_label(
    match_type: str,
    validation_status: Optional[str] = None,
    is_manual_match: bool = False,
) -> str:
    """French display label; manual and validation state take precedence."""
    if is_manual_match:
        return "Manuel"
    if validation_status == "VALIDATED":
        return "Validé"
    if validation_status == "REJECTED":
        return "Rejeté"
    return _MATCH_TYPE_LABELS.get(match_type, "Inconnu")


def filter_type_label(filter_type: str) -> str:
    """Short label used when listing active filters."""
    if filter_type == MANUAL:
        return "Manuel"
    if filter_type == MULTIPLE:
        return "Multiple"
    return _MATCH_TYPE_LABELS.get(filter_type, filter_type)
