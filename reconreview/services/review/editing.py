"""Single-match edits made by a reviewer.

Local checks run before anything is sent; a failing check raises
:class:`MatchValidationError` and the remote store is never called.
"""

from __future__ import annotations

from typing import Any, Optional

from reconreview.core.errors import MatchValidationError
from reconreview.core.logging import get_logger
from reconreview.schemas.reconciliation import (
    VALIDATION_STATUSES,
    Match,
    MatchCreateRequest,
    MatchUpdateRequest,
)

logger = get_logger(__name__)

VALIDATE_NOTE = "Correspondance validée par l'utilisateur"
REJECT_NOTE = "Correspondance rejetée par l'utilisateur"
CREATE_NOTE = "Match manuel créé par l'utilisateur"


class MatchEditor:
    """Manual create / update / validate / reject / delete on one reconciliation.

    Args:
        client: A ``ReconciliationClient`` (or anything with its methods).
        reconciliation_id: The reconciliation every call targets.
        details: Optional snapshot used to check that referenced invoices
            and transactions exist before calling out.
    """

    def __init__(self, client: Any, reconciliation_id: str, details: Optional[Any] = None):
        self.client = client
        self.reconciliation_id = reconciliation_id
        self.details = details

    def _check_invoice(self, invoice_id: Optional[str]) -> None:
        if not invoice_id:
            raise MatchValidationError("Veuillez sélectionner une facture")
        if self.details is not None and invoice_id not in {i.id for i in self.details.invoices}:
            raise MatchValidationError(f"Facture inconnue: {invoice_id}")

    def _check_transaction(self, transaction_id: Optional[str]) -> None:
        if transaction_id and self.details is not None:
            if transaction_id not in {t.id for t in self.details.transactions}:
                raise MatchValidationError(f"Transaction inconnue: {transaction_id}")

    def create(
        self,
        invoice_id: Optional[str],
        transaction_id: Optional[str] = None,
        notes: Optional[list[str]] = None,
        match_type: Optional[str] = None,
    ) -> Match:
        """Create a manual match; a missing transaction is allowed."""
        self._check_invoice(invoice_id)
        self._check_transaction(transaction_id)
        request = MatchCreateRequest(
            invoice_id=invoice_id,
            transaction_id=transaction_id or None,
            match_type=match_type,
            is_manual_match=True,
            notes=notes or [CREATE_NOTE],
        )
        logger.info("Creating manual match: invoice=%s transaction=%s", invoice_id, transaction_id)
        return self.client.create_match(self.reconciliation_id, request)

    def update(self, match_id: str, update: MatchUpdateRequest) -> Match:
        """Change a match's transaction, notes, manual flag or status.

        Choosing another transaction makes the match manual.
        """
        if not match_id:
            raise MatchValidationError("Correspondance non sélectionnée")
        fields = update.model_fields_set
        if not fields:
            raise MatchValidationError("Aucune modification à enregistrer")
        if update.validation_status is not None and update.validation_status not in VALIDATION_STATUSES:
            raise MatchValidationError(f"Statut inconnu: {update.validation_status}")
        if "transaction_id" in fields:
            self._check_transaction(update.transaction_id)
            if "is_manual_match" not in fields:
                update = MatchUpdateRequest(
                    **update.model_dump(exclude_unset=True), is_manual_match=True
                )
        return self.client.update_match(self.reconciliation_id, match_id, update)

    def validate(self, match_id: str, notes: Optional[list[str]] = None) -> Match:
        return self.client.validate_match(self.reconciliation_id, match_id, notes or [VALIDATE_NOTE])

    def reject(self, match_id: str, notes: Optional[list[str]] = None) -> Match:
        return self.client.reject_match(self.reconciliation_id, match_id, notes or [REJECT_NOTE])

    def delete(self, match_id: str) -> bool:
        if not match_id:
            raise MatchValidationError("Correspondance non sélectionnée")
        return self.client.delete_match(self.reconciliation_id, match_id)
