"""Resolution of an invoice that has several candidate matches.

The reviewer either keeps one of the existing candidates, creates a new
match against another transaction, or rejects them all.  The remote store
offers no transaction across calls, so the steps run one after the other
and the first failure stops the sequence without undoing what was already
applied:

    keep one     delete every other candidate, then flag the kept one manual
    create new   delete every candidate, then create the manual match
    reject all   delete every candidate

On success the reconciliation is fetched again in full; the local view is
never patched from the individual call results.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Optional

from reconreview.core.errors import (
    PartialResolutionError,
    RemoteFetchError,
    ResolutionValidationError,
)
from reconreview.core.logging import get_logger
from reconreview.schemas.reconciliation import MatchCreateRequest, MatchUpdateRequest
from reconreview.services.review.grouping import unmatched_transactions

logger = get_logger(__name__)

MANUAL_CHOICE_NOTE = "Choix manuel - correspondance validée par l'utilisateur"
MANUAL_CREATION_NOTE = "Match manuel créé par l'utilisateur"

Strategy = Literal["keep", "create", "reject_all"]


class ResolverState(str, enum.Enum):
    CHOOSING_EXISTING = "CHOOSING_EXISTING"
    CREATING_NEW = "CREATING_NEW"
    RESOLVING = "RESOLVING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ResolutionDecision:
    """What the reviewer decided for one conflicting invoice."""

    strategy: Strategy
    match_id: Optional[str] = None
    transaction_id: Optional[str] = None

    @classmethod
    def keep(cls, match_id: str) -> "ResolutionDecision":
        return cls(strategy="keep", match_id=match_id)

    @classmethod
    def create(cls, transaction_id: str) -> "ResolutionDecision":
        return cls(strategy="create", transaction_id=transaction_id)

    @classmethod
    def reject_all(cls) -> "ResolutionDecision":
        return cls(strategy="reject_all")


@dataclass
class ResolutionOutcome:
    """Result of a successful resolution.

    Attributes:
        deleted_ids: Matches removed from the remote store, in call order.
        kept_match: The updated surviving match (``keep`` strategy).
        created_match: The new manual match (``create`` strategy).
        reconciliation: The snapshot fetched after the mutations, or
            ``None`` if that reload failed (see ``reload_error``).
    """

    invoice_id: str
    strategy: Strategy
    deleted_ids: list[str] = field(default_factory=list)
    kept_match: Optional[Any] = None
    created_match: Optional[Any] = None
    reconciliation: Optional[Any] = None
    reload_error: Optional[str] = None


def _check_decision(matches: list[Any], decision: ResolutionDecision) -> None:
    if not matches:
        raise ResolutionValidationError("Aucune correspondance à résoudre")
    if decision.strategy == "keep":
        if not decision.match_id:
            raise ResolutionValidationError("Sélectionnez la correspondance à conserver")
        if decision.match_id not in {m.id for m in matches}:
            raise ResolutionValidationError(
                f"La correspondance {decision.match_id} n'appartient pas à cette facture"
            )
    elif decision.strategy == "create":
        if not decision.transaction_id:
            raise ResolutionValidationError("Sélectionnez une transaction")
    elif decision.strategy != "reject_all":
        raise ResolutionValidationError(f"Stratégie inconnue: {decision.strategy}")


def resolve_multiple(
    client: Any,
    reconciliation_id: str,
    invoice_id: str,
    matches: Iterable[Any],
    decision: ResolutionDecision,
    reload: bool = True,
) -> ResolutionOutcome:
    """Apply *decision* to the conflicting *matches* of *invoice_id*.

    Raises:
        ResolutionValidationError: the decision is incomplete; nothing
            was sent to the remote store.
        MatchMutationError: the very first call failed; nothing changed.
        PartialResolutionError: a later call failed, or answered something
            unreadable, after earlier ones succeeded; the caller must tell
            the user to reload.
    """
    matches = list(matches)
    _check_decision(matches, decision)

    if decision.strategy == "keep":
        to_delete = [m.id for m in matches if m.id != decision.match_id]
    else:
        to_delete = [m.id for m in matches]

    outcome = ResolutionOutcome(invoice_id=invoice_id, strategy=decision.strategy)
    applied: list[str] = []

    logger.info(
        "Resolving invoice %s (%s): %d candidate(s), %d to delete",
        invoice_id,
        decision.strategy,
        len(matches),
        len(to_delete),
    )

    try:
        for match_id in to_delete:
            client.delete_match(reconciliation_id, match_id)
            applied.append(f"delete:{match_id}")
            outcome.deleted_ids.append(match_id)

        if decision.strategy == "keep":
            outcome.kept_match = client.update_match(
                reconciliation_id,
                decision.match_id,
                MatchUpdateRequest(is_manual_match=True, notes=[MANUAL_CHOICE_NOTE]),
            )
            applied.append(f"update:{decision.match_id}")
        elif decision.strategy == "create":
            outcome.created_match = client.create_match(
                reconciliation_id,
                MatchCreateRequest(
                    invoice_id=invoice_id,
                    transaction_id=decision.transaction_id,
                    is_manual_match=True,
                    notes=[MANUAL_CREATION_NOTE],
                ),
            )
            applied.append("create")
    except Exception as exc:
        if applied:
            logger.error(
                "Resolution of invoice %s partially applied (%s) then failed: %s",
                invoice_id,
                ", ".join(applied),
                exc,
            )
            raise PartialResolutionError(invoice_id, applied, exc) from exc
        logger.error("Resolution of invoice %s failed before any change: %s", invoice_id, exc)
        raise

    logger.info("Invoice %s resolved: %s", invoice_id, ", ".join(applied))

    if reload:
        try:
            outcome.reconciliation = client.fetch_reconciliation(reconciliation_id)
        except RemoteFetchError as exc:
            logger.warning("Reload after resolving invoice %s failed: %s", invoice_id, exc)
            outcome.reload_error = str(exc)

    return outcome


def candidate_transactions(
    details: Any,
    matches: Iterable[Any],
    search: str = "",
) -> list[Any]:
    """Transactions offered when creating a new match for a conflict.

    Unmatched transactions first, then those of the conflicting matches.
    *search* matches ``libelles``, ``detailsMouvement``, ``dateComptable``,
    and the amount when the term starts with a digit.
    """
    by_id = {t.id: t for t in details.transactions}
    pool = list(unmatched_transactions(details.transactions, details.matches))
    seen = {t.id for t in pool}
    for match in matches:
        transaction = by_id.get(match.transaction_id) if match.transaction_id else None
        if transaction is not None and transaction.id not in seen:
            pool.append(transaction)
            seen.add(transaction.id)

    if not search:
        return pool

    term = search.lower()

    def hit(transaction: Any) -> bool:
        if transaction.libelles and term in transaction.libelles.lower():
            return True
        if transaction.details_mouvement and term in transaction.details_mouvement.lower():
            return True
        if term[:1].isdigit() and term in f"{transaction.montant:g}":
            return True
        return bool(transaction.date_comptable) and term in transaction.date_comptable

    return [t for t in pool if hit(t)]


class MultipleMatchResolver:
    """Interactive resolution of one conflicting invoice.

    ``CHOOSING_EXISTING`` and ``CREATING_NEW`` toggle freely (each toggle
    clears the other mode's selection); :meth:`resolve` moves to
    ``RESOLVING`` and ends in ``DONE`` or ``FAILED``.
    """

    def __init__(
        self,
        client: Any,
        reconciliation_id: str,
        invoice_id: str,
        matches: Iterable[Any],
    ) -> None:
        self.client = client
        self.reconciliation_id = reconciliation_id
        self.invoice_id = invoice_id
        self.matches = list(matches)
        self.state = ResolverState.CHOOSING_EXISTING
        self.selected_match_id: Optional[str] = None
        self.selected_transaction_id: Optional[str] = None
        self.confirmation_pending = False
        self.closed = False
        self.outcome: Optional[ResolutionOutcome] = None
        self.error: Optional[Exception] = None

    def _require_editable(self) -> None:
        if self.state not in (ResolverState.CHOOSING_EXISTING, ResolverState.CREATING_NEW):
            raise ResolutionValidationError(f"Résolution déjà {self.state.value.lower()}")

    def toggle_mode(self) -> ResolverState:
        self._require_editable()
        if self.state == ResolverState.CHOOSING_EXISTING:
            self.state = ResolverState.CREATING_NEW
        else:
            self.state = ResolverState.CHOOSING_EXISTING
        self.selected_match_id = None
        self.selected_transaction_id = None
        return self.state

    def select_match(self, match_id: str) -> None:
        self._require_editable()
        if self.state != ResolverState.CHOOSING_EXISTING:
            raise ResolutionValidationError("Passez en mode choix d'une correspondance existante")
        if match_id not in {m.id for m in self.matches}:
            raise ResolutionValidationError(
                f"La correspondance {match_id} n'appartient pas à cette facture"
            )
        self.selected_match_id = match_id

    def select_transaction(self, transaction_id: str) -> None:
        self._require_editable()
        if self.state != ResolverState.CREATING_NEW:
            raise ResolutionValidationError("Passez en mode création d'une correspondance")
        self.selected_transaction_id = transaction_id or None

    @property
    def has_changes(self) -> bool:
        return self.selected_match_id is not None or (
            self.state == ResolverState.CREATING_NEW and bool(self.selected_transaction_id)
        )

    @property
    def can_resolve(self) -> bool:
        if self.state == ResolverState.CHOOSING_EXISTING:
            return self.selected_match_id is not None
        if self.state == ResolverState.CREATING_NEW:
            return bool(self.selected_transaction_id)
        return False

    def request_close(self) -> bool:
        """Close now, or ask for confirmation if a selection would be lost.

        Returns ``True`` when the resolver is closed.
        """
        if self.state == ResolverState.RESOLVING:
            # Calls already issued keep running; only the view goes away.
            self.closed = True
            return True
        if self.has_changes and self.state not in (ResolverState.DONE, ResolverState.FAILED):
            self.confirmation_pending = True
            return False
        self.closed = True
        return True

    def confirm_close(self) -> None:
        self.confirmation_pending = False
        self.closed = True

    def cancel_close(self) -> None:
        self.confirmation_pending = False

    def current_decision(self) -> ResolutionDecision:
        if self.state == ResolverState.CREATING_NEW:
            return ResolutionDecision.create(self.selected_transaction_id or "")
        return ResolutionDecision.keep(self.selected_match_id or "")

    def resolve(self, decision: Optional[ResolutionDecision] = None) -> ResolutionOutcome:
        """Run the resolution for *decision* (default: the current selection)."""
        self._require_editable()
        decision = decision or self.current_decision()
        _check_decision(self.matches, decision)

        self.state = ResolverState.RESOLVING
        try:
            outcome = resolve_multiple(
                self.client,
                self.reconciliation_id,
                self.invoice_id,
                self.matches,
                decision,
            )
        except Exception as exc:
            self.state = ResolverState.FAILED
            self.error = exc
            raise

        self.state = ResolverState.DONE
        self.outcome = outcome
        self.closed = True
        return outcome

    def reject_all(self) -> ResolutionOutcome:
        return self.resolve(ResolutionDecision.reject_all())
