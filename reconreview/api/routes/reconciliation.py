"""Review endpoints for one reconciliation.

Every request fetches the reconciliation afresh from the remote API and
projects it; mutations are forwarded and never applied locally.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from reconreview.api.deps import get_client, get_view_state, raise_http
from reconreview.core.errors import ReviewError
from reconreview.core.logging import get_logger
from reconreview.schemas.reconciliation import (
    BankTransaction,
    Match,
    MatchSuggestion,
    MatchUpdateRequest,
    ReconciliationDetails,
    ReconciliationSummary,
)
from reconreview.schemas.view import (
    ManualMatchCreate,
    NotesBody,
    ResolutionRequest,
    ResolutionResponse,
    SortResponse,
    TitleResponse,
    TitleUpdate,
    UnmatchedResponse,
    ViewResponse,
    to_row,
)
from reconreview.services.remote.client import ReconciliationClient
from reconreview.services.review.confidence import filter_type_label
from reconreview.services.review.editing import MatchEditor
from reconreview.services.review.grouping import InvoiceGroup, SnapshotIndex, group_matches
from reconreview.services.review.pagination import ViewState
from reconreview.services.review.projector import project, unmatched
from reconreview.services.review.resolver import (
    MultipleMatchResolver,
    ResolutionDecision,
    candidate_transactions,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=List[ReconciliationSummary])
def list_reconciliations(
    client: ReconciliationClient = Depends(get_client),
) -> list[ReconciliationSummary]:
    """Every reconciliation known to the remote API, in its order."""
    try:
        return client.list_reconciliations()
    except ReviewError as exc:
        raise_http(exc)


@router.patch("/{reconciliation_id}", response_model=TitleResponse)
def rename_reconciliation(
    reconciliation_id: str,
    body: TitleUpdate,
    client: ReconciliationClient = Depends(get_client),
) -> TitleResponse:
    try:
        title = client.update_title(reconciliation_id, body.title)
    except ReviewError as exc:
        raise_http(exc)
    return TitleResponse(reconciliation_id=reconciliation_id, title=title)


@router.delete("/{reconciliation_id}", status_code=204)
def delete_reconciliation(
    reconciliation_id: str,
    client: ReconciliationClient = Depends(get_client),
) -> Response:
    """Delete a reconciliation on the remote API. This cannot be undone."""
    try:
        client.delete_reconciliation(reconciliation_id)
    except ReviewError as exc:
        raise_http(exc)
    logger.info("Reconciliation %s deleted", reconciliation_id)
    return Response(status_code=204)


@router.get("/{reconciliation_id}/view", response_model=ViewResponse)
def get_view(
    reconciliation_id: str,
    state: ViewState = Depends(get_view_state),
    client: ReconciliationClient = Depends(get_client),
) -> ViewResponse:
    """One page of the review table.

    Search, type filters and sort apply before paging; the available
    filters and their counts always describe the unfiltered data.
    """
    try:
        details = client.fetch_reconciliation(reconciliation_id)
    except ReviewError as exc:
        raise_http(exc)

    view = project(details, state)
    index = SnapshotIndex.from_details(details)
    return ViewResponse(
        reconciliation_id=details.id,
        items=[to_row(item, index) for item in view.page.items],
        total_items=view.page.total_items,
        total_pages=view.page.total_pages,
        current_page=state.current_page,
        items_per_page=state.items_per_page,
        start_index=view.page.start_index,
        end_index=view.page.end_index,
        search_term=state.search_term,
        selected_filters=sorted(state.selected_filters),
        sort=SortResponse(
            field=state.sort.field,
            direction=state.sort.direction,
            label=state.sort.label,
        ),
        available_filters=view.available_filters,
        filter_labels={f: filter_type_label(f) for f in view.available_filters},
        filter_counts=view.filter_counts,
        total_groups=view.total_groups,
        multiple_count=len(view.multiple_groups),
    )


@router.get("/{reconciliation_id}/unmatched", response_model=UnmatchedResponse)
def get_unmatched(
    reconciliation_id: str,
    client: ReconciliationClient = Depends(get_client),
) -> UnmatchedResponse:
    """Invoices and transactions that no match pairs yet."""
    try:
        details = client.fetch_reconciliation(reconciliation_id)
    except ReviewError as exc:
        raise_http(exc)
    return UnmatchedResponse(**unmatched(details))


@router.get(
    "/{reconciliation_id}/invoices/{invoice_id}/suggestions",
    response_model=List[MatchSuggestion],
)
def get_suggestions(
    reconciliation_id: str,
    invoice_id: str,
    client: ReconciliationClient = Depends(get_client),
) -> list[MatchSuggestion]:
    try:
        return client.fetch_suggestions(reconciliation_id, invoice_id)
    except ReviewError as exc:
        raise_http(exc)


def _invoice_group(details: ReconciliationDetails, invoice_id: str) -> InvoiceGroup:
    index = SnapshotIndex.from_details(details)
    group = group_matches(details.matches, index.invoice_of).get(invoice_id)
    if group is None:
        raise HTTPException(
            status_code=404,
            detail=f"Aucune correspondance pour la facture {invoice_id}",
        )
    return group


@router.get(
    "/{reconciliation_id}/invoices/{invoice_id}/candidates",
    response_model=List[BankTransaction],
)
def get_candidates(
    reconciliation_id: str,
    invoice_id: str,
    search: str = Query("", description="Label, details, accounting date or amount"),
    client: ReconciliationClient = Depends(get_client),
) -> list[BankTransaction]:
    """Transactions offered when replacing an invoice's candidates by a new match.

    Unmatched transactions come first, then those of the invoice's own
    candidate matches.
    """
    try:
        details = client.fetch_reconciliation(reconciliation_id)
    except ReviewError as exc:
        raise_http(exc)
    group = _invoice_group(details, invoice_id)
    return candidate_transactions(details, group.matches, search)


# ── Single match edits ───────────────────────────────────────────────


def _editor(
    client: ReconciliationClient,
    reconciliation_id: str,
    with_details: bool = False,
) -> MatchEditor:
    details = client.fetch_reconciliation(reconciliation_id) if with_details else None
    return MatchEditor(client, reconciliation_id, details)


@router.post("/{reconciliation_id}/matches", response_model=Match, status_code=201)
def create_match(
    reconciliation_id: str,
    body: ManualMatchCreate,
    client: ReconciliationClient = Depends(get_client),
) -> Match:
    """Create a manual match between an invoice and (optionally) a transaction."""
    try:
        editor = _editor(client, reconciliation_id, with_details=True)
        return editor.create(
            body.invoice_id,
            transaction_id=body.transaction_id,
            notes=body.notes,
            match_type=body.match_type,
        )
    except ReviewError as exc:
        raise_http(exc)


@router.patch("/{reconciliation_id}/matches/{match_id}", response_model=Match)
def update_match(
    reconciliation_id: str,
    match_id: str,
    body: MatchUpdateRequest,
    client: ReconciliationClient = Depends(get_client),
) -> Match:
    try:
        return _editor(client, reconciliation_id).update(match_id, body)
    except ReviewError as exc:
        raise_http(exc)


@router.delete("/{reconciliation_id}/matches/{match_id}", status_code=204)
def delete_match(
    reconciliation_id: str,
    match_id: str,
    client: ReconciliationClient = Depends(get_client),
) -> Response:
    try:
        _editor(client, reconciliation_id).delete(match_id)
    except ReviewError as exc:
        raise_http(exc)
    return Response(status_code=204)


@router.post("/{reconciliation_id}/matches/{match_id}/validate", response_model=Match)
def validate_match(
    reconciliation_id: str,
    match_id: str,
    body: Optional[NotesBody] = None,
    client: ReconciliationClient = Depends(get_client),
) -> Match:
    try:
        return _editor(client, reconciliation_id).validate(match_id, body.notes if body else None)
    except ReviewError as exc:
        raise_http(exc)


@router.post("/{reconciliation_id}/matches/{match_id}/reject", response_model=Match)
def reject_match(
    reconciliation_id: str,
    match_id: str,
    body: Optional[NotesBody] = None,
    client: ReconciliationClient = Depends(get_client),
) -> Match:
    try:
        return _editor(client, reconciliation_id).reject(match_id, body.notes if body else None)
    except ReviewError as exc:
        raise_http(exc)


# ── Multiple-match resolution ────────────────────────────────────────


def _decision(body: ResolutionRequest) -> ResolutionDecision:
    return ResolutionDecision(
        strategy=body.strategy,
        match_id=body.match_id,
        transaction_id=body.transaction_id,
    )


@router.post(
    "/{reconciliation_id}/invoices/{invoice_id}/resolve",
    response_model=ResolutionResponse,
)
def resolve_invoice(
    reconciliation_id: str,
    invoice_id: str,
    body: ResolutionRequest,
    client: ReconciliationClient = Depends(get_client),
) -> ResolutionResponse:
    """Keep one candidate, create a new manual match, or reject them all.

    A failure after some calls went through answers 409: the invoice is in
    an unknown state and the reconciliation must be reloaded.
    """
    try:
        details = client.fetch_reconciliation(reconciliation_id)
    except ReviewError as exc:
        raise_http(exc)

    group = _invoice_group(details, invoice_id)
    resolver = MultipleMatchResolver(client, reconciliation_id, invoice_id, group.matches)
    try:
        outcome = resolver.resolve(_decision(body))
    except ReviewError as exc:
        raise_http(exc)

    remaining = []
    if outcome.reconciliation is not None:
        remaining = [m for m in outcome.reconciliation.matches if m.invoice_id == invoice_id]

    return ResolutionResponse(
        invoice_id=invoice_id,
        strategy=outcome.strategy,
        deleted_ids=outcome.deleted_ids,
        kept_match=outcome.kept_match,
        created_match=outcome.created_match,
        reloaded=outcome.reconciliation is not None,
        reload_error=outcome.reload_error,
        remaining_matches=remaining,
    )
