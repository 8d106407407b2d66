"""Shared route dependencies and error translation."""

from __future__ import annotations

from typing import Iterator, List, NoReturn, Optional

from fastapi import HTTPException, Query

from reconreview.core.config import settings
from reconreview.core.database import SessionLocal
from reconreview.core.errors import (
    MatchValidationError,
    PartialResolutionError,
    ReconciliationNotFound,
    RemoteFetchError,
    RemoteMutationError,
    ReviewError,
)
from reconreview.core.logging import get_logger
from reconreview.services.remote.client import ReconciliationClient
from reconreview.services.review.pagination import ViewState
from reconreview.services.review.sorting import SortConfig

logger = get_logger(__name__)


def get_client() -> Iterator[ReconciliationClient]:
    """Dependency that provides a remote API client per request."""
    client = ReconciliationClient(settings)
    try:
        yield client
    finally:
        client.close()


def raise_http(exc: ReviewError) -> NoReturn:
    """Translate a review error into the matching ``HTTPException``."""
    if isinstance(exc, ReconciliationNotFound):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, RemoteFetchError):
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if isinstance(exc, PartialResolutionError):
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "invoiceId": exc.invoice_id,
                "applied": exc.applied,
                "cause": str(exc.cause),
            },
        ) from exc
    if isinstance(exc, RemoteMutationError):
        status_code = 404 if exc.status_code == 404 else 502
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    if isinstance(exc, MatchValidationError):
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    logger.error("Unhandled review error: %s", exc)
    raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_session_factory():
    """Session factory handed to background jobs, which outlive the request."""
    return SessionLocal


def get_client_factory():
    """Client factory handed to background jobs."""
    return lambda: ReconciliationClient(settings)


def get_view_state(
    search: str = Query("", description="Free-text search over invoices and transactions"),
    filters: Optional[List[str]] = Query(
        None,
        description="Match types to keep; MULTIPLE and MANUAL are accepted too",
    ),
    sort_field: Optional[str] = Query(
        None, description="type | confidence | validated | amount | date"
    ),
    sort_direction: str = Query("desc", description="asc | desc"),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
) -> ViewState:
    """Build the review table state from query parameters."""
    try:
        sort = SortConfig(field=sort_field or None, direction=sort_direction)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    items_per_page = min(per_page or settings.default_items_per_page, settings.max_items_per_page)
    return ViewState(
        search_term=search,
        selected_filters=frozenset(filters or ()),
        sort=sort,
        current_page=page,
        items_per_page=items_per_page,
    )
