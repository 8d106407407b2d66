"""Pydantic schemas for the review table, resolution and tracking endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import ConfigDict, Field

from reconreview.schemas.reconciliation import BankTransaction, Invoice, Match, WireModel
from reconreview.services.review.confidence import (
    effective_confidence,
    effective_transaction,
    match_type_label,
)
from reconreview.services.review.filters import DisplayItem, MultipleItem
from reconreview.services.review.grouping import SnapshotIndex


class MatchRow(WireModel):
    """A match with its transaction and the projected display values."""

    match: Match
    transaction: Optional[BankTransaction] = Field(
        None,
        description="Effective transaction; always null for a rejected match",
    )
    effective_confidence: float
    type_label: str


class SingleRow(WireModel):
    type: Literal["single"] = "single"
    invoice_id: str
    invoice: Optional[Invoice] = None
    sort_value: str
    row: MatchRow


class MultipleRow(WireModel):
    type: Literal["multiple"] = "multiple"
    invoice_id: str
    invoice: Optional[Invoice] = None
    sort_value: Literal["MULTIPLE"] = "MULTIPLE"
    rows: list[MatchRow]


Row = Annotated[Union[SingleRow, MultipleRow], Field(discriminator="type")]


def _match_row(match: Match, index: SnapshotIndex) -> MatchRow:
    resolved = index.transaction_of(match)
    return MatchRow(
        match=match,
        transaction=effective_transaction(match, resolved),
        effective_confidence=effective_confidence(match, resolved),
        type_label=match_type_label(
            match.match_type, match.validation_status, match.is_manual_match
        ),
    )


def to_row(item: DisplayItem, index: SnapshotIndex) -> Union[SingleRow, MultipleRow]:
    if isinstance(item, MultipleItem):
        return MultipleRow(
            invoice_id=item.invoice_id,
            invoice=item.invoice,
            rows=[_match_row(m, index) for m in item.matches],
        )
    return SingleRow(
        invoice_id=item.invoice_id,
        invoice=item.invoice,
        sort_value=item.sort_value,
        row=_match_row(item.match, index),
    )


class SortResponse(WireModel):
    field: Optional[str] = None
    direction: Literal["asc", "desc"] = "desc"
    label: str = ""


class ViewResponse(WireModel):
    """One page of the review table plus the filter sidebar data."""

    reconciliation_id: str
    items: list[Row]
    total_items: int
    total_pages: int
    current_page: int
    items_per_page: int
    start_index: int
    end_index: int
    search_term: str = ""
    selected_filters: list[str] = Field(default_factory=list)
    sort: SortResponse
    available_filters: list[str]
    filter_labels: dict[str, str] = Field(default_factory=dict)
    filter_counts: dict[str, int]
    total_groups: int
    multiple_count: int


class UnmatchedResponse(WireModel):
    invoices: list[Invoice]
    transactions: list[BankTransaction]


class ManualMatchCreate(WireModel):
    """Body of a manual match creation; checked locally before any call."""

    invoice_id: Optional[str] = None
    transaction_id: Optional[str] = None
    match_type: Optional[str] = None
    notes: Optional[list[str]] = None


class NotesBody(WireModel):
    notes: Optional[list[str]] = None


class ResolutionRequest(WireModel):
    """Decision for an invoice with several candidate matches."""

    strategy: Literal["keep", "create", "reject_all"] = Field(
        ...,
        description="keep one existing match | create a new one | reject all",
    )
    match_id: Optional[str] = Field(None, description="Required for 'keep'")
    transaction_id: Optional[str] = Field(None, description="Required for 'create'")


class ResolutionResponse(WireModel):
    invoice_id: str
    strategy: str
    deleted_ids: list[str]
    kept_match: Optional[Match] = None
    created_match: Optional[Match] = None
    reloaded: bool
    reload_error: Optional[str] = None
    remaining_matches: list[Match] = Field(default_factory=list)


class TrackingStateResponse(WireModel):
    model_config = ConfigDict(from_attributes=True)

    reconciliation_id: str
    status: str
    progress: float = 0.0
    message: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    is_running: bool


class UploadResponse(WireModel):
    success: bool
    reconciliation_id: Optional[str] = None
    message: str
    tracking: bool = False


class TitleUpdate(WireModel):
    """New display title of a reconciliation; surrounding blanks are dropped."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=255)


class TitleResponse(WireModel):
    reconciliation_id: str
    title: str


class ExportSavedResponse(WireModel):
    """Where a server-side copy of the export was written."""

    reconciliation_id: str
    file_name: str
    path: str
