"""Pydantic schemas for the remote reconciliation API payloads.

The remote API speaks camelCase JSON; every model accepts both the wire
alias and the Python field name, and ``model_dump(by_alias=True)`` gives
back the wire shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MATCH_TYPES: tuple[str, ...] = (
    "EXACT_REF",
    "EXACT_AMOUNT",
    "REFINED_AMOUNT",
    "SIMPLE_NAME",
    "FUZZY_NAME",
    "COMBINED",
    "NONE",
)

VALIDATION_STATUSES: tuple[str, ...] = ("PENDING", "VALIDATED", "REJECTED")

JOB_STATUSES: tuple[str, ...] = ("PENDING", "PROCESSING", "COMPLETED", "ERROR")


class WireModel(BaseModel):
    """Base for camelCase payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Invoice(WireModel):
    """An invoice as stored by the remote reconciliation (read-only here)."""

    id: str
    ref: Optional[str] = None
    ref_client: Optional[str] = None
    type: Optional[str] = None
    date_facturation: Optional[str] = None
    date_echeance: Optional[str] = None
    tiers: Optional[str] = None
    ville: Optional[str] = None
    code_postal: Optional[str] = None
    mode_reglement: Optional[str] = None
    montant_ht: float = Field(0.0, alias="montantHT")
    montant_ttc: float = Field(0.0, alias="montantTTC")
    etat: Optional[str] = None
    original_row: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BankTransaction(WireModel):
    """A bank statement line (read-only here)."""

    id: str
    numero_compte: Optional[str] = None
    nom_compte: Optional[str] = None
    compte_contrepartie: Optional[str] = None
    numero_mouvement: Optional[str] = None
    date_comptable: Optional[str] = None
    date_valeur: Optional[str] = None
    montant: float = 0.0
    devise: Optional[str] = None
    libelles: Optional[str] = None
    details_mouvement: Optional[str] = None
    message: Optional[str] = None
    original_row: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Match(WireModel):
    """One invoice-to-transaction pairing, automatic or manual."""

    id: str
    invoice_id: str
    transaction_id: Optional[str] = Field(
        None,
        description="Absent when no transaction is associated",
    )
    match_type: str = Field(
        "NONE",
        description=(
            "EXACT_REF | EXACT_AMOUNT | REFINED_AMOUNT | SIMPLE_NAME "
            "| FUZZY_NAME | COMBINED | NONE"
        ),
    )
    confidence: float = Field(0.0, ge=0, le=100)
    score: float = 0.0
    notes: list[str] = Field(default_factory=list)
    is_manual_match: bool = False
    validation_status: str = Field(
        "PENDING",
        description="PENDING | VALIDATED | REJECTED",
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReconciliationSummary(WireModel):
    """One reconciliation as listed by the remote API, without its rows."""

    id: str
    status: str = Field("COMPLETED", description="PENDING | PROCESSING | COMPLETED | ERROR")
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    invoices_file_name: Optional[str] = None
    transactions_file_name: Optional[str] = None
    total_invoices: int = 0
    total_transactions: int = 0
    exact_matches: int = 0
    fuzzy_matches: int = 0
    no_matches: int = 0
    total_matched_amount: float = 0.0
    total_unmatched_amount: float = 0.0
    reconciliation_rate: float = 0.0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReconciliationDetails(ReconciliationSummary):
    """Full snapshot of one reconciliation, as fetched after every mutation."""

    invoices: list[Invoice] = Field(default_factory=list)
    transactions: list[BankTransaction] = Field(default_factory=list)
    matches: list[Match] = Field(default_factory=list)


class MatchSuggestion(WireModel):
    """A ranked candidate transaction for one invoice."""

    transaction: BankTransaction
    match_type: str = "NONE"
    confidence: float = 0.0
    score: float = 0.0


class MatchCreateRequest(WireModel):
    """Body for creating a match on the remote store."""

    invoice_id: str = Field(..., min_length=1)
    transaction_id: Optional[str] = None
    match_type: Optional[str] = None
    is_manual_match: Optional[bool] = None
    notes: Optional[list[str]] = None


class MatchUpdateRequest(WireModel):
    """Partial update of a match; unset fields are left untouched."""

    transaction_id: Optional[str] = None
    notes: Optional[list[str]] = None
    is_manual_match: Optional[bool] = None
    validation_status: Optional[str] = None


class ReconciliationStatus(WireModel):
    """One tick of the remote job status endpoint."""

    status: str = Field(..., description="PENDING | PROCESSING | COMPLETED | ERROR")
    progress: float = 0.0
    invoices_count: Optional[int] = None
    transactions_count: Optional[int] = None
    start_time: Optional[Any] = None
    end_time: Optional[Any] = None
    error: Optional[str] = None


class UploadResult(WireModel):
    """Answer of the remote upload endpoint."""

    success: bool = False
    reconciliation_id: Optional[str] = None
    message: str = ""


class ReconciliationResult(WireModel):
    """Outcome of a finished remote job; ``download_url`` points at its xlsx file."""

    reconciliation_id: Optional[str] = None
    download_url: Optional[str] = None
    file_name: Optional[str] = None
    summary: Optional[dict[str, Any]] = None
    statistics: Optional[dict[str, Any]] = None
