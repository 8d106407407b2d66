"""Shared test fixtures for the reconciliation review service tests.

Uses a SQLite file database for the tracking checkpoint and an in-memory
stand-in for the remote reconciliation API.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from reconreview: the
# Settings model reads .env eagerly via pydantic-settings, and the
# module-level ``engine`` in reconreview.core.database binds to it.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from datetime import datetime
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from reconreview.api.deps import get_client, get_client_factory, get_session_factory
from reconreview.core.database import Base, get_db
from reconreview.core.errors import (
    MatchMutationError,
    ReconciliationNotFound,
    RemoteFetchError,
    RemoteMutationError,
)
from reconreview.main import app
from reconreview.schemas.reconciliation import (
    BankTransaction,
    Invoice,
    Match,
    MatchCreateRequest,
    MatchSuggestion,
    MatchUpdateRequest,
    ReconciliationDetails,
    ReconciliationResult,
    ReconciliationStatus,
    ReconciliationSummary,
    UploadResult,
)

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ── Remote API stand-in ──────────────────────────────────────────────


class FakeRemote:
    """In-memory remote store with the ``ReconciliationClient`` surface.

    Every call is recorded in ``calls`` as ``(operation, match_id)``.
    ``fail(operation, match_id)`` makes that call raise the same error the
    HTTP client raises.
    """

    def __init__(self) -> None:
        self.reconciliations: dict[str, ReconciliationDetails] = {}
        self.suggestions: dict[str, list[MatchSuggestion]] = {}
        self.statuses: dict[str, list[ReconciliationStatus]] = {}
        self.results: dict[str, dict] = {}
        self.files: dict[str, bytes] = {}
        self.calls: list[tuple[str, Optional[str]]] = []
        self.failures: set[tuple[str, Optional[str]]] = set()
        self.fetch_error: Optional[RemoteFetchError] = None
        self.upload_result = UploadResult(
            success=True, reconciliation_id="REC-NEW", message="Fichiers reçus"
        )
        self._next_id = 0

    def fail(self, operation: str, match_id: Optional[str] = None) -> None:
        self.failures.add((operation, match_id))

    def _record(self, operation: str, match_id: Optional[str] = None) -> None:
        self.calls.append((operation, match_id))
        if (operation, match_id) in self.failures or (operation, None) in self.failures:
            raise MatchMutationError(
                f"Erreur lors de l'opération '{operation}': HTTP 500",
                operation=operation,
                match_id=match_id,
                status_code=500,
            )

    def _details(self, reconciliation_id: str) -> ReconciliationDetails:
        if reconciliation_id not in self.reconciliations:
            raise ReconciliationNotFound("Réconciliation non trouvée", status_code=404)
        return self.reconciliations[reconciliation_id]

    def _match(self, reconciliation_id: str, match_id: str) -> Match:
        for match in self._details(reconciliation_id).matches:
            if match.id == match_id:
                return match
        raise MatchMutationError("Match non trouvé", operation="lookup", match_id=match_id)

    # Reads

    def fetch_reconciliation(self, reconciliation_id: str) -> ReconciliationDetails:
        self.calls.append(("fetch", None))
        if self.fetch_error is not None:
            raise self.fetch_error
        return self._details(reconciliation_id).model_copy(deep=True)

    def fetch_suggestions(self, reconciliation_id: str, invoice_id: str) -> list[MatchSuggestion]:
        self._details(reconciliation_id)
        return list(self.suggestions.get(invoice_id, []))

    def get_status(self, reconciliation_id: str) -> Optional[ReconciliationStatus]:
        self.calls.append(("status", None))
        ticks = self.statuses.get(reconciliation_id)
        if not ticks:
            return None
        return ticks.pop(0) if len(ticks) > 1 else ticks[0]

    def list_reconciliations(self) -> list[ReconciliationSummary]:
        self.calls.append(("list", None))
        return [
            ReconciliationSummary.model_validate(
                details.model_dump(exclude={"invoices", "transactions", "matches"})
            )
            for details in self.reconciliations.values()
        ]

    def get_result(self, reconciliation_id: str) -> Optional[ReconciliationResult]:
        self.calls.append(("result", None))
        raw = self.results.get(reconciliation_id)
        return None if raw is None else ReconciliationResult.model_validate(raw)

    def download_file(self, download_url: str) -> tuple[bytes, str]:
        self.calls.append(("download", None))
        if download_url not in self.files:
            raise RemoteFetchError("Erreur lors de la récupération du fichier", status_code=404)
        return self.files[download_url], "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    # Writes

    def upload_files(self, invoices, transactions) -> UploadResult:
        self.calls.append(("upload", None))
        self.uploaded = (invoices, transactions)
        if self.upload_result.success and self.upload_result.reconciliation_id:
            self.statuses.setdefault(
                self.upload_result.reconciliation_id,
                [ReconciliationStatus(status="COMPLETED", progress=100)],
            )
        return self.upload_result

    def delete_reconciliation(self, reconciliation_id: str) -> bool:
        self.calls.append(("delete_reconciliation", None))
        if self.reconciliations.pop(reconciliation_id, None) is None:
            raise RemoteMutationError(
                "Réconciliation non trouvée", operation="delete_reconciliation", status_code=404
            )
        return True

    def update_title(self, reconciliation_id: str, title: str) -> str:
        self.calls.append(("update_title", None))
        if reconciliation_id not in self.reconciliations:
            raise RemoteMutationError(
                "Réconciliation non trouvée", operation="update_title", status_code=404
            )
        self.reconciliations[reconciliation_id].title = title
        return title

    def create_match(self, reconciliation_id: str, request: MatchCreateRequest) -> Match:
        self._record("create")
        self._next_id += 1
        match = Match(
            id=f"m-new-{self._next_id}",
            invoice_id=request.invoice_id,
            transaction_id=request.transaction_id,
            match_type=request.match_type or "NONE",
            confidence=100 if request.transaction_id else 0,
            is_manual_match=bool(request.is_manual_match),
            notes=request.notes or [],
        )
        self._details(reconciliation_id).matches.append(match)
        return match.model_copy()

    def update_match(
        self, reconciliation_id: str, match_id: str, update: MatchUpdateRequest
    ) -> Match:
        self._record("update", match_id)
        match = self._match(reconciliation_id, match_id)
        for name, value in update.model_dump(exclude_unset=True).items():
            setattr(match, name, value)
        return match.model_copy()

    def delete_match(self, reconciliation_id: str, match_id: str) -> bool:
        self._record("delete", match_id)
        details = self._details(reconciliation_id)
        details.matches = [m for m in details.matches if m.id != match_id]
        return True

    def _set_validation(self, reconciliation_id, match_id, operation, status, notes):
        self._record(operation, match_id)
        match = self._match(reconciliation_id, match_id)
        match.validation_status = status
        match.notes = list(notes)
        return match.model_copy()

    def validate_match(self, reconciliation_id: str, match_id: str, notes: list[str]) -> Match:
        return self._set_validation(reconciliation_id, match_id, "validate", "VALIDATED", notes)

    def reject_match(self, reconciliation_id: str, match_id: str, notes: list[str]) -> Match:
        return self._set_validation(reconciliation_id, match_id, "reject", "REJECTED", notes)

    def close(self) -> None:
        pass

    @property
    def mutations(self) -> list[tuple[str, Optional[str]]]:
        return [c for c in self.calls if c[0] not in ("fetch", "list", "status", "result", "download")]


def build_snapshot() -> ReconciliationDetails:
    """Reference reconciliation used across the API and resolver tests.

    * inv-1: single EXACT_REF match, pending, 95%
    * inv-2: single EXACT_AMOUNT match, validated
    * inv-3: three candidate matches (multiple)
    * inv-4: no match at all
    * inv-5: single manual match
    * tx-9: bank fees no match refers to
    """
    invoices = [
        Invoice(id="inv-1", ref="FA-001", tiers="Dupont SARL", montant_ttc=1200.0,
                date_facturation="2024-01-05"),
        Invoice(id="inv-2", ref="FA-002", tiers="Martin & Fils", montant_ttc=350.5,
                date_facturation="2024-01-06"),
        Invoice(id="inv-3", ref="FA-003", tiers="Bernard SA", montant_ttc=980.0,
                date_facturation="2024-01-07"),
        Invoice(id="inv-4", ref="FA-004", tiers="Leroy", montant_ttc=75.0,
                date_facturation="2024-01-08"),
        Invoice(id="inv-5", ref="FA-005", tiers="Petit", montant_ttc=500.0,
                date_facturation="2024-01-09"),
    ]
    transactions = [
        BankTransaction(id="tx-1", libelles="VIR DUPONT SARL FA-001", montant=1200.0,
                        date_comptable="2024-01-10", details_mouvement="Virement reçu"),
        BankTransaction(id="tx-2", libelles="PRLV MARTIN", montant=350.5,
                        date_comptable="2024-01-12"),
        BankTransaction(id="tx-3a", libelles="VIR BERNARD", montant=980.0,
                        date_comptable="2024-01-15"),
        BankTransaction(id="tx-3b", libelles="VIR BERNARD SA", montant=979.99,
                        date_comptable="2024-01-16"),
        BankTransaction(id="tx-3c", libelles="CHQ 123456", montant=980.0,
                        date_comptable="2024-01-20"),
        BankTransaction(id="tx-5", libelles="VIR PETIT", montant=500.0,
                        date_comptable="2024-01-21"),
        BankTransaction(id="tx-9", libelles="FRAIS BANCAIRES", montant=12.5,
                        date_comptable="2024-01-31"),
    ]
    matches = [
        Match(id="m-1", invoice_id="inv-1", transaction_id="tx-1", match_type="EXACT_REF",
              confidence=95),
        Match(id="m-2", invoice_id="inv-2", transaction_id="tx-2", match_type="EXACT_AMOUNT",
              confidence=80, validation_status="VALIDATED"),
        Match(id="m-3a", invoice_id="inv-3", transaction_id="tx-3a",
              match_type="EXACT_AMOUNT", confidence=70),
        Match(id="m-3b", invoice_id="inv-3", transaction_id="tx-3b",
              match_type="FUZZY_NAME", confidence=60),
        Match(id="m-3c", invoice_id="inv-3", transaction_id="tx-3c",
              match_type="REFINED_AMOUNT", confidence=50),
        Match(id="m-5", invoice_id="inv-5", transaction_id="tx-5", match_type="COMBINED",
              confidence=40, is_manual_match=True),
    ]
    return ReconciliationDetails(
        id="REC-1",
        title="Relevé janvier 2024",
        start_time=datetime(2024, 2, 1, 9, 30),
        invoices=invoices,
        transactions=transactions,
        matches=matches,
    )


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def snapshot() -> ReconciliationDetails:
    return build_snapshot()


@pytest.fixture
def remote() -> FakeRemote:
    """Remote store seeded with the reference reconciliation ``REC-1``."""
    fake = FakeRemote()
    fake.reconciliations["REC-1"] = build_snapshot()
    return fake


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session, remote):
    """FastAPI test client with overridden DB and remote API dependencies."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_client] = lambda: remote
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_client_factory] = lambda: (lambda: remote)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
