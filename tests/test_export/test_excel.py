"""Tests for the Excel export of the review table."""

from __future__ import annotations

import io
from datetime import datetime, timezone

import pandas as pd
import pytest

from reconreview.services.export.excel import (
    ALTERNATIVE_SEPARATOR,
    DATA_SHEET,
    INFO_SHEET,
    ExportMeta,
    build_export_filename,
    build_export_rows,
    build_info_rows,
    export_snapshot,
    write_export,
)
from reconreview.services.review.grouping import SnapshotIndex
from reconreview.services.review.pagination import ViewState
from reconreview.services.review.projector import project
from reconreview.services.review.sorting import SortConfig


@pytest.fixture
def view(snapshot):
    return project(snapshot, ViewState())


@pytest.fixture
def transaction_of(snapshot):
    return SnapshotIndex.from_details(snapshot).transaction_of


@pytest.fixture
def meta() -> ExportMeta:
    return ExportMeta(
        reconciliation_id="REC-1",
        reconciliation_name="Relevé janvier 2024",
        reconciliation_date=datetime(2024, 2, 1, 9, 30),
        exported_at=datetime(2024, 3, 4, 16, 5, 9),
    )


def _row(rows, ref):
    return next(r for r in rows if r["Référence Facture"] == ref)


# ── Tests ────────────────────────────────────────────────────────────


class TestExportRows:
    """Tests for build_export_rows()."""

    def test_one_row_per_display_row_in_order(self, view, transaction_of) -> None:
        rows = build_export_rows(view.items, transaction_of)
        assert [r["Référence Facture"] for r in rows] == ["FA-005", "FA-001", "FA-003", "FA-002"]

    def test_multiple_row_joins_three_alternatives(self, view, transaction_of) -> None:
        row = _row(build_export_rows(view.items, transaction_of), "FA-003")

        segments = row["Libellé Transaction"].split(ALTERNATIVE_SEPARATOR)
        assert segments == ["VIR BERNARD", "VIR BERNARD SA", "CHQ 123456"]
        assert row["Montant Transaction (€)"] == "980.00 € | OU | 979.99 € | OU | 980.00 €"
        assert row["Date Transaction"].count(ALTERNATIVE_SEPARATOR) == 2
        assert row["Type de Correspondance"] == "Multiple"
        assert row["Confiance (%)"] == "Variable"

    def test_single_row(self, view, transaction_of) -> None:
        row = _row(build_export_rows(view.items, transaction_of), "FA-001")
        assert row["Client"] == "Dupont SARL"
        assert row["Montant Facture (€)"] == 1200.0
        assert row["Libellé Transaction"] == "VIR DUPONT SARL FA-001"
        assert row["Montant Transaction (€)"] == 1200.0
        assert row["Détails Transaction"] == "Virement reçu"
        assert row["Type de Correspondance"] == "Référence exacte"
        assert row["Confiance (%)"] == 95

    def test_manual_and_validated_rows_are_certain(self, view, transaction_of) -> None:
        rows = build_export_rows(view.items, transaction_of)
        assert _row(rows, "FA-005")["Type de Correspondance"] == "Manuel"
        assert _row(rows, "FA-005")["Confiance (%)"] == 100
        assert _row(rows, "FA-002")["Type de Correspondance"] == "Validé"
        assert _row(rows, "FA-002")["Confiance (%)"] == 100

    def test_rejected_match_shows_no_transaction(self, snapshot) -> None:
        snapshot.matches[0].validation_status = "REJECTED"
        view = project(snapshot, ViewState())
        transaction_of = SnapshotIndex.from_details(snapshot).transaction_of

        row = _row(build_export_rows(view.items, transaction_of), "FA-001")

        assert row["Libellé Transaction"] == "Aucune transaction"
        assert row["Date Transaction"] == "N/A"
        assert row["Montant Transaction (€)"] == 0
        assert row["Confiance (%)"] == 0

    def test_confidence_rounds_half_up(self, snapshot) -> None:
        snapshot.matches[0].confidence = 72.5
        view = project(snapshot, ViewState())
        transaction_of = SnapshotIndex.from_details(snapshot).transaction_of

        row = _row(build_export_rows(view.items, transaction_of), "FA-001")

        assert row["Confiance (%)"] == 73


class TestMetadata:
    def test_info_rows(self, meta) -> None:
        meta.search_term = "bernard"
        meta.sort = SortConfig("amount", "desc")
        info = {r["Propriété"]: r["Valeur"] for r in build_info_rows(meta, 4)}
        assert info["ID Réconciliation"] == "REC-1"
        assert info["Date d'export"] == "04/03/2024 16:05:09"
        assert info["Nombre total d'éléments"] == 4
        assert info["Terme de recherche"] == "bernard"
        assert info["Filtres appliqués"] == "Aucun"
        assert info["Tri appliqué"] == "amount (desc)"

    def test_filename_uses_reconciliation_date(self, meta) -> None:
        assert build_export_filename(meta) == "Réconciliation_01-02-2024_09h30.xlsx"

    def test_filename_uses_local_time_for_aware_dates(self, meta) -> None:
        aware = datetime(2024, 2, 1, 9, 30, tzinfo=timezone.utc)
        meta.reconciliation_date = aware
        local = aware.astimezone()
        assert build_export_filename(meta) == (
            f"Réconciliation_{local:%d-%m-%Y}_{local:%Hh%M}.xlsx"
        )

    def test_filename_flags_filters(self, meta) -> None:
        meta.selected_filters = ["MULTIPLE"]
        assert build_export_filename(meta).endswith("_avec_filtres.xlsx")

    def test_filename_falls_back_to_export_time(self, meta) -> None:
        meta.reconciliation_date = None
        assert build_export_filename(meta) == "Réconciliation_04-03-2024_16h05.xlsx"


class TestWorkbook:
    def test_workbook_round_trip(self, view, transaction_of, meta) -> None:
        content = export_snapshot(view.items, transaction_of, meta)

        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None)
        assert list(sheets) == [DATA_SHEET, INFO_SHEET]
        data = sheets[DATA_SHEET]
        assert len(data) == 4
        assert list(data["Référence Facture"]) == ["FA-005", "FA-001", "FA-003", "FA-002"]

    def test_write_export_never_overwrites(self, tmp_path, view, transaction_of, meta) -> None:
        first = write_export(tmp_path, view.items, transaction_of, meta)
        second = write_export(tmp_path, view.items, transaction_of, meta)

        assert first.name == "Réconciliation_01-02-2024_09h30.xlsx"
        assert second.name == "Réconciliation_01-02-2024_09h30_2.xlsx"
        assert first.exists() and second.exists()
