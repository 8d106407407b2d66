"""Excel export of the review table as currently filtered and sorted.

The export takes the unpaginated rows, so every row matching the active
search and filters is written, in display order.  A multiple-match row
stays one spreadsheet row: each transaction column lists the alternatives
separated by ``" | OU | "``.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import pandas as pd
from openpyxl.utils import get_column_letter

from reconreview.core.logging import get_logger
from reconreview.services.review.confidence import (
    effective_confidence,
    effective_transaction,
    match_type_label,
)
from reconreview.services.review.filters import DisplayItem, MultipleItem
from reconreview.services.review.sorting import SortConfig

logger = get_logger(__name__)

ALTERNATIVE_SEPARATOR = " | OU | "
DATA_SHEET = "Correspondances"
INFO_SHEET = "Informations Export"
NO_TRANSACTION = "Aucune transaction"
MISSING = "N/A"

COLUMNS: list[tuple[str, int]] = [
    ("Référence Facture", 20),
    ("Client", 30),
    ("Montant Facture (€)", 15),
    ("Date Facturation", 15),
    ("Libellé Transaction", 60),
    ("Montant Transaction (€)", 30),
    ("Date Transaction", 30),
    ("Détails Transaction", 60),
    ("Notes", 60),
    ("Type de Correspondance", 20),
    ("Confiance (%)", 12),
]

INFO_COLUMNS: list[tuple[str, int]] = [("Propriété", 25), ("Valeur", 50)]


@dataclass
class ExportMeta:
    """Context recorded on the "Informations Export" sheet and in the filename."""

    reconciliation_id: str
    reconciliation_name: str = ""
    reconciliation_date: Optional[datetime] = None
    search_term: str = ""
    selected_filters: list[str] = field(default_factory=list)
    sort: SortConfig = field(default_factory=SortConfig)
    exported_at: datetime = field(default_factory=datetime.now)

    @property
    def has_filters(self) -> bool:
        return bool(self.search_term) or bool(self.selected_filters)


TransactionLookup = Callable[[Any], Optional[Any]]


def _invoice_columns(invoice: Optional[Any]) -> dict[str, Any]:
    if invoice is None:
        return {
            "Référence Facture": MISSING,
            "Client": MISSING,
            "Montant Facture (€)": 0,
            "Date Facturation": MISSING,
        }
    return {
        "Référence Facture": invoice.ref or MISSING,
        "Client": invoice.tiers or MISSING,
        "Montant Facture (€)": round(invoice.montant_ttc, 2) if invoice.montant_ttc else 0,
        "Date Facturation": invoice.date_facturation or MISSING,
    }


def _whole_percent(value: float) -> int:
    """Half-up rounding, so 72.5 shows as 73."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _notes(match: Any) -> str:
    return "; ".join(match.notes or [])


def _multiple_row(item: MultipleItem, transaction_of: TransactionLookup) -> dict[str, Any]:
    transactions = [
        effective_transaction(match, transaction_of(match)) for match in item.matches
    ]

    def joined(render: Callable[[Optional[Any]], str]) -> str:
        return ALTERNATIVE_SEPARATOR.join(render(t) for t in transactions)

    notes = " | ".join(note for note in (_notes(m) for m in item.matches) if note)

    row = _invoice_columns(item.invoice)
    row.update(
        {
            "Libellé Transaction": joined(lambda t: (t.libelles if t else None) or NO_TRANSACTION),
            "Montant Transaction (€)": joined(
                lambda t: f"{t.montant:.2f} €" if t is not None and t.montant else "0 €"
            ),
            "Date Transaction": joined(lambda t: (t.date_comptable if t else None) or MISSING),
            "Détails Transaction": joined(
                lambda t: (t.details_mouvement if t else None) or MISSING
            ),
            "Notes": notes,
            "Type de Correspondance": "Multiple",
            "Confiance (%)": "Variable",
        }
    )
    return row


def _single_row(item: Any, transaction_of: TransactionLookup) -> dict[str, Any]:
    match = item.match
    resolved = transaction_of(match)
    transaction = effective_transaction(match, resolved)

    row = _invoice_columns(item.invoice)
    row.update(
        {
            "Libellé Transaction": (transaction.libelles if transaction else None)
            or NO_TRANSACTION,
            "Montant Transaction (€)": round(transaction.montant, 2)
            if transaction is not None and transaction.montant
            else 0,
            "Date Transaction": (transaction.date_comptable if transaction else None) or MISSING,
            "Détails Transaction": (transaction.details_mouvement if transaction else None)
            or MISSING,
            "Notes": _notes(match),
            "Type de Correspondance": match_type_label(
                match.match_type, match.validation_status, match.is_manual_match
            ),
            "Confiance (%)": _whole_percent(effective_confidence(match, resolved)),
        }
    )
    return row


def build_export_rows(
    items: Iterable[DisplayItem],
    transaction_of: TransactionLookup,
) -> list[dict[str, Any]]:
    """One spreadsheet row per display row, in the given order."""
    rows = []
    for item in items:
        if isinstance(item, MultipleItem):
            rows.append(_multiple_row(item, transaction_of))
        else:
            rows.append(_single_row(item, transaction_of))
    return rows


def build_info_rows(meta: ExportMeta, total_rows: int) -> list[dict[str, Any]]:
    return [
        {"Propriété": "ID Réconciliation", "Valeur": meta.reconciliation_id},
        {"Propriété": "Nom", "Valeur": meta.reconciliation_name},
        {"Propriété": "Date d'export", "Valeur": meta.exported_at.strftime("%d/%m/%Y %H:%M:%S")},
        {"Propriété": "Nombre total d'éléments", "Valeur": total_rows},
        {"Propriété": "Terme de recherche", "Valeur": meta.search_term or "Aucun"},
        {
            "Propriété": "Filtres appliqués",
            "Valeur": ", ".join(meta.selected_filters) if meta.selected_filters else "Aucun",
        },
        {"Propriété": "Tri appliqué", "Valeur": meta.sort.describe()},
    ]


def build_export_filename(meta: ExportMeta) -> str:
    """``Réconciliation_<DD-MM-YYYY>_<HHhMM>[_avec_filtres].xlsx``.

    Date and time are the reconciliation's own reference date; the export
    time is only used when the reconciliation has none.  Timezone-aware
    dates are shown in local time.
    """
    reference = meta.reconciliation_date or meta.exported_at
    if reference.tzinfo is not None:
        reference = reference.astimezone()
    suffix = "_avec_filtres" if meta.has_filters else ""
    return f"Réconciliation_{reference.strftime('%d-%m-%Y')}_{reference.strftime('%Hh%M')}{suffix}.xlsx"


def _frame(rows: list[dict[str, Any]], columns: list[tuple[str, int]]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=[name for name, _ in columns])


def export_snapshot(
    items: Iterable[DisplayItem],
    transaction_of: TransactionLookup,
    meta: ExportMeta,
) -> bytes:
    """Serialize *items* to an xlsx workbook and return its bytes."""
    rows = build_export_rows(items, transaction_of)
    sheets = {
        DATA_SHEET: (_frame(rows, COLUMNS), COLUMNS),
        INFO_SHEET: (_frame(build_info_rows(meta, len(rows)), INFO_COLUMNS), INFO_COLUMNS),
    }

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet_name, (df, columns) in sheets.items():
            safe_name = sheet_name[:31]
            df.to_excel(writer, sheet_name=safe_name, index=False)
            worksheet = writer.sheets[safe_name]
            for position, (_, width) in enumerate(columns, start=1):
                worksheet.column_dimensions[get_column_letter(position)].width = width

    logger.info(
        "Exported reconciliation %s: rows=%d filtered=%s",
        meta.reconciliation_id,
        len(rows),
        meta.has_filters,
    )
    return buffer.getvalue()


def unique_export_path(directory: Path, filename: str) -> Path:
    """Path for *filename* in *directory*, suffixed ``_2``, ``_3``… if taken."""
    candidate = directory / filename
    stem, suffix = candidate.stem, candidate.suffix
    counter = 2
    while candidate.exists():
        candidate = directory / f"{stem}_{counter}{suffix}"
        counter += 1
    return candidate


def write_export(
    directory: str | Path,
    items: Iterable[DisplayItem],
    transaction_of: TransactionLookup,
    meta: ExportMeta,
) -> Path:
    """Write the export into *directory* without overwriting an earlier one."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = unique_export_path(directory, build_export_filename(meta))
    path.write_bytes(export_snapshot(items, transaction_of, meta))
    logger.info("Export written to %s", path)
    return path
