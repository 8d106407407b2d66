"""Excel export of the review table and download of the remote result file."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Response

from reconreview.api.deps import get_client, get_view_state, raise_http
from reconreview.core.config import settings
from reconreview.core.errors import ReviewError
from reconreview.core.logging import get_logger
from reconreview.schemas.reconciliation import ReconciliationDetails
from reconreview.schemas.view import ExportSavedResponse
from reconreview.services.export.excel import (
    ExportMeta,
    build_export_filename,
    export_snapshot,
    write_export,
)
from reconreview.services.remote.client import ReconciliationClient
from reconreview.services.review.grouping import SnapshotIndex
from reconreview.services.review.pagination import ViewState
from reconreview.services.review.projector import project

logger = get_logger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _export_meta(details: ReconciliationDetails, state: ViewState) -> ExportMeta:
    return ExportMeta(
        reconciliation_id=details.id,
        reconciliation_name=details.title or "",
        reconciliation_date=details.start_time or details.created_at,
        search_term=state.search_term,
        selected_filters=sorted(state.selected_filters),
        sort=state.sort,
        exported_at=datetime.now(),
    )


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}


@router.get("/{reconciliation_id}/export")
def export_reconciliation(
    reconciliation_id: str,
    state: ViewState = Depends(get_view_state),
    client: ReconciliationClient = Depends(get_client),
) -> Response:
    """Download every row matching the current search, filters and sort.

    Paging is ignored: the workbook holds all filtered rows in display order.
    """
    try:
        details = client.fetch_reconciliation(reconciliation_id)
    except ReviewError as exc:
        raise_http(exc)

    view = project(details, state)
    meta = _export_meta(details, state)
    content = export_snapshot(view.items, SnapshotIndex.from_details(details).transaction_of, meta)

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers=_attachment(build_export_filename(meta)),
    )


@router.post(
    "/{reconciliation_id}/exports",
    response_model=ExportSavedResponse,
    status_code=201,
)
def save_export(
    reconciliation_id: str,
    state: ViewState = Depends(get_view_state),
    client: ReconciliationClient = Depends(get_client),
) -> ExportSavedResponse:
    """Write the export into the configured export directory.

    An existing file with the same name is kept; the new one gets a
    ``_2``, ``_3``… suffix.
    """
    try:
        details = client.fetch_reconciliation(reconciliation_id)
    except ReviewError as exc:
        raise_http(exc)

    view = project(details, state)
    path = write_export(
        settings.export_dir,
        view.items,
        SnapshotIndex.from_details(details).transaction_of,
        _export_meta(details, state),
    )
    return ExportSavedResponse(
        reconciliation_id=details.id,
        file_name=path.name,
        path=str(path),
    )


@router.get("/{reconciliation_id}/file")
def download_result_file(
    reconciliation_id: str,
    client: ReconciliationClient = Depends(get_client),
) -> Response:
    """The workbook produced by the remote reconciliation job itself."""
    try:
        result = client.get_result(reconciliation_id)
        if result is None or not result.download_url:
            raise HTTPException(
                status_code=404,
                detail="Aucun fichier disponible pour cette réconciliation",
            )
        content, media_type = client.download_file(result.download_url)
    except ReviewError as exc:
        raise_http(exc)

    filename = result.file_name or f"reconciliation_{reconciliation_id}.xlsx"
    return Response(content=content, media_type=media_type, headers=_attachment(filename))
