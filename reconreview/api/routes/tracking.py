"""Submission and follow-up of remote reconciliation jobs."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from reconreview.api.deps import get_client, get_client_factory, get_session_factory
from reconreview.core.config import settings
from reconreview.core.database import get_db
from reconreview.core.logging import get_logger
from reconreview.models.tracking import ActiveReconciliation
from reconreview.schemas.view import TrackingStateResponse, UploadResponse
from reconreview.services.remote.client import ReconciliationClient
from reconreview.services.tracking import ReconciliationTracker, run_tracking_job

logger = get_logger(__name__)

router = APIRouter()


async def _as_tuple(upload: UploadFile) -> tuple[str, bytes, str]:
    content = await upload.read()
    if not content:
        raise HTTPException(
            status_code=400,
            detail=f"Le fichier '{upload.filename or 'unknown'}' est vide.",
        )
    return (
        upload.filename or "unknown",
        content,
        upload.content_type or "application/octet-stream",
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    background_tasks: BackgroundTasks,
    invoices: UploadFile = File(..., description="Invoice export (xlsx / csv)"),
    transactions: UploadFile = File(..., description="Bank statement (xlsx / csv)"),
    db: Session = Depends(get_db),
    client: ReconciliationClient = Depends(get_client),
    session_factory=Depends(get_session_factory),
    client_factory=Depends(get_client_factory),
) -> UploadResponse:
    """Forward both files to the remote API and follow the job it starts.

    The job is checkpointed locally and polled in the background until it
    completes or fails.
    """
    invoices_file = await _as_tuple(invoices)
    transactions_file = await _as_tuple(transactions)
    logger.info(
        "Received upload: invoices=%s (%d bytes) transactions=%s (%d bytes)",
        invoices_file[0],
        len(invoices_file[1]),
        transactions_file[0],
        len(transactions_file[1]),
    )

    # The remote client is synchronous; keep it off the event loop.
    result = await run_in_threadpool(client.upload_files, invoices_file, transactions_file)
    if not result.success or not result.reconciliation_id:
        logger.warning("Upload refused by the remote API: %s", result.message)
        return UploadResponse(success=False, message=result.message)

    ReconciliationTracker.from_settings(db, settings).save_state(result.reconciliation_id)
    background_tasks.add_task(
        run_tracking_job,
        session_factory,
        client_factory,
        result.reconciliation_id,
        settings,
    )
    return UploadResponse(
        success=True,
        reconciliation_id=result.reconciliation_id,
        message=result.message,
        tracking=True,
    )


@router.get("/active", response_model=TrackingStateResponse)
def get_active(db: Session = Depends(get_db)) -> ActiveReconciliation:
    """The job currently being followed, if any (checkpoints expire)."""
    state = ReconciliationTracker.from_settings(db, settings).get_state()
    if state is None:
        raise HTTPException(status_code=404, detail="Aucune réconciliation en cours")
    return state


@router.delete("/active", status_code=204)
def clear_active(db: Session = Depends(get_db)) -> Response:
    """Stop following the current job (the remote job itself keeps running)."""
    ReconciliationTracker.from_settings(db, settings).clear_state()
    return Response(status_code=204)
