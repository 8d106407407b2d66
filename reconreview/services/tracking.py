"""Follow-up of a remote reconciliation job.

The reconciliation itself runs on the remote service and can take minutes.
The job being followed is checkpointed in the local database so a restart
(or another worker) can pick the polling back up:

  * saved when the job is submitted,
  * updated on every poll tick,
  * cleared when the job completes or fails,
  * ignored and removed once older than ``tracking_max_age_hours``.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from reconreview.core.config import Settings, settings as default_settings
from reconreview.core.errors import ReconciliationJobError
from reconreview.core.logging import get_logger
from reconreview.models.tracking import ActiveReconciliation
from reconreview.schemas.reconciliation import ReconciliationResult

logger = get_logger(__name__)

_TERMINAL = ("COMPLETED", "ERROR")


def utc_now() -> datetime:
    """Naive UTC timestamp, as stored in the checkpoint table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def status_message(status: str, progress: float = 0, error: Optional[str] = None) -> str:
    """Human-readable label for a job status."""
    if status == "PENDING":
        return "En attente de traitement..."
    if status == "PROCESSING":
        return f"Traitement en cours... ({progress:g}%)"
    if status == "COMPLETED":
        return "Réconciliation terminée"
    if status == "ERROR":
        return error or "Erreur lors de la réconciliation"
    return "Statut inconnu"


class ReconciliationTracker:
    """Database-backed checkpoint of the job currently being followed."""

    def __init__(
        self,
        db: Session,
        max_age: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.max_age = max_age or timedelta(hours=default_settings.tracking_max_age_hours)
        self.clock = clock

    @classmethod
    def from_settings(cls, db: Session, config: Settings) -> "ReconciliationTracker":
        return cls(db, max_age=timedelta(hours=config.tracking_max_age_hours))

    def save_state(
        self,
        reconciliation_id: str,
        status: str = "PENDING",
        progress: float = 0.0,
        message: Optional[str] = None,
    ) -> ActiveReconciliation:
        """Start following *reconciliation_id*, replacing any previous job."""
        self.db.query(ActiveReconciliation).delete()
        state = ActiveReconciliation(
            reconciliation_id=reconciliation_id,
            status=status,
            progress=progress,
            message=message or status_message(status, progress),
            start_time=self.clock(),
        )
        self.db.add(state)
        self.db.commit()
        logger.info("Tracking reconciliation %s (%s)", reconciliation_id, status)
        return state

    def get_state(self) -> Optional[ActiveReconciliation]:
        """The followed job, or ``None`` (expired checkpoints are dropped)."""
        state = (
            self.db.query(ActiveReconciliation)
            .order_by(ActiveReconciliation.start_time.desc())
            .first()
        )
        if state is None:
            return None
        if self.clock() - state.start_time > self.max_age:
            logger.info("Dropping stale tracking state for %s", state.reconciliation_id)
            self.clear_state()
            return None
        return state

    def update_status(
        self,
        status: str,
        progress: float,
        message: Optional[str] = None,
    ) -> Optional[ActiveReconciliation]:
        state = self.get_state()
        if state is None:
            return None
        state.status = status
        state.progress = progress
        state.message = message
        if status in _TERMINAL:
            state.end_time = self.clock()
        self.db.commit()
        return state

    def clear_state(self) -> None:
        self.db.query(ActiveReconciliation).delete()
        self.db.commit()

    def has_active_reconciliation(self) -> bool:
        state = self.get_state()
        return state is not None and state.is_running


def poll_reconciliation(
    client: Any,
    tracker: ReconciliationTracker,
    reconciliation_id: str,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    max_polls: Optional[int] = None,
) -> Optional[ReconciliationResult]:
    """Poll the remote job until it completes; return its result.

    The checkpoint is updated on every tick and cleared when the job ends.
    A failing status request propagates and leaves the checkpoint in
    place, so the job can still be resumed.

    Raises:
        ReconciliationJobError: the job is unknown or ended in ``ERROR``.
    """
    polls = 0
    while True:
        status = client.get_status(reconciliation_id)
        if status is None:
            tracker.clear_state()
            raise ReconciliationJobError(reconciliation_id, "Réconciliation non trouvée")

        message = status_message(status.status, status.progress, status.error)
        tracker.update_status(status.status, status.progress, message)
        logger.info(
            "Reconciliation %s: status=%s progress=%s",
            reconciliation_id,
            status.status,
            status.progress,
        )

        if status.status == "COMPLETED":
            result = client.get_result(reconciliation_id)
            tracker.clear_state()
            return result
        if status.status == "ERROR":
            tracker.clear_state()
            raise ReconciliationJobError(reconciliation_id, message)

        polls += 1
        if max_polls is not None and polls >= max_polls:
            logger.warning("Stopped polling %s after %d ticks", reconciliation_id, polls)
            return None
        sleep(interval)


def run_tracking_job(
    db_factory: Callable[[], Session],
    client_factory: Callable[[], Any],
    reconciliation_id: str,
    config: Settings,
) -> None:
    """Background task: follow *reconciliation_id* until it ends."""
    db = db_factory()
    client = client_factory()
    try:
        tracker = ReconciliationTracker.from_settings(db, config)
        poll_reconciliation(client, tracker, reconciliation_id, config.poll_interval_seconds)
        logger.info("Reconciliation %s completed", reconciliation_id)
    except Exception:
        logger.exception("Tracking of reconciliation %s failed", reconciliation_id)
    finally:
        close = getattr(client, "close", None)
        if close is not None:
            close()
        db.close()
