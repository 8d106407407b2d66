"""Tests for the persisted reconciliation job checkpoint and polling loop."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reconreview.core.errors import ReconciliationJobError, RemoteFetchError
from reconreview.models.tracking import ActiveReconciliation
from reconreview.schemas.reconciliation import ReconciliationStatus
from reconreview.services.tracking import (
    ReconciliationTracker,
    poll_reconciliation,
    status_message,
    utc_now,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 2, 1, 9, 0)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(db_session, clock) -> ReconciliationTracker:
    return ReconciliationTracker(db_session, max_age=timedelta(hours=24), clock=clock)


def _status(status: str, progress: float = 0, error=None) -> ReconciliationStatus:
    return ReconciliationStatus(status=status, progress=progress, error=error)


# ── Tests ────────────────────────────────────────────────────────────


class TestTracker:
    def test_default_clock_is_naive_utc(self, db_session) -> None:
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        state = ReconciliationTracker(db_session).save_state("REC-1")
        after = utc_now()

        assert state.start_time.tzinfo is None
        assert before <= state.start_time <= after

    def test_save_replaces_previous_job(self, tracker, db_session) -> None:
        tracker.save_state("REC-1")
        tracker.save_state("REC-2")

        assert db_session.query(ActiveReconciliation).count() == 1
        state = tracker.get_state()
        assert state.reconciliation_id == "REC-2"
        assert state.status == "PENDING"
        assert state.message == "En attente de traitement..."
        assert tracker.has_active_reconciliation() is True

    def test_update_and_terminal_end_time(self, tracker, clock) -> None:
        tracker.save_state("REC-1")
        tracker.update_status("PROCESSING", 40, "Traitement en cours... (40%)")
        assert tracker.get_state().progress == 40
        assert tracker.get_state().end_time is None

        clock.now += timedelta(minutes=3)
        state = tracker.update_status("COMPLETED", 100)
        assert state.end_time == clock.now
        assert tracker.has_active_reconciliation() is False

    def test_update_without_job_is_noop(self, tracker) -> None:
        assert tracker.update_status("PROCESSING", 10) is None

    def test_stale_checkpoint_is_dropped(self, tracker, clock, db_session) -> None:
        tracker.save_state("REC-1")
        clock.now += timedelta(hours=25)

        assert tracker.get_state() is None
        assert db_session.query(ActiveReconciliation).count() == 0

    def test_clear(self, tracker) -> None:
        tracker.save_state("REC-1")
        tracker.clear_state()
        assert tracker.get_state() is None


class TestStatusMessage:
    @pytest.mark.parametrize(
        "status,expected",
        [
            ("PENDING", "En attente de traitement..."),
            ("COMPLETED", "Réconciliation terminée"),
            ("ERROR", "Erreur lors de la réconciliation"),
            ("???", "Statut inconnu"),
        ],
    )
    def test_messages(self, status, expected) -> None:
        assert status_message(status) == expected

    def test_progress_and_error(self) -> None:
        assert status_message("PROCESSING", 42.5) == "Traitement en cours... (42.5%)"
        assert status_message("ERROR", error="Fichier illisible") == "Fichier illisible"


class TestPolling:
    def test_polls_until_completed(self, tracker, remote) -> None:
        remote.statuses["REC-1"] = [
            _status("PENDING"),
            _status("PROCESSING", 50),
            _status("COMPLETED", 100),
        ]
        remote.results["REC-1"] = {"downloadUrl": "/files/rec-1.xlsx", "fileName": "rec-1.xlsx"}
        tracker.save_state("REC-1")
        sleeps = []

        result = poll_reconciliation(remote, tracker, "REC-1", 5.0, sleep=sleeps.append)

        assert result.file_name == "rec-1.xlsx"
        assert sleeps == [5.0, 5.0]
        assert tracker.get_state() is None

    def test_error_clears_and_raises(self, tracker, remote) -> None:
        remote.statuses["REC-1"] = [_status("ERROR", error="Fichier illisible")]
        tracker.save_state("REC-1")

        with pytest.raises(ReconciliationJobError, match="Fichier illisible"):
            poll_reconciliation(remote, tracker, "REC-1", 1.0, sleep=lambda s: None)
        assert tracker.get_state() is None

    def test_unknown_job_clears_and_raises(self, tracker, remote) -> None:
        tracker.save_state("REC-X")
        with pytest.raises(ReconciliationJobError):
            poll_reconciliation(remote, tracker, "REC-X", 1.0, sleep=lambda s: None)
        assert tracker.get_state() is None

    def test_fetch_error_keeps_checkpoint(self, tracker) -> None:
        class Broken:
            def get_status(self, reconciliation_id):
                raise RemoteFetchError("Erreur lors de la récupération du statut")

        tracker.save_state("REC-1")
        with pytest.raises(RemoteFetchError):
            poll_reconciliation(Broken(), tracker, "REC-1", 1.0, sleep=lambda s: None)
        assert tracker.get_state().reconciliation_id == "REC-1"

    def test_max_polls(self, tracker, remote) -> None:
        remote.statuses["REC-1"] = [_status("PROCESSING", 10)]
        tracker.save_state("REC-1")

        result = poll_reconciliation(
            remote, tracker, "REC-1", 1.0, sleep=lambda s: None, max_polls=3
        )

        assert result is None
        assert tracker.get_state().status == "PROCESSING"
        assert remote.calls.count(("status", None)) == 3
