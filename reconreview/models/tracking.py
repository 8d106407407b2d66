"""Active reconciliation checkpoint, kept while a remote job runs."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from reconreview.core.database import Base


class ActiveReconciliation(Base):
    """The remote reconciliation job currently being followed.

    At most one row exists: saving a new job replaces the previous one,
    and the row is removed once the job completes or fails.
    """

    __tablename__ = "active_reconciliation"

    reconciliation_id: Mapped[str] = mapped_column(
        String(100),
        primary_key=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="PENDING | PROCESSING | COMPLETED | ERROR",
    )
    progress: Mapped[float] = mapped_column(
        Float,
        default=0.0,
    )
    message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    start_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    end_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def is_running(self) -> bool:
        return self.status in ("PENDING", "PROCESSING")

    def __repr__(self) -> str:
        return (
            f"<ActiveReconciliation(reconciliation_id={self.reconciliation_id!r}, "
            f"status={self.status!r}, progress={self.progress})>"
        )
