"""SQLAlchemy models for the reconciliation review service."""

from reconreview.models.tracking import ActiveReconciliation

__all__ = [
    "ActiveReconciliation",
]
