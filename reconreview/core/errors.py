"""Exception hierarchy for the review service.

Routes catch these at the boundary of the triggering action and turn them
into user-facing messages; see ``reconreview.api.deps.raise_http``.
"""

from __future__ import annotations

from typing import Any, Optional


class ReviewError(Exception):
    """Base class for every error raised by the review service."""


class RemoteFetchError(ReviewError):
    """Loading (or reloading) a reconciliation snapshot failed."""

    def __init__(self, message: str, status_code: int = 0, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ReconciliationNotFound(RemoteFetchError):
    """The remote API does not know the requested reconciliation."""


class RemoteMutationError(ReviewError):
    """A write call to the remote API failed or answered something unreadable."""

    def __init__(
        self,
        message: str,
        operation: str,
        match_id: Optional[str] = None,
        status_code: int = 0,
    ):
        super().__init__(message)
        self.operation = operation
        self.match_id = match_id
        self.status_code = status_code


class MatchMutationError(RemoteMutationError):
    """A create / update / delete / validate / reject call on a match failed."""


class PartialResolutionError(ReviewError):
    """A multiple-match resolution stopped after some mutations were applied.

    Nothing is rolled back, so the invoice's matches are in an unknown
    state until the caller reloads the reconciliation.
    """

    def __init__(self, invoice_id: str, applied: list[str], cause: Exception):
        super().__init__(
            "La résolution a peut-être été appliquée partiellement, "
            "veuillez recharger la réconciliation"
        )
        self.invoice_id = invoice_id
        self.applied = applied
        self.cause = cause


class MatchValidationError(ReviewError, ValueError):
    """A manual match edit is invalid and was not sent to the remote API."""


class ResolutionValidationError(MatchValidationError):
    """The resolver was asked to resolve without a usable selection."""


class ReconciliationJobError(ReviewError):
    """The remote reconciliation job finished in the ERROR state."""

    def __init__(self, reconciliation_id: str, message: str):
        super().__init__(message)
        self.reconciliation_id = reconciliation_id
