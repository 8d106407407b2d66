"""HTTP client for the remote reconciliation API.

The remote service owns invoices, transactions and matches; this client is
the only place the review service talks to it.  Read failures raise
:class:`RemoteFetchError`, write failures :class:`RemoteMutationError`
(:class:`MatchMutationError` for match edits), so callers can report them
differently.  An answer that is not JSON, or does not fit the expected
model, counts as a failure of the call that produced it.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from reconreview.core.config import Settings, settings as default_settings
from reconreview.core.errors import (
    MatchMutationError,
    ReconciliationNotFound,
    RemoteFetchError,
    RemoteMutationError,
)
from reconreview.core.logging import get_logger
from reconreview.schemas.reconciliation import (
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

logger = get_logger(__name__)


def _unwrap(payload: Any) -> Any:
    """Accept both bare payloads and ``{"success", "data"}`` envelopes."""
    if isinstance(payload, dict) and "data" in payload and "success" in payload:
        return payload["data"]
    return payload


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"


class ReconciliationClient:
    """Synchronous client over ``httpx.Client``.

    Args:
        config: Settings providing the base URL, token and timeout.
        transport: Optional ``httpx`` transport, used by tests to plug in
            an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config or default_settings
        headers = {"Accept": "application/json"}
        if self.config.remote_api_token:
            headers["Authorization"] = f"Bearer {self.config.remote_api_token}"
        self._client = httpx.Client(
            base_url=self.config.remote_api_url,
            headers=headers,
            timeout=self.config.remote_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ReconciliationClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Low-level helpers ────────────────────────────────────────────

    def _send_read(self, path: str, what: str, not_found_ok: bool = False) -> Optional[httpx.Response]:
        try:
            response = self._client.get(path)
        except httpx.HTTPError as exc:
            logger.error("Fetching %s failed: %s", what, exc)
            raise RemoteFetchError(f"Erreur lors de la récupération {what}: {exc}") from exc

        if response.status_code == 404:
            if not_found_ok:
                return None
            raise ReconciliationNotFound(
                "Réconciliation non trouvée", status_code=404, details=path
            )
        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error("Fetching %s failed: status=%d %s", what, response.status_code, detail)
            raise RemoteFetchError(
                f"Erreur lors de la récupération {what}",
                status_code=response.status_code,
                details=detail,
            )
        return response

    def _get(self, path: str, what: str, not_found_ok: bool = False) -> Any:
        response = self._send_read(path, what, not_found_ok)
        if response is None:
            return None
        try:
            return _unwrap(response.json())
        except ValueError as exc:
            logger.error("Fetching %s returned an unreadable body: %s", what, exc)
            raise RemoteFetchError(
                f"Réponse illisible lors de la récupération {what}",
                status_code=response.status_code,
                details=response.text[:200],
            ) from exc

    @staticmethod
    def _read_as(model: Any, payload: Any, what: str) -> Any:
        try:
            return TypeAdapter(model).validate_python(payload)
        except ValidationError as exc:
            logger.error("Unexpected payload for %s: %s", what, exc)
            raise RemoteFetchError(
                f"Réponse invalide lors de la récupération {what}",
                details=str(exc),
            ) from exc

    def _mutate(
        self,
        method: str,
        path: str,
        operation: str,
        match_id: Optional[str] = None,
        json: Optional[dict] = None,
        error_class: type[RemoteMutationError] = MatchMutationError,
    ) -> Any:
        try:
            response = self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.error("%s of %s failed: %s", operation, match_id or path, exc)
            raise error_class(
                f"Erreur lors de l'opération '{operation}': {exc}",
                operation=operation,
                match_id=match_id,
            ) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(
                "%s of %s failed: status=%d %s",
                operation,
                match_id or path,
                response.status_code,
                detail,
            )
            raise error_class(
                f"Erreur lors de l'opération '{operation}': {detail}",
                operation=operation,
                match_id=match_id,
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("%s of %s returned an unreadable body: %s", operation, match_id or path, exc)
            raise error_class(
                f"Réponse illisible pour l'opération '{operation}'",
                operation=operation,
                match_id=match_id,
                status_code=response.status_code,
            ) from exc
        if isinstance(payload, dict) and payload.get("success") is False:
            raise error_class(
                payload.get("message") or payload.get("error") or f"'{operation}' refusé",
                operation=operation,
                match_id=match_id,
                status_code=response.status_code,
            )
        return _unwrap(payload)

    @staticmethod
    def _match_from(payload: Any, operation: str, match_id: Optional[str] = None) -> Match:
        try:
            return Match.model_validate(payload)
        except ValidationError as exc:
            logger.error("Unexpected match payload for %s: %s", operation, exc)
            raise MatchMutationError(
                f"Réponse invalide pour l'opération '{operation}'",
                operation=operation,
                match_id=match_id,
            ) from exc

    @staticmethod
    def _reconciliation_path(reconciliation_id: str) -> str:
        return f"/facturation/reconciliations/{reconciliation_id}"

    @classmethod
    def _matches_path(cls, reconciliation_id: str, match_id: Optional[str] = None) -> str:
        path = cls._reconciliation_path(reconciliation_id) + "/matches"
        if match_id is not None:
            path += f"/{match_id}"
        return path

    # ── Reads ────────────────────────────────────────────────────────

    def list_reconciliations(self) -> list[ReconciliationSummary]:
        """Every reconciliation known to the remote API, without rows."""
        payload = self._get("/facturation/reconciliations", "des réconciliations")
        summaries = self._read_as(list[ReconciliationSummary], payload or [], "des réconciliations")
        logger.info("Listed %d reconciliation(s)", len(summaries))
        return summaries

    def fetch_reconciliation(self, reconciliation_id: str) -> ReconciliationDetails:
        """Full snapshot: invoices, transactions and matches."""
        payload = self._get(self._reconciliation_path(reconciliation_id), "de la réconciliation")
        details = self._read_as(ReconciliationDetails, payload, "de la réconciliation")
        logger.info(
            "Fetched reconciliation %s: invoices=%d transactions=%d matches=%d",
            reconciliation_id,
            len(details.invoices),
            len(details.transactions),
            len(details.matches),
        )
        return details

    def fetch_suggestions(self, reconciliation_id: str, invoice_id: str) -> list[MatchSuggestion]:
        """Ranked candidate transactions for one invoice."""
        payload = self._get(
            f"{self._reconciliation_path(reconciliation_id)}/invoices/{invoice_id}/suggestions",
            "des suggestions",
        )
        return self._read_as(list[MatchSuggestion], payload or [], "des suggestions")

    def get_status(self, reconciliation_id: str) -> Optional[ReconciliationStatus]:
        """Current job status, or ``None`` if the remote job is unknown."""
        payload = self._get(
            f"/facturation/reconciliation/{reconciliation_id}/status",
            "du statut",
            not_found_ok=True,
        )
        if payload is None:
            return None
        return self._read_as(ReconciliationStatus, payload, "du statut")

    def get_result(self, reconciliation_id: str) -> Optional[ReconciliationResult]:
        """Outcome of a finished job, or ``None`` if there is none yet."""
        payload = self._get(
            f"/facturation/reconciliation/{reconciliation_id}/result",
            "du résultat",
            not_found_ok=True,
        )
        if payload is None:
            return None
        return self._read_as(ReconciliationResult, payload, "du résultat")

    def download_file(self, download_url: str) -> tuple[bytes, str]:
        """Raw bytes and content type behind a result's ``downloadUrl``."""
        response = self._send_read(download_url, "du fichier")
        content_type = response.headers.get(
            "content-type",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        logger.info("Downloaded %s (%d bytes)", download_url, len(response.content))
        return response.content, content_type

    # ── Writes ───────────────────────────────────────────────────────

    def upload_files(
        self,
        invoices: tuple[str, bytes, str],
        transactions: tuple[str, bytes, str],
    ) -> UploadResult:
        """Forward the two source files and start a remote reconciliation job.

        Each file is a ``(filename, content, content_type)`` tuple.
        """
        try:
            response = self._client.post(
                "/facturation/upload",
                files={"invoices": invoices, "transactions": transactions},
            )
        except httpx.HTTPError as exc:
            logger.error("Upload failed: %s", exc)
            return UploadResult(success=False, message=f"Erreur lors de l'upload: {exc}")

        if response.status_code >= 400:
            return UploadResult(success=False, message=_error_detail(response))
        try:
            return UploadResult.model_validate(response.json())
        except ValueError as exc:
            logger.error("Upload answered an unreadable body: %s", exc)
            return UploadResult(success=False, message="Réponse invalide du serveur après l'upload")

    def delete_reconciliation(self, reconciliation_id: str) -> bool:
        """Remove a reconciliation and everything it holds on the remote side."""
        self._mutate(
            "DELETE",
            self._reconciliation_path(reconciliation_id),
            "delete_reconciliation",
            error_class=RemoteMutationError,
        )
        logger.info("Deleted reconciliation %s", reconciliation_id)
        return True

    def update_title(self, reconciliation_id: str, title: str) -> str:
        self._mutate(
            "PATCH",
            self._reconciliation_path(reconciliation_id),
            "update_title",
            json={"title": title},
            error_class=RemoteMutationError,
        )
        logger.info("Renamed reconciliation %s", reconciliation_id)
        return title

    def create_match(self, reconciliation_id: str, request: MatchCreateRequest) -> Match:
        payload = self._mutate(
            "POST",
            self._matches_path(reconciliation_id),
            "create",
            json=request.model_dump(by_alias=True, exclude_none=True),
        )
        if not payload:
            raise MatchMutationError(
                "Erreur lors de la création du nouveau match", operation="create"
            )
        match = self._match_from(payload, "create")
        logger.info("Created match %s for invoice %s", match.id, match.invoice_id)
        return match

    def update_match(
        self,
        reconciliation_id: str,
        match_id: str,
        update: MatchUpdateRequest,
    ) -> Match:
        payload = self._mutate(
            "PATCH",
            self._matches_path(reconciliation_id, match_id),
            "update",
            match_id=match_id,
            json=update.model_dump(by_alias=True, exclude_unset=True),
        )
        logger.info("Updated match %s", match_id)
        return self._match_from(payload, "update", match_id)

    def delete_match(self, reconciliation_id: str, match_id: str) -> bool:
        self._mutate(
            "DELETE",
            self._matches_path(reconciliation_id, match_id),
            "delete",
            match_id=match_id,
        )
        logger.info("Deleted match %s", match_id)
        return True

    def _set_validation(
        self,
        reconciliation_id: str,
        match_id: str,
        action: str,
        notes: list[str],
    ) -> Match:
        payload = self._mutate(
            "POST",
            self._matches_path(reconciliation_id, match_id) + "/validation",
            action,
            match_id=match_id,
            json={"action": action, "notes": notes},
        )
        logger.info("Match %s: %s", match_id, action)
        return self._match_from(payload, action, match_id)

    def validate_match(self, reconciliation_id: str, match_id: str, notes: list[str]) -> Match:
        """Mark a match VALIDATED."""
        return self._set_validation(reconciliation_id, match_id, "validate", notes)

    def reject_match(self, reconciliation_id: str, match_id: str, notes: list[str]) -> Match:
        """Mark a match REJECTED."""
        return self._set_validation(reconciliation_id, match_id, "reject", notes)
