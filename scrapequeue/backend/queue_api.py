"""Blacklight queue and session endpoints.

Thin typed wrappers over :class:`~scrapequeue.backend.http_client.BackendHttpClient`
for the ``/api/scraper/queue/*`` routes.  Semantic answers the orchestrator
branches on are returned as values:

* ``204`` from next-role-location → :data:`QUEUE_EMPTY`
* ``409`` from next-role-location → :class:`QueueConflict`

Any other unexpected status raises
:class:`~scrapequeue.core.exceptions.BackendResponseError`; a 2xx body that
does not parse raises :class:`~scrapequeue.core.exceptions.BackendProtocolError`.

Typical usage::

    api = QueueApi(client)
    status = await api.check_active_session()
    item = await api.next_queue_item()
    if isinstance(item, QueueItem):
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final

import httpx
from pydantic import ValidationError

from scrapequeue.backend.http_client import BackendHttpClient
from scrapequeue.core.exceptions import BackendProtocolError, BackendResponseError
from scrapequeue.core.models import ActiveSessionStatus, JobRecord, QueueItem

__all__ = [
    "QueueApi",
    "QueueEmpty",
    "QueueConflict",
    "QUEUE_EMPTY",
    "NextItemResult",
    "response_detail",
]

logger = logging.getLogger(__name__)

_QUEUE_PREFIX: Final[str] = "/api/scraper/queue"


@dataclass(frozen=True)
class QueueEmpty:
    """next-role-location answered 204."""


@dataclass(frozen=True)
class QueueConflict:
    """next-role-location answered 409: a session is already active."""

    detail: str = "Scraper already has an active session"


QUEUE_EMPTY: Final[QueueEmpty] = QueueEmpty()

NextItemResult = QueueItem | QueueEmpty | QueueConflict


def response_detail(response: httpx.Response) -> str:
    """Extract the ``error`` / ``message`` field of a JSON error body.

    Falls back to the reason phrase when the body is not JSON.
    """
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict):
        for key in ("error", "message"):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase


def _json_body(response: httpx.Response, method: str, url: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise BackendProtocolError(method, url, f"response is not JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise BackendProtocolError(method, url, f"expected a JSON object, got {type(body).__name__}")
    return body


class QueueApi:
    """Queue/session REST calls.

    Args:
        client: Shared backend HTTP client.
    """

    def __init__(self, client: BackendHttpClient) -> None:
        self._client = client

    def _url(self, path: str) -> str:
        return f"{self._client.base_url}{path}"

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    async def check_active_session(self) -> ActiveSessionStatus:
        """Ask the backend whether a scrape session is already open.

        Raises:
            BackendUnavailableError: Retry budget exhausted.
            BackendResponseError: Non-2xx status.
            BackendProtocolError: Malformed body.
        """
        path = f"{_QUEUE_PREFIX}/current-session"
        response = await self._client.get(path)
        if not response.is_success:
            raise BackendResponseError(
                "GET", self._url(path), response.status_code, response_detail(response)
            )
        body = _json_body(response, "GET", self._url(path))
        try:
            return ActiveSessionStatus.model_validate(body)
        except ValidationError as exc:
            raise BackendProtocolError("GET", self._url(path), str(exc)) from exc

    async def next_queue_item(self) -> NextItemResult:
        """Fetch the next role + location, opening a backend session.

        Returns:
            The :class:`~scrapequeue.core.models.QueueItem`, :data:`QUEUE_EMPTY`
            on 204, or a :class:`QueueConflict` on 409.

        Raises:
            BackendUnavailableError: Retry budget exhausted.
            BackendResponseError: Any other non-2xx status.
            BackendProtocolError: Malformed body.  ``session_id`` is set when
                the body still names the session the backend opened.
        """
        path = f"{_QUEUE_PREFIX}/next-role-location"
        response = await self._client.get(path)

        if response.status_code == 204:
            return QUEUE_EMPTY
        if response.status_code == 409:
            detail = response_detail(response)
            if detail == response.reason_phrase:
                return QueueConflict()
            return QueueConflict(detail=detail)
        if not response.is_success:
            raise BackendResponseError(
                "GET", self._url(path), response.status_code, response_detail(response)
            )

        body = _json_body(response, "GET", self._url(path))
        try:
            return QueueItem.model_validate(body)
        except ValidationError as exc:
            raw_id = body.get("session_id")
            opened = str(raw_id) if isinstance(raw_id, (str, int)) and raw_id != "" else None
            raise BackendProtocolError(
                "GET",
                self._url(path),
                str(exc),
                session_id=opened,
            ) from exc

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def submit_jobs(
        self,
        session_id: str,
        platform: str,
        jobs: list[JobRecord],
        *,
        status: str = "success",
        error_message: str | None = None,
    ) -> dict[str, Any]:
        """Submit one platform's jobs (or its failure) for a session.

        ``status`` and ``error_message`` are only put on the wire for failed
        submissions.

        Returns:
            The decoded acknowledgement body (``{status, progress}``), or an
            empty dict when the backend sent none.

        Raises:
            BackendUnavailableError: Retry budget exhausted.
            BackendResponseError: Any non-2xx status (400, 404, …).
        """
        path = f"{_QUEUE_PREFIX}/jobs"
        payload: dict[str, Any] = {
            "session_id": session_id,
            "platform": platform,
            "jobs": jobs,
        }
        if status != "success":
            payload["status"] = status
            payload["error_message"] = error_message or "Unknown error"

        response = await self._client.post(path, json=payload)
        if not response.is_success:
            raise BackendResponseError(
                "POST", self._url(path), response.status_code, response_detail(response)
            )
        logger.debug(
            "Submitted %d job(s) for %s (session %s, status=%s)",
            len(jobs),
            platform,
            session_id,
            status,
        )
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def complete_session(self, session_id: str) -> dict[str, Any]:
        """Mark a session complete.

        Raises:
            BackendUnavailableError: Retry budget exhausted.
            BackendResponseError: Any non-2xx status.
        """
        path = f"{_QUEUE_PREFIX}/complete"
        response = await self._client.post(path, json={"session_id": session_id})
        if not response.is_success:
            raise BackendResponseError(
                "POST", self._url(path), response.status_code, response_detail(response)
            )
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def fail_session(self, session_id: str, error_message: str) -> None:
        """Mark a whole session failed.

        Raises:
            BackendUnavailableError: Retry budget exhausted.
            BackendResponseError: Any non-2xx status.
        """
        path = f"{_QUEUE_PREFIX}/fail"
        response = await self._client.post(
            path, json={"session_id": session_id, "error_message": error_message}
        )
        if not response.is_success:
            raise BackendResponseError(
                "POST", self._url(path), response.status_code, response_detail(response)
            )
