"""Blacklight credential queue endpoints.

Wraps the ``/api/scraper-credentials/queue/*`` routes.  The backend owns
credential rotation and cooldowns; this module only checks a credential
out and reports what happened to it.

Typical usage::

    api = CredentialsApi(client)
    lease = await api.next_credential("linkedin", session_id="abc")
    if lease is not None:
        ...
        await api.report_success(lease.credential_id, "Scraped 12 jobs successfully")
"""

from __future__ import annotations

import logging
from typing import Any, Final

from pydantic import ValidationError

from scrapequeue.backend.http_client import BackendHttpClient
from scrapequeue.backend.queue_api import response_detail
from scrapequeue.core.exceptions import BackendProtocolError, BackendResponseError
from scrapequeue.core.models import CredentialLease, parse_credential

__all__ = ["CredentialsApi"]

logger = logging.getLogger(__name__)

_CREDENTIALS_PREFIX: Final[str] = "/api/scraper-credentials/queue"


class CredentialsApi:
    """Credential REST calls.

    Args:
        client: HTTP client bound to the credentials API base URL.
    """

    def __init__(self, client: BackendHttpClient) -> None:
        self._client = client

    def _url(self, path: str) -> str:
        return f"{self._client.base_url}{path}"

    async def next_credential(self, platform: str, session_id: str | None) -> CredentialLease | None:
        """Check out the next available credential for *platform*.

        Returns:
            The parsed lease, or ``None`` when the backend answered 204
            (none available right now).

        Raises:
            BackendUnavailableError: Retry budget exhausted.
            BackendResponseError: Any other non-2xx status.
            BackendProtocolError: The body matches no known credential shape.
        """
        path = f"{_CREDENTIALS_PREFIX}/{platform}/next"
        params = {"session_id": session_id} if session_id else None
        response = await self._client.get(path, params=params)

        if response.status_code == 204:
            return None
        if not response.is_success:
            raise BackendResponseError(
                "GET", self._url(path), response.status_code, response_detail(response)
            )

        try:
            body = response.json()
            return parse_credential(platform, body)
        except (ValueError, ValidationError) as exc:
            raise BackendProtocolError("GET", self._url(path), str(exc)) from exc

    async def report_success(self, credential_id: str, message: str | None = None) -> None:
        """Return a credential after a successful scrape."""
        body: dict[str, Any] = {"message": message} if message else {}
        await self._post(f"{_CREDENTIALS_PREFIX}/{credential_id}/success", body)

    async def report_failure(
        self, credential_id: str, error_message: str, cooldown_minutes: int
    ) -> None:
        """Return a credential after a failure.

        Args:
            credential_id: Lease identifier.
            error_message: Reason recorded by the backend.
            cooldown_minutes: ``0`` disables the credential permanently; a
                positive value puts it on a timed cooldown.
        """
        await self._post(
            f"{_CREDENTIALS_PREFIX}/{credential_id}/failure",
            {"error_message": error_message, "cooldown_minutes": cooldown_minutes},
        )

    async def release(self, credential_id: str) -> None:
        """Return a credential without reporting success or failure."""
        await self._post(f"{_CREDENTIALS_PREFIX}/{credential_id}/release", None)

    async def _post(self, path: str, body: dict[str, Any] | None) -> None:
        response = await self._client.post(path, json=body)
        if not response.is_success:
            raise BackendResponseError(
                "POST", self._url(path), response.status_code, response_detail(response)
            )
