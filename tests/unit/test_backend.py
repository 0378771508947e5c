"""Unit tests for the backend layer.

Tests cover:
- ``BackendHttpClient`` — API key header, fixed retry schedule driven by an
  injected sleep, 429 / 5xx / transport retries, terminal
  ``BackendUnavailableError``, non-retryable statuses returned unchanged.
- ``QueueApi`` — 204 / 409 typed results, submit payload shape for success
  and failure, error detail surfaced from JSON bodies.
- ``CredentialsApi`` — 204 → ``None``, release endpoints and bodies,
  malformed credential bodies.

No network I/O occurs: every call goes through :class:`httpx.MockTransport`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from scrapequeue.backend.credentials_api import CredentialsApi
from scrapequeue.backend.http_client import RETRY_DELAYS_S, BackendHttpClient
from scrapequeue.backend.queue_api import QUEUE_EMPTY, QueueApi, QueueConflict
from scrapequeue.core.exceptions import (
    BackendProtocolError,
    BackendResponseError,
    BackendUnavailableError,
)
from scrapequeue.core.models import EmailPasswordPayload, QueueItem

__all__: list[str] = []

logger = logging.getLogger(__name__)

BASE_URL = "http://blacklight.test"


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


class _Script:
    """Serve a scripted sequence of responses (or exceptions) per request."""

    def __init__(self, steps: list[int | tuple[int, Any] | Exception]) -> None:
        self._steps = list(steps)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self._steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if isinstance(step, tuple):
            status, body = step
            return httpx.Response(status, json=body)
        return httpx.Response(step)


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    sleep: Any,
    *,
    max_attempts: int = 5,
) -> BackendHttpClient:
    return BackendHttpClient(
        base_url=BASE_URL,
        api_key="secret",
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )


def _inject_mock_underlying(client: BackendHttpClient, mock_http: MagicMock) -> None:
    """Replace the internal :class:`httpx.AsyncClient` of *client* with *mock_http*."""
    mock_http.is_closed = False
    mock_http.aclose = AsyncMock()
    client._http = mock_http  # noqa: SLF001


# ---------------------------------------------------------------------------
# BackendHttpClient
# ---------------------------------------------------------------------------


class TestBackendHttpClient:
    async def test_api_key_header_sent(self, recording_sleep: Any) -> None:
        script = _Script([(200, {"ok": True})])
        async with _client(script, recording_sleep) as client:
            response = await client.get("/api/scraper/queue/current-session")
        assert response.status_code == 200
        assert script.requests[0].headers["X-Scraper-API-Key"] == "secret"

    async def test_json_body_content_type(self, recording_sleep: Any) -> None:
        script = _Script([(202, {})])
        async with _client(script, recording_sleep) as client:
            await client.post("/api/scraper/queue/jobs", json={"session_id": "s"})
        request = script.requests[0]
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"session_id": "s"}

    async def test_four_server_errors_then_success_uses_schedule(
        self, recording_sleep: Any
    ) -> None:
        script = _Script([500, 502, 503, 500, (200, {"ok": True})])
        async with _client(script, recording_sleep) as client:
            response = await client.get("/x")
        assert response.status_code == 200
        assert len(script.requests) == 5
        assert recording_sleep.delays == [1.0, 2.0, 5.0, 10.0]

    async def test_exhaustion_raises_unavailable_without_final_sleep(
        self, recording_sleep: Any
    ) -> None:
        script = _Script([500] * 5)
        async with _client(script, recording_sleep) as client:
            with pytest.raises(BackendUnavailableError) as exc_info:
                await client.post("/api/scraper/queue/complete", json={"session_id": "s"})
        assert exc_info.value.status_code == 500
        assert exc_info.value.attempts == 5
        assert len(script.requests) == 5
        assert recording_sleep.delays == [1.0, 2.0, 5.0, 10.0]

    async def test_rate_limit_is_retried(self, recording_sleep: Any) -> None:
        script = _Script([429, (200, {})])
        async with _client(script, recording_sleep) as client:
            response = await client.get("/x")
        assert response.status_code == 200
        assert recording_sleep.delays == [1.0]

    async def test_transport_error_retried_then_terminal(self, recording_sleep: Any) -> None:
        script = _Script([httpx.ConnectError("refused")] * 3)
        async with _client(script, recording_sleep, max_attempts=3) as client:
            with pytest.raises(BackendUnavailableError) as exc_info:
                await client.get("/x")
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.parametrize("status", [204, 400, 404, 409])
    async def test_non_retryable_status_returned_unchanged(
        self, recording_sleep: Any, status: int
    ) -> None:
        script = _Script([status])
        async with _client(script, recording_sleep) as client:
            response = await client.get("/x")
        assert response.status_code == status
        assert len(script.requests) == 1
        assert recording_sleep.delays == []

    async def test_timeout_is_transport_error(self, recording_sleep: Any) -> None:
        client = _client(_Script([]), recording_sleep, max_attempts=2)
        mock_http = MagicMock()
        mock_http.request = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        _inject_mock_underlying(client, mock_http)
        with pytest.raises(BackendUnavailableError):
            await client.get("/x")
        assert mock_http.request.await_count == 2
        await client.close()

    def test_max_attempts_validated(self) -> None:
        with pytest.raises(ValueError):
            BackendHttpClient(base_url=BASE_URL, api_key="k", max_attempts=0)
        with pytest.raises(ValueError):
            BackendHttpClient(
                base_url=BASE_URL, api_key="k", max_attempts=len(RETRY_DELAYS_S) + 1
            )

    async def test_close_is_idempotent(self) -> None:
        client = BackendHttpClient(base_url=BASE_URL, api_key="k")
        await client.close()
        await client.close()


# ---------------------------------------------------------------------------
# QueueApi
# ---------------------------------------------------------------------------


@pytest.fixture()
async def queue_env(
    recording_sleep: Any,
) -> AsyncGenerator[tuple[QueueApi, list[httpx.Response], list[httpx.Request]], None]:
    """QueueApi whose responses are appended by the test before each call."""
    responses: list[httpx.Response] = []
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.pop(0)

    async with _client(handler, recording_sleep) as client:
        yield QueueApi(client), responses, requests


class TestQueueApi:
    async def test_next_item_parsed(self, queue_env: Any) -> None:
        api, responses, _ = queue_env
        responses.append(
            httpx.Response(
                200,
                json={
                    "session_id": "s1",
                    "role": {"id": 1, "name": "QA Engineer"},
                    "location": "Remote",
                    "platforms": [{"name": "dice"}],
                },
            )
        )
        item = await api.next_queue_item()
        assert isinstance(item, QueueItem)
        assert item.session_id == "s1"

    async def test_empty_queue(self, queue_env: Any) -> None:
        api, responses, _ = queue_env
        responses.append(httpx.Response(204))
        assert await api.next_queue_item() is QUEUE_EMPTY

    async def test_conflict(self, queue_env: Any) -> None:
        api, responses, _ = queue_env
        responses.append(httpx.Response(409, json={"error": "Scraper already has an active session"}))
        result = await api.next_queue_item()
        assert isinstance(result, QueueConflict)
        assert result.detail == "Scraper already has an active session"

    async def test_malformed_item_is_protocol_error(self, queue_env: Any) -> None:
        api, responses, _ = queue_env
        responses.append(httpx.Response(200, json={"session_id": 31, "role": {}}))
        with pytest.raises(BackendProtocolError) as excinfo:
            await api.next_queue_item()
        assert excinfo.value.session_id == "31"

    async def test_malformed_item_without_session_id(self, queue_env: Any) -> None:
        api, responses, _ = queue_env
        responses.append(httpx.Response(200, json={"role": {"name": "QA Engineer"}}))
        with pytest.raises(BackendProtocolError) as excinfo:
            await api.next_queue_item()
        assert excinfo.value.session_id is None

    async def test_submit_success_omits_status(self, queue_env: Any) -> None:
        api, responses, requests = queue_env
        responses.append(httpx.Response(202, json={"status": "accepted", "progress": {}}))
        ack = await api.submit_jobs("s1", "dice", [{"title": "x"}])
        assert ack["status"] == "accepted"
        assert json.loads(requests[0].content) == {
            "session_id": "s1",
            "platform": "dice",
            "jobs": [{"title": "x"}],
        }

    async def test_submit_failure_carries_status_and_message(self, queue_env: Any) -> None:
        api, responses, requests = queue_env
        responses.append(httpx.Response(202, json={}))
        await api.submit_jobs("s1", "dice", [], status="failed", error_message="boom")
        assert json.loads(requests[0].content) == {
            "session_id": "s1",
            "platform": "dice",
            "jobs": [],
            "status": "failed",
            "error_message": "boom",
        }

    async def test_submit_404_raises_with_detail(self, queue_env: Any) -> None:
        api, responses, _ = queue_env
        responses.append(httpx.Response(404, json={"message": "Session not found"}))
        with pytest.raises(BackendResponseError) as exc_info:
            await api.submit_jobs("missing", "dice", [])
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Session not found"

    async def test_fail_session_body(self, queue_env: Any) -> None:
        api, responses, requests = queue_env
        responses.append(httpx.Response(200, json={}))
        await api.fail_session("s1", "crashed")
        assert requests[0].url.path == "/api/scraper/queue/fail"
        assert json.loads(requests[0].content) == {"session_id": "s1", "error_message": "crashed"}


# ---------------------------------------------------------------------------
# CredentialsApi
# ---------------------------------------------------------------------------


class TestCredentialsApi:
    async def test_none_available(self, recording_sleep: Any) -> None:
        script = _Script([204])
        async with _client(script, recording_sleep) as client:
            lease = await CredentialsApi(client).next_credential("linkedin", "s1")
        assert lease is None
        request = script.requests[0]
        assert request.url.path == "/api/scraper-credentials/queue/linkedin/next"
        assert request.url.params["session_id"] == "s1"

    async def test_lease_parsed(self, recording_sleep: Any) -> None:
        script = _Script([(200, {"id": 11, "email": "a@b.co", "password": "pw"})])
        async with _client(script, recording_sleep) as client:
            lease = await CredentialsApi(client).next_credential("techfetch", None)
        assert lease is not None
        assert lease.credential_id == "11"
        assert isinstance(lease.payload, EmailPasswordPayload)
        assert "session_id" not in script.requests[0].url.params

    async def test_malformed_body_is_protocol_error(self, recording_sleep: Any) -> None:
        script = _Script([(200, {"id": 11})])
        async with _client(script, recording_sleep) as client:
            with pytest.raises(BackendProtocolError):
                await CredentialsApi(client).next_credential("linkedin", "s1")

    async def test_report_bodies(self, recording_sleep: Any) -> None:
        script = _Script([(200, {}), (200, {}), (200, {})])
        async with _client(script, recording_sleep) as client:
            api = CredentialsApi(client)
            await api.report_success("11", "Scraped 3 jobs successfully")
            await api.report_failure("11", "Login failed: bad password", 0)
            await api.release("11")

        success, failure, release = script.requests
        assert success.url.path == "/api/scraper-credentials/queue/11/success"
        assert json.loads(success.content) == {"message": "Scraped 3 jobs successfully"}
        assert failure.url.path == "/api/scraper-credentials/queue/11/failure"
        assert json.loads(failure.content) == {
            "error_message": "Login failed: bad password",
            "cooldown_minutes": 0,
        }
        assert release.method == "POST"
        assert release.url.path == "/api/scraper-credentials/queue/11/release"

    async def test_report_error_status_raises(self, recording_sleep: Any) -> None:
        script = _Script([(404, {"error": "Credential not found"})])
        async with _client(script, recording_sleep) as client:
            with pytest.raises(BackendResponseError, match="Credential not found"):
                await CredentialsApi(client).release("99")
