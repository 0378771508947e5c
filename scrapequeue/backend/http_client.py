"""Resilient async HTTP client for the Blacklight backend.

Every backend call in scrapequeue goes through one
:class:`BackendHttpClient`.  It wraps :class:`httpx.AsyncClient` with:

* **Authentication** — the ``X-Scraper-API-Key`` header is injected into
  every request.
* **Fixed-schedule retries** — HTTP 429, HTTP ≥ 500 and network-level
  failures are retried via :mod:`tenacity` using the delays in
  :data:`RETRY_DELAYS_S`, indexed by attempt number.  There is no sleep
  after the final attempt.
* **Terminal error mapping** — once the attempt budget is exhausted the
  client raises :class:`~scrapequeue.core.exceptions.BackendUnavailableError`.
  Every other response (2xx, 204, 4xx) is handed back unchanged; the
  endpoint wrappers in :mod:`scrapequeue.backend.queue_api` decide what a
  status means.

The sleep coroutine and the httpx transport are both injectable so tests
can run against :class:`httpx.MockTransport` with a recording fake clock.

Typical usage::

    from scrapequeue.backend.http_client import BackendHttpClient

    async with BackendHttpClient(base_url=url, api_key=key) as client:
        response = await client.get("/api/scraper/queue/current-session")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from scrapequeue.core.exceptions import BackendUnavailableError

__all__ = ["BackendHttpClient", "RETRY_DELAYS_S", "SleepFn"]

logger = logging.getLogger(__name__)

#: Coroutine used to wait between attempts; ``asyncio.sleep`` in production.
SleepFn = Callable[[float], Awaitable[None]]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Seconds to wait after failed attempt *n* (1-based) before attempt *n + 1*.
RETRY_DELAYS_S: Final[tuple[float, ...]] = (1.0, 2.0, 5.0, 10.0, 30.0)

#: Header carrying the scraper API key on every request.
API_KEY_HEADER: Final[str] = "X-Scraper-API-Key"

_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
_DEFAULT_READ_TIMEOUT: Final[float] = 30.0
_DEFAULT_WRITE_TIMEOUT: Final[float] = 10.0


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


# ---------------------------------------------------------------------------
# Internal sentinel exception
# ---------------------------------------------------------------------------


class _RetryableStatusError(Exception):
    """Internal: signals a 429 / 5xx status for tenacity to retry.

    Never escapes :meth:`BackendHttpClient._request_with_retry`.
    """

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


# ---------------------------------------------------------------------------
# Retry wait strategy
# ---------------------------------------------------------------------------


def _schedule_wait(retry_state: RetryCallState) -> float:
    """Return the scheduled delay after the attempt that just failed."""
    index = min(max(retry_state.attempt_number, 1), len(RETRY_DELAYS_S)) - 1
    return RETRY_DELAYS_S[index]


# ---------------------------------------------------------------------------
# Public client
# ---------------------------------------------------------------------------


class BackendHttpClient:
    """Async HTTP client for one Blacklight base URL.

    Use as an ``async with`` context manager, or call :meth:`close`
    explicitly when done.

    Args:
        base_url: Backend base URL, without a trailing slash.
        api_key: Value for the ``X-Scraper-API-Key`` header.
        connect_timeout: TCP connection establishment timeout in seconds.
        read_timeout: Timeout for receiving the response.
        write_timeout: Timeout for uploading the request body.
        max_attempts: Total attempts per call, including the first
            (1 to ``len(RETRY_DELAYS_S)``).
        verify: Verify TLS certificates.
        transport: Optional httpx transport (tests pass
            :class:`httpx.MockTransport`).
        sleep: Coroutine used to wait between attempts.

    Raises:
        ValueError: If ``max_attempts`` is outside the supported range.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = _DEFAULT_READ_TIMEOUT,
        write_timeout: float = _DEFAULT_WRITE_TIMEOUT,
        max_attempts: int = len(RETRY_DELAYS_S),
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if not 1 <= max_attempts <= len(RETRY_DELAYS_S):
            raise ValueError(
                f"max_attempts must be between 1 and {len(RETRY_DELAYS_S)}, got {max_attempts!r}."
            )

        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._max_attempts = max_attempts
        self._verify = verify
        self._transport = transport
        self._sleep = sleep
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=write_timeout,
            pool=5.0,
        )
        self._http: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BackendHttpClient:
        """Open the connection pool and return ``self``."""
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the connection pool on exit."""
        await self.close()

    # ------------------------------------------------------------------
    # Public request methods
    # ------------------------------------------------------------------

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        """Perform a GET with retries.

        Args:
            path: Request path relative to ``base_url``.
            params: Optional query-string parameters.

        Returns:
            The final :class:`httpx.Response` (any non-retryable status).

        Raises:
            BackendUnavailableError: When every attempt ended in 429 / 5xx
                or a transport failure.
        """
        return await self._request_with_retry("GET", path, params=params)

    async def post(
        self,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Perform a POST with retries.

        Args:
            path: Request path relative to ``base_url``.
            json: JSON-serialisable body.
            params: Optional query-string parameters.

        Returns:
            The final :class:`httpx.Response` (any non-retryable status).

        Raises:
            BackendUnavailableError: When every attempt ended in 429 / 5xx
                or a transport failure.
        """
        return await self._request_with_retry("POST", path, json=json, params=params)

    async def close(self) -> None:
        """Close the underlying HTTP client.

        Safe to call multiple times or before any request has been made.
        """
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("BackendHttpClient session closed (%s).", self._base_url)
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if needed."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                verify=self._verify,
                transport=self._transport,
                headers={
                    "Accept": "application/json",
                    API_KEY_HEADER: self._api_key,
                },
            )
            logger.debug("BackendHttpClient session opened (base_url=%r).", self._base_url)
        return self._http

    def _full_url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        """Execute one logical call with tenacity-managed retries.

        Raises:
            BackendUnavailableError: Retry budget exhausted.
        """
        url = self._full_url(path)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "HTTP %s %s attempt %d/%d failed (%s). Retrying in %.1f s",
                method,
                url,
                rs.attempt_number,
                self._max_attempts,
                exc if isinstance(exc, _RetryableStatusError) else type(exc).__name__,
                _schedule_wait(rs),
            )

        response: httpx.Response | None = None
        try:
            async for attempt in AsyncRetrying(
                sleep=self._sleep,
                wait=_schedule_wait,
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type((_RetryableStatusError, httpx.TransportError)),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    response = await self._single_request(method, path, params=params, json=json)
        except _RetryableStatusError as exc:
            logger.error(
                "HTTP %s %s gave up after %d attempt(s): HTTP %d",
                method,
                url,
                self._max_attempts,
                exc.status_code,
            )
            raise BackendUnavailableError(
                method, url, status_code=exc.status_code, attempts=self._max_attempts
            ) from exc
        except httpx.TransportError as exc:
            logger.error(
                "HTTP %s %s gave up after %d attempt(s): %s",
                method,
                url,
                self._max_attempts,
                type(exc).__name__,
            )
            raise BackendUnavailableError(
                method, url, status_code=None, attempts=self._max_attempts, cause=exc
            ) from exc

        assert response is not None, "tenacity exited without a response or exception"
        return response

    async def _single_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        json: Any | None,
    ) -> httpx.Response:
        """Perform exactly one HTTP request.

        Raises:
            _RetryableStatusError: On HTTP 429 or ≥ 500.
            httpx.TransportError: Network-level failures (propagated for retry).
        """
        client = await self._ensure_client()

        logger.debug("HTTP %s %s", method, path)
        try:
            response = await client.request(method, path, params=params, json=json)
        except httpx.TransportError:
            logger.debug("Transport error on %s %s.", method, path, exc_info=True)
            raise

        logger.debug("HTTP %s %s → %d", method, path, response.status_code)

        if _is_retryable_status(response.status_code):
            raise _RetryableStatusError(response.status_code)
        return response
