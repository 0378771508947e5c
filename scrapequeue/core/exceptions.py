"""scrapequeue exception taxonomy.

Every custom exception inherits from :class:`ScrapeQueueError`.  Exceptions
are organised by architectural layer so callers can catch at the right
granularity:

    Layer hierarchy
    ---------------
    ScrapeQueueError
    ├── ConfigError
    ├── BackendError
    │   ├── BackendUnavailableError
    │   ├── BackendResponseError
    │   └── BackendProtocolError
    ├── CredentialError
    │   └── LeaseAlreadyHeldError
    ├── ScrapeError
    └── OrchestratorError

Propagation rules
-----------------
* Transport and server faults (timeouts, HTTP 429 / 5xx) are retried inside
  :class:`~scrapequeue.backend.http_client.BackendHttpClient` and only ever
  surface as the terminal :class:`BackendUnavailableError`.
* Semantic backend answers the orchestrator branches on (204 empty queue,
  409 conflict) are returned as typed values, never raised.
* :class:`ScrapeError` and any other exception raised by a scraper stop at
  the platform boundary and become a failed-platform record.

Usage:

    from scrapequeue.core.exceptions import BackendResponseError

    raise BackendResponseError("POST", url, 404, "Session not found")
"""

from __future__ import annotations

import logging
from enum import StrEnum

__all__ = [
    "ScrapeQueueError",
    # Config
    "ConfigError",
    # Backend
    "BackendError",
    "BackendUnavailableError",
    "BackendResponseError",
    "BackendProtocolError",
    # Credentials
    "CredentialError",
    "LeaseAlreadyHeldError",
    # Scrapers
    "ScrapeErrorKind",
    "ScrapeError",
    # Orchestrator
    "OrchestratorError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ScrapeQueueError(Exception):
    """Root exception for all scrapequeue errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(ScrapeQueueError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - ``BLACKLIGHT_API_URL`` / ``BLACKLIGHT_API_KEY`` are missing in
          continuous mode.
        - A ``SCRAPER_PLUGINS`` entry cannot be imported.
    """


# ---------------------------------------------------------------------------
# Backend layer
# ---------------------------------------------------------------------------


class BackendError(ScrapeQueueError):
    """Base class for errors talking to the Blacklight backend.

    Args:
        method: HTTP verb of the failing call.
        url: Full request URL, kept for diagnostics.
        message: Human-readable error description.
    """

    def __init__(self, method: str, url: str, message: str) -> None:
        self.method = method
        self.url = url
        super().__init__(f"{method} {url}: {message}")


class BackendUnavailableError(BackendError):
    """Terminal error: the retry budget was exhausted.

    Raised only after every scheduled retry for a 429 / 5xx response or a
    network-level failure has been consumed.  Callers must not retry again.

    Args:
        method: HTTP verb.
        url: Full request URL.
        status_code: Last HTTP status observed, or ``None`` when the final
            attempt failed at the transport level.
        attempts: Number of attempts made.
        cause: The last transport exception, if any.
    """

    def __init__(
        self,
        method: str,
        url: str,
        *,
        status_code: int | None,
        attempts: int,
        cause: BaseException | None = None,
    ) -> None:
        self.status_code = status_code
        self.attempts = attempts
        self.cause = cause
        if status_code is not None:
            detail = f"HTTP {status_code}"
        elif cause is not None:
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = "unknown failure"
        super().__init__(method, url, f"giving up after {attempts} attempt(s) ({detail})")


class BackendResponseError(BackendError):
    """Raised when the backend answers with a status the caller cannot use.

    Args:
        method: HTTP verb.
        url: Full request URL.
        status_code: HTTP status code of the response.
        detail: ``message`` / ``error`` field of the JSON body, or the
            response reason phrase.
    """

    def __init__(self, method: str, url: str, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(method, url, f"HTTP {status_code} {detail}".rstrip())


class BackendProtocolError(BackendError):
    """Raised when a 2xx body does not match the documented shape.

    Args:
        method: HTTP verb.
        url: Full request URL.
        message: What was wrong with the body.
        session_id: Session the backend opened before its body was rejected,
            when the raw body still names one.
    """

    def __init__(
        self, method: str, url: str, message: str, *, session_id: str | None = None
    ) -> None:
        self.session_id = session_id
        super().__init__(method, url, message)


# ---------------------------------------------------------------------------
# Credential layer
# ---------------------------------------------------------------------------


class CredentialError(ScrapeQueueError):
    """Base class for credential-lease errors."""


class LeaseAlreadyHeldError(CredentialError):
    """Raised when acquiring a second lease for a platform already held.

    This is a programming error: the retry loop must release a lease before
    asking for the next one.

    Args:
        platform: Platform whose lease is still held.
        credential_id: Identifier of the lease currently held.
    """

    def __init__(self, platform: str, credential_id: str) -> None:
        self.platform = platform
        self.credential_id = credential_id
        super().__init__(
            f"Lease for {platform!r} already held (credential {credential_id}); "
            "release it before acquiring another"
        )


# ---------------------------------------------------------------------------
# Scraper layer
# ---------------------------------------------------------------------------


class ScrapeErrorKind(StrEnum):
    """Structured failure classes a scraper may report."""

    CREDENTIAL_INVALID = "credential_invalid"
    RATE_LIMITED = "rate_limited"
    ENVIRONMENT = "environment"
    SCRAPE = "scrape"


class ScrapeError(ScrapeQueueError):
    """Raised by scrapers that know *why* they failed.

    Untyped exceptions from a scraper are still accepted; their message text
    is then classified heuristically by
    :func:`~scrapequeue.credentials.retry_loop.classify_login_error`.

    Args:
        message: Human-readable error description.
        kind: Failure class; defaults to :attr:`ScrapeErrorKind.SCRAPE`.
        platform: Platform name, when known.
    """

    def __init__(
        self,
        message: str,
        kind: ScrapeErrorKind = ScrapeErrorKind.SCRAPE,
        platform: str | None = None,
    ) -> None:
        self.kind = kind
        self.platform = platform
        super().__init__(message)


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(ScrapeQueueError):
    """Raised for errors originating in the scheduling or orchestration layer.

    Examples:
        - The scheduler is started twice.
        - A scraper registry receives two scrapers for one platform.
    """
