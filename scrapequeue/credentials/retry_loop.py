"""Platform credential retry loop.

Runs one credentialed scraper against up to ``credential_max_attempts``
distinct credentials, reporting every outcome back to the credentials API
through :class:`~scrapequeue.credentials.lease_manager.CredentialLeaseManager`:

=====================================  ==========================  ========
Outcome                                Report                      Cooldown
=====================================  ==========================  ========
scrape succeeded                       success                     n/a
bad credential (before login)          failure ``Login failed``    0
rate limit / challenge (before login)  failure ``Rate limited…``   60 min
other error before login               failure ``Credential…``     0
error after login                      failure ``Scraping…``       30 min
environment error (browser down, …)    release, stop               n/a
result is not a list of job dicts      release, stop               n/a
task cancelled                         release, re-raise           n/a
=====================================  ==========================  ========

The loop returns a :class:`ScrapeOutcome` value; it never raises for
control flow.

Typical usage::

    outcome = await run_with_credentials(
        scraper, item.role, item.location, item.session_id, leases, settings
    )
    if outcome.ok:
        submit(outcome.jobs)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum

from scrapequeue.core.exceptions import BackendError, ScrapeError, ScrapeErrorKind
from scrapequeue.core.models import JobRecord, Role
from scrapequeue.core.settings import Settings
from scrapequeue.credentials.lease_manager import CredentialLeaseManager
from scrapequeue.scrapers.base import BaseScraper, LoginSignal, ensure_job_list

__all__ = [
    "FailureKind",
    "ScrapeFailure",
    "ScrapeOutcome",
    "classify_login_error",
    "run_with_credentials",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Heuristic keywords (matched case-insensitively, in this order)
# ---------------------------------------------------------------------------

_CREDENTIAL_KEYWORDS: tuple[str, ...] = ("login", "credential", "waitforselector", "auth", "cookie")
_RATE_LIMIT_KEYWORDS: tuple[str, ...] = ("rate limit", "challenge", "blocked")


class FailureKind(StrEnum):
    """Why a platform produced no jobs."""

    CREDENTIAL_INVALID = "credential_invalid"
    RATE_LIMITED = "rate_limited"
    SCRAPE = "scrape"
    NO_CREDENTIAL = "no_credential"
    BACKEND = "backend"
    UNSUPPORTED = "unsupported"
    ENVIRONMENT = "environment"


@dataclass(frozen=True)
class ScrapeFailure:
    kind: FailureKind
    message: str


@dataclass(frozen=True)
class ScrapeOutcome:
    """Result of one platform scrape: either jobs or a failure."""

    jobs: list[JobRecord] = field(default_factory=list)
    failure: ScrapeFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, jobs: list[JobRecord]) -> ScrapeOutcome:
        return cls(jobs=list(jobs))

    @classmethod
    def failed(cls, kind: FailureKind, message: str) -> ScrapeOutcome:
        return cls(failure=ScrapeFailure(kind=kind, message=message))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_login_error(
    exc: BaseException, *, rate_limit_cooldown_min: int = 60
) -> tuple[FailureKind, str, int]:
    """Classify an error raised before authentication completed.

    A :class:`~scrapequeue.core.exceptions.ScrapeError` carries its own kind.
    Anything else is classified from its message text.

    Args:
        exc: The exception raised by the scraper.
        rate_limit_cooldown_min: Cooldown for rate-limited credentials.

    Returns:
        ``(kind, report_message, cooldown_minutes)``.
    """
    text = str(exc) or type(exc).__name__

    if isinstance(exc, ScrapeError):
        if exc.kind is ScrapeErrorKind.CREDENTIAL_INVALID:
            return FailureKind.CREDENTIAL_INVALID, f"Login failed: {text}", 0
        if exc.kind is ScrapeErrorKind.RATE_LIMITED:
            return (
                FailureKind.RATE_LIMITED,
                f"Rate limited or challenge: {text}",
                rate_limit_cooldown_min,
            )

    lowered = text.lower()
    if any(keyword in lowered for keyword in _CREDENTIAL_KEYWORDS):
        return FailureKind.CREDENTIAL_INVALID, f"Login failed: {text}", 0
    if any(keyword in lowered for keyword in _RATE_LIMIT_KEYWORDS):
        return (
            FailureKind.RATE_LIMITED,
            f"Rate limited or challenge: {text}",
            rate_limit_cooldown_min,
        )
    return FailureKind.CREDENTIAL_INVALID, f"Credential error: {text}", 0


# ---------------------------------------------------------------------------
# Retry loop
# ---------------------------------------------------------------------------


async def run_with_credentials(
    scraper: BaseScraper,
    role: Role,
    location: str,
    session_id: str | None,
    leases: CredentialLeaseManager,
    settings: Settings,
) -> ScrapeOutcome:
    """Scrape one platform, rotating through leased credentials.

    Args:
        scraper: Credentialed scraper for the platform.
        role: Role from the queue item.
        location: Location from the queue item.
        session_id: Backend session, forwarded to the credential checkout.
        leases: Lease manager owning the platform's lease.
        settings: Attempt budget and cooldowns.

    Returns:
        Jobs on the first successful attempt, otherwise a failure carrying
        the last observed error.

    Raises:
        asyncio.CancelledError: Propagated after the held lease is released.
    """
    platform = scraper.platform
    max_attempts = settings.credential_max_attempts
    last_error: str | None = None
    last_kind = FailureKind.SCRAPE

    for attempt in range(1, max_attempts + 1):
        logger.info("Fetching %s credential (attempt %d/%d)", platform, attempt, max_attempts)
        try:
            lease = await leases.acquire(platform, session_id)
        except BackendError as exc:
            logger.error("Credential checkout for %s failed: %s", platform, exc)
            return ScrapeOutcome.failed(FailureKind.BACKEND, str(exc))

        if lease is None:
            if last_error is not None:
                return ScrapeOutcome.failed(last_kind, last_error)
            return ScrapeOutcome.failed(
                FailureKind.NO_CREDENTIAL,
                f"No {platform} credentials available from API",
            )

        login = LoginSignal()
        try:
            try:
                result = await scraper.scrape(role, location, lease.payload, login)
            except asyncio.CancelledError:
                logger.warning(
                    "%s scrape cancelled; returning credential %s", platform, lease.credential_id
                )
                await leases.release_without_report(platform)
                raise
            except Exception as exc:  # noqa: BLE001
                last_error = str(exc) or type(exc).__name__

                if isinstance(exc, ScrapeError) and exc.kind is ScrapeErrorKind.ENVIRONMENT:
                    logger.error("%s scraper environment failure: %s", platform, last_error)
                    await leases.release_without_report(platform)
                    return ScrapeOutcome.failed(FailureKind.ENVIRONMENT, last_error)

                if login.authenticated:
                    last_kind = FailureKind.SCRAPE
                    logger.warning(
                        "%s scraping failed after login with credential %s: %s",
                        platform,
                        lease.label,
                        last_error,
                        exc_info=True,
                    )
                    await leases.release_failure(
                        platform,
                        f"Scraping error: {last_error}",
                        settings.post_login_cooldown_min,
                    )
                else:
                    last_kind, message, cooldown = classify_login_error(
                        exc, rate_limit_cooldown_min=settings.rate_limit_cooldown_min
                    )
                    logger.warning(
                        "%s login failed with credential %s (%s): %s",
                        platform,
                        lease.label,
                        last_kind,
                        last_error,
                    )
                    await leases.release_failure(platform, message, cooldown)
                continue

            try:
                jobs = ensure_job_list(result, platform)
            except ScrapeError as exc:
                logger.error("%s scraper returned malformed output: %s", platform, exc)
                await leases.release_without_report(platform)
                return ScrapeOutcome.failed(FailureKind.SCRAPE, str(exc))

            await leases.release_success(platform, f"Scraped {len(jobs)} jobs successfully")
            return ScrapeOutcome.success(jobs)
        finally:
            if leases.holding(platform):
                logger.warning(
                    "Returning %s credential %s left held after the attempt",
                    platform,
                    lease.credential_id,
                )
                await leases.release_without_report(platform)

    logger.error("All %d %s credential attempts failed", max_attempts, platform)
    return ScrapeOutcome.failed(
        last_kind,
        last_error or f"All {platform} credential attempts failed",
    )
