"""Credential lease manager.

Tracks which credential each platform currently holds and mediates every
checkout / return with the backend credentials API.  At most one lease per
platform is held at any time; asking for a second one before returning the
first raises :class:`~scrapequeue.core.exceptions.LeaseAlreadyHeldError`.

Returns never raise: the local holding entry is always cleared and backend
failures are logged.  A credential that could not be returned is recovered
by the backend's own lease expiry.

Typical usage::

    leases = CredentialLeaseManager(credentials_api)
    lease = await leases.acquire("linkedin", session_id)
    ...
    await leases.release_success("linkedin", "Scraped 12 jobs successfully")
"""

from __future__ import annotations

import asyncio
import logging

from scrapequeue.backend.credentials_api import CredentialsApi
from scrapequeue.backend.http_client import SleepFn
from scrapequeue.core import events
from scrapequeue.core.exceptions import BackendError, LeaseAlreadyHeldError
from scrapequeue.core.models import CredentialLease

__all__ = ["CredentialLeaseManager"]

logger = logging.getLogger(__name__)


class CredentialLeaseManager:
    """Owns the platform → lease map for one process.

    Args:
        api: Credentials endpoint wrapper.
        poll_retries: Number of next-credential polls while none is available.
        poll_delay_s: Seconds between polls (no wait after the last one).
        sleep: Coroutine used to wait between polls.
    """

    def __init__(
        self,
        api: CredentialsApi,
        *,
        poll_retries: int = 10,
        poll_delay_s: float = 60.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if poll_retries < 1:
            raise ValueError(f"poll_retries must be ≥ 1, got {poll_retries!r}.")
        self._api = api
        self._poll_retries = poll_retries
        self._poll_delay_s = poll_delay_s
        self._sleep = sleep
        self._held: dict[str, CredentialLease] = {}

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def holding(self, platform: str) -> bool:
        return platform in self._held

    def active_lease(self, platform: str) -> CredentialLease | None:
        return self._held.get(platform)

    @property
    def held_platforms(self) -> list[str]:
        return list(self._held)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def acquire(self, platform: str, session_id: str | None) -> CredentialLease | None:
        """Check out a credential for *platform*, polling while none is free.

        Args:
            platform: Platform key (e.g. ``"linkedin"``).
            session_id: Current backend session, forwarded as a query param.

        Returns:
            The lease, or ``None`` if no credential became available within
            the polling budget.

        Raises:
            LeaseAlreadyHeldError: A lease for *platform* is still held.
            BackendError: The credentials API failed.
        """
        held = self._held.get(platform)
        if held is not None:
            raise LeaseAlreadyHeldError(platform, held.credential_id)

        for poll in range(1, self._poll_retries + 1):
            lease = await self._api.next_credential(platform, session_id)
            if lease is not None:
                self._held[platform] = lease
                logger.info(
                    "Acquired %s credential: %s (ID: %s)",
                    platform,
                    lease.label,
                    lease.credential_id,
                    extra={"event": events.CREDENTIAL_ACQUIRED},
                )
                return lease

            if poll < self._poll_retries:
                logger.info(
                    "No %s credentials available, retrying in %.0f s (%d/%d)",
                    platform,
                    self._poll_delay_s,
                    poll,
                    self._poll_retries,
                )
                await self._sleep(self._poll_delay_s)

        logger.warning(
            "No %s credentials available after %d poll(s)",
            platform,
            self._poll_retries,
            extra={"event": events.CREDENTIAL_UNAVAILABLE},
        )
        return None

    # ------------------------------------------------------------------
    # Return
    # ------------------------------------------------------------------

    async def release_success(self, platform: str, message: str | None = None) -> bool:
        """Return the held lease, reporting success."""
        lease = self._take(platform, "success")
        if lease is None:
            return False
        try:
            await self._api.report_success(lease.credential_id, message)
        except BackendError as exc:
            self._log_release_error(lease, "success", exc)
            return False
        logger.info(
            "Released %s credential %s (success)",
            platform,
            lease.credential_id,
            extra={"event": events.CREDENTIAL_RELEASED},
        )
        return True

    async def release_failure(self, platform: str, message: str, cooldown_minutes: int) -> bool:
        """Return the held lease, reporting a failure with a cooldown."""
        lease = self._take(platform, "failure")
        if lease is None:
            return False
        try:
            await self._api.report_failure(lease.credential_id, message, cooldown_minutes)
        except BackendError as exc:
            self._log_release_error(lease, "failure", exc)
            return False
        logger.info(
            "Released %s credential %s (failure, cooldown %d min): %s",
            platform,
            lease.credential_id,
            cooldown_minutes,
            message,
            extra={"event": events.CREDENTIAL_RELEASED},
        )
        return True

    async def release_without_report(self, platform: str) -> bool:
        """Return the held lease without judging it."""
        lease = self._take(platform, "release")
        if lease is None:
            return False
        try:
            await self._api.release(lease.credential_id)
        except BackendError as exc:
            self._log_release_error(lease, "release", exc)
            return False
        logger.info(
            "Released %s credential %s",
            platform,
            lease.credential_id,
            extra={"event": events.CREDENTIAL_RELEASED},
        )
        return True

    async def release_all(self) -> int:
        """Return every held lease without report (shutdown path).

        Returns:
            Number of leases the backend acknowledged.
        """
        released = 0
        for platform in list(self._held):
            if await self.release_without_report(platform):
                released += 1
        return released

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _take(self, platform: str, action: str) -> CredentialLease | None:
        lease = self._held.pop(platform, None)
        if lease is None:
            logger.warning("No %s credential held; nothing to %s", platform, action)
        return lease

    @staticmethod
    def _log_release_error(lease: CredentialLease, action: str, exc: BackendError) -> None:
        logger.error(
            "Could not report %s for %s credential %s: %s",
            action,
            lease.platform,
            lease.credential_id,
            exc,
            extra={"event": events.CREDENTIAL_RELEASE_ERROR},
        )
