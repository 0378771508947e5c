"""Scraper contract for every platform scrapequeue can drive.

Browser automation and page parsing live outside this package.  A platform
plugs in by subclassing :class:`BaseScraper`, declaring :attr:`platform`
and :attr:`requires_credential`, and implementing :meth:`scrape`.

Design decisions
----------------
* **``platform`` / ``requires_credential`` as class variables**: the
  registry and the orchestrator inspect them without instantiating the
  scraper.
* **Explicit login signal**: a credentialed scraper calls
  :meth:`LoginSignal.mark_authenticated` once it is past the login step.
  The retry loop uses it to tell a bad credential from a scrape that broke
  after a successful login.
* **Typed failures**: raise :class:`~scrapequeue.core.exceptions.ScrapeError`
  with a :class:`~scrapequeue.core.exceptions.ScrapeErrorKind` when the
  cause is known.  Any other exception is classified from its message.

Typical usage::

    from scrapequeue.scrapers.base import BaseScraper, LoginSignal


    class LinkedInScraper(BaseScraper):
        platform = "linkedin"
        requires_credential = True

        async def scrape(self, role, location, credential, login):
            await self._login(credential)
            login.mark_authenticated()
            return await self._collect(role, location)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar

from scrapequeue.core.exceptions import ScrapeError, ScrapeErrorKind
from scrapequeue.core.models import CredentialPayload, JobRecord, Role

__all__ = ["BaseScraper", "LoginSignal", "ensure_job_list"]

logger = logging.getLogger(__name__)


class LoginSignal:
    """One-shot flag a scraper raises once it has authenticated."""

    __slots__ = ("_authenticated",)

    def __init__(self) -> None:
        self._authenticated = False

    def mark_authenticated(self) -> None:
        self._authenticated = True

    @property
    def authenticated(self) -> bool:
        return self._authenticated


class BaseScraper(ABC):
    """Abstract base for all platform scrapers.

    Attributes:
        platform: Lower-case platform key matched against queue items
            (e.g. ``"linkedin"``).
        requires_credential: Whether :meth:`scrape` needs a leased
            credential.  A queue item may override this per platform.
    """

    platform: ClassVar[str]
    requires_credential: ClassVar[bool] = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by this scraper (default: no-op)."""

    async def __aenter__(self) -> BaseScraper:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def scrape(
        self,
        role: Role,
        location: str,
        credential: CredentialPayload | None,
        login: LoginSignal,
    ) -> list[JobRecord]:
        """Scrape jobs for *role* in *location*.

        Args:
            role: Role from the queue item (name, aliases, category).
            location: Free-text location.
            credential: Leased credential payload, or ``None`` for platforms
                that do not need one.
            login: Signal to mark once authentication succeeded.

        Returns:
            Raw job dicts, possibly empty.

        Raises:
            ScrapeError: On a failure whose cause is known.
            Exception: Any other failure; it is isolated at the platform
                boundary.
        """


def ensure_job_list(result: object, platform: str) -> list[JobRecord]:
    """Check that *result* is what :meth:`BaseScraper.scrape` promises.

    Args:
        result: Value returned by a scraper.
        platform: Platform key, used in the error message.

    Returns:
        *result* as a new list of job dicts.

    Raises:
        ScrapeError: *result* is not a list, or one of its items is not a
            dict.
    """
    if not isinstance(result, (list, tuple)):
        raise ScrapeError(
            f"{platform} scraper returned {type(result).__name__}, expected a list of jobs",
            kind=ScrapeErrorKind.SCRAPE,
            platform=platform,
        )
    for index, job in enumerate(result):
        if not isinstance(job, dict):
            raise ScrapeError(
                f"{platform} scraper returned a {type(job).__name__} job at index {index}, "
                "expected a dict",
                kind=ScrapeErrorKind.SCRAPE,
                platform=platform,
            )
    return list(result)
