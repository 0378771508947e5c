"""Session / queue orchestrator: one queue item from fetch to completion.

:meth:`SessionOrchestrator.run_once` walks a fixed sequence of steps:

1. **Check active** — ``GET current-session``.  An open session ends the run
   with ``{error: "Active session already exists. Complete it first."}``.
2. **Fetch next** — ``GET next-role-location``.  204 ends the run with
   ``{message: "Queue is empty"}``; 409 ends it as a conflict.
3. **Dispatch** — every platform of the item, strictly in list order and one
   at a time:

   * no registered scraper → submit a failure ``Platform not supported: <name>``;
   * credentialed platform → :func:`~scrapequeue.credentials.retry_loop.run_with_credentials`;
   * otherwise → call the scraper with no credential.

   Jobs are formatted with
   :func:`~scrapequeue.orchestrator.formatter.format_job_for_backend` and
   submitted; failures are submitted with ``status="failed"``.  A platform
   failure never aborts the item, and submit failures are recorded, never
   raised.
4. **Complete** — ``POST complete`` exactly once.  Failure is recorded as
   ``completion_error``.

Failure isolation
-----------------
``run_once`` never raises.  A backend failure before a session was opened
returns ``{error}``.  A queue item whose body cannot be parsed but still
names its session gets a best-effort ``POST fail``, as does an unexpected
exception outside the per-platform boundary.  Malformed scraper output is
a platform failure like any other.

Typical usage::

    orchestrator = SessionOrchestrator(queue_api, leases, registry, settings)
    result = await orchestrator.run_once()
    print(result.to_dict())
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

from scrapequeue.backend.queue_api import QueueApi, QueueConflict, QueueEmpty
from scrapequeue.core import events
from scrapequeue.core.exceptions import BackendError, BackendProtocolError
from scrapequeue.core.logging_config import RUN_ID_CTX
from scrapequeue.core.models import PlatformInfo, QueueItem
from scrapequeue.core.settings import Settings
from scrapequeue.credentials.lease_manager import CredentialLeaseManager
from scrapequeue.credentials.retry_loop import (
    FailureKind,
    ScrapeOutcome,
    run_with_credentials,
)
from scrapequeue.orchestrator.formatter import format_job_for_backend
from scrapequeue.orchestrator.results import (
    ACTIVE_SESSION_ERROR,
    PlatformOutcome,
    QueueRunResult,
    SessionResult,
)
from scrapequeue.scrapers.base import BaseScraper, LoginSignal, ensure_job_list
from scrapequeue.scrapers.registry import ScraperRegistry

__all__ = ["SessionOrchestrator"]

logger = logging.getLogger(__name__)


class SessionOrchestrator:
    """Drives one queue item per :meth:`run_once` call.

    Args:
        queue_api: Queue/session endpoint wrapper.
        leases: Credential lease manager shared across runs.
        registry: Platform → scraper mapping.
        settings: Credential attempt budget and cooldowns.
    """

    def __init__(
        self,
        queue_api: QueueApi,
        leases: CredentialLeaseManager,
        registry: ScraperRegistry,
        settings: Settings,
    ) -> None:
        self._queue = queue_api
        self._leases = leases
        self._registry = registry
        self._settings = settings

    @property
    def leases(self) -> CredentialLeaseManager:
        return self._leases

    # ------------------------------------------------------------------
    # Public entry-point
    # ------------------------------------------------------------------

    async def run_once(self) -> QueueRunResult:
        """Process at most one queue item.

        Returns:
            A :class:`~scrapequeue.orchestrator.results.QueueRunResult`; this
            method does not raise except for task cancellation.
        """
        token = RUN_ID_CTX.set(uuid.uuid4().hex[:8])
        try:
            logger.info("Starting scraper queue run", extra={"event": events.RUN_START})
            return await self._run()
        finally:
            RUN_ID_CTX.reset(token)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _run(self) -> QueueRunResult:
        # CHECK_ACTIVE
        try:
            status = await self._queue.check_active_session()
        except BackendError as exc:
            logger.error(
                "Active session check failed: %s", exc, extra={"event": events.RUN_ABORT}
            )
            return QueueRunResult.failed(str(exc))

        if status.has_active_session:
            active = status.session
            logger.warning(
                "Active session found (session=%s role=%s location=%s progress=%s/%s)",
                active.session_id if active else "?",
                active.role_name if active else "?",
                active.location if active else "?",
                active.platforms_completed if active else "?",
                active.platforms_total if active else "?",
                extra={"event": events.RUN_CONFLICT},
            )
            return QueueRunResult.conflict(ACTIVE_SESSION_ERROR)

        # FETCH_NEXT
        try:
            next_item = await self._queue.next_queue_item()
        except BackendProtocolError as exc:
            logger.error(
                "Next queue item is malformed: %s", exc, extra={"event": events.RUN_ABORT}
            )
            if exc.session_id is not None:
                await self._fail_session(exc.session_id, f"Malformed queue item: {exc}")
            return QueueRunResult.failed(str(exc))
        except BackendError as exc:
            logger.error(
                "Fetching next queue item failed: %s", exc, extra={"event": events.RUN_ABORT}
            )
            return QueueRunResult.failed(str(exc))

        if isinstance(next_item, QueueEmpty):
            logger.info("Queue is empty; nothing to scrape", extra={"event": events.QUEUE_EMPTY})
            return QueueRunResult.empty()

        if isinstance(next_item, QueueConflict):
            logger.warning(
                "Backend refused a new session: %s",
                next_item.detail,
                extra={"event": events.RUN_CONFLICT},
            )
            return QueueRunResult.conflict(next_item.detail)

        # DISPATCH + COMPLETE
        return await self._process_item(next_item)

    async def _process_item(self, item: QueueItem) -> QueueRunResult:
        session = SessionResult(
            session_id=item.session_id,
            role=item.role.name,
            location=item.location,
            platforms_total=len(item.platforms),
        )
        logger.info(
            "Session %s: role=%r aliases=%s location=%r platforms=%s candidates=%s",
            item.session_id,
            item.role.name,
            ", ".join(item.role.aliases) or "-",
            item.location,
            ", ".join(p.label for p in item.platforms) or "-",
            item.role.candidate_count if item.role.candidate_count is not None else "?",
            extra={"event": events.SESSION_START},
        )
        t0 = time.monotonic()

        try:
            for platform in item.platforms:
                session.record(await self._process_platform(item, platform))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Unexpected error while processing session %s", item.session_id,
                extra={"event": events.RUN_ABORT},
            )
            await self._fail_session(item.session_id, str(exc) or type(exc).__name__)
            session.duration_s = time.monotonic() - t0
            return QueueRunResult.failed(str(exc) or type(exc).__name__, session)

        # COMPLETE
        try:
            session.completion = await self._queue.complete_session(item.session_id)
            logger.info(
                "Session %s completed", item.session_id, extra={"event": events.SESSION_COMPLETE}
            )
        except BackendError as exc:
            session.completion_error = str(exc)
            logger.error(
                "Failed to complete session %s: %s",
                item.session_id,
                exc,
                extra={"event": events.SESSION_COMPLETE_ERROR},
            )

        session.duration_s = time.monotonic() - t0
        logger.info("%s", session.format_report())
        return QueueRunResult.completed(session)

    # ------------------------------------------------------------------
    # Per-platform dispatch
    # ------------------------------------------------------------------

    async def _process_platform(self, item: QueueItem, platform: PlatformInfo) -> PlatformOutcome:
        name = platform.name
        scraper = self._registry.get(name)

        if scraper is None:
            logger.warning(
                "Skipping unknown platform: %s", name, extra={"event": events.PLATFORM_UNSUPPORTED}
            )
            submit_error = await self._submit_failure(
                item.session_id, name, f"Platform not supported: {name}"
            )
            return PlatformOutcome(
                platform=name,
                success=False,
                error="Platform not supported",
                submit_error=submit_error,
            )

        logger.info(
            "Starting %s scraper for %r in %r",
            platform.label,
            item.role.name,
            item.location,
            extra={"event": events.PLATFORM_START},
        )

        outcome = await self._scrape(item, platform, scraper)
        if outcome.failure is not None:
            logger.error(
                "%s failed (%s): %s",
                platform.label,
                outcome.failure.kind,
                outcome.failure.message,
                extra={"event": events.PLATFORM_FAILED},
            )
            submit_error = await self._submit_failure(
                item.session_id, name, outcome.failure.message
            )
            return PlatformOutcome(
                platform=name,
                success=False,
                error=outcome.failure.message,
                submit_error=submit_error,
            )

        try:
            formatted = [format_job_for_backend(job, name) for job in outcome.jobs]
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            message = f"Job formatting failed: {str(exc) or type(exc).__name__}"
            logger.exception(
                "%s: %s", platform.label, message, extra={"event": events.PLATFORM_FAILED}
            )
            submit_error = await self._submit_failure(item.session_id, name, message)
            return PlatformOutcome(
                platform=name,
                success=False,
                jobs_found=len(outcome.jobs),
                error=message,
                submit_error=submit_error,
            )

        try:
            ack = await self._queue.submit_jobs(item.session_id, name, formatted)
        except BackendError as exc:
            logger.error(
                "Submitting %d %s job(s) failed: %s",
                len(formatted),
                name,
                exc,
                extra={"event": events.PLATFORM_SUBMIT_ERROR},
            )
            await self._submit_failure(item.session_id, name, str(exc))
            return PlatformOutcome(
                platform=name,
                success=False,
                jobs_found=len(outcome.jobs),
                error=str(exc),
                submit_error=str(exc),
            )

        progress = ack.get("progress") if isinstance(ack, dict) else None
        logger.info(
            "%s: %d job(s) found, %d submitted (progress %s)",
            platform.label,
            len(outcome.jobs),
            len(formatted),
            _format_progress(progress),
            extra={"event": events.PLATFORM_SUCCESS},
        )
        return PlatformOutcome(
            platform=name,
            success=True,
            jobs_found=len(outcome.jobs),
            jobs_submitted=len(formatted),
        )

    async def _scrape(
        self, item: QueueItem, platform: PlatformInfo, scraper: BaseScraper
    ) -> ScrapeOutcome:
        requires_credential = (
            platform.requires_credential
            if platform.requires_credential is not None
            else scraper.requires_credential
        )
        if requires_credential:
            return await run_with_credentials(
                scraper,
                item.role,
                item.location,
                item.session_id,
                self._leases,
                self._settings,
            )

        try:
            jobs = ensure_job_list(
                await scraper.scrape(item.role, item.location, None, LoginSignal()),
                platform.name,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.debug("%s scraper raised", platform.name, exc_info=True)
            return ScrapeOutcome.failed(FailureKind.SCRAPE, str(exc) or type(exc).__name__)
        return ScrapeOutcome.success(jobs)

    # ------------------------------------------------------------------
    # Backend helpers (never raise)
    # ------------------------------------------------------------------

    async def _submit_failure(self, session_id: str, platform: str, message: str) -> str | None:
        """Submit a failed platform; return the submit error text, if any."""
        try:
            await self._queue.submit_jobs(
                session_id, platform, [], status="failed", error_message=message
            )
        except BackendError as exc:
            logger.error(
                "Failed to report %s failure to the backend: %s",
                platform,
                exc,
                extra={"event": events.PLATFORM_SUBMIT_ERROR},
            )
            return str(exc)
        return None

    async def _fail_session(self, session_id: str, message: str) -> None:
        try:
            await self._queue.fail_session(session_id, message)
        except BackendError as exc:
            logger.error("Could not mark session %s failed: %s", session_id, exc)
            return
        logger.warning(
            "Session %s marked failed: %s",
            session_id,
            message,
            extra={"event": events.SESSION_FAILED},
        )


def _format_progress(progress: object) -> str:
    if isinstance(progress, dict):
        done = progress.get("completed", "?")
        total = progress.get("total_platforms", "?")
        return f"{done}/{total}"
    return "?"
