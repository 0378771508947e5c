"""Auto-poll scheduler for the scraper queue.

Checks the queue on a fixed cadence:

* one delayed check ``POLL_STARTUP_DELAY_S`` (default 5 s) after start-up;
* an independent fixed-interval timer every ``POLL_INTERVAL_S``
  (default 30 s).

Each timer tick spawns the run as its own task so the timer keeps ticking
while a long session is in progress.  :meth:`AutoPollScheduler.trigger`
holds a re-entrancy guard: a tick that fires while a run is in flight is
logged and dropped, never queued.  Together with the backend's own
one-active-session rule this keeps exactly one run in flight per process.

Typical usage::

    import asyncio
    from scrapequeue.orchestrator.scheduler import run_continuous

    asyncio.run(run_continuous())
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from scrapequeue.backend.http_client import SleepFn
from scrapequeue.core import events
from scrapequeue.core.exceptions import ConfigError, OrchestratorError
from scrapequeue.core.settings import Settings
from scrapequeue.orchestrator.results import QueueRunResult
from scrapequeue.orchestrator.runner import build_components
from scrapequeue.orchestrator.session import SessionOrchestrator

__all__ = ["AutoPollScheduler", "run_continuous"]

logger = logging.getLogger(__name__)


class AutoPollScheduler:
    """Fires orchestrator runs on a startup delay plus a fixed interval.

    Args:
        orchestrator: The session orchestrator to drive.
        interval_s: Seconds between interval ticks.
        startup_delay_s: Seconds before the first, one-off check.
        sleep: Coroutine used for both timers.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        *,
        interval_s: float = 30.0,
        startup_delay_s: float = 5.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._orchestrator = orchestrator
        self._interval_s = interval_s
        self._startup_delay_s = startup_delay_s
        self._sleep = sleep
        self._running = False
        self._timers: list[asyncio.Task[None]] = []
        self._runs: set[asyncio.Task[QueueRunResult | None]] = set()

    @property
    def is_running(self) -> bool:
        """``True`` while an orchestrator run is in flight."""
        return self._running

    @property
    def started(self) -> bool:
        return bool(self._timers)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def trigger(self) -> QueueRunResult | None:
        """Run the orchestrator once unless a run is already in flight.

        Returns:
            The run result, or ``None`` when the trigger was skipped or the
            run failed unexpectedly.
        """
        if self._running:
            logger.info(
                "Queue run already in progress; skipping this check",
                extra={"event": events.RUN_SKIPPED},
            )
            return None

        self._running = True
        try:
            result = await self._orchestrator.run_once()
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            logger.exception("Unhandled exception in queue run; will retry on the next tick.")
            return None
        finally:
            self._running = False

        if result.error:
            logger.info("Queue run finished: %s", result.error)
        elif result.message:
            logger.info("Queue run finished: %s", result.message)
        elif result.session is not None:
            logger.info(
                "Queue run finished: session %s (%d/%d platforms ok)",
                result.session.session_id,
                result.session.successful,
                result.session.platforms_total,
            )
        return result

    def _spawn(self) -> asyncio.Task[QueueRunResult | None]:
        task = asyncio.create_task(self.trigger(), name="scrapequeue-run")
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the startup-delay and interval timers.

        Raises:
            OrchestratorError: If the scheduler is already started.
        """
        if self._timers:
            raise OrchestratorError("AutoPollScheduler already started")

        logger.info(
            "Auto-poll enabled: first check in %.0f s, then every %.0f s",
            self._startup_delay_s,
            self._interval_s,
        )
        self._timers = [
            asyncio.create_task(self._startup_timer(), name="scrapequeue-startup"),
            asyncio.create_task(self._interval_timer(), name="scrapequeue-interval"),
        ]

    async def _startup_timer(self) -> None:
        await self._sleep(self._startup_delay_s)
        self._spawn()

    async def _interval_timer(self) -> None:
        while True:
            await self._sleep(self._interval_s)
            self._spawn()

    async def stop(self) -> None:
        """Cancel the timers.  In-flight runs keep going."""
        timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        if timers:
            logger.info("Auto-poll timers stopped")

    async def wait_idle(self) -> None:
        """Wait for every in-flight run to finish."""
        while self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)


# ---------------------------------------------------------------------------
# Public entry-point
# ---------------------------------------------------------------------------


async def run_continuous(settings: Settings | None = None) -> None:
    """Poll the queue until SIGTERM / cancellation, then shut down cleanly.

    Shutdown order: stop the timers, wait for the in-flight run, return any
    held credential leases, close the HTTP clients.

    Args:
        settings: Application settings.  Loaded from environment if ``None``.

    Raises:
        ConfigError: If the Blacklight URL / API key are not configured, or
            a scraper plugin cannot be loaded.
    """
    if settings is None:
        settings = Settings()

    if not settings.blacklight_configured:
        logger.error("Blacklight API not configured; set BLACKLIGHT_API_URL and BLACKLIGHT_API_KEY.")
        raise ConfigError("BLACKLIGHT_API_URL and BLACKLIGHT_API_KEY must be set for auto-poll")

    async with build_components(settings) as components:
        scheduler = AutoPollScheduler(
            components.orchestrator,
            interval_s=settings.poll_interval_s,
            startup_delay_s=settings.poll_startup_delay_s,
        )

        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()
        shutdown_signal: list[str] = []

        def _request_graceful_shutdown(signame: str) -> None:
            if not shutdown_signal:
                shutdown_signal.append(signame)
                logger.info("Received %s; graceful shutdown requested.", signame)
            stop_event.set()

        loop.add_signal_handler(signal.SIGTERM, lambda: _request_graceful_shutdown("SIGTERM"))

        scheduler.start()
        try:
            await stop_event.wait()
        finally:
            await scheduler.stop()
            await scheduler.wait_idle()
            released = await components.leases.release_all()
            if released:
                logger.info("Returned %d held credential lease(s)", released)
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(signal.SIGTERM)
            logger.info("Shutdown complete.")
