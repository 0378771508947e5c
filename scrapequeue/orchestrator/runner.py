"""Component wiring and the single-run entry point.

:func:`build_components` assembles every runtime piece from
:class:`~scrapequeue.core.settings.Settings` and owns their teardown through
one :class:`contextlib.AsyncExitStack`:

1. A :class:`~scrapequeue.backend.http_client.BackendHttpClient` for the
   queue API, plus a second one for the credentials API when it lives on a
   different host or uses a different key.
2. :class:`~scrapequeue.backend.queue_api.QueueApi` /
   :class:`~scrapequeue.backend.credentials_api.CredentialsApi`.
3. A :class:`~scrapequeue.credentials.lease_manager.CredentialLeaseManager`.
4. A :class:`~scrapequeue.scrapers.registry.ScraperRegistry` filled from
   ``SCRAPER_PLUGINS`` (unless one is supplied), with each scraper's async
   context entered.
5. The :class:`~scrapequeue.orchestrator.session.SessionOrchestrator`.

Typical usage::

    import asyncio
    from scrapequeue.orchestrator.runner import run_once

    result = asyncio.run(run_once())
    print(result.to_dict())
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

import httpx

from scrapequeue.backend.credentials_api import CredentialsApi
from scrapequeue.backend.http_client import BackendHttpClient, SleepFn
from scrapequeue.backend.queue_api import QueueApi
from scrapequeue.core.exceptions import ConfigError
from scrapequeue.core.settings import Settings
from scrapequeue.credentials.lease_manager import CredentialLeaseManager
from scrapequeue.orchestrator.results import QueueRunResult
from scrapequeue.orchestrator.session import SessionOrchestrator
from scrapequeue.scrapers.registry import ScraperRegistry

__all__ = ["Components", "build_components", "run_once"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Components:
    """Everything one process needs to run the queue."""

    queue_api: QueueApi
    credentials_api: CredentialsApi
    leases: CredentialLeaseManager
    registry: ScraperRegistry
    orchestrator: SessionOrchestrator


def _http_client(
    settings: Settings,
    base_url: str,
    api_key: str,
    transport: httpx.AsyncBaseTransport | None,
    sleep: SleepFn,
) -> BackendHttpClient:
    return BackendHttpClient(
        base_url=base_url,
        api_key=api_key,
        connect_timeout=settings.http_connect_timeout,
        read_timeout=settings.http_read_timeout,
        write_timeout=settings.http_write_timeout,
        max_attempts=settings.http_max_attempts,
        verify=settings.http_verify_tls,
        transport=transport,
        sleep=sleep,
    )


@asynccontextmanager
async def build_components(
    settings: Settings,
    *,
    registry: ScraperRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> AsyncIterator[Components]:
    """Assemble and own all runtime components.

    Args:
        settings: Loaded settings.
        registry: Pre-built scraper registry; built from
            ``settings.scraper_plugins`` when ``None``.
        transport: Optional httpx transport shared by both HTTP clients.
        sleep: Coroutine used for HTTP retry delays and credential polling.

    Yields:
        The wired :class:`Components`.

    Raises:
        ConfigError: The backend is not configured or a plugin fails to load.
    """
    if not settings.blacklight_configured:
        raise ConfigError("BLACKLIGHT_API_URL and BLACKLIGHT_API_KEY must be set")

    if registry is None:
        registry = ScraperRegistry()
        registry.load_plugins(settings.scraper_plugins)
    if not len(registry):
        logger.warning("No scrapers registered; every platform will be reported unsupported.")

    async with AsyncExitStack() as stack:
        queue_client = await stack.enter_async_context(
            _http_client(
                settings,
                settings.blacklight_api_url,
                settings.blacklight_api_key,
                transport,
                sleep,
            )
        )
        if (
            settings.credentials_api_url_resolved == settings.blacklight_api_url
            and settings.credentials_api_key_resolved == settings.blacklight_api_key
        ):
            credentials_client = queue_client
        else:
            credentials_client = await stack.enter_async_context(
                _http_client(
                    settings,
                    settings.credentials_api_url_resolved,
                    settings.credentials_api_key_resolved,
                    transport,
                    sleep,
                )
            )

        for scraper in registry.scrapers():
            await stack.enter_async_context(scraper)

        queue_api = QueueApi(queue_client)
        credentials_api = CredentialsApi(credentials_client)
        leases = CredentialLeaseManager(
            credentials_api,
            poll_retries=settings.credential_poll_retries,
            poll_delay_s=settings.credential_poll_delay_s,
            sleep=sleep,
        )
        orchestrator = SessionOrchestrator(queue_api, leases, registry, settings)

        logger.debug(
            "Components ready (queue=%s credentials=%s scrapers=%s)",
            queue_client.base_url,
            credentials_client.base_url,
            ", ".join(registry.platforms) or "-",
        )
        yield Components(
            queue_api=queue_api,
            credentials_api=credentials_api,
            leases=leases,
            registry=registry,
            orchestrator=orchestrator,
        )


async def run_once(
    settings: Settings | None = None,
    *,
    registry: ScraperRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> QueueRunResult:
    """Process at most one queue item and tear everything down.

    Any lease still held when the run ends is returned without report.

    Raises:
        ConfigError: The backend is not configured or a plugin fails to load.
    """
    if settings is None:
        settings = Settings()

    async with build_components(
        settings, registry=registry, transport=transport, sleep=sleep
    ) as components:
        try:
            return await components.orchestrator.run_once()
        finally:
            await components.leases.release_all()
