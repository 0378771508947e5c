"""Shared pytest fixtures and configuration for the scrapequeue test suite.

This file is loaded automatically by pytest before any test module.  It
provides:

* forced DEBUG logging for every test;
* a ``clean_env`` fixture isolating :class:`Settings` from the shell and
  any on-disk ``.env`` file;
* an in-memory Blacklight backend served through :class:`httpx.MockTransport`;
* a recording sleep coroutine used in place of real waits;
* a factory for scripted scrapers.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Sequence
from typing import Any, ClassVar

import httpx
import pytest
from pydantic_settings import SettingsConfigDict

from scrapequeue.core import configure_logging
from scrapequeue.core.models import CredentialPayload, JobRecord, Role
from scrapequeue.core.settings import Settings
from scrapequeue.scrapers.base import BaseScraper, LoginSignal

BASE_URL = "http://blacklight.test"
API_KEY = "test-scraper-key"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove scrapequeue env vars and disable ``.env`` loading for a test."""
    prefixes = (
        "BLACKLIGHT_",
        "CREDENTIALS_",
        "CREDENTIAL_",
        "POLL_",
        "HTTP_",
        "SCRAPER_",
        "RATE_LIMIT_",
        "POST_LOGIN_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.upper().startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


@pytest.fixture()
def settings(clean_env: None) -> Settings:
    """Settings pointing at the fake backend, with a short credential poll."""
    return Settings(
        blacklight_api_url=BASE_URL,
        blacklight_api_key=API_KEY,
        credential_poll_retries=2,
        credential_poll_delay_s=60.0,
    )


# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Async stand-in for :func:`asyncio.sleep` that records each delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


# ---------------------------------------------------------------------------
# Fake Blacklight backend
# ---------------------------------------------------------------------------


def _queue_item(
    platforms: Sequence[str | dict[str, Any]] = ("dice",),
    *,
    session_id: str = "sess-1",
    role_name: str = "DevOps Engineer",
    location: str = "New York",
) -> dict[str, Any]:
    """Build a next-role-location response body."""
    entries = [
        {"name": p, "display_name": p.title()} if isinstance(p, str) else p for p in platforms
    ]
    return {
        "session_id": session_id,
        "role": {
            "id": 7,
            "name": role_name,
            "aliases": ["SRE"],
            "category": "Engineering",
            "candidate_count": 4,
        },
        "location": location,
        "platforms": entries,
    }


class FakeBlacklight:
    """In-memory Blacklight backend driven through :class:`httpx.MockTransport`.

    Attributes:
        active_session: Answer of the current-session probe.
        next_item: Body for next-role-location; ``None`` → 204.
        next_status: Force a status (e.g. 409) for next-role-location.
        credentials: Per-platform queue of credential bodies; empty → 204.
        status_overrides: ``path → list of statuses`` consumed one per call;
            a listed status replaces the normal answer for that call.
        calls: Every request seen, as ``(method, path, json_body)``.
    """

    def __init__(self) -> None:
        self.active_session = False
        self.next_item: dict[str, Any] | None = None
        self.next_status: int | None = None
        self.credentials: dict[str, list[dict[str, Any]]] = {}
        self.status_overrides: dict[str, list[int]] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self.api_keys: list[str | None] = []

    def enqueue(
        self,
        platforms: Sequence[str | dict[str, Any]] = ("dice",),
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make the next next-role-location call return a queue item."""
        self.next_item = _queue_item(platforms, **kwargs)
        return self.next_item

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, suffix: str, method: str | None = None) -> list[tuple[str, str, Any]]:
        return [
            c for c in self.calls if c[1].endswith(suffix) and (method is None or c[0] == method)
        ]

    def submitted(self) -> list[dict[str, Any]]:
        """Bodies of every jobs submission, in order."""
        return [body for _, _, body in self.calls_to("/api/scraper/queue/jobs")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = None
        if request.content:
            body = json.loads(request.content)
        self.calls.append((request.method, path, body))
        self.api_keys.append(request.headers.get("X-Scraper-API-Key"))

        overrides = self.status_overrides.get(path)
        if overrides:
            status = overrides.pop(0)
            return httpx.Response(status, json={"error": f"forced {status}"})

        if path == "/api/scraper/queue/current-session":
            if self.active_session:
                return httpx.Response(
                    200,
                    json={
                        "has_active_session": True,
                        "session": {
                            "session_id": "open-1",
                            "role_name": "Data Engineer",
                            "location": "Austin",
                            "platforms_completed": 1,
                            "platforms_total": 3,
                        },
                    },
                )
            return httpx.Response(200, json={"has_active_session": False})

        if path == "/api/scraper/queue/next-role-location":
            if self.next_status == 409:
                return httpx.Response(409, json={"error": "Scraper already has an active session"})
            if self.next_item is None:
                return httpx.Response(204)
            item, self.next_item = self.next_item, None
            return httpx.Response(200, json=item)

        if path == "/api/scraper/queue/jobs":
            return httpx.Response(
                202,
                json={"status": "accepted", "progress": {"completed": 1, "total_platforms": 1}},
            )

        if path == "/api/scraper/queue/complete":
            return httpx.Response(200, json={"session_id": body["session_id"], "status": "completed"})

        if path == "/api/scraper/queue/fail":
            return httpx.Response(200, json={"status": "failed"})

        if path.startswith("/api/scraper-credentials/queue/") and path.endswith("/next"):
            platform = path.split("/")[-2]
            pending = self.credentials.get(platform) or []
            if not pending:
                return httpx.Response(204)
            return httpx.Response(200, json=pending.pop(0))

        if path.startswith("/api/scraper-credentials/queue/"):
            return httpx.Response(200, json={"ok": True})

        return httpx.Response(404, json={"error": "Not found"})


@pytest.fixture()
def fake_backend() -> FakeBlacklight:
    return FakeBlacklight()


# ---------------------------------------------------------------------------
# Scripted scrapers
# ---------------------------------------------------------------------------

#: One scripted step: jobs to return (as-is, malformed or not), or an exception
#: to raise.  A step may also be a callable receiving the login signal, for
#: "fail after login".
ScriptStep = list[JobRecord] | BaseException | Callable[[LoginSignal], list[JobRecord]]


class ScriptedScraper(BaseScraper):
    """Scraper whose behaviour is a list of per-call steps."""

    platform: ClassVar[str] = "scripted"

    def __init__(
        self,
        platform: str,
        steps: Sequence[ScriptStep],
        *,
        requires_credential: bool = False,
    ) -> None:
        self.platform = platform  # type: ignore[misc]
        self.requires_credential = requires_credential  # type: ignore[misc]
        self._steps = list(steps)
        self.calls: list[tuple[str, str, CredentialPayload | None]] = []

    async def scrape(
        self,
        role: Role,
        location: str,
        credential: CredentialPayload | None,
        login: LoginSignal,
    ) -> list[JobRecord]:
        self.calls.append((role.name, location, credential))
        step = self._steps.pop(0) if self._steps else []
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(login)
        return step


@pytest.fixture()
def make_scraper() -> Callable[..., ScriptedScraper]:
    """Factory: ``make_scraper("dice", [[{...}]], requires_credential=False)``."""

    def _make(
        platform: str,
        steps: Sequence[ScriptStep] = ([],),
        *,
        requires_credential: bool = False,
    ) -> ScriptedScraper:
        return ScriptedScraper(platform, steps, requires_credential=requires_credential)

    return _make


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    return logging.getLogger("tests")
