"""Result records produced by one orchestrator run.

* :class:`PlatformOutcome` — what happened to one platform of a queue item.
* :class:`SessionResult` — the ordered outcomes of one queue item plus the
  completion response.
* :class:`QueueRunResult` — the top-level value a run returns, whatever
  the branch taken (conflict, empty queue, completed session, error).

``to_dict()`` renders the JSON shape printed by ``--once``::

    {"error": "Active session already exists. Complete it first."}
    {"message": "Queue is empty"}
    {"session_id": ..., "role": ..., "location": ...,
     "platforms": {"dice": {"success": true, "jobs_found": 3, "jobs_submitted": 3}},
     "summary": {"total_platforms": 1, "successful": 1, "failed": 0},
     "completion": {...}}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

__all__ = [
    "PlatformOutcome",
    "SessionResult",
    "RunStatus",
    "QueueRunResult",
    "ACTIVE_SESSION_ERROR",
    "QUEUE_EMPTY_MESSAGE",
]

logger = logging.getLogger(__name__)

ACTIVE_SESSION_ERROR = "Active session already exists. Complete it first."
QUEUE_EMPTY_MESSAGE = "Queue is empty"


# ---------------------------------------------------------------------------
# Per-platform outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlatformOutcome:
    """Outcome of one platform within a session.

    Attributes:
        platform: Platform key.
        success: ``True`` when jobs were scraped and submitted.
        jobs_found: Raw jobs returned by the scraper.
        jobs_submitted: Formatted jobs accepted by the backend.
        error: Failure reason, when ``success`` is ``False``.
        submit_error: Reason the backend submit call itself failed, if it did.
    """

    platform: str
    success: bool
    jobs_found: int = 0
    jobs_submitted: int = 0
    error: str | None = None
    submit_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.success:
            data["jobs_found"] = self.jobs_found
            data["jobs_submitted"] = self.jobs_submitted
        else:
            data["error"] = self.error
        if self.submit_error:
            data["submit_error"] = self.submit_error
        return data


# ---------------------------------------------------------------------------
# Session result
# ---------------------------------------------------------------------------


@dataclass
class SessionResult:
    """Accumulates platform outcomes for one queue item.

    ``outcomes`` is append-only and kept in processing order.
    """

    session_id: str
    role: str
    location: str
    platforms_total: int
    outcomes: list[PlatformOutcome] = field(default_factory=list)
    completion: dict[str, Any] | None = None
    completion_error: str | None = None
    duration_s: float = 0.0

    def record(self, outcome: PlatformOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def successful(self) -> int:
        """Number of platforms that succeeded."""
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        """Number of platforms that failed."""
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def total_jobs_submitted(self) -> int:
        return sum(o.jobs_submitted for o in self.outcomes)

    @property
    def completed(self) -> bool:
        return self.completion is not None

    def format_report(self) -> str:
        """One-line summary for the end-of-session log record."""
        status = "completed" if self.completed else f"completion failed ({self.completion_error})"
        return (
            f"Session {self.session_id} {status} in {self.duration_s:.1f}s | "
            f"role={self.role!r} location={self.location!r} | "
            f"platforms={self.successful}/{self.platforms_total} ok, {self.failed} failed | "
            f"jobs_submitted={self.total_jobs_submitted}"
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "session_id": self.session_id,
            "role": self.role,
            "location": self.location,
            "platforms": {o.platform: o.to_dict() for o in self.outcomes},
            "summary": {
                "total_platforms": self.platforms_total,
                "successful": self.successful,
                "failed": self.failed,
            },
        }
        if self.completion is not None:
            data["completion"] = self.completion
        if self.completion_error is not None:
            data["completion_error"] = self.completion_error
        return data


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


class RunStatus(StrEnum):
    CONFLICT = "conflict"
    EMPTY = "empty"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class QueueRunResult:
    """Value returned by every orchestrator run."""

    status: RunStatus
    error: str | None = None
    message: str | None = None
    session: SessionResult | None = None

    @classmethod
    def conflict(cls, error: str = ACTIVE_SESSION_ERROR) -> QueueRunResult:
        return cls(status=RunStatus.CONFLICT, error=error)

    @classmethod
    def empty(cls) -> QueueRunResult:
        return cls(status=RunStatus.EMPTY, message=QUEUE_EMPTY_MESSAGE)

    @classmethod
    def completed(cls, session: SessionResult) -> QueueRunResult:
        return cls(status=RunStatus.COMPLETED, session=session)

    @classmethod
    def failed(cls, error: str, session: SessionResult | None = None) -> QueueRunResult:
        return cls(status=RunStatus.ERROR, error=error, session=session)

    def to_dict(self) -> dict[str, Any]:
        if self.session is not None:
            data = self.session.to_dict()
            if self.error is not None:
                data["error"] = self.error
            return data
        if self.error is not None:
            return {"error": self.error}
        return {"message": self.message}
