"""Session orchestration, scheduling, and result reporting.

Public API
----------
* :class:`~scrapequeue.orchestrator.session.SessionOrchestrator` — one queue
  item from fetch to completion.
* :class:`~scrapequeue.orchestrator.scheduler.AutoPollScheduler` /
  :func:`~scrapequeue.orchestrator.scheduler.run_continuous` — fixed-cadence
  polling with a re-entrancy guard.
* :func:`~scrapequeue.orchestrator.runner.run_once` — single run; used for
  ``--once`` mode and testing.
* :func:`~scrapequeue.orchestrator.formatter.format_job_for_backend` — job
  record mapping.
"""

from scrapequeue.orchestrator.formatter import format_job_for_backend
from scrapequeue.orchestrator.results import (
    PlatformOutcome,
    QueueRunResult,
    RunStatus,
    SessionResult,
)
from scrapequeue.orchestrator.runner import Components, build_components, run_once
from scrapequeue.orchestrator.scheduler import AutoPollScheduler, run_continuous
from scrapequeue.orchestrator.session import SessionOrchestrator

__all__ = [
    "AutoPollScheduler",
    "Components",
    "PlatformOutcome",
    "QueueRunResult",
    "RunStatus",
    "SessionOrchestrator",
    "SessionResult",
    "build_components",
    "format_job_for_backend",
    "run_continuous",
    "run_once",
]
