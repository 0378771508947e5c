"""Structured log event name constants for the queue workflow.

Every key transition emits a log record with an ``event`` field (passed via
``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the value
surfaces as ``extra.event``; in text mode the message is self-describing.

Usage example::

    import logging
    from scrapequeue.core import events

    logger = logging.getLogger(__name__)

    logger.info("Queue is empty", extra={"event": events.QUEUE_EMPTY})
"""

from __future__ import annotations

__all__ = [
    # Run lifecycle
    "RUN_START",
    "RUN_CONFLICT",
    "RUN_ABORT",
    "RUN_SKIPPED",
    "QUEUE_EMPTY",
    # Session lifecycle
    "SESSION_START",
    "SESSION_COMPLETE",
    "SESSION_COMPLETE_ERROR",
    "SESSION_FAILED",
    # Platform lifecycle
    "PLATFORM_START",
    "PLATFORM_SUCCESS",
    "PLATFORM_FAILED",
    "PLATFORM_UNSUPPORTED",
    "PLATFORM_SUBMIT_ERROR",
    # Credential leases
    "CREDENTIAL_ACQUIRED",
    "CREDENTIAL_UNAVAILABLE",
    "CREDENTIAL_RELEASED",
    "CREDENTIAL_RELEASE_ERROR",
]

# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------

#: Emitted once at the start of every orchestrator run.
RUN_START: str = "RUN_START"

#: Backend reports an active session (current-session or a 409 from
#: next-role-location); the run ends without further calls.
RUN_CONFLICT: str = "RUN_CONFLICT"

#: The run ended early because of a backend or unexpected failure.
RUN_ABORT: str = "RUN_ABORT"

#: A scheduler trigger fired while a run was in flight and was dropped.
RUN_SKIPPED: str = "RUN_SKIPPED"

#: next-role-location answered 204.
QUEUE_EMPTY: str = "QUEUE_EMPTY"

# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

SESSION_START: str = "SESSION_START"
SESSION_COMPLETE: str = "SESSION_COMPLETE"

#: The complete call failed; recorded as ``completion_error``.
SESSION_COMPLETE_ERROR: str = "SESSION_COMPLETE_ERROR"

#: The session was reported to the backend via the fail endpoint.
SESSION_FAILED: str = "SESSION_FAILED"

# ---------------------------------------------------------------------------
# Platform lifecycle
# ---------------------------------------------------------------------------

PLATFORM_START: str = "PLATFORM_START"
PLATFORM_SUCCESS: str = "PLATFORM_SUCCESS"
PLATFORM_FAILED: str = "PLATFORM_FAILED"

#: The queue item named a platform with no registered scraper.
PLATFORM_UNSUPPORTED: str = "PLATFORM_UNSUPPORTED"

#: Submitting a platform's jobs (or its failure) to the backend failed.
PLATFORM_SUBMIT_ERROR: str = "PLATFORM_SUBMIT_ERROR"

# ---------------------------------------------------------------------------
# Credential leases
# ---------------------------------------------------------------------------

CREDENTIAL_ACQUIRED: str = "CREDENTIAL_ACQUIRED"

#: No credential became available within the polling budget.
CREDENTIAL_UNAVAILABLE: str = "CREDENTIAL_UNAVAILABLE"

CREDENTIAL_RELEASED: str = "CREDENTIAL_RELEASED"
CREDENTIAL_RELEASE_ERROR: str = "CREDENTIAL_RELEASE_ERROR"
