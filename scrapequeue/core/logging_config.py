"""Process-wide logging for scrapequeue.

:func:`configure_logging` is called once by ``__main__``; library modules
only ever do ``logger = logging.getLogger(__name__)``.

Every record leaving the root handler carries ``run_id``: the 8-character
id of the queue run that produced it, or ``"-"`` outside a run.  The id
lives in :data:`RUN_ID_CTX`, so concurrent tasks spawned during a run
inherit it without any plumbing.

Environment (read when :func:`configure_logging` is called without
arguments):

=============  ======================================  ========
Variable       Values                                  Default
=============  ======================================  ========
``LOG_LEVEL``  DEBUG, INFO, WARNING, ERROR, CRITICAL   INFO
``LOG_FORMAT`` text, json                              text
=============  ======================================  ========
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = ["configure_logging", "JsonFormatter", "RUN_ID_CTX", "RunContextFilter"]

logger = logging.getLogger(__name__)

#: Identifier of the queue run in progress; bound by
#: :meth:`~scrapequeue.orchestrator.session.SessionOrchestrator.run_once`.
RUN_ID_CTX: ContextVar[str] = ContextVar("run_id", default="-")

_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_FORMATS: Final[frozenset[str]] = frozenset({"text", "json"})
_QUIET_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "asyncio")

_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s [%(run_id)s] %(name)s: %(message)s"
_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"


class RunContextFilter(logging.Filter):
    """Copy :data:`RUN_ID_CTX` onto each record as ``record.run_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.run_id = RUN_ID_CTX.get()
        return True


def _resolve(
    value: str | None,
    env_var: str,
    default: str,
    allowed: frozenset[str],
    normalise: Callable[[str], str],
) -> str:
    resolved = normalise(value or os.environ.get(env_var) or default)
    if resolved not in allowed:
        raise ValueError(
            f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(sorted(allowed))}"
        )
    return resolved


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install the scrapequeue handler on the root logger.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL`` then ``INFO``.
        fmt: ``"text"`` or ``"json"``; falls back to ``$LOG_FORMAT`` then
            ``text``.
        force: Replace existing root handlers.  Without it an already
            configured root logger (pytest, an embedding app) only gets
            its level adjusted.

    Raises:
        ValueError: Unknown level or format.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS, str.upper)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS, str.lower)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(RunContextFilter())
    handler.setFormatter(
        JsonFormatter()
        if resolved_fmt == "json"
        else logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT)
    )
    root.handlers[:] = [handler]

    quiet_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    ``run_id`` and ``event`` are promoted to top-level keys so log
    pipelines can group a whole queue run or filter on an event name::

        {"ts": "2026-03-01T09:30:00.125Z", "level": "INFO",
         "logger": "scrapequeue.orchestrator.session", "run_id": "a3f2b1c0",
         "event": "SESSION_COMPLETE", "message": "Session 42 completed",
         "extra": {}}

    Any other ``extra=`` keys end up under ``"extra"``.  ``exc_info`` and
    ``stack_info`` appear only when the record has them.
    """

    # Attributes every LogRecord has, plus the ones formatting adds.
    _STANDARD_ATTRS: frozenset[str] = frozenset(
        vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
    ) | {"message", "asctime", "taskName"}
    _PROMOTED: tuple[str, ...] = ("run_id", "event")

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        """Serialise *record* to a single JSON line."""
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
        }
        for key in self._PROMOTED:
            payload[key] = getattr(record, key, None)
        payload["message"] = record.getMessage()
        payload["extra"] = {
            key: value
            for key, value in vars(record).items()
            if key not in self._STANDARD_ATTRS and key not in self._PROMOTED
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(payload, default=str)
