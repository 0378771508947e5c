"""scrapequeue process entry-point.

Usage:
    python -m scrapequeue [--once] [--log-level LEVEL] [--log-format FORMAT]

Default behaviour is continuous: the auto-poll scheduler checks the queue
every ``POLL_INTERVAL_S`` seconds until SIGTERM or Ctrl+C.  Pass ``--once``
to process at most one queue item, print the JSON result and exit.

Exit status: 0 on success, 1 on a configuration error, 2 when a --once
run ended in error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from pydantic import ValidationError

from scrapequeue.core import configure_logging
from scrapequeue.core.exceptions import ConfigError
from scrapequeue.core.settings import Settings

EXIT_CONFIG_ERROR = 1
EXIT_RUN_ERROR = 2


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="scrapequeue",
        description="Blacklight scraper queue worker.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one queue item, print the result as JSON and exit.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )

    args = parser.parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"scrapequeue: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(EXIT_CONFIG_ERROR)

    logger = logging.getLogger(__name__)
    logger.info("scrapequeue starting up")

    from scrapequeue.orchestrator.results import RunStatus  # noqa: PLC0415
    from scrapequeue.orchestrator.runner import run_once  # noqa: PLC0415
    from scrapequeue.orchestrator.scheduler import run_continuous  # noqa: PLC0415

    try:
        settings = Settings()
        if args.once:
            logger.info("Running a single queue check (--once).")
            result = asyncio.run(run_once(settings))
            print(json.dumps(result.to_dict(), indent=2, default=str))  # noqa: T201
            if result.status is RunStatus.ERROR:
                sys.exit(EXIT_RUN_ERROR)
        else:
            logger.info("Running in continuous mode (Ctrl+C to stop).")
            asyncio.run(run_continuous(settings))
    except (ConfigError, ValidationError) as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(EXIT_CONFIG_ERROR)
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
