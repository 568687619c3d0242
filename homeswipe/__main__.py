"""Homeswipe process entry-point.

Usage:
    python -m homeswipe replicate [--log-level LEVEL] [--log-format FORMAT]
    python -m homeswipe sweep     [--log-level LEVEL] [--log-format FORMAT]
    python -m homeswipe run       [--log-level LEVEL] [--log-format FORMAT]

``replicate`` and ``sweep`` run one job and exit with status 0 on success and
1 on failure.  ``run`` starts the continuous scheduler (both jobs on their own
cadence) until SIGTERM or Ctrl+C.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from homeswipe.core import configure_logging
from homeswipe.core.settings import Settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="homeswipe",
        description="Replicate residential listings from the OData feed into SQLite.",
    )
    parser.add_argument(
        "command",
        choices=("replicate", "sweep", "run"),
        help=(
            "replicate: one incremental replication cycle; "
            "sweep: one reconciliation sweep; "
            "run: both, continuously."
        ),
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
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"homeswipe: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("Homeswipe starting: %s", args.command)

    from homeswipe.orchestrator.runner import run_replication_job, run_sweep_job  # noqa: PLC0415
    from homeswipe.orchestrator.scheduler import run_continuous  # noqa: PLC0415

    try:
        settings = Settings()
    except ValidationError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)

    try:
        if args.command == "run":
            asyncio.run(run_continuous(settings))
        else:
            job = run_replication_job if args.command == "replicate" else run_sweep_job
            result = asyncio.run(job(settings))
            logger.info("%s", result.message)
            sys.exit(0 if result.ok else 1)
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
        sys.exit(0)
    except asyncio.CancelledError:
        logger.info("Shutdown complete; exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
