"""Continuous scheduler for Homeswipe.

Runs the two jobs on independent cadences with randomised sleeps:

* **Replication cadence** — :func:`~homeswipe.orchestrator.runner.run_replication_job`
  every ``REPLICATION_INTERVAL_MIN`` … ``REPLICATION_INTERVAL_MAX`` seconds
  (defaults: 600 s / 900 s).
* **Sweep cadence** — :func:`~homeswipe.orchestrator.runner.run_sweep_job`
  every ``SWEEP_INTERVAL_MIN`` … ``SWEEP_INTERVAL_MAX`` seconds
  (defaults: 3600 s / 4200 s).

The loops never coordinate: a sweep may overlap a replication cycle.  Both
only write idempotent upserts or status flips, so the store converges.

Resource lifecycle is owned by the job functions, which open and close the
database and the feed client on every run.  The scheduler only tracks sleep
intervals.

Typical usage::

    import asyncio
    from homeswipe.orchestrator.scheduler import run_continuous

    asyncio.run(run_continuous())
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import signal
from collections.abc import Awaitable, Callable
from typing import NoReturn

from homeswipe.core.settings import Settings
from homeswipe.orchestrator.runner import JobResult, run_replication_job, run_sweep_job

__all__ = [
    "next_replication_interval",
    "next_sweep_interval",
    "run_continuous",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Interval helpers
# ---------------------------------------------------------------------------


def next_replication_interval(settings: Settings) -> float:
    """Seconds to sleep before the next replication cycle."""
    return random.uniform(
        settings.replication_interval_min,
        settings.replication_interval_max,
    )


def next_sweep_interval(settings: Settings) -> float:
    """Seconds to sleep before the next reconciliation sweep."""
    return random.uniform(
        settings.sweep_interval_min,
        settings.sweep_interval_max,
    )


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


async def _job_loop(
    name: str,
    job: Callable[[Settings], Awaitable[JobResult]],
    interval: Callable[[Settings], float],
    settings: Settings,
) -> NoReturn:
    """Run *job* forever, sleeping ``interval(settings)`` between runs.

    A failing run is logged and retried after the next interval; the loop
    itself only ends by cancellation.
    """
    while True:
        try:
            result = await job(settings)
        except Exception:
            logger.exception("Unhandled exception in %s loop; will retry after interval.", name)
        else:
            if not result.ok:
                logger.warning("%s run failed (%d): %s", name, result.status_code, result.message)

        delay = interval(settings)
        logger.info("Next %s in %.0f s.", name, delay)
        await asyncio.sleep(delay)


# ---------------------------------------------------------------------------
# Public entry-point
# ---------------------------------------------------------------------------


async def run_continuous(settings: Settings | None = None) -> NoReturn:
    """Run replication and sweep loops until cancelled.

    A ``SIGTERM`` handler cancels both loops so an in-flight job unwinds
    through its own cleanup; ``SIGINT`` follows the default asyncio
    behaviour.  The handler is removed on exit.

    Args:
        settings: Application settings.  Loaded from environment if ``None``.

    Raises:
        asyncio.CancelledError: On shutdown (SIGTERM, Ctrl+C or task
            cancellation).
    """
    if settings is None:
        settings = Settings()

    logger.info(
        "Homeswipe entering continuous mode: replication every %d-%d s, sweep every %d-%d s.",
        settings.replication_interval_min,
        settings.replication_interval_max,
        settings.sweep_interval_min,
        settings.sweep_interval_max,
    )

    tasks = [
        asyncio.create_task(
            _job_loop("replication", run_replication_job, next_replication_interval, settings),
            name="homeswipe-replication-loop",
        ),
        asyncio.create_task(
            _job_loop("sweep", run_sweep_job, next_sweep_interval, settings),
            name="homeswipe-sweep-loop",
        ),
    ]

    loop = asyncio.get_running_loop()
    shutdown_signal: list[str] = []

    def _request_shutdown(signame: str) -> None:
        if not shutdown_signal:
            shutdown_signal.append(signame)
            logger.info("Received %s; cancelling job loops.", signame)
        for task in tasks:
            task.cancel()

    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGTERM, lambda: _request_shutdown("SIGTERM"))

    try:
        await asyncio.gather(*tasks)
    except (asyncio.CancelledError, KeyboardInterrupt):
        if shutdown_signal:
            logger.info("Graceful shutdown complete (signal: %s).", shutdown_signal[0])
        else:
            logger.info("Continuous loop cancelled; stopping tasks.")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    finally:
        with contextlib.suppress(Exception):
            loop.remove_signal_handler(signal.SIGTERM)

    raise RuntimeError("run_continuous exited unexpectedly")
