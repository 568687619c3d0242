"""Job entry points: assemble components and run one replication or sweep.

:func:`run_replication_job` and :func:`run_sweep_job` are what the CLI, the
continuous scheduler and any external trigger call.  Each one:

1. Binds a fresh job id to the logging context.
2. Loads :class:`~homeswipe.core.settings.Settings` (or uses the supplied
   instance) and checks that the feed token is configured.
3. Opens the SQLite database, builds the repository, the cursor store and the
   feed client.
4. Runs the driver or the sweeper.
5. Tears every resource down, including on failure.

Both are idempotent and never raise for operational failures: the outcome is
returned as a :class:`JobResult` whose ``status_code`` is ``200`` on success
and ``500`` otherwise, so an HTTP-style trigger can forward it unchanged.

Typical usage::

    import asyncio
    from homeswipe.orchestrator.runner import run_replication_job

    result = asyncio.run(run_replication_job())
    print(result.status_code, result.message)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import aiosqlite
from pydantic import ValidationError

from homeswipe.core.exceptions import ConfigError, HomeswipeError, ReplicationError
from homeswipe.core.logging_config import JOB_ID_CTX, bind_job_id
from homeswipe.core.settings import Settings
from homeswipe.feed.client import FeedClient
from homeswipe.orchestrator.replicator import ReplicationDriver
from homeswipe.orchestrator.sweeper import run_sweep
from homeswipe.storage.cursor_store import build_cursor_store
from homeswipe.storage.database import open_db
from homeswipe.storage.repository import PropertyRepository

__all__ = ["JobResult", "run_replication_job", "run_sweep_job"]

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    """Outcome of one job run.

    Attributes:
        ok: ``True`` if the job completed.
        status_code: ``200`` on success, ``500`` on failure.
        message: Human-readable summary or error description.
        stats: Job counters (possibly partial on failure).
        job_id: Logging job id of the run.
    """

    ok: bool
    status_code: int
    message: str
    stats: dict[str, Any] = field(default_factory=dict)
    job_id: str = "-"

    @classmethod
    def success(cls, message: str, stats: dict[str, Any]) -> JobResult:
        return cls(ok=True, status_code=200, message=message, stats=stats)

    @classmethod
    def failure(cls, message: str, stats: dict[str, Any] | None = None) -> JobResult:
        return cls(ok=False, status_code=500, message=message, stats=stats or {})


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_settings(settings: Settings | None) -> Settings:
    """Return *settings* or load them from the environment.

    Raises:
        ConfigError: If the environment is invalid or the feed token is unset.
    """
    if settings is None:
        try:
            settings = Settings()
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
    if not settings.feed_configured:
        raise ConfigError("FEED_ACCESS_TOKEN is not set.")
    return settings


_JobBody = Callable[[Settings, aiosqlite.Connection], Awaitable[JobResult]]


async def _run_job(kind: str, settings: Settings | None, body: _JobBody) -> JobResult:
    """Shared job frame: job id, settings, database lifecycle, error mapping."""
    job_id, token = bind_job_id(kind)
    try:
        try:
            resolved = _load_settings(settings)
            conn = await open_db(resolved.database_path_resolved)
        except (ConfigError, aiosqlite.Error, OSError) as exc:
            logger.error("%s job could not start: %s", kind, exc)
            result = JobResult.failure(str(exc))
        else:
            try:
                result = await body(resolved, conn)
            except HomeswipeError as exc:
                logger.error("%s job failed: %s", kind, exc)
                result = JobResult.failure(str(exc))
            except Exception as exc:  # noqa: BLE001
                logger.exception("%s job crashed", kind)
                result = JobResult.failure(f"Unexpected error: {exc!r}")
            finally:
                await conn.close()
                logger.debug("Database connection closed.")

        result.job_id = job_id
        logger.info("%s job finished with status %d", kind, result.status_code)
        return result
    finally:
        JOB_ID_CTX.reset(token)


# ---------------------------------------------------------------------------
# Job bodies
# ---------------------------------------------------------------------------


async def _replicate(settings: Settings, conn: aiosqlite.Connection) -> JobResult:
    repo = PropertyRepository(conn)
    cursor_store = build_cursor_store(settings.cursor_mode, conn, repo)
    async with FeedClient(settings) as feed:
        driver = ReplicationDriver.from_settings(feed, repo, cursor_store, settings)
        try:
            stats = await driver.run()
        except ReplicationError as exc:
            logger.error("Replication aborted after %d page(s): %s", exc.pages_completed, exc)
            return JobResult.failure(str(exc), driver.stats.as_dict())
    return JobResult.success(stats.summary(), stats.as_dict())


async def _sweep(settings: Settings, conn: aiosqlite.Connection) -> JobResult:
    repo = PropertyRepository(conn)
    async with FeedClient(settings) as feed:
        stats = await run_sweep(feed, repo, batch_size=settings.sweep_batch_size)
    return JobResult.success(stats.summary(), stats.as_dict())


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


async def run_replication_job(settings: Settings | None = None) -> JobResult:
    """Run one incremental replication cycle.

    Args:
        settings: Pre-loaded settings; loaded from the environment if ``None``.

    Returns:
        ``200`` when the cycle reached the end of the feed (individual record
        discards or storage failures are reported in ``stats``), ``500`` when
        it was aborted or could not start.
    """
    return await _run_job("replicate", settings, _replicate)


async def run_sweep_job(settings: Settings | None = None) -> JobResult:
    """Run one reconciliation sweep.

    Args:
        settings: Pre-loaded settings; loaded from the environment if ``None``.

    Returns:
        ``200`` when the sweep completed (with or without deactivations),
        ``500`` when it was aborted before any update or could not start.
    """
    return await _run_job("sweep", settings, _sweep)
