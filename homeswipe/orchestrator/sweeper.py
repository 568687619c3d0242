"""Reconciliation sweep: deactivate local listings that vanished upstream.

Incremental replication only sees records that *changed*; a listing removed
from the feed (sold, withdrawn, expired) simply stops appearing.  The sweep
closes that gap by set difference:

    missing = local active ids − upstream active keys

and flips every missing id to inactive in one bulk update.  It never creates
or reactivates rows (the next replication upsert reactivates a listing that
comes back).  If either side cannot be read completely the sweep aborts
before touching the store, so a partial upstream listing can never
deactivate live records.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from homeswipe.core.exceptions import FeedError, ReconciliationError, StorageError
from homeswipe.feed.client import FeedClient
from homeswipe.storage.repository import PropertyRepository

__all__ = ["SweepStats", "run_sweep"]

logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    """Outcome of one reconciliation sweep."""

    upstream_active: int = 0
    local_active: int = 0
    deactivated: int = 0
    duration_s: float = 0.0

    def summary(self) -> str:
        return (
            f"Sweep: upstream_active={self.upstream_active} "
            f"local_active={self.local_active} deactivated={self.deactivated} "
            f"in {self.duration_s:.1f}s"
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "upstream_active": self.upstream_active,
            "local_active": self.local_active,
            "deactivated": self.deactivated,
            "duration_s": round(self.duration_s, 3),
        }


async def run_sweep(
    feed: FeedClient,
    repo: PropertyRepository,
    *,
    batch_size: int | None = None,
) -> SweepStats:
    """Run one reconciliation sweep.

    Args:
        feed: Feed client used for the full active-key scan.
        repo: Storage sink holding the local active set.
        batch_size: Scan page size; defaults to ``Settings.sweep_batch_size``
            as configured on *feed*.

    Returns:
        The sweep's :class:`SweepStats`.

    Raises:
        ReconciliationError: If the upstream scan, the local read or the
            bulk update fails.  Nothing is flipped when a read fails.
    """
    t0 = time.monotonic()
    stats = SweepStats()

    try:
        upstream = await feed.fetch_all_active_keys(batch_size=batch_size)
    except FeedError as exc:
        raise ReconciliationError(f"Upstream active-key scan failed: {exc}") from exc
    stats.upstream_active = len(upstream)

    try:
        local = await repo.active_ids()
    except StorageError as exc:
        raise ReconciliationError(f"Local active-id read failed: {exc}") from exc
    stats.local_active = len(local)

    missing = local - upstream
    logger.info(
        "Sweep: %d upstream active, %d local active, %d missing upstream",
        stats.upstream_active,
        stats.local_active,
        len(missing),
    )

    if missing:
        try:
            stats.deactivated = await repo.set_inactive(missing)
        except StorageError as exc:
            raise ReconciliationError(f"Bulk deactivation failed: {exc}") from exc
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Deactivated: %s", ", ".join(sorted(missing)))
    else:
        logger.debug("Sweep: nothing to deactivate")

    stats.duration_s = time.monotonic() - t0
    logger.info("%s", stats.summary())
    return stats
