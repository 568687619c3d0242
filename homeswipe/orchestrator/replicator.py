"""Incremental replication driver: feed pages → transform → local store.

One call to :meth:`ReplicationDriver.run` is one replication cycle:

1. **Init** — read the cursor from the cursor store (epoch on first run).
2. **Count** — ask the feed how many records are pending after the cursor.
   The number is only logged; the loop below does not depend on it.
3. **Page** — fetch up to ``page_size`` records after the cursor, ordered by
   ``(ModificationTimestamp, ListingKey)``.
4. **Process** — every record of the page runs its own pipeline
   ``fetch_media → resolve_media → transform_record → upsert`` through the
   :class:`~homeswipe.orchestrator.gate.AdmissionGate`.  Failures are counted,
   never raised; the page always settles completely.
5. **Advance** — the cursor moves to the last record of the page and the
   cursor store is told, as long as no record of this cycle failed to
   persist.  The loop continues while pages come back full; the first short
   or empty page ends the cycle.

A feed failure while counting (when ``count_required``) or paging aborts the
cycle with :class:`~homeswipe.core.exceptions.ReplicationError`.  The cursor
is never moved past the last fully processed page.

Pages are strictly sequential; records within a page run concurrently, so
persistence order inside a page is not guaranteed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from homeswipe.core.exceptions import FeedError, ReplicationError, StorageError
from homeswipe.core.models import Cursor, UpstreamRecord
from homeswipe.core.settings import Settings
from homeswipe.feed.client import FeedClient
from homeswipe.orchestrator.gate import AdmissionGate
from homeswipe.storage.cursor_store import BaseCursorStore
from homeswipe.storage.repository import PropertyRepository
from homeswipe.transform.media import resolve_media
from homeswipe.transform.records import transform_record

__all__ = [
    "ReplicationStats",
    "ReplicationDriver",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass
class ReplicationStats:
    """Counters for one replication cycle.

    Attributes:
        start_cursor: Cursor read at the start of the cycle.
        final_cursor: Cursor after the last processed page (``None`` when no
            page contained records).
        pending: Feed count of pending records, ``None`` if the count request
            failed and was not required.
        pages: Non-empty pages processed.
        fetched: Records received across all pages.
        persisted: Records upserted successfully.
        discarded: Records dropped by the transformer (invalid price).
        storage_errors: Records whose record or media upsert failed.
        unexpected_errors: Record pipelines that raised anything else.
        media_failures: Media requests that failed and yielded no media.
        duration_s: Wall-clock duration in seconds.
    """

    start_cursor: Cursor | None = None
    final_cursor: Cursor | None = None
    pending: int | None = None
    pages: int = 0
    fetched: int = 0
    persisted: int = 0
    discarded: int = 0
    storage_errors: int = 0
    unexpected_errors: int = 0
    media_failures: int = 0
    duration_s: float = 0.0

    def summary(self) -> str:
        """One-line report for the cycle log."""
        return (
            f"Replication: pending={self.pending if self.pending is not None else '?'} "
            f"pages={self.pages} fetched={self.fetched} persisted={self.persisted} "
            f"discarded={self.discarded} storage_errors={self.storage_errors} "
            f"unexpected_errors={self.unexpected_errors} "
            f"media_failures={self.media_failures} "
            f"cursor={self.start_cursor} -> {self.final_cursor or self.start_cursor} "
            f"in {self.duration_s:.1f}s"
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "start_cursor": str(self.start_cursor) if self.start_cursor else None,
            "final_cursor": str(self.final_cursor) if self.final_cursor else None,
            "pending": self.pending,
            "pages": self.pages,
            "fetched": self.fetched,
            "persisted": self.persisted,
            "discarded": self.discarded,
            "storage_errors": self.storage_errors,
            "unexpected_errors": self.unexpected_errors,
            "media_failures": self.media_failures,
            "duration_s": round(self.duration_s, 3),
        }


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class ReplicationDriver:
    """Runs replication cycles against one feed, repository and cursor store.

    The driver holds no cursor of its own between cycles; the position is
    read from the cursor store at the start of every :meth:`run` and threaded
    through the page loop as a local value.

    Args:
        feed: Feed client.
        repo: Storage sink.
        cursor_store: Where the cycle starts and reports progress.
        page_size: Records per page (``$top``).
        concurrency_limit: Max in-flight record pipelines within a page.
        count_required: When ``True`` a failed count request aborts the
            cycle; when ``False`` it is logged and the cycle proceeds.
    """

    def __init__(
        self,
        feed: FeedClient,
        repo: PropertyRepository,
        cursor_store: BaseCursorStore,
        *,
        page_size: int = 1000,
        concurrency_limit: int = 20,
        count_required: bool = True,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be ≥ 1, got {page_size!r}.")
        self._feed = feed
        self._repo = repo
        self._cursor_store = cursor_store
        self._page_size = page_size
        self._count_required = count_required
        self._gate = AdmissionGate(concurrency_limit)
        #: Stats of the current (or last) cycle; populated even when
        #: :meth:`run` raises, so callers can report partial progress.
        self.stats = ReplicationStats()

    @classmethod
    def from_settings(
        cls,
        feed: FeedClient,
        repo: PropertyRepository,
        cursor_store: BaseCursorStore,
        settings: Settings,
    ) -> ReplicationDriver:
        """Build a driver with the sizes and policies from *settings*."""
        return cls(
            feed,
            repo,
            cursor_store,
            page_size=settings.page_size,
            concurrency_limit=settings.concurrency_limit,
            count_required=settings.count_required,
        )

    @property
    def gate(self) -> AdmissionGate:
        return self._gate

    async def run(self) -> ReplicationStats:
        """Execute one replication cycle.

        Returns:
            The cycle's :class:`ReplicationStats`.

        Raises:
            ReplicationError: If a page fetch fails, the feed returns a page
                ending exactly at the current cursor, or (with
                ``count_required``) the count request fails.
        """
        t0 = time.monotonic()
        media_failures_before = self._feed.media_failures

        cursor = await self._cursor_store.read()
        stats = ReplicationStats(start_cursor=cursor)
        self.stats = stats
        logger.info("Replication cycle starting from cursor %s", cursor)

        try:
            stats.pending = await self._count(cursor)
            await self._page_loop(cursor, stats)
        finally:
            stats.media_failures = self._feed.media_failures - media_failures_before
            stats.duration_s = time.monotonic() - t0

        logger.info("%s", stats.summary())
        return stats

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _count(self, cursor: Cursor) -> int | None:
        try:
            pending = await self._feed.count(cursor)
        except FeedError as exc:
            if self._count_required:
                raise ReplicationError(f"Pending count failed: {exc}") from exc
            logger.warning("Pending count failed, continuing without it: %s", exc)
            return None
        logger.info("%d record(s) pending after %s", pending, cursor)
        return pending

    async def _page_loop(self, cursor: Cursor, stats: ReplicationStats) -> None:
        # Once any record of this cycle fails to persist, the durable cursor
        # stays where it is so the failed record is picked up next cycle.
        clean = True

        while True:
            try:
                page = await self._feed.fetch_page(cursor, self._page_size)
            except FeedError as exc:
                raise ReplicationError(
                    f"Page fetch after {cursor} failed: {exc}",
                    pages_completed=stats.pages,
                ) from exc

            if not page:
                logger.debug("Empty page after %s; feed exhausted", cursor)
                break

            next_cursor = Cursor.from_record(page[-1])
            if next_cursor == cursor:
                raise ReplicationError(
                    f"Feed returned a page ending at the current cursor {cursor}; "
                    "paging would not advance",
                    pages_completed=stats.pages,
                )

            stats.pages += 1
            stats.fetched += len(page)
            page_clean = await self._process_page(page, stats)

            cursor = next_cursor
            stats.final_cursor = cursor
            clean = clean and page_clean
            if clean:
                await self._advance(cursor)
            else:
                logger.warning("Cursor held back after storage failures; now at %s", cursor)

            logger.info(
                "Page %d done: %d record(s), cursor now %s (peak in-flight %d)",
                stats.pages,
                len(page),
                cursor,
                self._gate.peak,
            )

            if len(page) < self._page_size:
                break

    async def _process_page(self, page: list[UpstreamRecord], stats: ReplicationStats) -> bool:
        """Run every record of *page* through its pipeline; ``True`` if all persisted."""
        results = await asyncio.gather(
            *(self._replicate_record(raw, stats) for raw in page),
            return_exceptions=True,
        )

        clean = True
        for raw, result in zip(page, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error replicating listing %s: %s",
                    raw.listing_key,
                    result,
                    exc_info=result,
                )
                stats.unexpected_errors += 1
                clean = False
            elif not result:
                clean = False
        return clean

    async def _replicate_record(self, raw: UpstreamRecord, stats: ReplicationStats) -> bool:
        async with self._gate.slot():
            items = await self._feed.fetch_media(raw.listing_key)
            urls = resolve_media(items)

            record = transform_record(raw)
            if record is None:
                stats.discarded += 1
                return True

            try:
                await self._repo.upsert_listing(record, urls)
            except StorageError as exc:
                logger.error("Failed to persist listing %s: %s", record.id, exc)
                stats.storage_errors += 1
                return False

            stats.persisted += 1
            return True

    async def _advance(self, cursor: Cursor) -> None:
        try:
            await self._cursor_store.advance(cursor)
        except StorageError as exc:
            # Not fatal: the next cycle resumes from the older checkpoint.
            logger.error("Could not record cursor %s: %s", cursor, exc)

