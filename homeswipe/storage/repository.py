"""Property repository: the storage sink of the replication pipeline.

:class:`PropertyRepository` is the single data-access object for the
``properties`` and ``media`` tables.  All writes are idempotent upserts or
bulk status flips keyed by listing id.

Record pipelines of one page share a single connection, and SQLite has one
open transaction per connection.  Every write therefore runs as its own
transaction under a per-repository :class:`asyncio.Lock`: a failing write
rolls back only its own statements, never a sibling pipeline's.

Every :mod:`aiosqlite` failure is re-raised as
:class:`~homeswipe.core.exceptions.StorageError` carrying the operation name;
write failures roll back the pending transaction first.

Typical usage::

    conn = await open_db()
    repo = PropertyRepository(conn)

    await repo.upsert_listing(record, urls)
    gone = await repo.active_ids() - upstream_keys
    await repo.set_inactive(gone)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import aiosqlite

from homeswipe.core.exceptions import StorageError
from homeswipe.core.models import Cursor, LocalMedia, LocalRecord

__all__ = ["PropertyRepository"]

logger = logging.getLogger(__name__)

_UPSERT_PROPERTY = """
INSERT INTO properties
    (id, address, city, state_or_province, postal_code, price, bedrooms,
     bathrooms, property_type, last_timestamp, last_key, is_active)
VALUES
    (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
ON CONFLICT(id) DO UPDATE SET
    address           = excluded.address,
    city              = excluded.city,
    state_or_province = excluded.state_or_province,
    postal_code       = excluded.postal_code,
    price             = excluded.price,
    bedrooms          = excluded.bedrooms,
    bathrooms         = excluded.bathrooms,
    property_type     = excluded.property_type,
    last_timestamp    = excluded.last_timestamp,
    last_key          = excluded.last_key,
    is_active         = 1
"""

_UPSERT_MEDIA = """
INSERT INTO media (id, image_urls) VALUES (?, ?)
ON CONFLICT(id) DO UPDATE SET image_urls = excluded.image_urls
"""


def _record_params(record: LocalRecord) -> tuple[object, ...]:
    return (
        record.id,
        record.address,
        record.city,
        record.state_or_province,
        record.postal_code,
        record.price,
        record.bedrooms,
        record.bathrooms,
        record.property_type,
        record.last_timestamp,
        record.last_key,
    )


class PropertyRepository:
    """Data-access object for replicated listings and their media.

    Owns no connection lifecycle: the caller supplies an open
    :class:`aiosqlite.Connection` (see
    :func:`~homeswipe.storage.database.open_db`) and closes it.

    Args:
        conn: Open, configured connection.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_record(self, record: LocalRecord) -> None:
        """Insert or update *record* by id and mark it active.

        Re-upserting identical data leaves the row unchanged.

        Raises:
            StorageError: If the write fails.
        """
        async with self._transaction("upsert_record") as conn:
            await conn.execute(_UPSERT_PROPERTY, _record_params(record))
        logger.debug("Upserted listing %s (price=%s type=%s)", record.id, record.price, record.property_type)

    async def upsert_media(self, record_id: str, urls: list[str]) -> None:
        """Replace the media of *record_id* with *urls* (wholesale, not merged).

        An empty *urls* list removes the media row.

        Raises:
            StorageError: If the write fails.
        """
        async with self._transaction("upsert_media") as conn:
            if urls:
                await conn.execute(_UPSERT_MEDIA, (record_id, json.dumps(urls)))
            else:
                await conn.execute("DELETE FROM media WHERE id = ?", (record_id,))
        logger.debug("Stored %d media URL(s) for %s", len(urls), record_id)

    async def upsert_listing(self, record: LocalRecord, urls: list[str]) -> None:
        """Write *record* and, when *urls* is non-empty, its media atomically.

        Either both rows are committed or neither is.  An empty *urls* leaves
        any previously stored media untouched.

        Raises:
            StorageError: If either write fails (nothing is committed).
        """
        async with self._transaction("upsert_listing") as conn:
            await conn.execute(_UPSERT_PROPERTY, _record_params(record))
            if urls:
                await conn.execute(_UPSERT_MEDIA, (record.id, json.dumps(urls)))
        logger.debug("Upserted listing %s with %d media URL(s)", record.id, len(urls))

    async def set_inactive(self, ids: Iterable[str]) -> int:
        """Flip every listed id to inactive in a single transaction.

        Ids that are unknown or already inactive are ignored; no rows are
        created.

        Returns:
            The number of rows that changed from active to inactive.

        Raises:
            StorageError: If the update fails (nothing is committed).
        """
        rows = [(i,) for i in ids]
        if not rows:
            return 0
        async with self._transaction("set_inactive") as conn:
            cursor = await conn.executemany(
                "UPDATE properties SET is_active = 0 WHERE id = ? AND is_active = 1",
                rows,
            )

        changed = cursor.rowcount if cursor.rowcount is not None and cursor.rowcount >= 0 else 0
        logger.debug("set_inactive: %d requested, %d changed", len(rows), changed)
        return changed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def active_ids(self) -> set[str]:
        """Return the ids of all listings currently marked active.

        Raises:
            StorageError: If the query fails.
        """
        rows = await self._fetchall("active_ids", "SELECT id FROM properties WHERE is_active = 1")
        return {row[0] for row in rows}

    async def latest_cursor(self) -> Cursor | None:
        """Return the greatest stored ``(last_timestamp, last_key)``, or ``None`` if empty.

        Rows are compared by the instant their timestamp denotes, so
        ``…:01.5Z`` beats ``…:01Z``.  SQLite resolves instants to the
        millisecond; the exact winner among rows in that millisecond is
        chosen by :class:`Cursor` ordering.

        Raises:
            StorageError: If the query fails.
        """
        rows = await self._fetchall(
            "latest_cursor",
            "SELECT last_timestamp, last_key FROM properties "
            "WHERE julianday(last_timestamp) = "
            "(SELECT MAX(julianday(last_timestamp)) FROM properties)",
        )
        if not rows:
            return None
        return max(Cursor(timestamp=row["last_timestamp"], key=row["last_key"]) for row in rows)

    async def get_record(self, record_id: str) -> LocalRecord | None:
        """Return the stored listing *record_id*, or ``None``."""
        rows = await self._fetchall(
            "get_record",
            "SELECT * FROM properties WHERE id = ?",
            (record_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return LocalRecord(
            id=row["id"],
            address=row["address"],
            city=row["city"],
            state_or_province=row["state_or_province"],
            postal_code=row["postal_code"],
            price=row["price"],
            bedrooms=row["bedrooms"],
            bathrooms=row["bathrooms"],
            property_type=row["property_type"],
            last_timestamp=row["last_timestamp"],
            last_key=row["last_key"],
            is_active=bool(row["is_active"]),
        )

    async def get_media(self, record_id: str) -> LocalMedia | None:
        """Return the stored media of *record_id*, or ``None``."""
        rows = await self._fetchall(
            "get_media",
            "SELECT id, image_urls FROM media WHERE id = ?",
            (record_id,),
        )
        if not rows:
            return None
        return LocalMedia(id=rows[0]["id"], image_urls=json.loads(rows[0]["image_urls"]))

    async def count_records(self, *, active_only: bool = False) -> int:
        """Return the number of stored listings (optionally only active ones)."""
        sql = "SELECT COUNT(*) FROM properties"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = await self._fetchall("count_records", sql)
        return int(rows[0][0])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Run the enclosed statements as one committed unit.

        Holds the write lock from the first statement until commit or
        rollback, so no other pipeline's statements join the transaction.
        """
        async with self._write_lock:
            try:
                yield self._conn
                await self._conn.commit()
            except aiosqlite.Error as exc:
                await self._rollback()
                raise StorageError(operation, str(exc)) from exc
            except BaseException:
                await self._rollback()
                raise

    async def _fetchall(
        self,
        operation: str,
        sql: str,
        params: tuple[object, ...] = (),
    ) -> list[aiosqlite.Row]:
        try:
            cursor = await self._conn.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise StorageError(operation, str(exc)) from exc

    async def _rollback(self) -> None:
        try:
            await self._conn.rollback()
        except aiosqlite.Error:
            logger.warning("Rollback failed after storage error.", exc_info=True)
