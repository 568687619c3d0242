"""Replication cursor persistence.

The replication driver asks a cursor store where the previous cycle stopped
(:meth:`BaseCursorStore.read`) and reports progress after each page
(:meth:`BaseCursorStore.advance`).  Two strategies exist, selected by
``Settings.cursor_mode``:

``derived``
    The cursor is the greatest ``(last_timestamp, last_key)`` of the stored
    listings.  Nothing extra is written; :meth:`advance` is a no-op because
    the record upserts already carry the position.

``checkpoint``
    The cursor lives in a one-row ``replication_checkpoint`` table.
    :meth:`advance` only moves it forward, never backward, and the driver
    holds it at the last page that persisted cleanly.

:meth:`read` never raises: a failed read or an empty store yields
:data:`~homeswipe.core.models.EPOCH_CURSOR`, which triggers a full resync.
Upserts are idempotent, so a resync costs time but not correctness.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime

import aiosqlite

from homeswipe.core.exceptions import StorageError
from homeswipe.core.models import EPOCH_CURSOR, Cursor
from homeswipe.storage.repository import PropertyRepository

__all__ = [
    "BaseCursorStore",
    "DerivedCursorStore",
    "CheckpointCursorStore",
    "build_cursor_store",
]

logger = logging.getLogger(__name__)

_CHECKPOINT_NAME = "properties"


class BaseCursorStore(ABC):
    """Interface shared by both cursor strategies."""

    @abstractmethod
    async def read(self) -> Cursor:
        """Return the last durable cursor, or the epoch sentinel."""

    @abstractmethod
    async def advance(self, cursor: Cursor) -> None:
        """Record that every record up to *cursor* has been persisted."""


class DerivedCursorStore(BaseCursorStore):
    """Cursor derived from the stored listings themselves."""

    def __init__(self, repo: PropertyRepository) -> None:
        self._repo = repo

    async def read(self) -> Cursor:
        try:
            cursor = await self._repo.latest_cursor()
        except StorageError as exc:
            logger.warning("Cursor read failed, resyncing from epoch: %s", exc)
            return EPOCH_CURSOR
        return cursor or EPOCH_CURSOR

    async def advance(self, cursor: Cursor) -> None:
        # Position is implied by the upserted rows.
        return None


class CheckpointCursorStore(BaseCursorStore):
    """Cursor kept in the ``replication_checkpoint`` table.

    Args:
        conn: Open connection with the schema already bootstrapped.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def read(self) -> Cursor:
        try:
            stored = await self._load()
        except aiosqlite.Error as exc:
            logger.warning("Checkpoint read failed, resyncing from epoch: %s", exc)
            return EPOCH_CURSOR
        return stored or EPOCH_CURSOR

    async def advance(self, cursor: Cursor) -> None:
        """Persist *cursor* if it is strictly past the stored checkpoint.

        Raises:
            StorageError: If the checkpoint cannot be read or written.
        """
        try:
            stored = await self._load()
            if stored is not None and cursor <= stored:
                logger.debug("Checkpoint %s not behind %s; unchanged", stored, cursor)
                return
            await self._conn.execute(
                """
                INSERT INTO replication_checkpoint (name, last_timestamp, last_key, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    last_timestamp = excluded.last_timestamp,
                    last_key       = excluded.last_key,
                    updated_at     = excluded.updated_at
                """,
                (
                    _CHECKPOINT_NAME,
                    cursor.timestamp,
                    cursor.key,
                    datetime.now(UTC).isoformat(),
                ),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError("advance_checkpoint", str(exc)) from exc
        logger.debug("Checkpoint advanced to %s", cursor)

    async def _load(self) -> Cursor | None:
        result = await self._conn.execute(
            "SELECT last_timestamp, last_key FROM replication_checkpoint WHERE name = ?",
            (_CHECKPOINT_NAME,),
        )
        row = await result.fetchone()
        if row is None:
            return None
        return Cursor(timestamp=row[0], key=row[1])


def build_cursor_store(
    mode: str,
    conn: aiosqlite.Connection,
    repo: PropertyRepository,
) -> BaseCursorStore:
    """Return the cursor store for ``Settings.cursor_mode`` *mode*.

    Raises:
        ValueError: If *mode* is not ``"derived"`` or ``"checkpoint"``.
    """
    if mode == "derived":
        return DerivedCursorStore(repo)
    if mode == "checkpoint":
        return CheckpointCursorStore(conn)
    raise ValueError(f"Unknown cursor mode {mode!r}")
