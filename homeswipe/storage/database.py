"""SQLite database initialisation for Homeswipe.

This module:

* Opens (or creates) the SQLite file.
* Applies PRAGMA settings (WAL journal mode, busy timeout).
* Bootstraps the schema with ``CREATE TABLE IF NOT EXISTS`` — idempotent, so
  it runs on every open.  There are no migrations.

The replication job and the reconciliation sweep each open their own
connection; WAL mode lets them run at the same time.

Typical usage::

    conn = await open_db(settings.database_path_resolved)
    try:
        repo = PropertyRepository(conn)
        ...
    finally:
        await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH: Path = Path("homeswipe.db")

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: ``properties`` holds one row per replicated listing.
#:
#: Column notes
#: ------------
#: id              Upstream ListingKey; upsert conflict target.
#: property_type   Normalised category, never the raw upstream value.
#: last_timestamp  ModificationTimestamp of the replicated version.  Together
#:                 with last_key it defines the derived replication cursor.
#: is_active       1 while the listing is present upstream; cleared by the
#:                 reconciliation sweep, set again by the next upsert.
_DDL_PROPERTIES = """\
CREATE TABLE IF NOT EXISTS properties (
    id                TEXT     NOT NULL PRIMARY KEY,
    address           TEXT,
    city              TEXT,
    state_or_province TEXT,
    postal_code       TEXT,
    price             REAL     NOT NULL,
    bedrooms          INTEGER,
    bathrooms         INTEGER,
    property_type     TEXT     NOT NULL DEFAULT 'Other',
    last_timestamp    TEXT     NOT NULL,
    last_key          TEXT     NOT NULL,
    is_active         INTEGER  NOT NULL DEFAULT 1
)"""

_DDL_PROPERTIES_CURSOR_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_properties_cursor_instant
    ON properties (julianday(last_timestamp))"""

_DDL_PROPERTIES_ACTIVE_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_properties_active
    ON properties (is_active)"""

#: ``media`` stores the ordered image URLs of a listing as a JSON array.
_DDL_MEDIA = """\
CREATE TABLE IF NOT EXISTS media (
    id          TEXT  NOT NULL PRIMARY KEY,
    image_urls  TEXT  NOT NULL DEFAULT '[]'
)"""

#: Explicit replication checkpoint (only used with ``CURSOR_MODE=checkpoint``).
_DDL_CHECKPOINT = """\
CREATE TABLE IF NOT EXISTS replication_checkpoint (
    name            TEXT  NOT NULL PRIMARY KEY,
    last_timestamp  TEXT  NOT NULL,
    last_key        TEXT  NOT NULL,
    updated_at      TEXT  NOT NULL
)"""

_SCHEMA: tuple[str, ...] = (
    _DDL_PROPERTIES,
    _DDL_PROPERTIES_CURSOR_INDEX,
    _DDL_PROPERTIES_ACTIVE_INDEX,
    _DDL_MEDIA,
    _DDL_CHECKPOINT,
)


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the SQLite database and bootstrap the schema.

    Args:
        path: SQLite file path.  Defaults to :data:`DEFAULT_DB_PATH`.

    Returns:
        An open :class:`aiosqlite.Connection` with ``row_factory`` set to
        :class:`aiosqlite.Row`.  The caller closes it.

    Raises:
        aiosqlite.OperationalError: If the file cannot be opened or created.
    """
    db_path = Path(path or DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", db_path)

    conn: aiosqlite.Connection = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite database ready at %s", db_path)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create all tables and indexes if they do not exist yet."""
    for statement in _SCHEMA:
        await conn.execute(statement)
    await conn.commit()
    logger.debug("Schema bootstrap complete (properties, media, replication_checkpoint)")


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.warning(
            "Requested WAL journal mode but SQLite reported %r "
            "(expected for ':memory:' databases).",
            mode,
        )
    # The sweep and the replicator may write at the same time.
    await conn.execute("PRAGMA busy_timeout=5000")
