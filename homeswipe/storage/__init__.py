"""SQLite persistence: schema, listing repository and cursor stores."""

from homeswipe.storage.cursor_store import (
    BaseCursorStore,
    CheckpointCursorStore,
    DerivedCursorStore,
    build_cursor_store,
)
from homeswipe.storage.database import DEFAULT_DB_PATH, create_schema, open_db
from homeswipe.storage.repository import PropertyRepository

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
    "PropertyRepository",
    "BaseCursorStore",
    "DerivedCursorStore",
    "CheckpointCursorStore",
    "build_cursor_store",
]
