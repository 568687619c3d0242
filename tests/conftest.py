"""Shared pytest fixtures and configuration for the Homeswipe test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests:

* ``clean_env`` / ``make_settings`` / ``settings`` — isolated configuration.
* ``conn`` / ``repo`` — a fresh on-disk SQLite database per test.
* ``fake_feed`` — an in-memory stand-in for
  :class:`~homeswipe.feed.client.FeedClient` that honours the cursor order,
  so the replicator can be exercised end to end without network I/O.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from types import TracebackType
from typing import Any

import aiosqlite
import pytest
from pydantic_settings import SettingsConfigDict

from homeswipe.core import configure_logging
from homeswipe.core.models import Cursor, MediaItem, UpstreamRecord
from homeswipe.core.settings import Settings
from homeswipe.storage.database import open_db
from homeswipe.storage.repository import PropertyRepository

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own handler
    is already installed on the root logger.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment / settings
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove Homeswipe-related env vars and disable ``.env`` loading.

    Keeps settings tests independent of the developer's shell and of any
    local ``.env`` file.
    """
    prefixes = (
        "FEED_",
        "PAGE_SIZE",
        "CONCURRENCY_",
        "MEDIA_",
        "SWEEP_",
        "CURSOR_",
        "COUNT_",
        "HTTP_",
        "DATABASE_",
        "REPLICATION_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if key.upper().startswith(prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


@pytest.fixture()
def make_settings(clean_env: None, tmp_path: Path) -> Callable[..., Settings]:
    """Factory for :class:`Settings` with safe test-only defaults.

    The database lives under ``tmp_path``; keyword arguments override any
    field.
    """

    def _make(**overrides: Any) -> Settings:
        defaults: dict[str, Any] = {
            "feed_base_url": "https://feed.test/odata",
            "feed_access_token": "test-token",
            "page_size": 3,
            "concurrency_limit": 4,
            "http_max_attempts": 1,
            "database_path": str(tmp_path / "homeswipe.db"),
        }
        defaults.update(overrides)
        return Settings(**defaults)

    return _make


@pytest.fixture()
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture()
async def conn(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Open a fresh on-disk SQLite database under ``tmp_path``."""
    connection = await open_db(tmp_path / "test.db")
    try:
        yield connection
    finally:
        await connection.close()


@pytest.fixture()
def repo(conn: aiosqlite.Connection) -> PropertyRepository:
    return PropertyRepository(conn)


# ---------------------------------------------------------------------------
# Fake feed
# ---------------------------------------------------------------------------


class FakeFeed:
    """In-memory feed with the same async surface as ``FeedClient``.

    Attributes:
        records: Raw ``Property`` payloads; served in cursor order.
        media: Raw ``Media`` payloads per ``ListingKey``.
        active_keys: Keys returned by :meth:`fetch_all_active_keys`.
        count_error / page_errors / keys_error: Exceptions to raise; a page
            error is keyed by the 1-based page call number.
        media_errors: Listing keys whose media request "fails".
        media_delay: Seconds each media request sleeps (to overlap pipelines).
    """

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []
        self.media: dict[str, list[dict[str, Any]]] = {}
        self.active_keys: set[str] = set()
        self.count_error: Exception | None = None
        self.page_errors: dict[int, Exception] = {}
        self.keys_error: Exception | None = None
        self.media_errors: set[str] = set()
        self.media_delay: float = 0.0
        self.page_calls: list[Cursor] = []
        self.media_calls: list[str] = []
        self.media_failures = 0

    async def __aenter__(self) -> FakeFeed:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None

    def _after(self, cursor: Cursor) -> list[dict[str, Any]]:
        def position(r: dict[str, Any]) -> Cursor:
            return Cursor(timestamp=r["ModificationTimestamp"], key=r["ListingKey"])

        return [r for r in sorted(self.records, key=position) if position(r) > cursor]

    async def count(self, cursor: Cursor, filter_expr: str | None = None) -> int:
        if self.count_error is not None:
            raise self.count_error
        return len(self._after(cursor))

    async def fetch_page(
        self,
        cursor: Cursor,
        page_size: int | None = None,
        filter_expr: str | None = None,
    ) -> list[UpstreamRecord]:
        self.page_calls.append(cursor)
        error = self.page_errors.get(len(self.page_calls))
        if error is not None:
            raise error
        size = page_size or 1000
        return [UpstreamRecord.model_validate(r) for r in self._after(cursor)[:size]]

    async def fetch_media(self, record_id: str) -> list[MediaItem]:
        self.media_calls.append(record_id)
        if self.media_delay:
            await asyncio.sleep(self.media_delay)
        if record_id in self.media_errors:
            self.media_failures += 1
            return []
        return [MediaItem.model_validate(m) for m in self.media.get(record_id, [])]

    async def fetch_all_active_keys(
        self,
        filter_expr: str | None = None,
        batch_size: int | None = None,
    ) -> set[str]:
        if self.keys_error is not None:
            raise self.keys_error
        return set(self.active_keys)


@pytest.fixture()
def fake_feed() -> FakeFeed:
    return FakeFeed()


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a logger for log lines emitted by test code."""
    return logging.getLogger("tests")
