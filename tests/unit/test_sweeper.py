"""Unit tests for :func:`~homeswipe.orchestrator.sweeper.run_sweep`."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from homeswipe.core.exceptions import FeedFetchError, ReconciliationError, StorageError
from homeswipe.core.models import LocalRecord
from homeswipe.orchestrator.sweeper import run_sweep
from homeswipe.storage.repository import PropertyRepository

__all__: list[str] = []


def _record(key: str) -> LocalRecord:
    return LocalRecord(
        id=key,
        price=100000,
        property_type="Condo",
        last_timestamp="2025-01-01T00:00:00Z",
        last_key=key,
    )


async def _seed(repo: PropertyRepository, *keys: str) -> None:
    for key in keys:
        await repo.upsert_record(_record(key))


class TestRunSweep:
    async def test_converges_to_upstream(self, fake_feed: Any, repo: PropertyRepository) -> None:
        await _seed(repo, "A", "B", "C")
        fake_feed.active_keys = {"B", "C", "D"}

        stats = await run_sweep(fake_feed, repo)

        assert stats.upstream_active == 3
        assert stats.local_active == 3
        assert stats.deactivated == 1
        assert await repo.active_ids() == {"B", "C"}
        record_a = await repo.get_record("A")
        assert record_a is not None and record_a.is_active is False
        assert await repo.get_record("D") is None
        assert await repo.count_records() == 3

    async def test_noop_when_in_sync(self, fake_feed: Any, repo: PropertyRepository) -> None:
        await _seed(repo, "A", "B")
        fake_feed.active_keys = {"A", "B"}
        repo.set_inactive = AsyncMock(return_value=0)  # type: ignore[method-assign]

        stats = await run_sweep(fake_feed, repo)

        assert stats.deactivated == 0
        repo.set_inactive.assert_not_awaited()

    async def test_second_sweep_is_idempotent(self, fake_feed: Any, repo: PropertyRepository) -> None:
        await _seed(repo, "A", "B")
        fake_feed.active_keys = {"B"}

        first = await run_sweep(fake_feed, repo)
        second = await run_sweep(fake_feed, repo)

        assert first.deactivated == 1
        assert second.deactivated == 0
        assert second.local_active == 1

    async def test_upstream_failure_flips_nothing(
        self, fake_feed: Any, repo: PropertyRepository
    ) -> None:
        await _seed(repo, "A", "B")
        fake_feed.keys_error = FeedFetchError("Property", "timeout on page 4")

        with pytest.raises(ReconciliationError):
            await run_sweep(fake_feed, repo)

        assert await repo.active_ids() == {"A", "B"}

    async def test_local_read_failure(self, fake_feed: Any, repo: PropertyRepository) -> None:
        fake_feed.active_keys = {"A"}
        repo.active_ids = AsyncMock(side_effect=StorageError("active_ids", "locked"))  # type: ignore[method-assign]

        with pytest.raises(ReconciliationError):
            await run_sweep(fake_feed, repo)

    async def test_reactivated_by_next_upsert(self, fake_feed: Any, repo: PropertyRepository) -> None:
        await _seed(repo, "A")
        fake_feed.active_keys = set()
        await run_sweep(fake_feed, repo)
        assert await repo.active_ids() == set()

        await repo.upsert_record(_record("A"))

        assert await repo.active_ids() == {"A"}

    async def test_empty_upstream_deactivates_everything(
        self, fake_feed: Any, repo: PropertyRepository
    ) -> None:
        await _seed(repo, "A", "B", "C")
        fake_feed.active_keys = set()

        stats = await run_sweep(fake_feed, repo)

        assert stats.deactivated == 3
        assert await repo.count_records(active_only=True) == 0
