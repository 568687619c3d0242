"""Unit tests for job entry points, the continuous scheduler and the CLI.

Tests cover:
- ``run_replication_job`` / ``run_sweep_job`` — 200/500 mapping, config
  guard, partial stats on abort, job-id binding, idempotence.
- ``next_replication_interval`` / ``next_sweep_interval`` — jitter bounds.
- ``_job_loop`` — failures never stop the loop; sleep within bounds.
- ``run_continuous`` — both loops run; SIGTERM cancels cleanly.
- ``main`` — subcommands and exit codes.

The feed is the in-memory ``fake_feed`` patched in place of ``FeedClient``;
SQLite is a real file under ``tmp_path``.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from homeswipe.__main__ import main
from homeswipe.core.exceptions import FeedFetchError
from homeswipe.core.logging_config import JOB_ID_CTX
from homeswipe.core.settings import Settings
from homeswipe.orchestrator.runner import JobResult, run_replication_job, run_sweep_job
from homeswipe.orchestrator.scheduler import (
    _job_loop,
    next_replication_interval,
    next_sweep_interval,
    run_continuous,
)

__all__: list[str] = []


def _listing(key: str, minute: int, price: Any = 500000) -> dict[str, Any]:
    return {
        "ListingKey": key,
        "ModificationTimestamp": f"2025-01-01T00:{minute:02d}:00Z",
        "ListPrice": price,
        "PropertySubType": "Condo Apt",
    }


def _patch_feed(feed: Any) -> Any:
    return patch("homeswipe.orchestrator.runner.FeedClient", return_value=feed)


# ---------------------------------------------------------------------------
# Job entry points
# ---------------------------------------------------------------------------


class TestReplicationJob:
    async def test_success(self, settings: Settings, fake_feed: Any) -> None:
        fake_feed.records = [_listing(f"K{i}", i) for i in range(5)]

        with _patch_feed(fake_feed):
            result = await run_replication_job(settings)

        assert result.ok is True
        assert result.status_code == 200
        assert result.stats["persisted"] == 5
        assert result.stats["final_cursor"] == "2025-01-01T00:04:00Z/K4"
        assert result.job_id.startswith("replicate-")
        assert JOB_ID_CTX.get() == "-"

    async def test_rerun_is_idempotent(self, settings: Settings, fake_feed: Any) -> None:
        fake_feed.records = [_listing(f"K{i}", i) for i in range(4)]

        with _patch_feed(fake_feed):
            first = await run_replication_job(settings)
            second = await run_replication_job(settings)

        assert first.stats["persisted"] == 4
        assert second.ok is True
        assert second.stats["persisted"] == 0
        assert second.stats["pending"] == 0

    async def test_missing_token(self, make_settings: Callable[..., Settings]) -> None:
        with patch("homeswipe.orchestrator.runner.FeedClient") as feed_cls:
            result = await run_replication_job(make_settings(feed_access_token=""))

        assert result.status_code == 500
        assert "FEED_ACCESS_TOKEN" in result.message
        feed_cls.assert_not_called()

    async def test_invalid_environment(
        self, clean_env: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FEED_ACCESS_TOKEN", "tok")
        monkeypatch.setenv("PAGE_SIZE", "0")

        result = await run_replication_job()

        assert result.status_code == 500
        assert "Invalid configuration" in result.message

    async def test_aborted_cycle_returns_partial_stats(
        self, settings: Settings, fake_feed: Any
    ) -> None:
        fake_feed.records = [_listing(f"K{i}", i) for i in range(7)]
        fake_feed.page_errors = {2: FeedFetchError("Property", "timeout")}

        with _patch_feed(fake_feed):
            result = await run_replication_job(settings)

        assert result.ok is False
        assert result.status_code == 500
        assert result.stats["pages"] == 1
        assert result.stats["persisted"] == 3

    async def test_unexpected_exception_is_500(self, settings: Settings, fake_feed: Any) -> None:
        fake_feed.count = AsyncMock(side_effect=RuntimeError("bug"))

        with _patch_feed(fake_feed):
            result = await run_replication_job(settings)

        assert result.status_code == 500
        assert "RuntimeError" in result.message

    async def test_checkpoint_mode(
        self, make_settings: Callable[..., Settings], fake_feed: Any
    ) -> None:
        fake_feed.records = [_listing("A", 1), _listing("B", 2)]

        with _patch_feed(fake_feed):
            result = await run_replication_job(make_settings(cursor_mode="checkpoint"))
            again = await run_replication_job(make_settings(cursor_mode="checkpoint"))

        assert result.stats["final_cursor"] == "2025-01-01T00:02:00Z/B"
        assert again.stats["start_cursor"] == "2025-01-01T00:02:00Z/B"


class TestSweepJob:
    async def test_success(self, settings: Settings, fake_feed: Any) -> None:
        fake_feed.records = [_listing("A", 1), _listing("B", 2), _listing("C", 3)]
        fake_feed.active_keys = {"B", "C", "D"}

        with _patch_feed(fake_feed):
            await run_replication_job(settings)
            result = await run_sweep_job(settings)

        assert result.status_code == 200
        assert result.stats["deactivated"] == 1
        assert result.job_id.startswith("sweep-")

    async def test_scan_failure_is_500(self, settings: Settings, fake_feed: Any) -> None:
        fake_feed.keys_error = FeedFetchError("Property", "down")

        with _patch_feed(fake_feed):
            result = await run_sweep_job(settings)

        assert result.ok is False
        assert result.status_code == 500
        assert "scan failed" in result.message


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class TestIntervals:
    def test_bounds(self) -> None:
        s = MagicMock(spec=Settings)
        s.replication_interval_min = 600
        s.replication_interval_max = 900
        s.sweep_interval_min = 3600
        s.sweep_interval_max = 4200
        for _ in range(100):
            assert 600 <= next_replication_interval(s) <= 900
            assert 3600 <= next_sweep_interval(s) <= 4200

    def test_equal_bounds(self) -> None:
        s = MagicMock(spec=Settings)
        s.sweep_interval_min = 1000
        s.sweep_interval_max = 1000
        assert next_sweep_interval(s) == 1000.0


class TestJobLoop:
    async def test_runs_job_then_sleeps(self, settings: Settings) -> None:
        job = AsyncMock(return_value=JobResult.success("ok", {}))
        sleeps: list[float] = []

        async def fake_sleep(interval: float) -> None:
            sleeps.append(interval)
            raise asyncio.CancelledError

        with (
            patch("asyncio.sleep", side_effect=fake_sleep),
            pytest.raises(asyncio.CancelledError),
        ):
            await _job_loop("replication", job, lambda s: 42.0, settings)

        job.assert_awaited_once_with(settings)
        assert sleeps == [42.0]

    async def test_failures_do_not_stop_loop(self, settings: Settings) -> None:
        job = AsyncMock(
            side_effect=[RuntimeError("boom"), JobResult.failure("down"), JobResult.success("ok", {})]
        )
        calls = 0

        async def fake_sleep(interval: float) -> None:
            nonlocal calls
            calls += 1
            if calls == 3:
                raise asyncio.CancelledError

        with (
            patch("asyncio.sleep", side_effect=fake_sleep),
            pytest.raises(asyncio.CancelledError),
        ):
            await _job_loop("sweep", job, lambda s: 1.0, settings)

        assert job.await_count == 3


class TestRunContinuous:
    async def test_both_loops_run(self, settings: Settings) -> None:
        replicate = AsyncMock(return_value=JobResult.success("ok", {}))
        sweep = AsyncMock(return_value=JobResult.success("ok", {}))

        async def fake_sleep(interval: float) -> None:
            raise asyncio.CancelledError

        with (
            patch("homeswipe.orchestrator.scheduler.run_replication_job", replicate),
            patch("homeswipe.orchestrator.scheduler.run_sweep_job", sweep),
            patch("asyncio.sleep", side_effect=fake_sleep),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_continuous(settings)

        replicate.assert_awaited_once()
        sweep.assert_awaited_once()

    @pytest.mark.skipif(sys.platform == "win32", reason="SIGTERM handlers need a Unix loop")
    async def test_sigterm_cancels_loops(self, make_settings: Callable[..., Settings]) -> None:
        settings = make_settings(
            replication_interval_min=1,
            replication_interval_max=1,
            sweep_interval_min=1,
            sweep_interval_max=1,
        )
        started = asyncio.Event()

        async def job(_: Settings) -> JobResult:
            started.set()
            return JobResult.success("ok", {})

        with (
            patch("homeswipe.orchestrator.scheduler.run_replication_job", job),
            patch("homeswipe.orchestrator.scheduler.run_sweep_job", job),
        ):
            task = asyncio.create_task(run_continuous(settings))
            await asyncio.wait_for(started.wait(), timeout=2)
            os.kill(os.getpid(), signal.SIGTERM)
            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(task, timeout=2)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class TestMain:
    @pytest.mark.parametrize(
        ("command", "target"),
        [("replicate", "run_replication_job"), ("sweep", "run_sweep_job")],
    )
    def test_one_shot_exit_codes(self, clean_env: None, command: str, target: str) -> None:
        for result, code in ((JobResult.success("ok", {}), 0), (JobResult.failure("no"), 1)):
            with (
                patch(f"homeswipe.orchestrator.runner.{target}", AsyncMock(return_value=result)),
                pytest.raises(SystemExit) as exc_info,
            ):
                main([command])
            assert exc_info.value.code == code

    def test_run_starts_scheduler(self, clean_env: None) -> None:
        run = AsyncMock(return_value=None)
        with patch("homeswipe.orchestrator.scheduler.run_continuous", run):
            main(["run", "--log-level", "INFO"])
        run.assert_awaited_once()

    def test_bad_log_level_exits(self, clean_env: None) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["sweep", "--log-level", "LOUD"])
        assert exc_info.value.code == 1

    def test_unknown_command(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["explode"])
        assert exc_info.value.code == 2
