"""Unit tests for :class:`~homeswipe.orchestrator.gate.AdmissionGate`."""

from __future__ import annotations

import asyncio

import pytest

from homeswipe.orchestrator.gate import AdmissionGate

__all__: list[str] = []


async def _hold(gate: AdmissionGate, seen: list[int], delay: float = 0.01) -> None:
    async with gate.slot():
        seen.append(gate.in_flight)
        await asyncio.sleep(delay)


class TestAdmissionGate:
    def test_rejects_non_positive_limit(self) -> None:
        with pytest.raises(ValueError):
            AdmissionGate(0)

    async def test_peak_never_exceeds_limit(self) -> None:
        gate = AdmissionGate(3)
        seen: list[int] = []

        await asyncio.gather(*(_hold(gate, seen) for _ in range(20)))

        assert len(seen) == 20
        assert max(seen) <= 3
        assert gate.peak == 3
        assert gate.in_flight == 0

    async def test_limit_one_serialises(self) -> None:
        gate = AdmissionGate(1)
        seen: list[int] = []
        await asyncio.gather(*(_hold(gate, seen, 0) for _ in range(5)))
        assert gate.peak == 1

    async def test_slot_released_on_error(self) -> None:
        gate = AdmissionGate(1)

        with pytest.raises(RuntimeError):
            async with gate.slot():
                raise RuntimeError("boom")

        assert gate.in_flight == 0
        async with asyncio.timeout(1):
            async with gate.slot():
                assert gate.in_flight == 1

    async def test_slot_released_on_cancel(self) -> None:
        gate = AdmissionGate(1)
        started = asyncio.Event()

        async def holder() -> None:
            async with gate.slot():
                started.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(holder())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert gate.in_flight == 0
        assert gate.limit == 1
