"""Admission gate bounding the number of in-flight record pipelines."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

__all__ = ["AdmissionGate"]

logger = logging.getLogger(__name__)


class AdmissionGate:
    """Counting gate: at most ``limit`` holders at any time.

    Thin wrapper around :class:`asyncio.Semaphore` that also tracks the
    current and peak number of holders, which the replicator logs and the
    tests assert on.

    Usage::

        gate = AdmissionGate(20)
        async with gate.slot():
            await process(record)

    Args:
        limit: Maximum concurrent holders (≥ 1).

    Raises:
        ValueError: If *limit* is less than 1.
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"limit must be ≥ 1, got {limit!r}.")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_flight = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        """Number of slots currently held."""
        return self._in_flight

    @property
    def peak(self) -> int:
        """Highest :attr:`in_flight` value observed since creation."""
        return self._peak

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the ``async with`` block.

        The slot is released on exit whether the block succeeds, raises or
        is cancelled.
        """
        async with self._semaphore:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)
            try:
                yield
            finally:
                self._in_flight -= 1
