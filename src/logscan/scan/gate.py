"""Bounded admission control for scan tasks."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

DEFAULT_CAPACITY = 50


class ConcurrencyGate:
    """
    Counting gate bounding how many scan tasks are in flight.

    acquire() suspends until a slot is free, release() hands it back. Every
    acquire must be paired with exactly one release, so callers release in
    a finally block (or use slot()).
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._outstanding = 0
        self._peak = 0

    @property
    def outstanding(self) -> int:
        return self._outstanding

    @property
    def available(self) -> int:
        return self.capacity - self._outstanding

    @property
    def peak(self) -> int:
        """Highest number of tickets held at the same time."""
        return self._peak

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        self._outstanding += 1
        if self._outstanding > self._peak:
            self._peak = self._outstanding

    def release(self) -> None:
        if self._outstanding <= 0:
            raise RuntimeError("ConcurrencyGate released more times than acquired")
        self._outstanding -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def __repr__(self) -> str:
        return f"ConcurrencyGate(capacity={self.capacity}, outstanding={self._outstanding})"


__all__ = ["DEFAULT_CAPACITY", "ConcurrencyGate"]
