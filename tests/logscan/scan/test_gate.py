"""Tests for ConcurrencyGate."""

import asyncio

import pytest

from logscan.scan.gate import ConcurrencyGate


@pytest.mark.asyncio
async def test_acquire_within_capacity_does_not_block():
    gate = ConcurrencyGate(2)

    await gate.acquire()
    await gate.acquire()

    assert gate.outstanding == 2
    assert gate.available == 0


@pytest.mark.asyncio
async def test_third_acquire_waits_for_release():
    gate = ConcurrencyGate(2)
    await gate.acquire()
    await gate.acquire()

    waiter = asyncio.create_task(gate.acquire())
    await asyncio.sleep(0)
    assert not waiter.done()

    gate.release()
    await asyncio.wait_for(waiter, timeout=1)

    assert gate.outstanding == 2
    assert gate.peak == 2


@pytest.mark.asyncio
async def test_burst_never_exceeds_capacity():
    gate = ConcurrencyGate(3)
    holding = 0
    highest = 0

    async def worker():
        nonlocal holding, highest
        async with gate.slot():
            holding += 1
            highest = max(highest, holding)
            await asyncio.sleep(0)
            holding -= 1

    await asyncio.gather(*(worker() for _ in range(25)))

    assert highest == 3
    assert gate.peak == 3
    assert gate.outstanding == 0


@pytest.mark.asyncio
async def test_slot_released_on_error():
    gate = ConcurrencyGate(1)

    with pytest.raises(RuntimeError, match="boom"):
        async with gate.slot():
            raise RuntimeError("boom")

    assert gate.outstanding == 0
    await asyncio.wait_for(gate.acquire(), timeout=1)


def test_release_without_acquire_raises():
    gate = ConcurrencyGate(1)

    with pytest.raises(RuntimeError, match="released more times"):
        gate.release()


@pytest.mark.parametrize("capacity", [0, -1])
def test_invalid_capacity(capacity):
    with pytest.raises(ValueError):
        ConcurrencyGate(capacity)
