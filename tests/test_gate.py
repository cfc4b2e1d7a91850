"""Tests for the single-permit acquisition gate."""

import asyncio

import pytest

from spotify_token.gate import AcquisitionGate


def test_only_one_holder_at_a_time():
    async def run() -> int:
        gate = AcquisitionGate()
        active = 0
        peak = 0

        async def worker() -> None:
            nonlocal active, peak
            async with gate.hold():
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(5)))
        return peak

    assert asyncio.run(run()) == 1


def test_waiters_are_served_in_arrival_order():
    async def run() -> list[int]:
        gate = AcquisitionGate()
        order: list[int] = []
        release = await gate.acquire()

        async def worker(i: int) -> None:
            async with gate.hold():
                order.append(i)

        tasks = [asyncio.create_task(worker(i)) for i in range(4)]
        await asyncio.sleep(0)
        release()
        await asyncio.gather(*tasks)
        return order

    assert asyncio.run(run()) == [0, 1, 2, 3]


def test_hold_releases_on_error():
    async def run() -> bool:
        gate = AcquisitionGate()
        with pytest.raises(ValueError):
            async with gate.hold():
                raise ValueError("boom")
        return gate.locked

    assert asyncio.run(run()) is False


def test_double_release_is_an_error():
    async def run() -> None:
        gate = AcquisitionGate()
        release = await gate.acquire()
        release()
        with pytest.raises(RuntimeError):
            release()

    asyncio.run(run())
