import asyncio

import pytest

from meter_remote.scheduling import RepeatingTask, start_repeating


async def test_runs_until_cancelled():
    calls = []

    async def tick():
        calls.append(1)

    handle = start_repeating(tick, 0.01)
    await asyncio.sleep(0.05)
    assert handle.active
    handle.cancel()
    assert not handle.active
    count = len(calls)
    assert count >= 2
    await asyncio.sleep(0.03)
    assert len(calls) == count
    handle.cancel()


async def test_errors_do_not_stop_the_loop():
    calls = []

    async def tick():
        calls.append(1)
        raise RuntimeError("boom")

    handle = start_repeating(tick, 0.01)
    await asyncio.sleep(0.05)
    handle.cancel()
    assert len(calls) >= 2


def test_interval_must_be_positive():
    async def tick():
        pass

    with pytest.raises(ValueError):
        RepeatingTask(tick, 0)
