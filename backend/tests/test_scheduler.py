"""
Tests for the background job loops.
"""

import asyncio

import pytest

from ticketing.tasks.scheduler import run_periodically, stop_scheduler


@pytest.mark.asyncio
async def test_loop_survives_unreachable_backend():
    """A job that cannot connect is logged and tried again on the next tick."""
    calls = {"n": 0}

    async def unreachable_job():
        calls["n"] += 1
        raise ConnectionRefusedError("connection refused")

    task = asyncio.create_task(run_periodically("unreachable", unreachable_job, 0.01))
    await asyncio.sleep(0.1)
    try:
        assert not task.done()
        assert calls["n"] > 1
    finally:
        await stop_scheduler([task])
    assert task.cancelled()


@pytest.mark.asyncio
async def test_loop_recovers_after_failed_run():
    outcomes = []

    async def flaky_job():
        outcomes.append("run")
        if len(outcomes) == 1:
            raise ValueError("unexpected payload")
        return {"expired": 0}

    task = asyncio.create_task(run_periodically("flaky", flaky_job, 0.01))
    await asyncio.sleep(0.1)
    await stop_scheduler([task])

    assert len(outcomes) > 2
