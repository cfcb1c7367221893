from __future__ import annotations

import asyncio

import pytest

from agentrelay.core import ConversationLanes


@pytest.mark.asyncio
async def test_jobs_for_one_conversation_run_one_at_a_time():
    lanes = ConversationLanes()
    active = 0
    peak = 0
    order: list[int] = []

    def job(n: int):
        async def run():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            order.append(n)
            active -= 1
            return n

        return run

    results = await asyncio.gather(*(lanes.run("k", job(n)) for n in range(4)))
    assert results == [0, 1, 2, 3]
    assert order == [0, 1, 2, 3]
    assert peak == 1


@pytest.mark.asyncio
async def test_different_conversations_run_concurrently():
    lanes = ConversationLanes()
    started = {"a": asyncio.Event(), "b": asyncio.Event()}

    def job(key: str, other: str):
        async def run():
            started[key].set()
            await asyncio.wait_for(started[other].wait(), timeout=1)
            return key

        return run

    assert await asyncio.gather(lanes.run("a", job("a", "b")), lanes.run("b", job("b", "a"))) == ["a", "b"]


@pytest.mark.asyncio
async def test_failing_job_reports_error_and_lane_continues():
    lanes = ConversationLanes()

    async def boom():
        raise ValueError("bad")

    async def fine():
        return "ok"

    failing = asyncio.create_task(lanes.run("k", boom))
    following = asyncio.create_task(lanes.run("k", fine))
    with pytest.raises(ValueError):
        await failing
    assert await following == "ok"


@pytest.mark.asyncio
async def test_cancel_queued_drops_waiting_jobs():
    lanes = ConversationLanes()
    release = asyncio.Event()

    async def blocker():
        await release.wait()
        return "first"

    async def never():
        raise AssertionError("should have been dropped")

    first = asyncio.create_task(lanes.run("k", blocker))
    await asyncio.sleep(0)
    second = asyncio.create_task(lanes.run("k", never))
    await asyncio.sleep(0)

    assert lanes.pending_count("k") == 1
    assert lanes.cancel_queued("k")
    release.set()
    assert await first == "first"
    with pytest.raises(asyncio.CancelledError):
        await second
    assert not lanes.cancel_queued("missing")


@pytest.mark.asyncio
async def test_shutdown_cancels_running_job():
    lanes = ConversationLanes()

    async def forever():
        await asyncio.sleep(30)

    task = asyncio.create_task(lanes.run("k", forever))
    await asyncio.sleep(0.01)
    lanes.shutdown()
    with pytest.raises(asyncio.CancelledError):
        await task
