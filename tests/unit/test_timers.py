"""Tests for APScheduler-backed deadline timers."""

import asyncio

import pytest

from orderflow.core.timers import DeadlineTimers


@pytest.fixture
async def timers():
    arena = DeadlineTimers()
    arena.start()
    yield arena
    arena.shutdown()


@pytest.mark.unit
async def test_armed_deadline_fires_once(timers):
    fired: list[tuple[str, str]] = []

    async def callback(work_item_id: str, candidate_id: str) -> None:
        fired.append((work_item_id, candidate_id))

    timers.arm("order-1", "driver-a", 0.05, callback)
    assert timers.armed_candidate("order-1") == "driver-a"

    await asyncio.sleep(0.3)

    assert fired == [("order-1", "driver-a")]
    assert timers.armed_candidate("order-1") is None
    assert len(timers) == 0


@pytest.mark.unit
async def test_disarm_prevents_firing(timers):
    fired: list[str] = []

    async def callback(work_item_id: str, candidate_id: str) -> None:
        fired.append(candidate_id)

    timers.arm("order-1", "driver-a", 0.1, callback)

    assert timers.disarm("order-1") is True
    await asyncio.sleep(0.3)

    assert fired == []
    assert timers.disarm("order-1") is False


@pytest.mark.unit
async def test_rearm_replaces_previous_deadline(timers):
    fired: list[str] = []

    async def callback(work_item_id: str, candidate_id: str) -> None:
        fired.append(candidate_id)

    timers.arm("order-1", "driver-a", 0.1, callback)
    timers.arm("order-1", "driver-b", 0.1, callback)
    assert len(timers) == 1

    await asyncio.sleep(0.4)

    assert fired == ["driver-b"]


@pytest.mark.unit
async def test_shutdown_disarms_everything():
    arena = DeadlineTimers()
    arena.start()
    fired: list[str] = []

    async def callback(work_item_id: str, candidate_id: str) -> None:
        fired.append(work_item_id)

    arena.arm("order-1", "driver-a", 0.1, callback)
    arena.arm("order-2", "driver-a", 0.1, callback)

    arena.shutdown()
    await asyncio.sleep(0.3)

    assert len(arena) == 0
    assert fired == []
