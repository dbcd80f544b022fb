"""Tests for background queue eviction."""
from __future__ import annotations

import asyncio

import pytest

from duocall.services.sweeper import QueueSweeper


def test_sweeper_requires_positive_interval(state) -> None:
    with pytest.raises(ValueError):
        QueueSweeper(state, 0)


@pytest.mark.asyncio
async def test_sweep_once_evicts_only_expired(state, clock, make_participant) -> None:
    state.queue.enqueue(make_participant("old"))
    clock.advance(45)
    state.queue.enqueue(make_participant("fresh"))
    clock.advance(20)

    removed = await QueueSweeper(state, 1).sweep_once()

    assert removed == 1
    assert "old" not in state.queue
    assert "fresh" in state.queue


@pytest.mark.asyncio
async def test_sweeper_runs_in_background_until_stopped(state, clock, make_participant) -> None:
    state.queue.enqueue(make_participant("old"))
    clock.advance(61)
    sweeper = QueueSweeper(state, 0.01)

    sweeper.start()
    assert sweeper.running
    for _ in range(100):
        if len(state.queue) == 0:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert len(state.queue) == 0
    assert not sweeper.running
