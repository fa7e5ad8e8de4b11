"""Tests for the countdown timer."""

import asyncio

import pytest

from next_up.timer import ContinuationTimer


async def fast_sleep(_interval):
    await asyncio.sleep(0)


class Recorder:
    def __init__(self):
        self.ticks = []
        self.expired = 0

    def tick(self, remaining):
        self.ticks.append(remaining)

    async def expire(self):
        self.expired += 1


async def test_expires_after_counting_down():
    rec = Recorder()
    timer = ContinuationTimer(rec.expire, rec.tick, sleep=fast_sleep)
    timer.start(5)
    assert timer.active
    assert timer.remaining == 5
    await timer.wait()
    assert rec.ticks == [4, 3, 2, 1, 0]
    assert rec.expired == 1
    assert not timer.active
    assert timer.remaining is None


@pytest.mark.parametrize("cancel_at", [1, 2, 3, 4])
async def test_cancel_at_any_tick_prevents_expiry(cancel_at):
    rec = Recorder()
    timer = None

    def tick(remaining):
        rec.tick(remaining)
        if len(rec.ticks) == cancel_at:
            timer.cancel()

    timer = ContinuationTimer(rec.expire, tick, sleep=fast_sleep)
    timer.start(5)
    await timer.wait()
    assert rec.expired == 0
    assert len(rec.ticks) == cancel_at
    assert not timer.active


async def test_cancel_between_ticks_prevents_expiry():
    rec = Recorder()
    gate = asyncio.Event()

    async def gated_sleep(_interval):
        await gate.wait()

    timer = ContinuationTimer(rec.expire, rec.tick, sleep=gated_sleep)
    timer.start(1)
    await asyncio.sleep(0)
    timer.cancel()
    gate.set()
    await timer.wait()
    assert rec.expired == 0
    assert rec.ticks == []


async def test_restart_replaces_previous_countdown():
    rec = Recorder()
    timer = ContinuationTimer(rec.expire, rec.tick, sleep=fast_sleep)
    timer.start(5)
    timer.start(2)
    await timer.wait()
    assert rec.ticks == [1, 0]
    assert rec.expired == 1


async def test_zero_seconds_expires_without_ticking():
    rec = Recorder()
    timer = ContinuationTimer(rec.expire, rec.tick, sleep=fast_sleep)
    timer.start(0)
    await timer.wait()
    assert rec.ticks == []
    assert rec.expired == 1


async def test_expiry_callback_may_start_a_new_countdown():
    expirations = []
    timer = None

    async def expire():
        expirations.append(1)
        if len(expirations) == 1:
            timer.start(1)

    timer = ContinuationTimer(expire, sleep=fast_sleep)
    timer.start(1)
    await timer.wait()
    await timer.wait()
    assert len(expirations) == 2


async def test_cancel_when_idle_is_harmless():
    timer = ContinuationTimer(Recorder().expire)
    timer.cancel()
    assert not timer.active


async def test_negative_seconds_are_rejected():
    timer = ContinuationTimer(Recorder().expire)
    with pytest.raises(ValueError):
        timer.start(-1)
