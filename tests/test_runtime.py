"""Tests for the runtime that hosts playback sessions."""

import asyncio

import pytest

from next_up.runtime import PlaybackRuntime


async def fast_sleep(_interval):
    await asyncio.sleep(0)


async def test_concurrent_opens_share_one_session(backend):
    refresh = backend.refresh_viewer

    async def slow_refresh(viewer_id):
        await asyncio.sleep(0)
        return await refresh(viewer_id)

    backend.refresh_viewer = slow_refresh
    runtime = PlaybackRuntime(backend, sleep=fast_sleep)

    await asyncio.gather(
        runtime.open_video("v1", "current"),
        runtime.open_video("v1", "current"),
    )

    assert list(runtime.sessions) == ["v1"]
    assert backend.count("refresh_viewer") == 2
    assert runtime.sessions["v1"].state.value == "ready"


def test_submit_without_loop_closes_the_coroutine(backend):
    runtime = PlaybackRuntime(backend)
    coro = runtime.status("v1")
    with pytest.raises(RuntimeError):
        runtime.submit(coro)
    assert coro.cr_frame is None
