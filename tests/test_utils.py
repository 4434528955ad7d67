"""Test the utility helpers."""

import asyncio
import threading

import pytest

from gitgate.utils import (
    BlockingExecutor,
    ClientDisconnected,
    run_until_disconnected,
    safe_join,
)

# All test coroutines will be treated as marked.
pytestmark = pytest.mark.asyncio


class FakeURL:
    path = "/team/sample.git/tree/master"


class FakeRequest:
    """Request whose client goes away after `disconnect_after` polls."""

    url = FakeURL()

    def __init__(self, disconnect_after):
        self.disconnect_after = disconnect_after
        self.polls = 0

    async def is_disconnected(self):
        self.polls += 1
        return self.polls >= self.disconnect_after


async def test_safe_join():
    assert safe_join("/srv/git", "team/project.git") == "/srv/git/team/project.git"
    assert safe_join("/srv/git", "team/../project.git") == "/srv/git/project.git"
    for name in ("../etc", "..", "/etc/passwd", "team/../../etc"):
        with pytest.raises(ValueError):
            safe_join("/srv/git", name)


async def test_blocking_executor_runs_off_loop():
    executor = BlockingExecutor(max_workers=2)
    try:
        loop_thread = threading.get_ident()
        thread_id = await executor.run(threading.get_ident)
        assert thread_id != loop_thread
        assert await executor.run(sorted, [3, 1, 2], reverse=True) == [3, 2, 1]
    finally:
        executor.shutdown()


async def test_run_until_disconnected_returns_result():
    async def work():
        await asyncio.sleep(0.01)
        return "done"

    request = FakeRequest(disconnect_after=100)
    assert await run_until_disconnected(request, work(), poll_interval=0.5) == "done"
    assert request.polls == 0


async def test_run_until_disconnected_cancels_work():
    cancelled = asyncio.Event()

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    request = FakeRequest(disconnect_after=2)
    with pytest.raises(ClientDisconnected):
        await run_until_disconnected(request, slow(), poll_interval=0.01)
    await asyncio.wait_for(cancelled.wait(), timeout=1)
    assert request.polls == 2
