"""
Tests for the per-conversation debounce timer.
"""

import asyncio

import pytest

from supportbot.conversation.timer import DebounceTimer


def make_counter():
    fired = []

    async def callback():
        fired.append(asyncio.get_running_loop().time())

    return fired, callback


class TestDebounceTimer:
    """Rearm, fire and dispose semantics."""

    @pytest.mark.asyncio
    async def test_fires_once_after_delay(self):
        fired, callback = make_counter()
        timer = DebounceTimer("u1")
        timer.wire(callback)

        timer.rearm(0.01)
        assert timer.is_pending

        await timer.join()

        assert len(fired) == 1
        assert timer.fire_count == 1
        assert not timer.is_pending

    @pytest.mark.asyncio
    async def test_rearm_replaces_pending_fire(self):
        fired, callback = make_counter()
        timer = DebounceTimer("u1")
        timer.wire(callback)

        for _ in range(5):
            timer.rearm(0.02)
            await asyncio.sleep(0.005)

        await timer.join()

        assert len(fired) == 1

    @pytest.mark.asyncio
    async def test_wire_twice_raises(self):
        _, callback = make_counter()
        timer = DebounceTimer("u1")
        timer.wire(callback)

        with pytest.raises(RuntimeError):
            timer.wire(callback)

    @pytest.mark.asyncio
    async def test_rearm_without_callback_raises(self):
        timer = DebounceTimer("u1")

        with pytest.raises(RuntimeError):
            timer.rearm(0.01)

    @pytest.mark.asyncio
    async def test_dispose_cancels_pending_fire(self):
        fired, callback = make_counter()
        timer = DebounceTimer("u1")
        timer.wire(callback)

        timer.rearm(0.01)
        timer.dispose()
        timer.dispose()  # idempotent

        await timer.join()

        assert fired == []
        assert timer.is_disposed

    @pytest.mark.asyncio
    async def test_rearm_after_dispose_is_ignored(self):
        fired, callback = make_counter()
        timer = DebounceTimer("u1")
        timer.wire(callback)
        timer.dispose()

        timer.rearm(0.001)
        await timer.join()

        assert fired == []
        assert not timer.is_pending

    @pytest.mark.asyncio
    async def test_committed_fire_survives_rearm_and_fires_do_not_overlap(self):
        """A rearm during a running callback schedules a second, later fire."""
        release = asyncio.Event()
        started = asyncio.Event()
        active = 0
        max_active = 0
        calls = 0

        async def callback():
            nonlocal active, max_active, calls
            calls += 1
            active += 1
            max_active = max(max_active, active)
            started.set()
            await release.wait()
            active -= 1

        timer = DebounceTimer("u1")
        timer.wire(callback)

        timer.rearm(0.001)
        await asyncio.wait_for(started.wait(), timeout=1)

        # First fire is running; this must not cancel it
        timer.rearm(0.001)
        await asyncio.sleep(0.02)
        release.set()

        await timer.join()

        assert calls == 2
        assert max_active == 1

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self):
        async def callback():
            raise ValueError("boom")

        timer = DebounceTimer("u1")
        timer.wire(callback)
        timer.rearm(0.001)

        await timer.join()

        assert timer.fire_count == 1
