"""Tests for controller task scopes."""

import asyncio

import pytest

from tekken_overlays.overlay.tasks import TaskScope


class TestTaskScope:
    """Tests for spawn, delayed calls and close."""

    @pytest.mark.asyncio
    async def test_call_later_fires(self):
        scope = TaskScope("test")
        hits = []
        delayed = scope.call_later(0.01, lambda: hits.append(1))
        await delayed.wait()

        assert hits == [1]
        assert delayed.fired
        assert not delayed.pending

    @pytest.mark.asyncio
    async def test_cancelled_delay_never_fires(self):
        scope = TaskScope("test")
        hits = []
        delayed = scope.call_later(0.01, lambda: hits.append(1))
        delayed.cancel()
        await delayed.wait()

        assert hits == []
        assert delayed.cancelled

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self):
        scope = TaskScope("test")
        hits = []

        async def callback():
            await asyncio.sleep(0)
            hits.append(1)

        await scope.call_later(0, callback).wait()
        assert hits == [1]

    @pytest.mark.asyncio
    async def test_close_cancels_everything(self):
        scope = TaskScope("test")
        started = asyncio.Event()

        async def forever():
            started.set()
            await asyncio.sleep(60)

        task = scope.spawn(forever())
        delayed = scope.call_later(60, lambda: None)
        await started.wait()
        assert scope.active == 2

        await scope.aclose()

        assert task.cancelled()
        assert delayed.cancelled
        assert scope.closed
        assert scope.active == 0

    @pytest.mark.asyncio
    async def test_spawn_after_close_refused(self):
        scope = TaskScope("test")
        await scope.aclose()

        async def work():
            return 1

        with pytest.raises(RuntimeError, match="closed"):
            scope.spawn(work())

    @pytest.mark.asyncio
    async def test_failing_task_is_logged_not_raised(self, caplog):
        scope = TaskScope("test")

        async def boom():
            raise ValueError("bad")

        task = scope.spawn(boom(), name="boom")
        await asyncio.wait([task])
        await asyncio.sleep(0)

        assert "boom" in caplog.text
        assert scope.active == 0
