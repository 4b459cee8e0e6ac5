"""Task ownership for overlay controllers.

Everything a controller starts (detail fetches, delayed chart updates) is
spawned through its ``TaskScope``. Closing the scope cancels all of it, and
after close nothing new can be started, so a late result has nowhere to land.
"""

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class DelayedTask:
    """A callback that runs once after a delay unless cancelled first."""

    def __init__(self, task: asyncio.Task) -> None:
        self._task = task
        self.fired = False

    @property
    def pending(self) -> bool:
        return not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    def cancel(self) -> None:
        self._task.cancel()

    async def wait(self) -> None:
        """Wait until the task fires or is cancelled."""
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class TaskScope:
    """Owns a set of asyncio tasks tied to one component's lifetime."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        if self._closed:
            coro.close()
            raise RuntimeError(f"Task scope {self.name} is closed")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def call_later(self, delay_s: float, callback: Callable[[], Awaitable[None] | None]) -> DelayedTask:
        """Run ``callback`` after ``delay_s`` seconds; cancelled with the scope."""
        holder: list[DelayedTask] = []

        async def _run() -> None:
            await asyncio.sleep(delay_s)
            holder[0].fired = True
            result = callback()
            if inspect.isawaitable(result):
                await result

        delayed = DelayedTask(self.spawn(_run(), name=f"{self.name}.delayed"))
        holder.append(delayed)
        return delayed

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[{self.name}] Task {task.get_name()} failed: {exc!r}")

    async def aclose(self) -> None:
        """Cancel every task in the scope and wait for them to finish."""
        self._closed = True
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._tasks.clear()
