"""Tracking for background asyncio tasks.

Connection handlers and outbound forwarders are spawned through a
TaskRegistry. At shutdown each task first gets a chance to wind down through
its closer (a connection handler resets the client's terminal and releases
the channel), and only what is still running afterwards is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Closer = Callable[[], Awaitable[None]]


class TaskRegistry:
    """Live background tasks, each with an optional graceful closer.

    Example:
        tasks = TaskRegistry()
        tasks.spawn(handler.run(), name="connection-3", closer=partial(handler.close, "server shutdown"))
        await tasks.shutdown(timeout=2.0)
    """

    def __init__(self) -> None:
        self._closers: dict[asyncio.Task[Any], Optional[Closer]] = {}

    def spawn(
        self,
        coro: Coroutine[Any, Any, T],
        name: str | None = None,
        closer: Optional[Closer] = None,
    ) -> asyncio.Task[T]:
        """Start `coro` as a tracked task.

        Args:
            coro: Coroutine to run.
            name: Task name, shown in logs.
            closer: Awaited at shutdown, before the task is cancelled.
        """
        task = asyncio.create_task(coro, name=name)
        self._closers[task] = closer
        task.add_done_callback(self._forget)
        logger.debug("Spawned task %s (%d tracked)", task.get_name(), len(self._closers))
        return task

    def _forget(self, task: asyncio.Task[Any]) -> None:
        self._closers.pop(task, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error("Task %s crashed: %s", task.get_name(), exc, exc_info=exc)

    def task_count(self) -> int:
        return len(self._closers)

    async def _close_gracefully(self, timeout: float) -> None:
        closing = {
            asyncio.ensure_future(closer()): task.get_name()
            for task, closer in list(self._closers.items())
            if closer is not None and not task.done()
        }
        if not closing:
            return

        logger.info("Closing %d sessions", len(closing))
        done, late = await asyncio.wait(closing, timeout=timeout)
        for future in done:
            exc = future.exception()
            if exc:
                logger.error("Closing %s failed: %s", closing[future], exc, exc_info=exc)
        for future in late:
            logger.warning("Closing %s did not finish within %.1fs", closing[future], timeout)
            future.cancel()

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Run every closer, then cancel whatever is still running.

        Each phase waits at most `timeout` seconds.
        """
        if not self._closers:
            return
        await self._close_gracefully(timeout)

        live = [task for task in self._closers if not task.done()]
        if not live:
            return
        logger.info("Cancelling %d background tasks (timeout=%.1fs)", len(live), timeout)
        for task in live:
            task.cancel()

        _, pending = await asyncio.wait(live, timeout=timeout)
        if pending:
            logger.warning(
                "Shutdown timeout: %d/%d tasks still pending: %s",
                len(pending),
                len(live),
                ", ".join(task.get_name() for task in pending),
            )
