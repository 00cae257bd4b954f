"""Outbound byte channel between the render loop and one client.

The render loop only enqueues; a per-session forwarding task performs the
awaited network write. A stalled client therefore backs up its own queue
instead of the shared tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Optional, Tuple

from blockmove.constants import HANDLE_FLUSH_TIMEOUT, OUTBOUND_QUEUE_DEPTH
from blockmove.core.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

SendFn = Callable[[bytes], Awaitable[None]]
FailureCallback = Callable[[BaseException], None]


class TerminalHandle:
    """Bounded frame queue drained by a forwarding task.

    Frames are droppable: when `max_queued` frames are waiting the oldest one
    is discarded, since every frame is a full redraw. Control sequences
    (alternate screen, cursor, reset) are never dropped.
    """

    def __init__(
        self,
        send: SendFn,
        name: str,
        on_failure: Optional[FailureCallback] = None,
        max_queued: int = OUTBOUND_QUEUE_DEPTH,
    ) -> None:
        self.name = name
        self.dropped = 0
        self._send = send
        self._on_failure = on_failure
        self._max_queued = max(1, max_queued)
        # (payload, droppable)
        self._pending: Deque[Tuple[bytes, bool]] = deque()
        self._ready = asyncio.Event()
        self._closing = False
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def closing(self) -> bool:
        return self._closing

    def pending(self) -> int:
        return len(self._pending)

    def start(self, tasks: Optional[TaskRegistry] = None) -> None:
        """Start the forwarding task."""
        if self._task is not None:
            return
        coro = self._forward()
        task_name = f"forward-{self.name}"
        self._task = tasks.spawn(coro, name=task_name) if tasks else asyncio.create_task(coro, name=task_name)

    def write(self, data: bytes, droppable: bool = True) -> None:
        """Enqueue bytes without blocking. Ignored once the handle is closing."""
        if self._closing or not data:
            return
        if droppable:
            self._drop_stale_frames()
        self._pending.append((data, droppable))
        self._ready.set()

    def _drop_stale_frames(self) -> None:
        frames = sum(1 for _, droppable in self._pending if droppable)
        while frames >= self._max_queued:
            for index, (_, droppable) in enumerate(self._pending):
                if droppable:
                    del self._pending[index]
                    break
            frames -= 1
            self.dropped += 1

    def finish(self, final: bytes = b"") -> None:
        """Queue `final` as the last bytes and refuse further writes."""
        if self._closing:
            return
        if final:
            self._pending.append((final, False))
        self._closing = True
        self._ready.set()

    async def close(self, timeout: float = HANDLE_FLUSH_TIMEOUT) -> None:
        """Flush what is queued, then stop the forwarding task."""
        self.finish()
        task = self._task
        if task is None or task is asyncio.current_task() or task.done():
            return
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            logger.debug("Handle %s did not flush within %.1fs; cancelling", self.name, timeout)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _forward(self) -> None:
        while True:
            if not self._pending:
                if self._closing:
                    return
                self._ready.clear()
                await self._ready.wait()
                continue

            data, _ = self._pending.popleft()
            try:
                await self._send(data)
            except OSError as exc:
                logger.warning("Write to %s failed: %s", self.name, exc)
                self._closing = True
                self._pending.clear()
                if self._on_failure is not None:
                    self._on_failure(exc)
                return
