"""Per-connection state machine.

Transport callbacks post events; one task per connection applies them in
order against the session registry. The handler never draws: it only sizes
the render target and tears the session down.

    OPENING --open--> ACTIVE --quit key / channel close--> CLOSING --> CLOSED
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol

from blockmove.constants import DEFAULT_QUIT_KEY, ENTER_ALT_SCREEN, HIDE_CURSOR, OUTBOUND_QUEUE_DEPTH, RESET_SEQUENCE
from blockmove.core.events import (
    ChannelClosed,
    ConnectionEvent,
    DataReceived,
    PtyRequested,
    SessionOpened,
    WindowResized,
)
from blockmove.core.session_registry import SessionRegistry
from blockmove.core.task_registry import TaskRegistry
from blockmove.core.terminal_handle import TerminalHandle

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """What the handler needs from the transport."""

    async def send(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class ConnectionState(str, Enum):
    OPENING = "opening"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionHandler:
    """Drives one client's session from transport events."""

    def __init__(
        self,
        registry: SessionRegistry,
        channel: Channel,
        quit_key: bytes = DEFAULT_QUIT_KEY.encode(),
        tasks: Optional[TaskRegistry] = None,
        queue_depth: int = OUTBOUND_QUEUE_DEPTH,
    ) -> None:
        self._registry = registry
        self._channel = channel
        self._quit_key = quit_key
        self._tasks = tasks
        self._queue_depth = queue_depth
        self._events: asyncio.Queue[ConnectionEvent] = asyncio.Queue()
        self.state = ConnectionState.OPENING
        self.session_id: Optional[int] = None
        self.handle: Optional[TerminalHandle] = None

    def post(self, event: ConnectionEvent) -> None:
        """Queue an event from a transport callback."""
        if self.state is ConnectionState.CLOSED:
            return
        self._events.put_nowait(event)

    async def run(self) -> None:
        """Apply queued events until the connection is closed."""
        try:
            while self.state is not ConnectionState.CLOSED:
                event = await self._events.get()
                await self.dispatch(event)
        finally:
            if self.state is not ConnectionState.CLOSED:
                await self.close("handler stopped")

    async def dispatch(self, event: ConnectionEvent) -> None:
        if isinstance(event, SessionOpened):
            await self._open()
        elif isinstance(event, PtyRequested):
            await self._resize(event.cols, event.rows, enter_screen=True)
        elif isinstance(event, WindowResized):
            await self._resize(event.cols, event.rows)
        elif isinstance(event, DataReceived):
            if self._quit_key and self._quit_key in event.data:
                await self.close("quit key")
        elif isinstance(event, ChannelClosed):
            await self.close(event.reason)

    async def _open(self) -> None:
        if self.state is not ConnectionState.OPENING:
            logger.warning("Ignoring duplicate session open (state=%s)", self.state.value)
            return

        session_id = self._registry.next_id()
        handle = TerminalHandle(
            self._channel.send,
            name=f"session-{session_id}",
            on_failure=self._on_write_failure,
            max_queued=self._queue_depth,
        )
        handle.start(self._tasks)
        self.session_id = session_id
        self.handle = handle
        await self._registry.open(session_id, handle)
        self.state = ConnectionState.ACTIVE

    async def _resize(self, cols: int, rows: int, enter_screen: bool = False) -> None:
        if self.state is not ConnectionState.ACTIVE or self.session_id is None:
            return
        if enter_screen and self.handle is not None:
            self.handle.write(ENTER_ALT_SCREEN + HIDE_CURSOR, droppable=False)
        await self._registry.resize(self.session_id, cols, rows)

    def _on_write_failure(self, exc: BaseException) -> None:
        self.post(ChannelClosed(reason=f"write failed: {exc}"))

    async def close(self, reason: str) -> None:
        """Reset the client's terminal, unregister the session and release the channel.

        Safe to call more than once: quit key and channel close may race.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSING

        if self.handle is not None:
            # Best effort: a dead channel just drops it
            self.handle.finish(RESET_SEQUENCE)
        if self.session_id is not None:
            await self._registry.remove(self.session_id)

        try:
            self._channel.close()
        except OSError as exc:
            logger.warning("Closing channel for session %s failed: %s", self.session_id, exc)

        self.state = ConnectionState.CLOSED
        logger.info("Session %s closed: %s", self.session_id, reason)
