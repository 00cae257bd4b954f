"""Session registry: the single lock-guarded map of live sessions.

The render scheduler and every connection handler go through this registry.
All mutation and iteration happens under one asyncio.Lock, so the scheduler
never sees a session mid-resize or mid-teardown. Nothing holding the lock
performs client I/O: frames are only enqueued, and a removed session's
outbound handle is closed after the lock is released.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from blockmove.constants import DEFAULT_TERM_HEIGHT, DEFAULT_TERM_WIDTH, RESET_SEQUENCE
from blockmove.core.animation import AnimationState, RngFactory, entropy_rng_factory
from blockmove.core.render_target import RenderTarget
from blockmove.core.terminal_handle import TerminalHandle

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One client's render target and animation state."""

    session_id: int
    target: RenderTarget
    animation: AnimationState
    handle: TerminalHandle


class SessionRegistry:
    """Mapping of session id to Session, guarded by a single lock."""

    def __init__(
        self,
        rng_factory: RngFactory = entropy_rng_factory,
        default_size: tuple[int, int] = (DEFAULT_TERM_WIDTH, DEFAULT_TERM_HEIGHT),
    ) -> None:
        self._sessions: dict[int, Session] = {}
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._rng_factory = rng_factory
        self._default_size = default_size

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def ids(self) -> list[int]:
        return sorted(self._sessions)

    def next_id(self) -> int:
        """Allocate a fresh session id. Ids are never reused."""
        return next(self._ids)

    async def open(self, session_id: int, handle: TerminalHandle) -> Session:
        """Create and register a session at the placeholder size.

        Nothing is drawn until the first resize delivers the client's size.

        Raises:
            ValueError: If `session_id` is already registered.
        """
        width, height = self._default_size
        session = Session(
            session_id=session_id,
            target=RenderTarget(handle, width, height, sized=False),
            animation=AnimationState(rng=self._rng_factory(session_id)),
            handle=handle,
        )
        async with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session {session_id} is already open")
            self._sessions[session_id] = session
            count = len(self._sessions)
        logger.info("Session %d opened (%d active)", session_id, count)
        return session

    async def resize(self, session_id: int, width: int, height: int) -> bool:
        """Resize a session's render target. The animation is left as is.

        Returns:
            False if the session is not registered.
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.debug("Resize for unknown session %d ignored", session_id)
                return False
            session.target.resize(width, height)
        logger.debug("Session %d resized to %dx%d", session_id, width, height)
        return True

    async def remove(self, session_id: int) -> bool:
        """Unregister a session and close its outbound handle. Idempotent.

        Returns:
            True if the session was registered.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            count = len(self._sessions)
        if session is None:
            return False

        await session.handle.close()
        logger.info("Session %d removed (%d active)", session_id, count)
        return True

    async def for_each(self, fn: Callable[[Session], None]) -> int:
        """Run `fn` on every session while holding the lock.

        Returns:
            Number of sessions visited.
        """
        async with self._lock:
            for session in self._sessions.values():
                fn(session)
            return len(self._sessions)

    async def get(self, session_id: int) -> Optional[Session]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def close_all(self, final: bytes = RESET_SEQUENCE) -> None:
        """Remove every session, sending `final` to each client first.

        Used at shutdown, when no connection handler will reset the terminal.
        """
        async with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.handle.finish(final)
            await self.remove(session.session_id)
