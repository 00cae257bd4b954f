"""The shared render loop.

One loop for the whole process ticks at a fixed rate, advances every
session's animation and redraws its target. It is the only writer of
animation state and the only caller of draw.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from blockmove.constants import FRAME_INTERVAL_MS
from blockmove.core.render_target import HalfBlockCanvas
from blockmove.core.session_registry import Session, SessionRegistry
from blockmove.core.sprite_field import SpriteSet

logger = logging.getLogger(__name__)


class RenderScheduler:
    """Fixed-rate loop over the session registry."""

    def __init__(
        self,
        registry: SessionRegistry,
        sprites: SpriteSet,
        frame_interval: float = FRAME_INTERVAL_MS / 1000,
    ) -> None:
        self._registry = registry
        self._sprites = sprites
        self.frame_interval = frame_interval
        self.ticks = 0
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop. Calling it again while running does nothing."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="render-scheduler")
        logger.info("Render scheduler started (%.0f ms/frame)", self.frame_interval * 1000)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Render scheduler stopped after %d ticks", self.ticks)

    async def tick(self) -> int:
        """Advance and redraw every session once.

        Returns:
            Number of sessions rendered.
        """
        count = await self._registry.for_each(self._render_session)
        self.ticks += 1
        return count

    def _render_session(self, session: Session) -> None:
        width, height = session.target.size
        animation = session.animation
        try:
            animation.advance(width, height)
            sprite = animation.sprite(self._sprites)

            def paint(canvas: HalfBlockCanvas) -> None:
                for coords, color in animation.project(sprite, height):
                    canvas.draw_points(coords, color)

            session.target.draw(paint)
        except Exception:  # pylint: disable=broad-exception-caught  # one bad session must not stall the rest
            logger.exception("Render failed for session %d", session.session_id)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.tick()
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.frame_interval - elapsed))
