"""Run the animation in the local terminal instead of over SSH.

The local terminal is treated as one more connection: stdin keystrokes and
SIGWINCH become connection events, stdout is the channel. `q`, Esc or Ctrl-C
exits and restores the terminal.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import sys
import termios
import tty
from typing import BinaryIO

from blockmove.config import BlockmoveConfig
from blockmove.core.animation import rng_factory_for
from blockmove.core.connection_handler import ConnectionHandler
from blockmove.core.events import (
    ChannelClosed,
    ConnectionEvent,
    DataReceived,
    PtyRequested,
    SessionOpened,
    WindowResized,
)
from blockmove.core.render_scheduler import RenderScheduler
from blockmove.core.session_registry import SessionRegistry
from blockmove.core.sprite_field import SpriteSet
from blockmove.core.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

ESCAPE = b"\x1b"
CTRL_C = b"\x03"


class LocalTerminalChannel:
    """Channel that writes frames straight to a local binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self.closed = False

    async def send(self, data: bytes) -> None:
        if self.closed:
            raise BrokenPipeError("local terminal channel is closed")
        self._stream.write(data)
        self._stream.flush()

    def close(self) -> None:
        self.closed = True


def input_event(data: bytes) -> ConnectionEvent:
    """Translate a stdin chunk into a connection event.

    A lone Esc byte or Ctrl-C ends the preview. Escape sequences from arrow
    and function keys also start with Esc and are passed through as input.
    """
    if not data or data == ESCAPE or CTRL_C in data:
        return ChannelClosed(reason="local exit")
    return DataReceived(data=data)


def _terminal_size() -> tuple[int, int]:
    size = shutil.get_terminal_size()
    return size.columns, size.lines


async def run_local_preview(config: BlockmoveConfig, sprites: SpriteSet) -> None:
    """Animate the sprite in this terminal until the user quits."""
    loop = asyncio.get_running_loop()
    registry = SessionRegistry(
        rng_factory=rng_factory_for(config.session.seed),
        default_size=(config.render.default_width, config.render.default_height),
    )
    tasks = TaskRegistry()
    scheduler = RenderScheduler(registry, sprites, config.render.frame_interval_ms / 1000)
    handler = ConnectionHandler(
        registry,
        LocalTerminalChannel(sys.stdout.buffer),
        quit_key=config.quit_byte,
        tasks=tasks,
        queue_depth=config.render.queue_depth,
    )

    fd = sys.stdin.fileno()
    saved_attrs = termios.tcgetattr(fd)

    def on_input() -> None:
        handler.post(input_event(os.read(fd, 64)))

    def on_resize() -> None:
        cols, rows = _terminal_size()
        handler.post(WindowResized(cols=cols, rows=rows))

    tty.setcbreak(fd)
    loop.add_reader(fd, on_input)
    loop.add_signal_handler(signal.SIGWINCH, on_resize)
    loop.add_signal_handler(signal.SIGINT, lambda: handler.post(ChannelClosed(reason="interrupted")))
    try:
        cols, rows = _terminal_size()
        handler.post(SessionOpened())
        handler.post(PtyRequested(cols=cols, rows=rows, term_type=os.getenv("TERM", "")))
        scheduler.start()
        await handler.run()
    finally:
        loop.remove_reader(fd)
        loop.remove_signal_handler(signal.SIGWINCH)
        loop.remove_signal_handler(signal.SIGINT)
        await scheduler.stop()
        await tasks.shutdown(timeout=1.0)
        termios.tcsetattr(fd, termios.TCSADRAIN, saved_attrs)
        logger.debug("Local preview finished")
