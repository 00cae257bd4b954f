"""SSH transport glue built on asyncssh.

asyncssh delivers channel events through synchronous callbacks; each session
channel forwards them as events to its ConnectionHandler, whose task applies
them in order. Writes honour asyncssh flow control and raise BrokenPipeError
once the channel is gone.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Optional

import asyncssh

from blockmove.config import ServerConfig
from blockmove.constants import DEFAULT_QUIT_KEY, HOST_KEY_ENV, OUTBOUND_QUEUE_DEPTH
from blockmove.core.connection_handler import ConnectionHandler
from blockmove.core.errors import HostKeyError
from blockmove.core.events import (
    ChannelClosed,
    DataReceived,
    PtyRequested,
    SessionOpened,
    WindowResized,
)
from blockmove.core.session_registry import SessionRegistry
from blockmove.core.task_registry import TaskRegistry

logger = logging.getLogger(__name__)


def load_host_key(path: Optional[str]) -> asyncssh.SSHKey:
    """Read the server's OpenSSH private host key.

    Raises:
        HostKeyError: If no path is configured or the key cannot be read.
    """
    if not path:
        raise HostKeyError(f"No host key configured. Set server.host_key_path or {HOST_KEY_ENV}.")
    key_path = Path(path).expanduser()
    if not key_path.exists():
        raise HostKeyError(f"Host key not found at {key_path}. Please generate host keys first.")
    try:
        return asyncssh.read_private_key(str(key_path))
    except (OSError, asyncssh.KeyImportError) as exc:
        raise HostKeyError(f"Failed to read host key {key_path}: {exc}") from exc


class SpriteChannelSession(asyncssh.SSHServerSession):  # type: ignore[misc]
    """One SSH session channel, bridged to a ConnectionHandler."""

    def __init__(self, server: "SpriteSSHServer") -> None:
        self._server = server
        self._chan: Optional[asyncssh.SSHServerChannel] = None
        self._handler: Optional[ConnectionHandler] = None
        self._writable = asyncio.Event()
        self._writable.set()
        self._closed = False

    def _post(self, event: object) -> None:
        if self._handler is not None:
            self._handler.post(event)  # type: ignore[arg-type]

    def connection_made(self, chan: asyncssh.SSHServerChannel) -> None:
        self._chan = chan
        self._handler = self._server.attach(self)
        self._post(SessionOpened())

    def shell_requested(self) -> bool:
        return True

    def exec_requested(self, command: str) -> bool:
        logger.debug("Rejecting exec request: %s", command)
        return False

    def pty_requested(self, term_type: str, term_size: tuple[int, int, int, int], term_modes: object) -> bool:
        cols, rows = term_size[0], term_size[1]
        self._post(PtyRequested(cols=cols, rows=rows, term_type=term_type or ""))
        return True

    def terminal_size_changed(self, width: int, height: int, pixwidth: int, pixheight: int) -> None:
        self._post(WindowResized(cols=width, rows=height))

    def data_received(self, data: bytes, datatype: Optional[int]) -> None:
        self._post(DataReceived(data=bytes(data)))

    def eof_received(self) -> bool:
        self._post(ChannelClosed(reason="eof"))
        return False

    def pause_writing(self) -> None:
        self._writable.clear()

    def resume_writing(self) -> None:
        self._writable.set()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._closed = True
        # Wake any writer parked on flow control so it sees the closed channel
        self._writable.set()
        self._post(ChannelClosed(reason=f"connection lost: {exc}" if exc else "channel closed"))

    async def send(self, data: bytes) -> None:
        await self._writable.wait()
        if self._closed or self._chan is None:
            raise BrokenPipeError("SSH channel is closed")
        self._chan.write(data)

    def close(self) -> None:
        if self._chan is not None and not self._closed:
            self._chan.close()


class _SSHConnection(asyncssh.SSHServer):  # type: ignore[misc]
    """Per-TCP-connection callbacks. Accepts every client without auth."""

    def __init__(self, server: "SpriteSSHServer") -> None:
        self._server = server
        self._peer = "unknown"

    def connection_made(self, conn: asyncssh.SSHServerConnection) -> None:
        peer = conn.get_extra_info("peername")
        self._peer = f"{peer[0]}:{peer[1]}" if peer else "unknown"
        logger.info("Connection from %s", self._peer)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            logger.info("Connection from %s lost: %s", self._peer, exc)
        else:
            logger.info("Connection from %s closed", self._peer)

    def begin_auth(self, username: str) -> bool:
        # False: no authentication required
        return False

    def session_requested(self) -> SpriteChannelSession:
        return SpriteChannelSession(self._server)


class SpriteSSHServer:
    """Listening SSH endpoint feeding the session registry."""

    def __init__(
        self,
        registry: SessionRegistry,
        tasks: TaskRegistry,
        host_key: asyncssh.SSHKey,
        config: Optional[ServerConfig] = None,
        quit_key: bytes = DEFAULT_QUIT_KEY.encode(),
        queue_depth: int = OUTBOUND_QUEUE_DEPTH,
    ) -> None:
        self._registry = registry
        self._tasks = tasks
        self._host_key = host_key
        self._config = config or ServerConfig()
        self._quit_key = quit_key
        self._queue_depth = queue_depth
        self._acceptor: Optional[asyncssh.SSHAcceptor] = None

    @property
    def port(self) -> int:
        if self._acceptor is None:
            return self._config.port
        return self._acceptor.get_port()

    async def start(self) -> None:
        self._acceptor = await asyncssh.create_server(
            lambda: _SSHConnection(self),
            self._config.host,
            self._config.port,
            server_host_keys=[self._host_key],
            encoding=None,
            line_editor=False,
            keepalive_interval=self._config.keepalive_interval,
            login_timeout=self._config.login_timeout,
        )
        logger.info("Listening for SSH on %s:%d", self._config.host, self.port)

    async def stop(self) -> None:
        if self._acceptor is None:
            return
        self._acceptor.close()
        await self._acceptor.wait_closed()
        self._acceptor = None
        logger.info("SSH listener closed")

    def attach(self, channel: SpriteChannelSession) -> ConnectionHandler:
        """Create the handler for a new session channel and start its task."""
        handler = ConnectionHandler(
            self._registry,
            channel,
            quit_key=self._quit_key,
            tasks=self._tasks,
            queue_depth=self._queue_depth,
        )
        self._tasks.spawn(
            handler.run(),
            name=f"connection-{id(channel):x}",
            closer=partial(handler.close, "server shutdown"),
        )
        return handler
