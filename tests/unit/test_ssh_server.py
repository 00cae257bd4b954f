"""Unit tests for the asyncssh transport glue."""

import asyncio
from unittest.mock import MagicMock

import asyncssh
import pytest

from blockmove.core.connection_handler import ConnectionHandler, ConnectionState
from blockmove.core.errors import HostKeyError
from blockmove.core.events import ChannelClosed, DataReceived, PtyRequested, SessionOpened, WindowResized
from blockmove.core.session_registry import SessionRegistry
from blockmove.core.task_registry import TaskRegistry
from blockmove.transport.ssh_server import SpriteChannelSession, SpriteSSHServer, _SSHConnection, load_host_key


class TestLoadHostKey:
    def test_unset_path_raises(self):
        with pytest.raises(HostKeyError, match="No host key configured"):
            load_host_key(None)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(HostKeyError, match="not found"):
            load_host_key(str(tmp_path / "nope"))

    def test_garbage_file_raises(self, tmp_path):
        path = tmp_path / "host_key"
        path.write_text("not a key\n", encoding="utf-8")

        with pytest.raises(HostKeyError, match="Failed to read host key"):
            load_host_key(str(path))

    def test_valid_key_loads(self, tmp_path):
        path = tmp_path / "host_key"
        asyncssh.generate_private_key("ssh-ed25519").write_private_key(str(path))

        key = load_host_key(str(path))

        assert key.get_algorithm() == "ssh-ed25519"


def _session():
    server = MagicMock()
    handler = MagicMock()
    server.attach.return_value = handler
    session = SpriteChannelSession(server)
    chan = MagicMock()
    session.connection_made(chan)
    return session, server, handler, chan


class TestSpriteChannelSession:
    def test_connection_made_attaches_and_opens(self):
        session, server, handler, _ = _session()

        server.attach.assert_called_once_with(session)
        handler.post.assert_called_once_with(SessionOpened())

    def test_callbacks_become_events(self):
        session, _, handler, _ = _session()

        assert session.pty_requested("xterm-256color", (120, 40, 0, 0), {}) is True
        session.terminal_size_changed(100, 30, 0, 0)
        session.data_received(b"q", None)
        assert session.eof_received() is False

        posted = [call.args[0] for call in handler.post.call_args_list[1:]]
        assert posted == [
            PtyRequested(cols=120, rows=40, term_type="xterm-256color"),
            WindowResized(cols=100, rows=30),
            DataReceived(data=b"q"),
            ChannelClosed(reason="eof"),
        ]

    def test_shell_accepted_exec_rejected(self):
        session, _, _, _ = _session()

        assert session.shell_requested() is True
        assert session.exec_requested("ls") is False

    def test_connection_lost_posts_close(self):
        session, _, handler, _ = _session()

        session.connection_lost(None)

        assert handler.post.call_args.args[0] == ChannelClosed(reason="channel closed")

    @pytest.mark.asyncio
    async def test_send_writes_to_channel(self):
        session, _, _, chan = _session()

        await session.send(b"frame")

        chan.write.assert_called_once_with(b"frame")

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        session, _, _, chan = _session()
        session.connection_lost(None)

        with pytest.raises(BrokenPipeError):
            await session.send(b"frame")
        chan.write.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_waits_for_flow_control(self):
        session, _, _, chan = _session()
        session.pause_writing()

        pending = asyncio.create_task(session.send(b"frame"))
        await asyncio.sleep(0)
        assert not chan.write.called

        session.resume_writing()
        await pending
        chan.write.assert_called_once_with(b"frame")

    def test_close_only_once_channel_is_live(self):
        session, _, _, chan = _session()
        session.close()
        chan.close.assert_called_once()

        session.connection_lost(None)
        session.close()
        chan.close.assert_called_once()


class TestSSHConnection:
    def test_no_authentication_required(self):
        connection = _SSHConnection(MagicMock())
        assert connection.begin_auth("anyone") is False

    def test_session_requested_returns_channel_session(self):
        connection = _SSHConnection(MagicMock())
        assert isinstance(connection.session_requested(), SpriteChannelSession)


@pytest.mark.asyncio
async def test_attach_spawns_tracked_handler():
    """Test that each channel gets a running ConnectionHandler."""
    tasks = TaskRegistry()
    registry = SessionRegistry()
    server = SpriteSSHServer(registry, tasks, host_key=MagicMock())
    channel = MagicMock()

    handler = server.attach(channel)

    assert isinstance(handler, ConnectionHandler)
    assert tasks.task_count() == 1

    handler.post(ChannelClosed(reason="test"))
    for _ in range(20):
        if handler.state is ConnectionState.CLOSED:
            break
        await asyncio.sleep(0)
    assert handler.state is ConnectionState.CLOSED
