"""Unit tests for ControlChannel.

Tests connection lifecycle, state transitions, and error handling
against a scripted socket.
"""

import logging
import socket
import ssl
from unittest.mock import MagicMock, patch

import pytest

from ftpsclient.ftp.control import ControlChannel, describe_command, parse_257
from ftpsclient.ftp.exceptions import (
    FTPAuthenticationError,
    FTPCommandError,
    FTPConnectError,
    FTPConnectTimeoutError,
    FTPIOError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPReadTimeoutError,
    FTPStateError,
    FTPTimeoutError,
    FTPTLSError,
)
from ftpsclient.ftp.reply import Reply
from ftpsclient.ftp.session import SecurityMode, SessionConfig, SessionState, TransferType

from .fakes import FakeSocket

CREATE_CONNECTION = "ftpsclient.ftp.control.socket.create_connection"

GREETING = b"220 Service ready\r\n"
LOGIN = b"331 Password required\r\n230 Logged in\r\n200 Type set\r\n"


def connected(replies: bytes, **config_kwargs):
    """ControlChannel connected to a FakeSocket replaying replies."""
    config = SessionConfig(host="ftp.example.com", **config_kwargs)
    sock = FakeSocket(GREETING + replies)
    with patch(CREATE_CONNECTION, return_value=sock):
        channel = ControlChannel(config)
        channel.connect()
    return channel, sock


def authenticated(replies: bytes = b"", **config_kwargs):
    channel, sock = connected(LOGIN + replies, **config_kwargs)
    channel.login("test", "secret")
    return channel, sock


class TestHelpers:
    """Tests for module-level helpers."""

    def test_describe_command_masks_password(self):
        """Test that PASS arguments never appear in descriptions."""
        assert describe_command("PASS", "secret") == "PASS ******"
        assert describe_command("CWD", "/pub") == "CWD /pub"

    def test_parse_257_unescapes_doubled_quotes(self):
        """Test quoted pathname extraction."""
        reply = Reply(257, ['"/a ""b"" c" is the current directory'])
        assert parse_257(reply) == '/a "b" c'

    def test_parse_257_without_quotes(self):
        """Test that a reply without a quoted path yields None."""
        assert parse_257(Reply(257, ["created"])) is None


class TestConnect:
    """Tests for ControlChannel.connect()."""

    def test_initial_state_is_disconnected(self):
        """Test that a new channel is DISCONNECTED."""
        channel = ControlChannel(SessionConfig(host="ftp.example.com"))
        assert channel.state == SessionState.DISCONNECTED
        assert channel.is_connected is False

    def test_connect_success(self):
        """Test successful connection."""
        config = SessionConfig(host="ftp.example.com", connect_timeout=7, read_timeout=9)
        sock = FakeSocket(GREETING)

        with patch(CREATE_CONNECTION, return_value=sock) as mock_create:
            channel = ControlChannel(config)
            greeting = channel.connect()

        mock_create.assert_called_once_with(("ftp.example.com", 21), timeout=7)
        assert sock.timeout == 9
        assert greeting.code == 220
        assert channel.welcome is greeting
        assert channel.state == SessionState.CONNECTED

    def test_connect_skips_preliminary_greeting(self):
        """Test that 120 is followed by the real greeting."""
        sock = FakeSocket(b"120 Ready in a minute\r\n220 Ready\r\n")
        with patch(CREATE_CONNECTION, return_value=sock):
            channel = ControlChannel(SessionConfig(host="ftp.example.com"))
            assert channel.connect().code == 220

    def test_connect_refused(self):
        """Test connection failure due to socket error."""
        with patch(CREATE_CONNECTION, side_effect=ConnectionRefusedError("refused")):
            channel = ControlChannel(SessionConfig(host="ftp.example.com"))
            with pytest.raises(FTPConnectError) as exc_info:
                channel.connect()

        assert "ftp.example.com:21" in str(exc_info.value)
        assert channel.state == SessionState.DISCONNECTED

    def test_connect_timeout(self):
        """Test connection timeout."""
        with patch(CREATE_CONNECTION, side_effect=socket.timeout("timed out")):
            channel = ControlChannel(SessionConfig(host="ftp.example.com", connect_timeout=3))
            with pytest.raises(FTPConnectTimeoutError) as exc_info:
                channel.connect()

        assert isinstance(exc_info.value, FTPTimeoutError)
        assert exc_info.value.timeout == 3
        assert channel.state == SessionState.DISCONNECTED

    def test_negative_greeting_closes(self):
        """Test that a refused session is a connect error."""
        sock = FakeSocket(b"421 Too many users\r\n")
        with patch(CREATE_CONNECTION, return_value=sock):
            channel = ControlChannel(SessionConfig(host="ftp.example.com"))
            with pytest.raises(FTPConnectError, match="421"):
                channel.connect()

        assert sock.closed is True
        assert channel.state == SessionState.DISCONNECTED

    def test_connect_twice_raises(self):
        """Test that connecting a connected channel is refused."""
        channel, _ = connected(b"")
        with pytest.raises(FTPStateError):
            channel.connect()

    def test_explicit_tls_auth_refused(self):
        """Test that a server refusing AUTH TLS fails the connect."""
        config = SessionConfig(host="ftp.example.com", security=SecurityMode.EXPLICIT_TLS)
        sock = FakeSocket(GREETING + b"502 AUTH not supported\r\n")

        with patch(CREATE_CONNECTION, return_value=sock):
            channel = ControlChannel(config)
            with pytest.raises(FTPTLSError):
                channel.connect()

        assert sock.commands == ["AUTH TLS"]
        assert sock.closed is True
        assert channel.state == SessionState.DISCONNECTED

    def test_implicit_tls_handshake_failure(self):
        """Test that a failed handshake before the greeting is a TLS error."""
        config = SessionConfig(host="ftp.example.com", security="implicit-tls")
        context = MagicMock()
        context.wrap_socket.side_effect = ssl.SSLError("bad certificate")
        sock = FakeSocket(GREETING)

        with patch(CREATE_CONNECTION, return_value=sock):
            channel = ControlChannel(config, ssl_context=context)
            with pytest.raises(FTPTLSError):
                channel.connect()

        assert sock.sent == []
        assert channel.state == SessionState.DISCONNECTED


class TestLogin:
    """Tests for ControlChannel.login()."""

    def test_login_success(self):
        """Test USER/PASS then TYPE."""
        channel, sock = connected(LOGIN)

        reply = channel.login("test", "secret")

        assert reply.code == 230
        assert sock.commands == ["USER test", "PASS secret", "TYPE I"]
        assert channel.state == SessionState.AUTHENTICATED

    def test_login_without_password_step(self):
        """Test a server that accepts USER alone."""
        channel, sock = connected(b"230 No password needed\r\n200 Type set\r\n")
        channel.login("anonymous")
        assert sock.commands == ["USER anonymous", "TYPE I"]
        assert channel.is_authenticated is True

    def test_login_rejected(self):
        """Test that a rejected password is an authentication error."""
        channel, _ = connected(b"331 Password required\r\n530 Login incorrect\r\n")

        with pytest.raises(FTPAuthenticationError) as exc_info:
            channel.login("test", "wrong")

        assert exc_info.value.username == "test"
        assert exc_info.value.reply.code == 530
        assert channel.state == SessionState.CONNECTED

    def test_login_account_required(self):
        """Test that 332 is treated as a failed login."""
        channel, _ = connected(b"331 Password required\r\n332 Need account\r\n")
        with pytest.raises(FTPAuthenticationError):
            channel.login("test", "secret")

    def test_login_not_connected(self):
        """Test login without a connection."""
        channel = ControlChannel(SessionConfig(host="ftp.example.com"))
        with pytest.raises(FTPNotConnectedError):
            channel.login("test", "secret")

    def test_login_twice(self):
        """Test that logging in twice is refused."""
        channel, _ = authenticated()
        with pytest.raises(FTPStateError):
            channel.login("test", "secret")

    def test_login_uses_session_transfer_type(self):
        """Test that ASCII chosen before login is sent after it."""
        channel, sock = connected(LOGIN)
        channel.set_transfer_type(TransferType.ASCII)
        channel.login("test", "secret")
        assert sock.commands[-1] == "TYPE A"

    def test_password_not_logged(self, caplog):
        """Test that wire logging masks the password."""
        caplog.set_level(logging.DEBUG, logger="ftpsclient.control")
        authenticated()
        assert "PASS ******" in caplog.text
        assert "secret" not in caplog.text


class TestCommands:
    """Tests for command exchange on an authenticated channel."""

    def test_command_returns_reply(self):
        """Test a positive reply."""
        channel, sock = authenticated(b"200 NOOP ok\r\n")
        assert channel.command("NOOP").code == 200
        assert sock.commands[-1] == "NOOP"

    def test_command_negative_reply(self):
        """Test that an unexpected reply class raises FTPCommandError."""
        channel, _ = authenticated(b"550 No such file\r\n")

        with pytest.raises(FTPCommandError) as exc_info:
            channel.command("DELE", "missing.txt")

        assert exc_info.value.code == 550
        assert exc_info.value.command == "DELE missing.txt"
        assert channel.state == SessionState.AUTHENTICATED

    def test_command_expect_intermediate(self):
        """Test accepting 3xx replies."""
        channel, _ = authenticated(b"350 Ready for RNTO\r\n")
        assert channel.command("RNFR", "a", expect=(3,)).code == 350

    def test_line_break_rejected_before_sending(self):
        """Test that embedded CR/LF never reaches the wire."""
        channel, sock = authenticated()
        sent_before = list(sock.sent)

        with pytest.raises(FTPProtocolError):
            channel.send_command("CWD", "pub\r\nDELE important")

        assert sock.sent == sent_before
        assert channel.is_authenticated is True

    def test_command_refused_during_transfer(self):
        """Test that the channel will not interleave commands with a transfer."""
        channel, sock = authenticated(b"226 Transfer complete\r\n")
        sent_before = list(sock.sent)

        channel.begin_transfer()
        with pytest.raises(FTPStateError):
            channel.send_command("NOOP")
        assert sock.sent == sent_before

        assert channel.finish_transfer().code == 226
        assert channel.transfer_active is False

    def test_send_command_not_connected(self):
        """Test commands on a closed channel."""
        channel = ControlChannel(SessionConfig(host="ftp.example.com"))
        with pytest.raises(FTPNotConnectedError):
            channel.send_command("NOOP")

    def test_features(self):
        """Test FEAT parsing and caching."""
        channel, sock = authenticated(
            b"211-Features:\r\n MLST type*;size*;modify*;\r\n UTF8\r\n SIZE\r\n211 End\r\n"
        )

        assert channel.features() == {"MLST", "UTF8", "SIZE"}
        assert channel.features() == {"MLST", "UTF8", "SIZE"}
        assert sock.commands.count("FEAT") == 1

    def test_features_unsupported(self):
        """Test that a server without FEAT has no features."""
        channel, _ = authenticated(b"502 Command not implemented\r\n")
        assert channel.features() == set()

    def test_print_working_directory(self):
        """Test PWD parsing and cwd tracking."""
        channel, _ = authenticated(b'257 "/home/test" is the current directory\r\n')
        assert channel.print_working_directory() == "/home/test"
        assert channel.session.cwd == "/home/test"

    def test_print_working_directory_without_path(self):
        """Test a PWD reply without a quoted path."""
        channel, _ = authenticated(b"257 somewhere\r\n")
        with pytest.raises(FTPProtocolError):
            channel.print_working_directory()

    def test_make_directory_returns_server_path(self):
        """Test MKD reply parsing."""
        channel, _ = authenticated(b'257 "/pub/new" created\r\n')
        assert channel.make_directory("new") == "/pub/new"

    def test_change_directory(self):
        """Test CWD/CDUP and cwd tracking."""
        channel, sock = authenticated(b"250 OK\r\n250 OK\r\n")

        channel.change_directory("/pub")
        assert channel.session.cwd == "/pub"

        channel.change_directory("..")
        assert sock.commands[-2:] == ["CWD /pub", "CDUP"]
        assert channel.session.cwd is None
        assert channel.state == SessionState.AUTHENTICATED

    def test_set_transfer_type_after_login(self):
        """Test that TYPE is sent immediately once logged in."""
        channel, sock = authenticated(b"200 Type set to A\r\n")
        channel.set_transfer_type(TransferType.ASCII)
        assert sock.commands[-1] == "TYPE A"
        assert channel.session.transfer_type is TransferType.ASCII


class TestFaults:
    """Tests for socket faults on the control connection."""

    def test_send_fault_disconnects(self):
        """Test that a write error forces DISCONNECTED."""
        channel, sock = authenticated()
        sock.sendall = MagicMock(side_effect=BrokenPipeError("broken pipe"))

        with pytest.raises(FTPIOError):
            channel.send_command("NOOP")

        assert sock.closed is True
        assert channel.state == SessionState.DISCONNECTED

    def test_eof_disconnects(self):
        """Test that the server closing the connection forces DISCONNECTED."""
        channel, _ = authenticated()

        with pytest.raises(FTPIOError):
            channel.send_command("NOOP")

        assert channel.state == SessionState.DISCONNECTED

    def test_read_timeout_disconnects(self):
        """Test that an idle control connection times out."""
        stream = MagicMock()
        stream.readline.side_effect = [GREETING, socket.timeout("timed out")]
        sock = FakeSocket(stream=stream)

        with patch(CREATE_CONNECTION, return_value=sock):
            channel = ControlChannel(SessionConfig(host="ftp.example.com", read_timeout=2))
            channel.connect()

        with pytest.raises(FTPReadTimeoutError) as exc_info:
            channel.send_command("NOOP")

        assert isinstance(exc_info.value, FTPIOError)
        assert exc_info.value.timeout == 2
        assert channel.state == SessionState.DISCONNECTED

    def test_malformed_reply_disconnects(self):
        """Test that an unparseable reply abandons the connection."""
        channel, _ = authenticated(b"garbage\r\n")

        with pytest.raises(FTPProtocolError):
            channel.send_command("NOOP")

        assert channel.state == SessionState.DISCONNECTED


class TestDisconnect:
    """Tests for logout() and disconnect()."""

    def test_disconnect_sends_quit(self):
        """Test best-effort QUIT on an idle channel."""
        channel, sock = authenticated(b"221 Goodbye\r\n")
        channel.disconnect()

        assert sock.commands[-1] == "QUIT"
        assert sock.closed is True
        assert channel.state == SessionState.DISCONNECTED

    def test_disconnect_tolerates_dead_server(self):
        """Test that a failing QUIT still closes."""
        channel, sock = authenticated()
        channel.disconnect()
        assert sock.closed is True
        assert channel.state == SessionState.DISCONNECTED

    def test_disconnect_during_transfer_skips_quit(self):
        """Test that no command is written while a transfer owns the channel."""
        channel, sock = authenticated()
        sent_before = list(sock.sent)

        channel.begin_transfer()
        channel.disconnect()

        assert sock.sent == sent_before
        assert channel.transfer_active is False
        assert channel.state == SessionState.DISCONNECTED

    def test_disconnect_is_idempotent(self):
        """Test disconnecting twice."""
        channel, _ = authenticated(b"221 Goodbye\r\n")
        channel.disconnect()
        channel.disconnect()
        assert channel.state == SessionState.DISCONNECTED

    def test_logout(self):
        """Test QUIT and close."""
        channel, sock = authenticated(b"221 Goodbye\r\n")
        channel.logout()

        assert sock.commands[-1] == "QUIT"
        assert channel.state == SessionState.DISCONNECTED
        channel.logout()
