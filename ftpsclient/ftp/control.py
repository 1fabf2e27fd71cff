"""Control connection management for ftpsclient.

Provides the ControlChannel class: it owns the command/reply socket,
upgrades it to TLS for FTPS sessions, enforces strict request/reply
alternation and drives the session state machine.
"""

import logging
import re
import socket
import ssl
from typing import Optional, Set, Tuple

from ftpsclient.ftp.exceptions import (
    FTPAuthenticationError,
    FTPCommandError,
    FTPConnectError,
    FTPConnectTimeoutError,
    FTPError,
    FTPIOError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPReadTimeoutError,
    FTPStateError,
    FTPTLSError,
)
from ftpsclient.ftp.reply import CRLF, Reply, read_reply
from ftpsclient.ftp.session import (
    DataMode,
    SecurityMode,
    Session,
    SessionConfig,
    SessionState,
    TransferType,
)

logger = logging.getLogger("ftpsclient.control")

# Quoted pathname in 257 replies; embedded quotes are doubled
PATHNAME_257 = re.compile(r'"((?:[^"]|"")*)"')


def make_ssl_context(config: SessionConfig) -> ssl.SSLContext:
    """
    Build the client SSL context for a session.

    Args:
        config: Session configuration

    Returns:
        SSLContext shared by the control and data connections
    """
    context = ssl.create_default_context(cafile=config.ca_file)
    if not config.verify_certificate:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def describe_command(verb: str, *args: str) -> str:
    """Command text safe for logs and error messages."""
    if verb.upper() == "PASS" and args:
        return "PASS " + "*" * len(args[0])
    return " ".join((verb,) + args)


def parse_257(reply: Reply) -> Optional[str]:
    """Extract the pathname from a 257 (PWD/MKD) reply."""
    match = PATHNAME_257.search(reply.lines[0] if reply.lines else "")
    if not match:
        return None
    return match.group(1).replace('""', '"')


class ControlChannel:
    """Single persistent command/reply connection of one session."""

    def __init__(self, config: SessionConfig, ssl_context: Optional[ssl.SSLContext] = None):
        """
        Initialize the control channel.

        Args:
            config: Session configuration
            ssl_context: Optional pre-built context for FTPS sessions
        """
        self._config = config
        self._session = Session.from_config(config)
        self._ssl_context = ssl_context
        self._sock: Optional[socket.socket] = None
        self._file = None
        self._transfer_active = False
        self._features: Optional[Set[str]] = None
        self.welcome: Optional[Reply] = None

    @property
    def config(self) -> SessionConfig:
        """Session configuration."""
        return self._config

    @property
    def session(self) -> Session:
        """Session record mutated by this channel."""
        return self._session

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._session.state

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    @property
    def transfer_active(self) -> bool:
        """True while a data transfer owns the channel."""
        return self._transfer_active

    @property
    def ssl_context(self) -> ssl.SSLContext:
        """SSL context, created on first use."""
        if self._ssl_context is None:
            self._ssl_context = make_ssl_context(self._config)
        return self._ssl_context

    @property
    def tls_session(self) -> Optional[ssl.SSLSession]:
        """Negotiated TLS session of the control connection, for reuse."""
        if isinstance(self._sock, ssl.SSLSocket):
            return self._sock.session
        return None

    @property
    def family(self) -> int:
        """Address family of the control connection."""
        self._require_socket("Address lookup")
        return self._sock.family

    @property
    def peer_address(self) -> Tuple:
        """Remote address of the control connection."""
        self._require_socket("Address lookup")
        return self._sock.getpeername()

    @property
    def local_address(self) -> Tuple:
        """Local address of the control connection."""
        self._require_socket("Address lookup")
        return self._sock.getsockname()

    # --- connection lifecycle

    def connect(self) -> Reply:
        """
        Open the control connection and read the server greeting.

        Returns:
            The greeting reply

        Raises:
            FTPStateError: If already connected
            FTPConnectError: If the connection is refused or the greeting negative
            FTPConnectTimeoutError: If the connection times out
            FTPTLSError: If TLS negotiation fails
        """
        if self._session.is_connected:
            raise FTPStateError(
                f"Already connected to {self._session.host}:{self._session.port}"
            )

        host, port = self._config.host, self._config.port
        logger.info(f"Connecting to {host}:{port} ({self._config.security.value})")

        try:
            sock = socket.create_connection((host, port), timeout=self._config.connect_timeout)
        except socket.timeout as e:
            raise FTPConnectTimeoutError(host, port, self._config.connect_timeout, e)
        except OSError as e:
            raise FTPConnectError(host, port, e)

        sock.settimeout(self._config.read_timeout)
        self._attach(sock)

        try:
            if self._config.security is SecurityMode.IMPLICIT_TLS:
                self._secure()

            greeting = self._read()
            while greeting.is_preliminary:
                greeting = self._read()
            if not greeting.is_completion:
                raise FTPConnectError(host, port, reason=str(greeting))

            if self._config.security is SecurityMode.EXPLICIT_TLS:
                reply = self._exchange("AUTH", "TLS")
                if reply.code != 234:
                    raise FTPTLSError("control", FTPCommandError("AUTH TLS", reply))
                self._secure()
        except FTPError:
            self._close()
            raise

        self.welcome = greeting
        self._session.state = SessionState.CONNECTED
        logger.info(f"Connected to {host}:{port}")
        return greeting

    def login(self, username: str, password: str = "") -> Reply:
        """
        Authenticate the session.

        Args:
            username: FTP username
            password: FTP password

        Returns:
            The final (230) login reply

        Raises:
            FTPNotConnectedError: If not connected
            FTPStateError: If already logged in
            FTPAuthenticationError: If the server rejects the credentials
        """
        if not self._session.is_connected:
            raise FTPNotConnectedError("Login")
        if self._session.is_authenticated:
            raise FTPStateError("Already logged in")

        reply = self.send_command("USER", username)
        if reply.code == 331:
            reply = self.send_command("PASS", password)
        if not reply.is_completion:
            raise FTPAuthenticationError(username, reply=reply)

        if self._config.security.uses_tls:
            try:
                self.command("PBSZ", "0")
                self.command("PROT", "P")
            except FTPCommandError as e:
                raise FTPTLSError("data", e)

        self._session.state = SessionState.AUTHENTICATED
        logger.info(f"Logged in as '{username}'")

        self.command("TYPE", self._session.transfer_type.value)
        return reply

    def logout(self) -> None:
        """Send QUIT and close the connection."""
        if not self._session.is_connected:
            return
        try:
            self.command("QUIT")
        finally:
            self._close()

    def disconnect(self) -> None:
        """Close the connection, saying goodbye when the channel is idle."""
        if self._sock is None:
            self._session.reset()
            return
        if not self._transfer_active:
            try:
                self._exchange("QUIT")
            except FTPError as e:
                logger.debug(f"QUIT failed during disconnect: {e}")
        self._close()
        logger.info(f"Disconnected from {self._session.host}:{self._session.port}")

    # --- commands

    def send_command(self, verb: str, *args: str) -> Reply:
        """
        Send one command and wait for its reply.

        Args:
            verb: Command verb
            *args: Command arguments

        Returns:
            The server reply, whatever its code

        Raises:
            FTPNotConnectedError: If not connected
            FTPStateError: If a data transfer is in progress
            FTPIOError: On a socket fault (session becomes disconnected)
        """
        if self._sock is None or not self._session.is_connected:
            raise FTPNotConnectedError(verb)
        if self._transfer_active:
            raise FTPStateError(f"{verb} refused: data transfer in progress")
        return self._exchange(verb, *args)

    def command(self, verb: str, *args: str, expect: Tuple[int, ...] = (2,)) -> Reply:
        """
        Send a command and require a reply of the expected class.

        Args:
            verb: Command verb
            *args: Command arguments
            expect: Accepted first digits of the status code

        Returns:
            The server reply

        Raises:
            FTPCommandError: If the reply class is not expected
        """
        reply = self.send_command(verb, *args)
        if reply.code // 100 not in expect:
            raise FTPCommandError(describe_command(verb, *args), reply)
        return reply

    def read_reply(self) -> Reply:
        """Read a reply without sending anything."""
        self._require_socket("Reading a reply")
        return self._read()

    def begin_transfer(self) -> None:
        """Mark the channel as owned by a data transfer."""
        self._transfer_active = True

    def finish_transfer(self) -> Reply:
        """Read the completion reply of the running transfer and release the channel."""
        try:
            return self.read_reply()
        finally:
            self._transfer_active = False

    def features(self) -> Set[str]:
        """
        Feature names advertised by FEAT, cached per connection.

        Returns:
            Upper-cased feature names (empty if FEAT is not supported)
        """
        if self._features is None:
            reply = self.send_command("FEAT")
            if reply.is_completion:
                self._features = {
                    line.split()[0].upper()
                    for line in reply.lines[1:-1]
                    if line.strip()
                }
            else:
                self._features = set()
        return self._features

    def change_directory(self, path: str) -> None:
        """Change the remote working directory."""
        if path == "..":
            self.command("CDUP")
        else:
            self.command("CWD", path)
        self._session.cwd = path if path.startswith("/") else None

    def make_directory(self, path: str) -> str:
        """Create a remote directory and return its server-reported path."""
        reply = self.command("MKD", path)
        return parse_257(reply) or path

    def print_working_directory(self) -> str:
        """Return (and remember) the remote working directory."""
        reply = self.command("PWD")
        path = parse_257(reply)
        if path is None:
            raise FTPProtocolError("PWD reply carries no quoted path", str(reply))
        self._session.cwd = path
        return path

    def set_transfer_type(self, transfer_type: TransferType) -> None:
        """Switch ASCII/BINARY; sent now if logged in, else at login."""
        if self._session.is_authenticated:
            self.command("TYPE", transfer_type.value)
        self._session.transfer_type = transfer_type

    def set_data_mode(self, mode: DataMode) -> None:
        """Choose active or passive data connections."""
        self._session.data_mode = mode

    def wrap_data_socket(self, sock: socket.socket) -> ssl.SSLSocket:
        """
        Wrap a data socket in TLS, resuming the control connection's session.

        Raises:
            FTPTLSError: If the handshake fails
        """
        try:
            return self.ssl_context.wrap_socket(
                sock,
                server_hostname=self._config.host,
                session=self.tls_session,
            )
        except ssl.SSLError as e:
            raise FTPTLSError("data", e)
        except OSError as e:
            raise FTPIOError("data channel TLS handshake", e)

    # --- internals

    def _require_socket(self, operation: str) -> None:
        if self._sock is None:
            raise FTPNotConnectedError(operation)

    def _attach(self, sock: socket.socket) -> None:
        if self._file is not None:
            self._file.close()
        self._sock = sock
        self._file = sock.makefile("rb")

    def _secure(self) -> None:
        try:
            sock = self.ssl_context.wrap_socket(self._sock, server_hostname=self._config.host)
        except ssl.SSLError as e:
            raise FTPTLSError("control", e)
        except socket.timeout as e:
            raise FTPReadTimeoutError("TLS handshake", self._config.read_timeout, e)
        except OSError as e:
            raise FTPIOError("TLS handshake", e)
        self._attach(sock)
        logger.debug(f"Control connection secured ({sock.version()})")

    def _exchange(self, verb: str, *args: str) -> Reply:
        line = " ".join((verb,) + args)
        if "\r" in line or "\n" in line:
            raise FTPProtocolError("line break inside command")
        logger.debug(f"-> {describe_command(verb, *args)}")
        try:
            self._sock.sendall((line + CRLF).encode(self._config.encoding))
        except socket.timeout as e:
            self._abandon()
            raise FTPReadTimeoutError(f"sending {verb}", self._config.read_timeout, e)
        except OSError as e:
            self._abandon()
            raise FTPIOError(f"sending {verb}", e)
        return self._read()

    def _read(self) -> Reply:
        try:
            reply = read_reply(self._file.readline, self._config.encoding)
        except socket.timeout as e:
            self._abandon()
            raise FTPReadTimeoutError("reply read", self._config.read_timeout, e)
        except OSError as e:
            self._abandon()
            raise FTPIOError("reply read", e)
        except (FTPIOError, FTPProtocolError):
            # the stream cannot be resynchronized
            self._abandon()
            raise
        logger.debug(f"<- {reply.code} {reply.message}")
        return reply

    def _abandon(self) -> None:
        logger.warning(f"Control connection to {self._session.host}:{self._session.port} lost")
        self._close()

    def _close(self) -> None:
        for resource in (self._file, self._sock):
            if resource is not None:
                try:
                    resource.close()
                except OSError as e:
                    logger.debug(f"Error closing control connection: {e}")
        self._file = None
        self._sock = None
        self._transfer_active = False
        self._features = None
        self._session.reset()
