"""Data channel negotiation for ftpsclient.

Opens the per-transfer data connection in passive or active mode,
issues the transfer command over the control channel and secures the
resulting socket for FTPS sessions.
"""

import logging
import re
import socket
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ftpsclient.ftp.control import ControlChannel, describe_command
from ftpsclient.ftp.exceptions import (
    DataErrorReason,
    FTPCommandError,
    FTPDataError,
    FTPDataTimeoutError,
    FTPError,
    FTPNotConnectedError,
)
from ftpsclient.ftp.reply import Reply
from ftpsclient.ftp.session import DataMode

logger = logging.getLogger("ftpsclient.data")

PASV_ADDRESS = re.compile(r"(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3})")


class Direction(Enum):
    """Which way the bytes flow on a data connection."""
    UPLOAD = "upload"
    DOWNLOAD = "download"


@dataclass(frozen=True)
class DataConnectionDescriptor:
    """Negotiated parameters of one data connection."""
    mode: DataMode
    address: str
    port: int
    tls: bool


def parse_pasv_reply(text: str) -> Tuple[str, int]:
    """
    Parse the address of a 227 reply.

    Args:
        text: Reply text, e.g. "Entering Passive Mode (127,0,0,1,195,80)."

    Returns:
        Tuple of (host, port)

    Raises:
        FTPDataError: If no valid address is found
    """
    match = PASV_ADDRESS.search(text)
    if not match:
        raise FTPDataError(DataErrorReason.UNPARSEABLE, f"no address in PASV reply {text!r}")
    numbers = [int(n) for n in match.groups()]
    if any(n > 255 for n in numbers):
        raise FTPDataError(DataErrorReason.UNPARSEABLE, f"invalid address in PASV reply {text!r}")
    host = ".".join(str(n) for n in numbers[:4])
    port = (numbers[4] << 8) + numbers[5]
    return host, port


def parse_epsv_reply(text: str) -> int:
    """
    Parse the port of a 229 reply.

    Args:
        text: Reply text, e.g. "Entering Extended Passive Mode (|||6446|)"

    Returns:
        Port number

    Raises:
        FTPDataError: If the reply does not carry a port
    """
    left = text.find("(")
    right = text.find(")", left + 1)
    if left < 0 or right < 0 or right - left < 2:
        raise FTPDataError(DataErrorReason.UNPARSEABLE, f"no port in EPSV reply {text!r}")
    body = text[left + 1:right]
    delimiter = body[0]
    parts = body.split(delimiter)
    if body[-1] != delimiter or len(parts) != 5 or not parts[3].isdigit():
        raise FTPDataError(DataErrorReason.UNPARSEABLE, f"malformed EPSV reply {text!r}")
    port = int(parts[3])
    if not 1 <= port <= 65535:
        raise FTPDataError(DataErrorReason.UNPARSEABLE, f"invalid port in EPSV reply {text!r}")
    return port


class DataConnection:
    """A live data connection: socket plus its descriptor."""

    def __init__(
        self,
        sock: socket.socket,
        descriptor: DataConnectionDescriptor,
        direction: Direction,
        negotiator: "DataChannelNegotiator" = None
    ):
        self._sock = sock
        self._negotiator = negotiator
        self.descriptor = descriptor
        self.direction = direction

    @property
    def closed(self) -> bool:
        return self._sock is None

    @property
    def timeout(self) -> Optional[float]:
        """Idle-read timeout of the socket."""
        return self._sock.gettimeout() if self._sock is not None else None

    def recv(self, size: int) -> bytes:
        return self._sock.recv(size)

    def sendall(self, data: bytes) -> None:
        self._sock.sendall(data)

    def close(self) -> None:
        """Close the socket (TLS close-notify first) and free the session's slot."""
        if self._sock is None:
            return
        sock, self._sock = self._sock, None
        try:
            if isinstance(sock, ssl.SSLSocket):
                try:
                    sock.unwrap()
                except (ssl.SSLError, OSError) as e:
                    logger.debug(f"TLS shutdown of data connection failed: {e}")
        finally:
            sock.close()
            if self._negotiator is not None:
                self._negotiator.release(self)
        logger.debug(f"Data connection to {self.descriptor.address}:{self.descriptor.port} closed")


class DataChannelNegotiator:
    """Opens at most one data connection at a time for a control channel."""

    def __init__(self, control: ControlChannel):
        """
        Initialize the negotiator.

        Args:
            control: Control channel of the owning session
        """
        self._control = control
        self._current: Optional[DataConnection] = None

    @property
    def current(self) -> Optional[DataConnection]:
        """The live data connection, if any."""
        return self._current

    @property
    def is_busy(self) -> bool:
        return self._current is not None

    def open(self, direction: Direction, verb: str, *args: str) -> DataConnection:
        """
        Negotiate a data connection and start the transfer command on it.

        Args:
            direction: Upload or download
            verb: Transfer command (RETR, STOR, LIST, ...)
            *args: Command arguments

        Returns:
            Live DataConnection; the control channel is marked busy

        Raises:
            FTPDataError: If busy, or negotiation fails
            FTPNotConnectedError: If the session is not authenticated
            FTPCommandError: If the server rejects the transfer command
        """
        if self._current is not None:
            raise FTPDataError(
                DataErrorReason.BUSY,
                f"{self._current.direction.value} on "
                f"{self._current.descriptor.address}:{self._current.descriptor.port} still open",
            )
        if not self._control.is_authenticated:
            raise FTPNotConnectedError(f"{verb} data connection", required="logged in")

        if self._control.session.data_mode is DataMode.PASSIVE:
            conn = self._open_passive(direction, verb, args)
        else:
            conn = self._open_active(direction, verb, args)

        self._current = conn
        self._control.begin_transfer()
        logger.debug(
            f"Data connection ready: {conn.descriptor.mode.value} "
            f"{conn.descriptor.address}:{conn.descriptor.port} tls={conn.descriptor.tls}"
        )
        return conn

    def release(self, conn: DataConnection) -> None:
        """Forget a closed connection."""
        if self._current is conn:
            self._current = None

    def abort(self) -> None:
        """Close the live data connection, if any."""
        if self._current is not None:
            logger.info("Aborting open data connection")
            self._current.close()

    # --- passive

    def _open_passive(self, direction: Direction, verb: str, args: tuple) -> DataConnection:
        config = self._control.config
        host, port = self._request_passive()

        try:
            sock = socket.create_connection((host, port), timeout=config.data_connect_timeout)
        except socket.timeout as e:
            raise FTPDataTimeoutError(f"passive connect to {host}:{port}",
                                      config.data_connect_timeout, e)
        except OSError as e:
            raise FTPDataError(DataErrorReason.CONNECT_FAILED, f"{host}:{port}", e)

        try:
            self._start_transfer(verb, args)
        except FTPError:
            sock.close()
            raise

        try:
            sock.settimeout(config.read_timeout)
            sock = self._secure(sock)
        except FTPError:
            sock.close()
            self._settle_transfer_reply()
            raise

        descriptor = DataConnectionDescriptor(
            DataMode.PASSIVE, host, port, self._control.session.security.uses_tls
        )
        return DataConnection(sock, descriptor, direction, self)

    def _request_passive(self) -> Tuple[str, int]:
        peer_host = self._control.peer_address[0]

        if self._control.family == socket.AF_INET:
            reply = self._control.send_command("PASV")
            if reply.code in (500, 502):
                reply = self._control.send_command("EPSV")
        else:
            reply = self._control.send_command("EPSV")

        if reply.is_negative:
            raise FTPCommandError("passive mode request", reply)

        if reply.code == 227:
            host, port = parse_pasv_reply(reply.message)
            if not self._control.config.trust_pasv_address and host != peer_host:
                logger.debug(f"Ignoring PASV address {host}, using {peer_host}")
                host = peer_host
            return host, port
        if reply.code == 229:
            return peer_host, parse_epsv_reply(reply.message)

        raise FTPDataError(DataErrorReason.UNPARSEABLE, f"unexpected passive reply {reply}")

    # --- active

    def _open_active(self, direction: Direction, verb: str, args: tuple) -> DataConnection:
        config = self._control.config
        family = self._control.family
        local_host = self._control.local_address[0]

        try:
            listener = socket.create_server((local_host, 0), family=family, backlog=1)
        except OSError as e:
            raise FTPDataError(DataErrorReason.CONNECT_FAILED,
                               f"cannot listen on {local_host}", e)

        with listener:
            port = listener.getsockname()[1]
            self._advertise(family, local_host, port)
            self._start_transfer(verb, args)

            try:
                sock, peer = self._accept(listener, config.accept_timeout)
            except FTPError:
                self._settle_transfer_reply()
                raise

        logger.debug(f"Accepted active data connection from {peer[0]}:{peer[1]}")
        try:
            sock.settimeout(config.read_timeout)
            sock = self._secure(sock)
        except FTPError:
            sock.close()
            self._settle_transfer_reply()
            raise

        descriptor = DataConnectionDescriptor(
            DataMode.ACTIVE, local_host, port, self._control.session.security.uses_tls
        )
        return DataConnection(sock, descriptor, direction, self)

    @staticmethod
    def _accept(listener: socket.socket, timeout: float) -> Tuple[socket.socket, Tuple]:
        listener.settimeout(timeout)
        try:
            return listener.accept()
        except socket.timeout as e:
            raise FTPDataTimeoutError("active accept", timeout, e)
        except OSError as e:
            raise FTPDataError(DataErrorReason.CONNECT_FAILED, "active accept failed", e)

    def _advertise(self, family: int, host: str, port: int) -> None:
        if family == socket.AF_INET:
            fields = host.split(".") + [str(port >> 8), str(port & 0xFF)]
            self._control.command("PORT", ",".join(fields))
        else:
            self._control.command("EPRT", f"|2|{host}|{port}|")

    # --- shared

    def _start_transfer(self, verb: str, args: tuple) -> Reply:
        reply = self._control.send_command(verb, *args)
        if reply.is_completion:
            reply = self._control.read_reply()
        if not reply.is_preliminary:
            raise FTPCommandError(describe_command(verb, *args), reply)
        return reply

    def _settle_transfer_reply(self) -> None:
        """
        Consume the final reply of a transfer command whose data connection failed.

        The command already drew its 1xx, so the server still owes a reply
        (typically 425/426). If it does not arrive within the read timeout
        the control connection is dropped rather than left out of step.
        """
        if not self._control.is_connected:
            return
        try:
            reply = self._control.read_reply()
        except FTPError as e:
            logger.warning(f"No reply after failed data connection, session dropped: {e}")
            return
        logger.debug(f"Server reply after failed data connection: {reply}")

    def _secure(self, sock: socket.socket) -> socket.socket:
        if not self._control.session.security.uses_tls:
            return sock
        return self._control.wrap_data_socket(sock)
