"""Transfer engine for ftpsclient.

Streams bytes between local binary streams and a negotiated data
connection, applying ASCII line-ending translation when asked, then
collects the completion reply from the control channel.
"""

import codecs
import logging
import socket
from typing import BinaryIO, Callable, Iterator, Optional, Tuple

from ftpsclient.ftp.control import ControlChannel
from ftpsclient.ftp.data import DataConnection
from ftpsclient.ftp.exceptions import (
    FTPCommandError,
    FTPError,
    FTPIOError,
    FTPLocalFileError,
    FTPProtocolError,
    FTPReadTimeoutError,
)
from ftpsclient.ftp.session import TransferType

logger = logging.getLogger("ftpsclient.transfer")

CRLF = b"\r\n"
LOCAL_NEWLINE = b"\n"

# Type alias for per-block progress callback
BlockCallback = Callable[[bytes], None]


class CRLFDecoder:
    """Incremental CRLF -> LF translation that survives split blocks."""

    def __init__(self):
        self._pending = b""

    def feed(self, block: bytes) -> bytes:
        data = self._pending + block
        if data.endswith(b"\r"):
            self._pending = b"\r"
            data = data[:-1]
        else:
            self._pending = b""
        return data.replace(CRLF, LOCAL_NEWLINE)

    def flush(self) -> bytes:
        data, self._pending = self._pending, b""
        return data


class TransferEngine:
    """Moves the bytes of one transfer over a data connection."""

    def __init__(self, control: ControlChannel):
        """
        Initialize the engine.

        Args:
            control: Control channel that owns the data connections
        """
        self._control = control

    @property
    def block_size(self) -> int:
        return self._control.config.block_size

    def upload(
        self,
        conn: DataConnection,
        source: BinaryIO,
        transfer_type: Optional[TransferType] = None,
        callback: Optional[BlockCallback] = None
    ) -> int:
        """
        Send a local stream to the server.

        Args:
            conn: Data connection opened for STOR/APPE
            source: Binary stream to read from
            transfer_type: Override of the session transfer type
            callback: Called with every block sent

        Returns:
            Number of bytes written to the data connection

        Raises:
            FTPIOError: On an I/O fault mid-transfer
            FTPCommandError: If the completion reply is negative
            FTPLocalFileError: If the source stream or callback fails
        """
        transfer_type = transfer_type or self._control.session.transfer_type
        if transfer_type is TransferType.ASCII:
            blocks = self._ascii_blocks(source)
        else:
            blocks = self._binary_blocks(source)

        def pump() -> int:
            sent = 0
            for block in blocks:
                conn.sendall(block)
                sent += len(block)
                if callback:
                    callback(block)
            return sent

        return self._run(conn, "upload", pump, local=(source, "read from"))

    def download(
        self,
        conn: DataConnection,
        sink: BinaryIO,
        transfer_type: Optional[TransferType] = None,
        callback: Optional[BlockCallback] = None
    ) -> int:
        """
        Receive a remote file into a local stream.

        Args:
            conn: Data connection opened for RETR
            sink: Binary stream to write to
            transfer_type: Override of the session transfer type
            callback: Called with every block received

        Returns:
            Number of bytes read from the data connection
        """
        transfer_type = transfer_type or self._control.session.transfer_type
        decoder = CRLFDecoder() if transfer_type is TransferType.ASCII else None

        def pump() -> int:
            received = 0
            for block in self._recv_blocks(conn):
                received += len(block)
                sink.write(decoder.feed(block) if decoder else block)
                if callback:
                    callback(block)
            if decoder:
                sink.write(decoder.flush())
            return received

        return self._run(conn, "download", pump, local=(sink, "write to"))

    def list(self, conn: DataConnection) -> str:
        """Read a whole directory listing as text."""
        def pump() -> str:
            raw = b"".join(self._recv_blocks(conn))
            return raw.decode(self._control.config.encoding, errors="replace")

        return self._run(conn, "listing", pump)

    def stream_lines(self, conn: DataConnection) -> Iterator[str]:
        """
        Yield listing lines as they arrive.

        The completion reply is read once the generator is exhausted; closing
        the generator early aborts the transfer.
        """
        pending = ""
        try:
            decoder = codecs.getincrementaldecoder(self._control.config.encoding)(errors="replace")
            for block in self._recv_blocks(conn):
                pending += decoder.decode(block)
                *lines, pending = pending.split("\n")
                for line in lines:
                    yield line.rstrip("\r")
            pending += decoder.decode(b"", final=True)
            if pending:
                yield pending.rstrip("\r")
        except socket.timeout as e:
            self._abort(conn)
            raise FTPReadTimeoutError("listing data transfer", conn.timeout, e)
        except OSError as e:
            self._abort(conn)
            raise FTPIOError("listing data transfer", e)
        except GeneratorExit:
            self._abort(conn)
            raise
        except Exception as e:
            self._abort(conn)
            raise FTPProtocolError(f"cannot decode listing: {e}")
        self._complete(conn, "listing")

    # --- internals

    def _run(self, conn: DataConnection, operation: str, pump: Callable,
             local: Optional[Tuple[object, str]] = None):
        """
        Run a pump, then collect the completion reply.

        Whatever the pump raises, the data connection is closed and the
        control channel released before the error leaves as an FTPError.
        ``local`` names the caller's stream and what was being done to it,
        used to report faults that are not socket errors.
        """
        timeout = conn.timeout
        try:
            result = pump()
        except socket.timeout as e:
            self._abort(conn)
            raise FTPReadTimeoutError(f"{operation} data transfer", timeout, e)
        except OSError as e:
            self._abort(conn)
            raise FTPIOError(f"{operation} data transfer", e)
        except FTPError:
            self._abort(conn)
            raise
        except Exception as e:
            self._abort(conn)
            stream, action = local or (None, "use")
            raise FTPLocalFileError(getattr(stream, "name", "<stream>"), action, e)
        self._complete(conn, operation)
        return result

    def _complete(self, conn: DataConnection, operation: str) -> None:
        conn.close()
        reply = self._control.finish_transfer()
        if not reply.is_completion:
            raise FTPCommandError(operation, reply)
        logger.debug(f"{operation} complete: {reply}")

    def _abort(self, conn: DataConnection) -> None:
        conn.close()
        try:
            reply = self._control.finish_transfer()
            logger.debug(f"Server reply after aborted transfer: {reply}")
        except FTPError as e:
            logger.debug(f"No reply after aborted transfer: {e}")

    def _recv_blocks(self, conn: DataConnection) -> Iterator[bytes]:
        while True:
            block = conn.recv(self.block_size)
            if not block:
                break
            yield block

    def _binary_blocks(self, source: BinaryIO) -> Iterator[bytes]:
        while True:
            block = source.read(self.block_size)
            if not block:
                break
            yield block

    def _ascii_blocks(self, source: BinaryIO) -> Iterator[bytes]:
        buffer = bytearray()
        carry = b""
        while True:
            chunk = source.readline(self.block_size)
            if not chunk:
                buffer += carry
                break
            line, carry = carry + chunk, b""
            if line.endswith(CRLF):
                pass
            elif line.endswith(LOCAL_NEWLINE):
                line = line[:-1] + CRLF
            elif line.endswith(b"\r"):
                # may be the first half of a CRLF split by the size limit
                carry = b"\r"
                line = line[:-1]
            buffer += line
            if len(buffer) >= self.block_size:
                yield bytes(buffer)
                buffer.clear()
        if buffer:
            yield bytes(buffer)
