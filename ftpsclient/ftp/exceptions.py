"""FTP-specific exceptions for ftpsclient.

Custom exception hierarchy for the FTP/FTPS core. Every fault the
control channel, data channel negotiator or transfer engine can hit is
raised as one of these; the client facade turns them into
OperationResult failures.
"""

from enum import Enum
from typing import Optional


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPTimeoutError(FTPError):
    """Common base for every bounded wait that expired.

    Concrete timeouts also derive from the error class of the phase they
    happened in (connect, data channel, read).
    """

    timeout: Optional[float] = None


class FTPConnectError(FTPError):
    """Failed to establish the control connection."""

    def __init__(self, host: str, port: int, original_error: Exception = None,
                 reason: str = None):
        self.host = host
        self.port = port
        message = f"Failed to connect to {host}:{port}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, original_error)


class FTPConnectTimeoutError(FTPConnectError, FTPTimeoutError):
    """Control connection was not established within the connect timeout."""

    def __init__(self, host: str, port: int, timeout: float,
                 original_error: Exception = None):
        super().__init__(host, port, original_error,
                         reason=f"timed out after {timeout} seconds")
        self.timeout = timeout


class FTPTLSError(FTPError):
    """TLS handshake failed or the peer certificate was rejected."""

    def __init__(self, channel: str, original_error: Exception = None):
        self.channel = channel
        message = f"TLS negotiation failed on {channel} channel"
        super().__init__(message, original_error)


class FTPAuthenticationError(FTPError):
    """FTP authentication (login) failed."""

    def __init__(self, username: str, original_error: Exception = None,
                 reply=None):
        self.username = username
        self.reply = reply
        message = f"Authentication failed for user '{username}'"
        if reply is not None:
            message = f"{message}: {reply}"
        super().__init__(message, original_error)


class DataErrorReason(Enum):
    """Why a data connection could not be provided."""
    UNPARSEABLE = "unparseable"
    TIMEOUT = "timeout"
    BUSY = "busy"
    CONNECT_FAILED = "connect_failed"


class FTPDataError(FTPError):
    """Data channel negotiation failed."""

    def __init__(self, reason: DataErrorReason, detail: str,
                 original_error: Exception = None):
        self.reason = reason
        self.detail = detail
        message = f"Data connection error ({reason.value}): {detail}"
        super().__init__(message, original_error)


class FTPDataTimeoutError(FTPDataError, FTPTimeoutError):
    """Passive connect or active accept did not complete in time."""

    def __init__(self, operation: str, timeout: float,
                 original_error: Exception = None):
        self.operation = operation
        super().__init__(
            DataErrorReason.TIMEOUT,
            f"{operation} timed out after {timeout} seconds",
            original_error,
        )
        self.timeout = timeout


class FTPIOError(FTPError):
    """Socket fault on the control or data connection."""

    def __init__(self, operation: str, original_error: Exception = None):
        self.operation = operation
        message = f"I/O error during {operation}"
        super().__init__(message, original_error)


class FTPReadTimeoutError(FTPIOError, FTPTimeoutError):
    """No bytes arrived on a socket within its idle-read timeout."""

    def __init__(self, operation: str, timeout: float,
                 original_error: Exception = None):
        super().__init__(operation, original_error)
        self.message = f"{operation} timed out after {timeout} seconds"
        self.timeout = timeout


class FTPProtocolError(FTPError):
    """Malformed or unexpected reply from the server."""

    def __init__(self, detail: str, line: str = None):
        self.line = line
        message = f"Protocol error: {detail}"
        if line is not None:
            message = f"{message} ({line!r})"
        super().__init__(message)


class FTPCommandError(FTPError):
    """Server answered a well-formed command with a negative reply."""

    def __init__(self, command: str, reply):
        self.command = command
        self.reply = reply
        message = f"{command} failed: {reply}"
        super().__init__(message)

    @property
    def code(self) -> int:
        """Status code of the negative reply."""
        return self.reply.code


class FTPStateError(FTPError):
    """Operation is not allowed in the current session state."""


class FTPNotConnectedError(FTPStateError):
    """Operation attempted without an active (or authenticated) session."""

    def __init__(self, operation: str = "Operation", required: str = "connected"):
        self.operation = operation
        message = f"{operation} requires a {required} session"
        super().__init__(message)


class FTPLocalFileError(FTPError):
    """Local file could not be opened, or would be overwritten."""

    def __init__(self, path, operation: str, original_error: Exception = None):
        self.path = path
        self.operation = operation
        message = f"Cannot {operation} local file '{path}'"
        super().__init__(message, original_error)
