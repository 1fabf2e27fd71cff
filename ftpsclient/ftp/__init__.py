"""FTP/FTPS protocol core for ftpsclient.

This module handles all protocol functionality:
- ControlChannel: command/reply connection and session state machine
- DataChannelNegotiator: passive/active data connections, plain or TLS
- TransferEngine: byte streaming with ASCII/BINARY framing
- ListingParser: Unix, MLSD and DOS directory listings
- FtpClient: public operation surface returning OperationResult
- Exceptions: FTP-specific error types
"""

from ftpsclient.ftp.client import FtpClient
from ftpsclient.ftp.listing import FileEntry, FileType, ListingResult
from ftpsclient.ftp.result import OperationResult
from ftpsclient.ftp.session import DataMode, SecurityMode, SessionConfig, SessionState, TransferType

__all__ = [
    "DataMode",
    "FileEntry",
    "FileType",
    "FtpClient",
    "ListingResult",
    "OperationResult",
    "SecurityMode",
    "SessionConfig",
    "SessionState",
    "TransferType",
]
