"""FTP/FTPS client facade for ftpsclient.

FtpClient ties the control channel, data channel negotiator, transfer
engine and listing parser together behind the public operation surface
(connect, login, put, get, ls, ...). Plain and TLS sessions are the same
type, selected by SessionConfig.security.
"""

import functools
import logging
import ssl
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Callable, Optional

from ftpsclient.ftp.control import ControlChannel
from ftpsclient.ftp.data import DataChannelNegotiator, Direction
from ftpsclient.ftp.exceptions import (
    FTPCommandError,
    FTPError,
    FTPLocalFileError,
    FTPProtocolError,
)
from ftpsclient.ftp.listing import EntryFilter, ListingParser, ListingResult
from ftpsclient.ftp.result import OperationResult
from ftpsclient.ftp.session import DataMode, Session, SessionConfig, SessionState, TransferType
from ftpsclient.ftp.transfer import BlockCallback, TransferEngine

logger = logging.getLogger("ftpsclient.client")


def operation(name: str) -> Callable:
    """Run a client method, turning FTPError into a failed OperationResult."""
    def decorator(method: Callable) -> Callable:
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs) -> OperationResult:
            try:
                value = method(self, *args, **kwargs)
            except FTPError as e:
                logger.warning(f"{name} on {self.host} failed: {e}")
                return OperationResult.failure(name, e)
            return OperationResult.success(name, value)
        return wrapper
    return decorator


class FtpClient:
    """
    FTP/FTPS client for one server.

    Usage:
        config = SessionConfig(host="localhost", port=2100,
                               security=SecurityMode.IMPLICIT_TLS)
        with FtpClient(config) as client:
            client.login("test", "test").unwrap()
            for entry in client.ls("/").unwrap():
                print(entry.name)
    """

    def __init__(self, config: SessionConfig, ssl_context: Optional[ssl.SSLContext] = None):
        """
        Initialize the client.

        Args:
            config: Session configuration
            ssl_context: Optional SSL context for FTPS sessions
        """
        self._config = config
        self._control = ControlChannel(config, ssl_context=ssl_context)
        self._data = DataChannelNegotiator(self._control)
        self._engine = TransferEngine(self._control)
        self._parser = ListingParser()

    def __repr__(self) -> str:
        kind = "FtpsClient" if self._config.security.uses_tls else "FtpClient"
        return f"[{kind} @{self.host}]"

    def __enter__(self) -> "FtpClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    @property
    def host(self) -> str:
        return self._config.host

    @property
    def port(self) -> int:
        return self._config.port

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def session(self) -> Session:
        """Live session record."""
        return self._control.session

    @property
    def state(self) -> SessionState:
        return self._control.state

    @property
    def is_connected(self) -> bool:
        return self._control.is_connected

    @property
    def welcome(self) -> Optional[str]:
        """Server greeting text of the current connection."""
        reply = self._control.welcome
        return reply.message if reply is not None else None

    # --- session

    @operation("connect")
    def connect(self) -> None:
        """Connect to the server."""
        self._control.connect()

    @operation("disconnect")
    def disconnect(self) -> None:
        """Close the session, aborting any open data connection."""
        self._data.abort()
        self._control.disconnect()

    @operation("login")
    def login(self, username: Optional[str] = None, password: str = "") -> None:
        """
        Log in, connecting first when needed.

        Args:
            username: FTP username (defaults to the configured one)
            password: FTP password
        """
        if not self._control.is_connected:
            self._control.connect()
        self._control.login(username or self._config.username, password)

    @operation("logout")
    def logout(self) -> None:
        """Log out and disconnect."""
        self._data.abort()
        self._control.logout()

    @operation("noop")
    def noop(self) -> None:
        """Keep the control connection alive."""
        self._control.command("NOOP")

    @operation("features")
    def features(self) -> set:
        """Feature names advertised by the server."""
        return set(self._control.features())

    # --- directories

    @operation("cd")
    def cd(self, path: str, create: bool = False) -> None:
        """
        Change the working directory.

        Args:
            path: Target directory
            create: Create the directory if changing into it fails
        """
        try:
            self._control.change_directory(path)
        except FTPCommandError:
            if not create:
                raise
            logger.debug(f"creating missing directory {path} on {self.host}")
            self._control.make_directory(path)
            self._control.change_directory(path)

    @operation("mkdir")
    def mkdir(self, path: str) -> str:
        """Create a directory; returns the path the server reports."""
        return self._control.make_directory(path)

    @operation("pwd")
    def pwd(self) -> str:
        """Return the working directory."""
        return self._control.print_working_directory()

    @operation("rmdir")
    def rmdir(self, path: str) -> None:
        """Remove a directory."""
        logger.debug(f"removing directory {path} from {self.host}")
        self._control.command("RMD", path)

    # --- files

    @operation("rm")
    def rm(self, remote_name: str) -> None:
        """Delete a file."""
        logger.debug(f"removing {remote_name} from {self.host}")
        self._control.command("DELE", remote_name)

    @operation("rename")
    def rename(self, source: str, target: str) -> None:
        """Rename a file or directory."""
        self._control.command("RNFR", source, expect=(3,))
        self._control.command("RNTO", target)

    @operation("size")
    def size(self, remote_name: str) -> int:
        """Size of a remote file in bytes."""
        reply = self._control.command("SIZE", remote_name)
        try:
            return int(reply.lines[0].split()[0])
        except (IndexError, ValueError):
            raise FTPProtocolError("SIZE reply carries no number", str(reply))

    # --- transfer settings

    @operation("set_transfer_mode")
    def set_transfer_mode(self, transfer_type: TransferType) -> None:
        """Switch between ASCII and BINARY transfers."""
        self._control.set_transfer_type(transfer_type)

    def set_binary_mode(self) -> OperationResult:
        return self.set_transfer_mode(TransferType.BINARY)

    def set_ascii_mode(self) -> OperationResult:
        return self.set_transfer_mode(TransferType.ASCII)

    @operation("enable_passive_mode")
    def enable_passive_mode(self) -> None:
        """Let the server listen for data connections."""
        self._control.set_data_mode(DataMode.PASSIVE)

    @operation("enable_active_mode")
    def enable_active_mode(self) -> None:
        """Listen locally for data connections."""
        self._control.set_data_mode(DataMode.ACTIVE)

    # --- transfers

    @operation("upload")
    def upload(self, source: BinaryIO, remote_name: str,
               callback: Optional[BlockCallback] = None) -> int:
        """
        Store a binary stream on the server.

        Returns:
            Bytes sent
        """
        return self._store(source, remote_name, callback)

    @operation("put")
    def put(self, local_file, remote_name: Optional[str] = None,
            callback: Optional[BlockCallback] = None) -> int:
        """
        Store a local file on the server.

        Args:
            local_file: Path of the local file
            remote_name: Remote file name (defaults to the local base name)
            callback: Called with every block sent

        Returns:
            Bytes sent
        """
        path = Path(local_file)
        remote_name = remote_name or path.name
        logger.debug(f"transferring {path.name} as {remote_name} to {self.host}")
        try:
            stream = open(path, "rb")
        except OSError as e:
            raise FTPLocalFileError(path, "read", e)
        with stream:
            return self._store(stream, remote_name, callback)

    @operation("download")
    def download(self, remote_name: str, sink: BinaryIO,
                 callback: Optional[BlockCallback] = None) -> int:
        """
        Retrieve a remote file into a binary stream.

        Returns:
            Bytes received
        """
        return self._retrieve(remote_name, sink, callback)

    @operation("get")
    def get(self, remote_name: str, local_path,
            callback: Optional[BlockCallback] = None) -> Path:
        """
        Retrieve a remote file into a local file.

        Args:
            remote_name: Remote file name
            local_path: Local file, or directory to store the file in
            callback: Called with every block received

        Returns:
            Path of the local file

        Raises:
            FTPLocalFileError: If the local file already exists
        """
        path = Path(local_path)
        if path.is_dir():
            path = path / PurePosixPath(remote_name).name
        if path.exists():
            raise FTPLocalFileError(path, "overwrite existing")
        logger.debug(f"retrieving {remote_name} from {self.host} to {path}")
        try:
            stream = open(path, "xb")
        except OSError as e:
            raise FTPLocalFileError(path, "create", e)
        with stream:
            self._retrieve(remote_name, stream, callback)
        return path

    # --- listings

    @operation("ls")
    def ls(self, path: Optional[str] = None,
           filter: Optional[EntryFilter] = None) -> ListingResult:
        """
        List a directory.

        Args:
            path: Directory to list (defaults to the working directory)
            filter: Predicate selecting the entries to keep

        Returns:
            ListingResult in server order
        """
        listing = self._list(path)
        return listing.filter(filter) if filter else listing

    @operation("lsdir")
    def lsdir(self, path: Optional[str] = None) -> ListingResult:
        """List only the subdirectories of a directory."""
        return self._list(path).filter(lambda entry: entry.is_directory)

    # --- internals

    def _store(self, source: BinaryIO, remote_name: str,
               callback: Optional[BlockCallback]) -> int:
        conn = self._data.open(Direction.UPLOAD, "STOR", remote_name)
        return self._engine.upload(conn, source, callback=callback)

    def _retrieve(self, remote_name: str, sink: BinaryIO,
                  callback: Optional[BlockCallback]) -> int:
        conn = self._data.open(Direction.DOWNLOAD, "RETR", remote_name)
        return self._engine.download(conn, sink, callback=callback)

    def _list(self, path: Optional[str]) -> ListingResult:
        verb = "LIST"
        if self._config.prefer_mlsd and "MLST" in self._control.features():
            verb = "MLSD"
        args = (path,) if path else ()
        conn = self._data.open(Direction.DOWNLOAD, verb, *args)

        skipped = []
        entries = list(self._parser.iter_entries(
            self._engine.stream_lines(conn), on_skip=skipped.append
        ))
        return ListingResult(entries=entries, skipped=len(skipped))
