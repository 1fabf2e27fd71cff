"""Structured operation results for ftpsclient.

Every public FtpClient operation returns an OperationResult instead of
letting FTPError escape.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from ftpsclient.ftp.exceptions import FTPError

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Result of one client operation."""
    operation: str
    ok: bool
    value: Optional[T] = None
    error: Optional[FTPError] = None

    @classmethod
    def success(cls, operation: str, value: Optional[T] = None) -> "OperationResult[T]":
        return cls(operation=operation, ok=True, value=value)

    @classmethod
    def failure(cls, operation: str, error: FTPError) -> "OperationResult[T]":
        return cls(operation=operation, ok=False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        """Human-readable failure reason, None on success."""
        return str(self.error) if self.error is not None else None

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> T:
        """
        Return the value of a successful result.

        Raises:
            FTPError: The stored error, if the operation failed
        """
        if not self.ok:
            raise self.error
        return self.value
