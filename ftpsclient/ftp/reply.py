"""Reply model and reader for the FTP control connection.

A reply is a three-digit status code plus one or more lines of text.
Multi-line replies open with ``ddd-`` and run until a line that starts
with the same code followed by a space.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

from ftpsclient.ftp.exceptions import FTPIOError, FTPProtocolError

CRLF = "\r\n"

# Longest line accepted on the control connection
MAX_LINE = 8192

REPLY_LINE = re.compile(r"^(\d{3})([ -]|$)")


class ReplyKind(Enum):
    """Classification by the first digit of the status code."""
    POSITIVE_PRELIMINARY = 1
    POSITIVE_COMPLETION = 2
    POSITIVE_INTERMEDIATE = 3
    TRANSIENT_NEGATIVE = 4
    PERMANENT_NEGATIVE = 5


@dataclass(frozen=True)
class Reply:
    """A single (possibly multi-line) server reply."""
    code: int
    lines: List[str] = field(default_factory=list)

    @property
    def kind(self) -> ReplyKind:
        """Reply classification."""
        return ReplyKind(self.code // 100)

    @property
    def message(self) -> str:
        """Body text, lines joined with newlines."""
        return "\n".join(self.lines)

    @property
    def is_preliminary(self) -> bool:
        return self.kind is ReplyKind.POSITIVE_PRELIMINARY

    @property
    def is_completion(self) -> bool:
        return self.kind is ReplyKind.POSITIVE_COMPLETION

    @property
    def is_intermediate(self) -> bool:
        return self.kind is ReplyKind.POSITIVE_INTERMEDIATE

    @property
    def is_positive(self) -> bool:
        """True for 1xx, 2xx and 3xx replies."""
        return self.code < 400

    @property
    def is_negative(self) -> bool:
        """True for 4xx and 5xx replies."""
        return self.code >= 400

    def __str__(self) -> str:
        first = self.lines[0] if self.lines else ""
        return f"{self.code} {first}".rstrip()


def _decode(raw: bytes, encoding: str) -> str:
    if len(raw) > MAX_LINE:
        raise FTPProtocolError("reply line too long")
    if not raw:
        raise FTPIOError("reply read", EOFError("connection closed by server"))
    line = raw.decode(encoding, errors="replace")
    if line.endswith(CRLF):
        return line[:-2]
    if line[-1:] in ("\r", "\n"):
        return line[:-1]
    return line


def read_reply(readline: Callable[[int], bytes], encoding: str = "utf-8") -> Reply:
    """
    Read one reply from the control connection.

    Args:
        readline: File-like readline accepting a size limit
        encoding: Control connection text encoding

    Returns:
        Parsed Reply

    Raises:
        FTPProtocolError: If the first line is not a status line
        FTPIOError: If the connection closes mid-reply
    """
    line = _decode(readline(MAX_LINE + 1), encoding)
    match = REPLY_LINE.match(line)
    if not match:
        raise FTPProtocolError("malformed reply", line)

    code = match.group(1)
    lines = [line[4:]]
    if match.group(2) == "-":
        terminator = code + " "
        while True:
            line = _decode(readline(MAX_LINE + 1), encoding)
            if line.startswith(terminator) or line == code:
                lines.append(line[4:])
                break
            if line.startswith(code + "-"):
                line = line[4:]
            lines.append(line)

    return Reply(int(code), lines)
