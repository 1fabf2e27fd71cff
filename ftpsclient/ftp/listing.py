"""Directory listing parser for ftpsclient.

Decodes LIST/MLSD output into FileEntry values. Server listing styles
vary; each supported style is a (shape, parse) pair in the parser table,
picked per line by the shape of its beginning:

- Unix ``ls -l`` lines start with a permission string
- MLSD lines start with ``fact=value;`` pairs
- DOS/IIS lines start with an ``MM-DD-YY`` date

Lines that match no shape, or match one but fail to parse, are skipped
and counted instead of aborting the listing.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional, Pattern, Tuple

logger = logging.getLogger("ftpsclient.listing")


class FileType(Enum):
    """Kind of directory entry."""
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class FileEntry:
    """One entry of a remote directory listing."""
    name: str
    type: FileType
    size: Optional[int] = None
    modified: Optional[datetime] = None
    permissions: Optional[str] = None
    link_target: Optional[str] = None
    raw: str = field(default="", compare=False, repr=False)

    @property
    def is_file(self) -> bool:
        return self.type is FileType.FILE

    @property
    def is_directory(self) -> bool:
        return self.type is FileType.DIRECTORY

    @property
    def is_symlink(self) -> bool:
        return self.type is FileType.SYMLINK


# Type alias for entry filters
EntryFilter = Callable[[FileEntry], bool]


@dataclass
class ListingResult:
    """Parsed listing: entries in server order plus the skipped-line count."""
    entries: List[FileEntry] = field(default_factory=list)
    skipped: int = 0

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> FileEntry:
        return self.entries[index]

    @property
    def names(self) -> List[str]:
        """Entry names in server order."""
        return [entry.name for entry in self.entries]

    def filter(self, predicate: EntryFilter) -> "ListingResult":
        """Keep only entries the predicate accepts."""
        return ListingResult(
            entries=[entry for entry in self.entries if predicate(entry)],
            skipped=self.skipped,
        )


# Returned by a line parser for lines that are valid but carry no entry
IGNORED = object()

MONTHS = {
    name: number for number, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"], start=1)
}

TOTAL_LINE = re.compile(r"^total\s+\d+", re.IGNORECASE)

UNIX_SHAPE = re.compile(r"^[-bcdlps][-rwxsStTL]{9}")
UNIX_LINE = re.compile(
    r"^(?P<perms>[-bcdlps][-rwxsStTL]{9})[.+@]?\s+"
    r"(?P<links>\d+)\s+"
    r"(?P<owner>\S+)\s+"
    r"(?:(?P<group>\S+)\s+)?"
    r"(?P<size>\d+)\s+"
    r"(?P<month>[A-Za-z]{3})\s+(?P<day>\d{1,2})\s+"
    r"(?P<time>\d{1,2}:\d{2}|\d{4})\s+"
    r"(?P<name>.+)$"
)

MLSD_SHAPE = re.compile(r"^[^=;\s]+=[^;]*;")
MLSD_LINE = re.compile(r"^(?P<facts>(?:[^=;\s]+=[^;]*;)+) (?P<name>.+)$")

DOS_SHAPE = re.compile(r"^\d{2}-\d{2}-\d{2}")
DOS_LINE = re.compile(
    r"^(?P<date>\d{2}-\d{2}-(?:\d{4}|\d{2}))\s+"
    r"(?P<time>\d{1,2}:\d{2}\s*[AaPp][Mm])\s+"
    r"(?P<size><DIR>|\d+)\s+"
    r"(?P<name>.+)$"
)


def _unix_time(month: str, day: str, clock: str, now: datetime) -> datetime:
    month_number = MONTHS[month.lower()]
    if ":" in clock:
        hour, minute = (int(part) for part in clock.split(":"))
        try:
            modified = datetime(now.year, month_number, int(day), hour, minute)
        except ValueError:
            # Feb 29 outside a leap year can only be last year's
            return datetime(now.year - 1, month_number, int(day), hour, minute)
        # ls prints a clock time only for the last six months
        if modified > now + timedelta(days=1):
            modified = modified.replace(year=now.year - 1)
        return modified
    return datetime(int(clock), month_number, int(day))


def parse_unix_line(line: str, now: datetime):
    """Parse an ``ls -l`` style line."""
    match = UNIX_LINE.match(line)
    if not match:
        return None

    perms = match.group("perms")
    entry_type = {"d": FileType.DIRECTORY, "l": FileType.SYMLINK}.get(perms[0], FileType.FILE)
    name = match.group("name")
    target = None
    if entry_type is FileType.SYMLINK and " -> " in name:
        name, target = name.split(" -> ", 1)
    if name in (".", ".."):
        return IGNORED

    try:
        modified = _unix_time(match.group("month"), match.group("day"), match.group("time"), now)
    except (KeyError, ValueError):
        return None

    return FileEntry(
        name=name,
        type=entry_type,
        size=int(match.group("size")),
        modified=modified,
        permissions=perms,
        link_target=target,
        raw=line,
    )


def parse_mlsd_line(line: str, now: datetime):
    """Parse an MLSD fact line (times are UTC, returned naive)."""
    match = MLSD_LINE.match(line)
    if not match:
        return None

    facts = {}
    for fact in match.group("facts").rstrip(";").split(";"):
        key, _, value = fact.partition("=")
        facts[key.lower()] = value

    kind = facts.get("type", "").lower()
    target = None
    if kind in ("cdir", "pdir"):
        return IGNORED
    if kind == "dir":
        entry_type = FileType.DIRECTORY
    elif kind == "file":
        entry_type = FileType.FILE
    elif kind.startswith(("os.unix=slink", "os.unix=symlink")):
        entry_type = FileType.SYMLINK
        _, _, target = facts["type"].partition(":")
        target = target or None
    else:
        return None

    size = facts.get("size", facts.get("sizd"))
    modified = facts.get("modify")
    try:
        size = int(size) if size is not None else None
        modified = datetime.strptime(modified[:14], "%Y%m%d%H%M%S") if modified else None
    except ValueError:
        return None

    return FileEntry(
        name=match.group("name"),
        type=entry_type,
        size=size,
        modified=modified,
        permissions=facts.get("unix.mode", facts.get("perm")),
        link_target=target,
        raw=line,
    )


def parse_dos_line(line: str, now: datetime):
    """Parse a DOS/IIS style line."""
    match = DOS_LINE.match(line)
    if not match:
        return None

    date = match.group("date")
    stamp = f"{date} {match.group('time').replace(' ', '').upper()}"
    date_format = "%m-%d-%Y %I:%M%p" if len(date) == 10 else "%m-%d-%y %I:%M%p"
    try:
        modified = datetime.strptime(stamp, date_format)
    except ValueError:
        return None

    size = match.group("size")
    is_dir = size.upper() == "<DIR>"
    name = match.group("name")
    if name in (".", ".."):
        return IGNORED
    return FileEntry(
        name=name,
        type=FileType.DIRECTORY if is_dir else FileType.FILE,
        size=None if is_dir else int(size),
        modified=modified,
        raw=line,
    )


LineParser = Callable[[str, datetime], object]

DEFAULT_PARSERS: List[Tuple[Pattern, LineParser]] = [
    (UNIX_SHAPE, parse_unix_line),
    (MLSD_SHAPE, parse_mlsd_line),
    (DOS_SHAPE, parse_dos_line),
]


class ListingParser:
    """Turns raw listing text into FileEntry values."""

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        """
        Initialize the parser.

        Args:
            now: Clock used to resolve year-less Unix timestamps
        """
        self._parsers = list(DEFAULT_PARSERS)
        self._now = now or datetime.now

    def register(self, shape: Pattern, parser: LineParser) -> None:
        """
        Add a listing style.

        Args:
            shape: Pattern matched against the start of each line
            parser: Returns a FileEntry, IGNORED, or None for a bad line
        """
        self._parsers.append((shape, parser))

    def parse_line(self, line: str):
        """Parse one line: FileEntry, IGNORED or None."""
        if not line.strip() or TOTAL_LINE.match(line):
            return IGNORED
        now = self._now()
        for shape, parser in self._parsers:
            if shape.match(line):
                return parser(line, now)
        return None

    def iter_entries(
        self,
        lines: Iterable[str],
        on_skip: Optional[Callable[[str], None]] = None
    ) -> Iterator[FileEntry]:
        """
        Lazily parse listing lines.

        Args:
            lines: Listing lines (line endings are stripped)
            on_skip: Called with every unparseable line

        Yields:
            FileEntry values in server order
        """
        for raw in lines:
            line = raw.rstrip("\r\n")
            entry = self.parse_line(line)
            if entry is IGNORED:
                continue
            if entry is None:
                logger.debug(f"Skipping unparseable listing line: {line!r}")
                if on_skip:
                    on_skip(line)
                continue
            yield entry

    def parse(self, text: str) -> ListingResult:
        """
        Parse a complete listing.

        Args:
            text: Raw listing text

        Returns:
            ListingResult with entries and the number of skipped lines
        """
        skipped = []
        entries = list(self.iter_entries(text.splitlines(), on_skip=skipped.append))
        if skipped:
            logger.info(f"Skipped {len(skipped)} unparseable listing line(s)")
        return ListingResult(entries=entries, skipped=len(skipped))
