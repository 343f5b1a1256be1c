"""Directory listing parser for the FTP client engine.

Turns the text a server sends for LIST into DirectoryEntry records.
Unix ``ls -l`` style lines are the primary format; MS-DOS style lines
(``01-31-24  09:15PM  <DIR>  name``) are accepted as a fallback.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Tuple

logger = logging.getLogger("ftpclient.listing")


class EntryType(Enum):
    """Kind of a directory entry."""
    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DirectoryEntry:
    """One entry of a directory listing."""
    name: str
    type: EntryType
    size: int = 0
    modified_time: Optional[datetime] = None
    link_target: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        """True for directories."""
        return self.type == EntryType.DIRECTORY


UNIX_LINE_PATTERN = re.compile(
    r"^(?P<mode>[bcdlps-][rwxsStT-]{9})[+@.]?\s+"
    r"(?P<links>\d+)\s+"
    r"(?P<owner>\S+)\s+"
    r"(?:(?P<group>\S+)\s+)?"
    r"(?P<size>\d+)\s+"
    r"(?P<month>[A-Za-z]{3})\s+(?P<day>\d{1,2})\s+(?P<time>\d{1,2}:\d{2}|\d{4})\s"
    r"(?P<name>.+)$"
)

DOS_LINE_PATTERN = re.compile(
    r"^(?P<date>\d{2}-\d{2}-\d{2,4})\s+(?P<time>\d{1,2}:\d{2}[AP]M)\s+"
    r"(?P<size><DIR>|\d+)\s+(?P<name>.+)$",
    re.IGNORECASE,
)

MONTHS = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

TYPE_BY_MODE_CHAR = {
    "-": EntryType.FILE,
    "d": EntryType.DIRECTORY,
    "l": EntryType.LINK,
}


def parse_unix_date(month: str, day: str, time_or_year: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse the date columns of an ``ls -l`` line.

    Recent entries carry ``HH:MM`` and no year; such dates are placed in
    the current year, or the previous one if that would put them more
    than a day in the future.

    Args:
        month: Three-letter month name
        day: Day of month
        time_or_year: ``HH:MM`` or a four-digit year
        now: Reference time (defaults to now)

    Returns:
        datetime, or None if the columns do not form a valid date
    """
    month_number = MONTHS.get(month.lower())
    if month_number is None:
        return None

    now = now or datetime.now()
    try:
        if ":" in time_or_year:
            hour, minute = (int(part) for part in time_or_year.split(":"))
            parsed = datetime(now.year, month_number, int(day), hour, minute)
            if (parsed - now).days > 1:
                parsed = parsed.replace(year=now.year - 1)
            return parsed
        return datetime(int(time_or_year), month_number, int(day))
    except ValueError:
        # Feb 29 outside a leap year, day 31 in a short month, ...
        return None


def parse_unix_line(line: str, now: Optional[datetime] = None) -> Optional[DirectoryEntry]:
    """
    Parse one ``ls -l`` style line.

    Args:
        line: Listing line without line terminator
        now: Reference time for year-less dates

    Returns:
        DirectoryEntry, or None if the line is not in Unix format
    """
    match = UNIX_LINE_PATTERN.match(line)
    if match is None:
        return None

    entry_type = TYPE_BY_MODE_CHAR.get(match.group("mode")[0], EntryType.UNKNOWN)
    name = match.group("name")
    link_target = None
    if entry_type == EntryType.LINK and " -> " in name:
        name, link_target = name.split(" -> ", 1)

    return DirectoryEntry(
        name=name,
        type=entry_type,
        size=int(match.group("size")),
        modified_time=parse_unix_date(
            match.group("month"), match.group("day"), match.group("time"), now
        ),
        link_target=link_target,
    )


def parse_dos_line(line: str) -> Optional[DirectoryEntry]:
    """
    Parse one MS-DOS style listing line.

    Args:
        line: Listing line without line terminator

    Returns:
        DirectoryEntry, or None if the line is not in MS-DOS format
    """
    match = DOS_LINE_PATTERN.match(line)
    if match is None:
        return None

    date_format = "%m-%d-%y" if len(match.group("date")) == 8 else "%m-%d-%Y"
    try:
        modified = datetime.strptime(
            f"{match.group('date')} {match.group('time').upper()}",
            f"{date_format} %I:%M%p",
        )
    except ValueError:
        modified = None

    size = match.group("size")
    is_dir = size.upper() == "<DIR>"
    return DirectoryEntry(
        name=match.group("name"),
        type=EntryType.DIRECTORY if is_dir else EntryType.FILE,
        size=0 if is_dir else int(size),
        modified_time=modified,
    )


def parse_listing(lines: Iterable[str], now: Optional[datetime] = None) -> Tuple[DirectoryEntry, ...]:
    """
    Parse LIST output into directory entries.

    ``total N`` summary lines, blank lines and the ``.``/``..`` entries are
    skipped. Lines matching neither format are logged and skipped.

    Args:
        lines: Listing lines
        now: Reference time for year-less Unix dates

    Returns:
        Tuple of DirectoryEntry in server order
    """
    entries = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip() or line.lower().startswith("total "):
            continue

        entry = parse_unix_line(line, now) or parse_dos_line(line)
        if entry is None:
            logger.debug(f"Skipping unrecognised listing line: {line!r}")
            continue
        if entry.name in (".", ".."):
            continue
        entries.append(entry)

    return tuple(entries)
