"""
Import Row Parsing
==================
Pure functions that turn loosely-structured spreadsheet rows into a
structured ParsedRow. No database access happens here, so every coercion
rule (names, flags, timestamps, reconstructed visits) can be tested alone.
"""

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from .. import clock
from .. import config

MULTISPACE_RE = re.compile(r"\s+")
AND_SPLIT_RE = re.compile(r"\s+and\s+", re.IGNORECASE)
COMPACT_HMS_RE = re.compile(r"^\d{6}$")

TRUTHY_FLAGS = {"y", "yes", "true", "1", "checked", "in"}

# Tried in order; first match wins
TIME_FORMATS = (
    "%I:%M:%S %p",
    "%I:%M %p",
    "%I:%M:%S%p",
    "%I:%M%p",
    "%H:%M:%S",
    "%H:%M",
    "%I%M%p",
    "%H%M%S",
)

DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
)

# Spreadsheet header aliases for each ImportRow field
CSV_COLUMNS = {
    "member_name": ("Member Name", "member_name"),
    "guest_names": ("Guest Names", "guest_names", "Guest Name"),
    "check_in": ("Check In Y/N", "check_in_y/n", "check_in_y_n"),
    "check_in_time": ("Check In Time", "check_in_time"),
    "check_out": ("Check Out Y/N", "check_out_y/n", "check_out_y_n"),
    "check_out_time": ("Check Out Time", "check_out_time"),
}


@dataclass
class ImportRow:
    """One raw spreadsheet row as received from the caller."""
    member_name: Optional[str] = None
    guest_names: Optional[str] = None
    source_row: Optional[int] = None
    check_in: Optional[str] = None
    check_in_time: Optional[str] = None
    check_out: Optional[str] = None
    check_out_time: Optional[str] = None


@dataclass
class ParsedRow:
    """An ImportRow after normalization."""
    member_host: Optional[str]
    names: List[str] = field(default_factory=list)
    source_row: Optional[int] = None
    check_in_flag: bool = False
    check_out_flag: bool = False
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None

    @property
    def has_history(self) -> bool:
        return bool(
            self.check_in_flag or self.check_out_flag
            or self.check_in_time or self.check_out_time
        )


def clean_whitespace(value: str) -> str:
    """Trim and collapse internal whitespace runs to single spaces."""
    return MULTISPACE_RE.sub(" ", value.strip())


def is_all_caps(value: str) -> bool:
    letters = [c for c in value if c.isalpha()]
    return bool(letters) and all(c.isupper() for c in letters)


def clean_name(value: str) -> Optional[str]:
    """
    Normalize one guest name. ALL-CAPS names are re-cased to title case.

    Returns:
        Cleaned name, or None if nothing is left after trimming
    """
    collapsed = clean_whitespace(value)
    if not collapsed:
        return None
    if is_all_caps(collapsed):
        collapsed = " ".join(
            token[:1].upper() + token[1:].lower()
            for token in collapsed.split(" ")
        )
    return collapsed


def split_guest_names(value: str) -> List[str]:
    """
    Split a combined guest field on commas, "&" and standalone "and".

    >>> split_guest_names("Jane Smith and John Doe, Bob Jones & SUE ANN")
    ['Jane Smith', 'John Doe', 'Bob Jones', 'Sue Ann']
    """
    replaced = AND_SPLIT_RE.sub(",", value).replace("&", ",")
    names = []
    for part in replaced.split(","):
        name = clean_name(part)
        if name:
            names.append(name)
    return names


def parse_import_flag(value: Optional[str]) -> bool:
    if value is None:
        return False
    normalized = value.strip().lower()
    return bool(normalized) and normalized in TRUTHY_FLAGS


def parse_import_timestamp(value: Optional[str], tz: Optional[tzinfo] = None) -> Optional[str]:
    """
    Parse a free-form time or date-time into the stored time-of-day format.

    Time-only formats are tried first, then date-time formats (date dropped),
    then an ISO-8601 timestamp with an offset, converted to the local zone.

    Returns:
        Time string like "02:30:00 PM", or None if the value is empty or unparseable
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None

    for fmt in TIME_FORMATS:
        if fmt == "%H%M%S" and not COMPACT_HMS_RE.match(raw):
            continue
        try:
            return clock.format_time(datetime.strptime(raw, fmt).time())
        except ValueError:
            continue

    for fmt in DATETIME_FORMATS:
        try:
            return clock.format_time(datetime.strptime(raw, fmt).time())
        except ValueError:
            continue

    iso = raw[:-1] + "+00:00" if raw[-1] in "Zz" else raw
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    local = parsed.astimezone(tz or config.LOCAL_TIMEZONE)
    return clock.format_time(local.time())


def parse_row(row: ImportRow, tz: Optional[tzinfo] = None) -> ParsedRow:
    host = clean_whitespace(row.member_name) if row.member_name else ""
    return ParsedRow(
        member_host=host or None,
        names=split_guest_names(row.guest_names) if row.guest_names else [],
        source_row=row.source_row,
        check_in_flag=parse_import_flag(row.check_in),
        check_out_flag=parse_import_flag(row.check_out),
        check_in_time=parse_import_timestamp(row.check_in_time, tz),
        check_out_time=parse_import_timestamp(row.check_out_time, tz),
    )


def plan_history(parsed: ParsedRow, now: Optional[str] = None) -> Optional[Tuple[str, Optional[str]]]:
    """
    Reconstruct the single visit implied by a row's flags and times.

    Args:
        parsed: Normalized row
        now: Time string used when no explicit time is available

    Returns:
        (in_ts, out_ts) with out_ts None for a still-open visit, or None when
        the row carries no check-in/check-out signal at all
    """
    if not parsed.has_history:
        return None

    now = now or clock.now_time_string()

    in_ts = parsed.check_in_time or parsed.check_out_time or now

    out_ts = None
    if parsed.check_out_flag or parsed.check_out_time:
        out_ts = parsed.check_out_time or in_ts

    return in_ts, out_ts


def read_import_csv(text: str) -> List[ImportRow]:
    """
    Read spreadsheet CSV text (header row required) into ImportRows.

    Blank cells become None; source_row is the 1-based spreadsheet line
    of the data row.
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    if reader.fieldnames:
        reader.fieldnames = [name.strip() for name in reader.fieldnames]

    rows = []
    for index, record in enumerate(reader):
        values = {
            key: _pull(record, aliases)
            for key, aliases in CSV_COLUMNS.items()
        }
        rows.append(ImportRow(source_row=index + 2, **values))
    return rows


def _pull(record: Dict[str, Optional[str]], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        normalized = value.strip()
        if normalized:
            return normalized
    return None
