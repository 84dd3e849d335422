"""Data models for projects, records and timestamps."""

from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import ClassVar, Union

PROJECT_FILE_EXTENSION = ".csv"

# Track annotation that marks a project as no longer being worked on
TRACK_STOP_MARKER = "stop"

_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"(Z|[+-]\d{2}:\d{2})$"
)


class RecordKind(Enum):
    """Type tag stored in the second column of every row."""
    NOTE = "note"
    TODO = "todo"
    TRACK = "track"

    @property
    def field_count(self) -> int:
        """Exact number of CSV fields for rows of this kind."""
        return 4 if self is RecordKind.TODO else 3


@dataclass(frozen=True, order=True)
class TimeStamp:
    """An instant with nanosecond precision and a fixed UTC offset.

    ``dt`` is an aware datetime carrying everything down to the microsecond,
    ``nanos`` holds the remaining 0-999 nanoseconds.
    """
    dt: datetime
    nanos: int = 0

    def __post_init__(self) -> None:
        if self.dt.tzinfo is None or self.dt.utcoffset() is None:
            raise ValueError("timestamp needs a timezone-aware datetime")
        if not 0 <= self.nanos < 1000:
            raise ValueError(f"nanos out of range: {self.nanos}")

    @classmethod
    def now(cls) -> "TimeStamp":
        """Current local time."""
        seconds, rest = divmod(time.time_ns(), 1_000_000_000)
        dt = datetime.fromtimestamp(seconds, timezone.utc).astimezone()
        return cls(dt.replace(microsecond=rest // 1000), rest % 1000)

    @classmethod
    def from_datetime(cls, value: datetime) -> "TimeStamp":
        """Wrap a datetime; naive values are taken in the local zone."""
        if value.tzinfo is None:
            value = value.astimezone()
        return cls(value)

    @property
    def nanosecond(self) -> int:
        """Sub-second part in nanoseconds."""
        return self.dt.microsecond * 1000 + self.nanos

    def date(self) -> date:
        """Calendar date in the timestamp's own offset."""
        return self.dt.date()

    def shift(self, nanoseconds: int) -> "TimeStamp":
        carry, nanos = divmod(self.nanos + nanoseconds, 1000)
        return TimeStamp(self.dt + timedelta(microseconds=carry), nanos)

    def __str__(self) -> str:
        return format_timestamp(self)


def format_timestamp(ts: TimeStamp) -> str:
    """Format as RFC 3339 with trimmed nanoseconds, e.g. 2014-10-31T21:36:31.49146148+01:00."""
    dt = ts.dt
    text = (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )
    if ts.nanosecond:
        text += "." + f"{ts.nanosecond:09d}".rstrip("0")

    offset = dt.utcoffset()
    minutes = int(offset.total_seconds()) // 60
    if minutes == 0:
        return text + "Z"
    sign = "+" if minutes > 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def parse_timestamp(s: str) -> TimeStamp:
    """Parse a timestamp written by format_timestamp.

    Raises:
        ValueError: If the text is not a valid timestamp
    """
    match = _TIMESTAMP_RE.match(s)
    if match is None:
        raise ValueError(f"invalid timestamp: {s!r}")

    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction, zone = match.group(7), match.group(8)

    total_nanos = int(fraction.ljust(9, "0")) if fraction else 0
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))

    dt = datetime(year, month, day, hour, minute, second, total_nanos // 1000, tzinfo=tz)
    return TimeStamp(dt, total_nanos % 1000)


def as_timestamp(value: Union[TimeStamp, datetime]) -> TimeStamp:
    if isinstance(value, TimeStamp):
        return value
    return TimeStamp.from_datetime(value)


@dataclass(frozen=True)
class Project:
    """A named append-only log backed by ``<datadir>/<name>.csv``."""
    name: str
    datadir: Path

    @property
    def filename(self) -> str:
        return self.name + PROJECT_FILE_EXTENSION

    @property
    def file_path(self) -> Path:
        return Path(self.datadir) / self.filename

    def exists(self) -> bool:
        return self.file_path.is_file()

    def is_empty(self) -> bool:
        return not self.exists()

    def is_subproject(self, other: "Project") -> bool:
        """True if ``other`` is nested under this project by name prefix."""
        if self.name == other.name:
            return False
        return other.name.startswith(self.name)


def validate_project_name(name: str) -> None:
    """Check a project name can be used as a file name in the data directory.

    Raises:
        ValueError: If the name is empty, hidden or contains a path separator
    """
    if not name or not name.strip():
        raise ValueError("project name can not be empty")
    if name.startswith("."):
        raise ValueError(f"project name can not start with a dot: {name!r}")
    separators = [sep for sep in (os.sep, os.altsep, "/") if sep]
    if any(sep in name for sep in separators):
        raise ValueError(f"project name can not contain a path separator: {name!r}")


@dataclass
class Note:
    """A timestamped free-text entry."""
    kind: ClassVar[RecordKind] = RecordKind.NOTE

    project: str
    timestamp: TimeStamp
    text: str = ""

    @property
    def action(self) -> str:
        return "note"

    @property
    def value(self) -> str:
        return self.text

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "project": self.project,
            "timestamp": format_timestamp(self.timestamp),
            "text": self.text,
        }


@dataclass
class Todo:
    """A task description with a done flag; later rows supersede earlier ones."""
    kind: ClassVar[RecordKind] = RecordKind.TODO

    project: str
    timestamp: TimeStamp
    value: str = ""
    done: bool = False

    @property
    def action(self) -> str:
        return "done" if self.done else "todo"

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "project": self.project,
            "timestamp": format_timestamp(self.timestamp),
            "value": self.value,
            "done": self.done,
        }


@dataclass
class Track:
    """A time-tracking marker with an optional annotation."""
    kind: ClassVar[RecordKind] = RecordKind.TRACK

    project: str
    timestamp: TimeStamp
    value: str = ""

    @property
    def action(self) -> str:
        return "track"

    @property
    def active(self) -> bool:
        return self.value.strip().lower() != TRACK_STOP_MARKER

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "project": self.project,
            "timestamp": format_timestamp(self.timestamp),
            "value": self.value,
            "active": self.active,
        }


Record = Union[Note, Todo, Track]

RECORD_TYPES: dict[RecordKind, type] = {
    RecordKind.NOTE: Note,
    RecordKind.TODO: Todo,
    RecordKind.TRACK: Track,
}
