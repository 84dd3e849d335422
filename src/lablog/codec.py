"""CSV row encoding and decoding for notes, todos and tracks.

Every row is ``[timestamp, type, ...fields]``:

    note:  timestamp, "note",  text
    todo:  timestamp, "todo",  value, done
    track: timestamp, "track", value
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Iterable, Iterator, TextIO

from .errors import DecodeError
from .models import (
    RECORD_TYPES,
    Note,
    Record,
    RecordKind,
    Todo,
    Track,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Matches the line ending of existing data files
LINE_TERMINATOR = "\n"

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def parse_bool(value: str) -> bool:
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise DecodeError(f"invalid boolean: {value!r}")


def encode_record(record: Record) -> list[str]:
    """Convert a record to its CSV fields.

    Raises:
        TypeError: If ``record`` is not a Note, Todo or Track
    """
    if isinstance(record, Note):
        fields = [record.text]
    elif isinstance(record, Todo):
        fields = [record.value, format_bool(record.done)]
    elif isinstance(record, Track):
        fields = [record.value]
    else:
        raise TypeError(f"not a record: {record!r}")

    return [format_timestamp(record.timestamp), record.kind.value, *fields]


def decode_row(row: list[str], kind: RecordKind, project: str = "") -> Record:
    """Convert CSV fields to a record of the expected kind.

    Raises:
        DecodeError: If the field count, type tag or timestamp is wrong
    """
    if len(row) != kind.field_count:
        raise DecodeError(
            f"{kind.value} rows need {kind.field_count} fields, got {len(row)}"
        )
    if row[1] != kind.value:
        raise DecodeError(f"row type is {row[1]!r}, expected {kind.value!r}")

    try:
        timestamp = parse_timestamp(row[0])
    except ValueError as e:
        raise DecodeError(str(e)) from e

    if kind is RecordKind.TODO:
        return Todo(project=project, timestamp=timestamp, value=row[2], done=parse_bool(row[3]))
    if kind is RecordKind.NOTE:
        return Note(project=project, timestamp=timestamp, text=row[2])
    return RECORD_TYPES[kind](project=project, timestamp=timestamp, value=row[2])


def decode_any(row: list[str], project: str = "") -> Record:
    """Decode a row using its own type tag."""
    if len(row) < 2:
        raise DecodeError("row needs at least a timestamp and a type")
    try:
        kind = RecordKind(row[1])
    except ValueError as e:
        raise DecodeError(f"unknown record type: {row[1]!r}") from e
    return decode_row(row, kind, project)


def render_row(record: Record) -> str:
    """Render one record as a complete CSV line, quoting as needed."""
    fields = encode_record(record)
    # A bare carriage return has to be quoted or readers end the row there
    quoting = csv.QUOTE_ALL if any("\r" in value for value in fields) else csv.QUOTE_MINIMAL

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator=LINE_TERMINATOR, quoting=quoting)
    writer.writerow(fields)
    return buffer.getvalue()


def iter_rows(stream: TextIO) -> Iterator[list[str]]:
    """Yield raw rows from a CSV stream, dropping rows the parser rejects."""
    reader = csv.reader(stream, strict=True)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error:
            continue
        if row:
            yield row


def decode_rows(
    rows: Iterable[list[str]],
    kind: RecordKind,
    project: str = "",
) -> tuple[list[Record], int]:
    """Decode the rows tagged with ``kind``, skipping malformed ones.

    Rows of other kinds are ignored silently.

    Returns:
        Tuple of (records, number of malformed rows skipped)
    """
    records = []
    skipped = 0
    for row in rows:
        if len(row) < 2 or row[1] != kind.value:
            continue
        try:
            records.append(decode_row(row, kind, project))
        except DecodeError as e:
            logger.debug("Skipping %s row in %s: %s", kind.value, project or "<unknown>", e)
            skipped += 1
    return records, skipped
