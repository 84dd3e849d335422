"""Filtering, aggregation and sort helpers over in-memory records.

Nothing in here touches the filesystem. All sorts are stable, so records
with equal keys keep their file order.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional, Sequence, TypeVar, Union

from .models import Note, Record, TimeStamp, Todo, Track, as_timestamp

R = TypeVar("R", Note, Todo, Track)

Bound = Optional[Union[TimeStamp, datetime]]


def filter_by_time_range(records: Iterable[R], start: Bound = None, end: Bound = None) -> list[R]:
    """Keep records with ``start <= timestamp <= end``.

    Either bound may be None to leave that side open.
    """
    lower = as_timestamp(start) if start is not None else None
    upper = as_timestamp(end) if end is not None else None

    out = []
    for record in records:
        if lower is not None and record.timestamp < lower:
            continue
        if upper is not None and record.timestamp > upper:
            continue
        out.append(record)
    return out


def latest_todos(todos: Sequence[Todo]) -> list[Todo]:
    """Collapse todo history to the most recent record per value.

    Equal timestamps are resolved in favour of the record later in the input.
    The survivors keep their relative input order.
    """
    winners: dict[str, int] = {}
    for index, todo in enumerate(todos):
        current = winners.get(todo.value)
        if current is None or todo.timestamp >= todos[current].timestamp:
            winners[todo.value] = index

    return [todos[index] for index in sorted(winners.values())]


def undone_todos(todos: Iterable[Todo]) -> list[Todo]:
    return [todo for todo in todos if not todo.done]


def latest_undone_todos(todos: Sequence[Todo]) -> list[Todo]:
    """Todos whose latest status is not done, one per value."""
    return undone_todos(latest_todos(list(todos)))


def dates_with_activity(records: Iterable[Record]) -> set[date]:
    """Calendar dates that have at least one record."""
    return {record.timestamp.date() for record in records}


def non_empty_notes(notes: Iterable[Note]) -> list[Note]:
    return [note for note in notes if note.text.strip()]


def sort_by_timestamp(records: Iterable[R]) -> list[R]:
    return sorted(records, key=lambda record: record.timestamp)


def sort_by_value(records: Iterable[R]) -> list[R]:
    return sorted(records, key=lambda record: record.value)


def search_notes(notes: Iterable[Note], text: str) -> list[str]:
    """Lines of note text containing ``text``."""
    out = []
    for note in notes:
        for line in note.text.splitlines():
            if text in line:
                out.append(line)
    return out
