"""AsciiDoc reports for notes, todos, tracks and activity dates."""

from __future__ import annotations

import re
import subprocess
from datetime import date
from typing import Iterable, Mapping, Sequence, TextIO

from .errors import FormatError
from .models import Note, Todo, Track, format_timestamp

ASCIIDOC_SETTINGS = """:toc: right
:toclevels: 2
:sectanchors:
:sectlink:
:icons: font
:linkattrs:
:numbered:
:idprefix:
:idseparator: -
:doctype: book
:source-highlighter: pygments
:listing-caption: Listing"""

_HEADING_RE = re.compile(r"^(=+)(?=\s)", re.MULTILINE)


def write_header(out: TextIO, title: str) -> None:
    out.write(f"= Lablog -- {title}\n")
    out.write(ASCIIDOC_SETTINGS + "\n\n")


def demote_headings(text: str, levels: int = 3) -> str:
    """Push AsciiDoc headings in note text below the note's own heading."""
    return _HEADING_RE.sub(lambda m: "=" * levels + m.group(1), text)


def write_notes(out: TextIO, notes: Sequence[Note]) -> None:
    for note in notes:
        out.write(f"=== {format_timestamp(note.timestamp)}\n")
        out.write(demote_headings(note.text).rstrip("\n") + "\n\n")


def write_todos(out: TextIO, todos: Sequence[Todo]) -> None:
    for todo in todos:
        out.write(f"* {todo.value}\n")
    out.write("\n")


def write_tracks(out: TextIO, tracks: Sequence[Track]) -> None:
    for track in tracks:
        line = f"* {format_timestamp(track.timestamp)}"
        if track.value:
            line += f" - {track.value}"
        out.write(line + "\n")
    out.write("\n")


def write_dates(out: TextIO, dates: Iterable[date]) -> None:
    write_header(out, "Dates")
    for day in sorted(dates):
        out.write(f"* {day.isoformat()}\n")


def write_project_notes(out: TextIO, projects: Mapping[str, Sequence[Note]]) -> None:
    write_header(out, "Notes")
    for name, notes in projects.items():
        if not notes:
            continue
        out.write(f"== {name}\n\n")
        write_notes(out, notes)


def write_project_todos(out: TextIO, projects: Mapping[str, Sequence[Todo]]) -> None:
    write_header(out, "Todos")
    for name, todos in projects.items():
        if not todos:
            continue
        out.write(f"== {name}\n\n")
        write_todos(out, todos)


def write_project_tracks(out: TextIO, projects: Mapping[str, Sequence[Track]]) -> None:
    write_header(out, "Tracks")
    for name, tracks in projects.items():
        if not tracks:
            continue
        out.write(f"== {name}\n\n")
        write_tracks(out, tracks)


def write_entries(
    out: TextIO,
    projects: Mapping[str, tuple[Sequence[Todo], Sequence[Note]]],
) -> None:
    """Todos then notes per project; projects with neither are left out."""
    write_header(out, "Entries")
    for name, (todos, notes) in projects.items():
        if not todos and not notes:
            continue
        out.write(f"== {name}\n\n")
        if todos:
            out.write("=== Todos\n\n")
            write_todos(out, todos)
        if notes:
            out.write("=== Notes\n\n")
            for note in notes:
                out.write(f"==== {format_timestamp(note.timestamp)}\n")
                out.write(demote_headings(note.text, levels=4).rstrip("\n") + "\n\n")


def render_html(text: str, timeout: float = 60.0) -> str:
    """Convert AsciiDoc to HTML with the external ``asciidoctor`` tool.

    Raises:
        FormatError: If asciidoctor is missing, fails or times out
    """
    try:
        proc = subprocess.run(
            ["asciidoctor", "-o", "-", "-"],
            input=text,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise FormatError(f"asciidoctor timed out after {timeout}s") from e
    except OSError as e:
        raise FormatError(f"can not run asciidoctor: {e}") from e

    if proc.returncode != 0:
        raise FormatError(f"can not run asciidoctor: {proc.stderr.strip()}")
    return proc.stdout
