"""lablog command line - main entry point."""

from __future__ import annotations

import argparse
import asyncio
import io
import logging
import sys
from datetime import datetime, time
from pathlib import Path
from typing import Callable, Optional

from . import formatting
from .config import load_config
from .engine import LablogEngine
from .errors import HookError, LablogError
from .models import TimeStamp, parse_timestamp


def parse_time(value: str, end_of_day: bool = False) -> TimeStamp:
    """Parse a command line time in record format or ISO 8601.

    Naive values are in the local zone. A bare date used as an end bound
    covers the whole day.
    """
    try:
        return parse_timestamp(value)
    except ValueError:
        pass

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid time: {value!r}")

    ts = TimeStamp.from_datetime(parsed)
    if end_of_day and len(value) == 10:
        ts = TimeStamp(datetime.combine(ts.dt.date(), time.max, tzinfo=ts.dt.tzinfo), 999)
    return ts


def _end_time(value: str) -> TimeStamp:
    return parse_time(value, end_of_day=True)


def parse_datadir(value: str) -> Path:
    """Absolute data directory from the command line; blank values are rejected."""
    if not value.strip():
        raise argparse.ArgumentTypeError("the data directory can not be empty")
    return Path(value).expanduser().absolute()


# ========== commands ==========

def cmd_note(engine: LablogEngine, args: argparse.Namespace) -> None:
    engine.record_note(args.project, " ".join(args.text), args.timestamp)


def cmd_todo(engine: LablogEngine, args: argparse.Namespace) -> None:
    engine.record_todo(args.project, " ".join(args.text), args.timestamp)


def cmd_done(engine: LablogEngine, args: argparse.Namespace) -> None:
    engine.record_done(args.project, " ".join(args.text), args.timestamp)


def cmd_track(engine: LablogEngine, args: argparse.Namespace) -> None:
    engine.record_track(args.project, " ".join(args.text), args.timestamp)


def cmd_merge(engine: LablogEngine, args: argparse.Namespace) -> None:
    engine.merge(args.source, args.destination)


def cmd_rename(engine: LablogEngine, args: argparse.Namespace) -> None:
    engine.rename(args.old, args.new)


def cmd_remove(engine: LablogEngine, args: argparse.Namespace) -> None:
    engine.remove(args.project)


def cmd_projects(engine: LablogEngine, args: argparse.Namespace) -> None:
    for name in engine.projects(non_empty=not args.all):
        print(name)


def _resolve(engine: LablogEngine, args: argparse.Namespace) -> list[str]:
    return engine.store.resolve(args.projects, include_subprojects=args.subprojects)


def _emit(text: str, args: argparse.Namespace, engine: LablogEngine) -> None:
    if args.html:
        text = formatting.render_html(text, timeout=engine.config.hook_timeout)
    sys.stdout.write(text)


def cmd_notes(engine: LablogEngine, args: argparse.Namespace) -> None:
    out = io.StringIO()
    formatting.write_project_notes(
        out, {name: engine.notes(name, args.start, args.end) for name in _resolve(engine, args)}
    )
    _emit(out.getvalue(), args, engine)


def cmd_todos(engine: LablogEngine, args: argparse.Namespace) -> None:
    out = io.StringIO()
    formatting.write_project_todos(
        out, {name: engine.todos(name, args.start, args.end) for name in _resolve(engine, args)}
    )
    _emit(out.getvalue(), args, engine)


def cmd_tracks(engine: LablogEngine, args: argparse.Namespace) -> None:
    out = io.StringIO()
    formatting.write_project_tracks(
        out, {name: engine.tracks(name, args.start, args.end) for name in _resolve(engine, args)}
    )
    _emit(out.getvalue(), args, engine)


def cmd_entries(engine: LablogEngine, args: argparse.Namespace) -> None:
    out = io.StringIO()
    formatting.write_entries(out, {
        name: (engine.todos(name, args.start, args.end), engine.notes(name, args.start, args.end))
        for name in _resolve(engine, args)
    })
    _emit(out.getvalue(), args, engine)


def cmd_dates(engine: LablogEngine, args: argparse.Namespace) -> None:
    out = io.StringIO()
    formatting.write_dates(out, engine.dates(_resolve(engine, args), args.start, args.end))
    _emit(out.getvalue(), args, engine)


def cmd_search(engine: LablogEngine, args: argparse.Namespace) -> None:
    for name, lines in engine.search(args.text, args.projects or None).items():
        for line in lines:
            print(f"{name}: {line}")


def cmd_active(engine: LablogEngine, args: argparse.Namespace) -> None:
    for name in engine.active_projects(args.projects or None):
        print(name)


def cmd_serve(engine: LablogEngine, args: argparse.Namespace) -> int:
    from .server import HAS_MCP, run_server

    if not HAS_MCP:
        print("Error: MCP package not installed.", file=sys.stderr)
        print("Install with: pip install lablog[mcp]", file=sys.stderr)
        return 1

    asyncio.run(run_server(engine.config))
    return 0


# ========== parser ==========

def _add_write_command(
    subparsers: argparse._SubParsersAction,
    name: str,
    help_text: str,
    func: Callable,
    text_nargs: str = "+",
) -> None:
    parser = subparsers.add_parser(name, help=help_text)
    parser.add_argument("project", help="Project name")
    parser.add_argument("text", nargs=text_nargs, help="Text of the record")
    parser.add_argument(
        "--timestamp", "-t",
        type=parse_time,
        help="Timestamp to record instead of now",
    )
    parser.set_defaults(func=func)


def _add_read_command(
    subparsers: argparse._SubParsersAction,
    name: str,
    help_text: str,
    func: Callable,
) -> None:
    parser = subparsers.add_parser(name, help=help_text)
    parser.add_argument("projects", nargs="*", help="Projects to show (default: all)")
    parser.add_argument("--start", type=parse_time, help="Only records at or after this time")
    parser.add_argument("--end", type=_end_time, help="Only records at or before this time")
    parser.add_argument(
        "--subprojects", "-s",
        action="store_true",
        help="Include projects whose name starts with a given project",
    )
    parser.add_argument("--html", action="store_true", help="Render through asciidoctor")
    parser.set_defaults(func=func)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lablog",
        description="Record notes, todos and time tracks per project in plain CSV files",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to config file (default: auto-detect in current and home directory)",
    )
    parser.add_argument(
        "--datadir",
        "-d",
        type=parse_datadir,
        help="Directory holding the project files (overrides the config)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    _add_write_command(subparsers, "note", "Record a note", cmd_note)
    _add_write_command(subparsers, "todo", "Record an open todo", cmd_todo)
    _add_write_command(subparsers, "done", "Mark a todo as done", cmd_done)
    _add_write_command(subparsers, "track", "Record a time tracking marker", cmd_track, text_nargs="*")

    merge = subparsers.add_parser("merge", help="Merge one project into another")
    merge.add_argument("source")
    merge.add_argument("destination")
    merge.set_defaults(func=cmd_merge)

    rename = subparsers.add_parser("rename", help="Rename a project")
    rename.add_argument("old")
    rename.add_argument("new")
    rename.set_defaults(func=cmd_rename)

    remove = subparsers.add_parser("remove", help="Delete a project")
    remove.add_argument("project")
    remove.set_defaults(func=cmd_remove)

    projects = subparsers.add_parser("projects", help="List projects with notes or todos")
    projects.add_argument("--all", "-a", action="store_true", help="Also list projects without notes or todos")
    projects.set_defaults(func=cmd_projects)

    _add_read_command(subparsers, "notes", "Show notes", cmd_notes)
    _add_read_command(subparsers, "todos", "Show open todos", cmd_todos)
    _add_read_command(subparsers, "tracks", "Show time tracks", cmd_tracks)
    _add_read_command(subparsers, "entries", "Show open todos and notes", cmd_entries)
    _add_read_command(subparsers, "dates", "Show dates with any records", cmd_dates)

    search = subparsers.add_parser("search", help="Find note lines containing a text")
    search.add_argument("text")
    search.add_argument("projects", nargs="*")
    search.set_defaults(func=cmd_search)

    active = subparsers.add_parser("active", help="List projects that are currently tracked")
    active.add_argument("projects", nargs="*")
    active.set_defaults(func=cmd_active)

    serve = subparsers.add_parser("serve", help="Run the MCP server on stdio")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, search_dirs=[Path.cwd(), Path.home()])
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    if args.datadir is not None:
        config.data_dir = args.datadir

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level,
        format="%(levelname)s: %(message)s",
    )

    try:
        engine = LablogEngine(config)
        return args.func(engine, args) or 0
    except HookError as e:
        print(f"Error: record saved but commit failed: {e}", file=sys.stderr)
        return 3
    except LablogError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
