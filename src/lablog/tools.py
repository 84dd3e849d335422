"""MCP tool definitions wrapping the lablog engine."""

from __future__ import annotations

from typing import Any, Optional

from .engine import LablogEngine
from .errors import (
    ConflictError,
    HookError,
    LablogError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from .models import TimeStamp, parse_timestamp


def _project_schema(description: str = "Project name") -> dict:
    return {"type": "string", "description": description}


_WINDOW_PROPERTIES = {
    "start": {
        "type": "string",
        "description": "Only records at or after this RFC 3339 timestamp",
    },
    "end": {
        "type": "string",
        "description": "Only records at or before this RFC 3339 timestamp",
    },
}

_TIMESTAMP_PROPERTY = {
    "timestamp": {
        "type": "string",
        "description": "RFC 3339 timestamp for the record (default: now)",
    },
}


def make_tools(engine: LablogEngine) -> dict[str, dict]:
    """Create MCP tool definitions for the lablog engine.

    Returns:
        Dict mapping tool names to their definitions.
    """

    tools = {}

    # ========== writes ==========
    tools["lablog_note"] = {
        "name": "lablog_note",
        "description": "Append a timestamped note to a project. Never edits existing records.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _project_schema(),
                "text": {"type": "string", "description": "Note text, may span several lines"},
                **_TIMESTAMP_PROPERTY,
            },
            "required": ["project", "text"],
        },
    }

    tools["lablog_todo"] = {
        "name": "lablog_todo",
        "description": "Add an open todo to a project.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _project_schema(),
                "value": {"type": "string", "description": "Todo description"},
                **_TIMESTAMP_PROPERTY,
            },
            "required": ["project", "value"],
        },
    }

    tools["lablog_done"] = {
        "name": "lablog_done",
        "description": "Mark a todo as done by recording a done entry with the same description.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _project_schema(),
                "value": {"type": "string", "description": "Description of the finished todo"},
                **_TIMESTAMP_PROPERTY,
            },
            "required": ["project", "value"],
        },
    }

    tools["lablog_track"] = {
        "name": "lablog_track",
        "description": "Record a time-tracking marker. Use the value 'stop' to end activity.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "project": _project_schema(),
                "value": {"type": "string", "description": "Optional annotation"},
                **_TIMESTAMP_PROPERTY,
            },
            "required": ["project"],
        },
    }

    # ========== whole-file operations ==========
    tools["lablog_merge"] = {
        "name": "lablog_merge",
        "description": "Append every record of the source project to the destination and delete the source.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "source": _project_schema("Project to merge and remove"),
                "destination": _project_schema("Existing project receiving the records"),
            },
            "required": ["source", "destination"],
        },
    }

    tools["lablog_rename"] = {
        "name": "lablog_rename",
        "description": "Rename a project. Fails if the new name is taken.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "old": _project_schema("Current project name"),
                "new": _project_schema("New project name"),
            },
            "required": ["old", "new"],
        },
    }

    tools["lablog_remove"] = {
        "name": "lablog_remove",
        "description": "Delete a project and all of its records.",
        "inputSchema": {
            "type": "object",
            "properties": {"project": _project_schema()},
            "required": ["project"],
        },
    }

    # ========== queries ==========
    tools["lablog_projects"] = {
        "name": "lablog_projects",
        "description": "List projects, optionally only those holding notes or todos.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "non_empty": {"type": "boolean", "description": "Hide projects without notes or todos"},
            },
        },
    }

    for kind, description in (
        ("notes", "Non-empty notes of a project, oldest first."),
        ("todos", "Open todos of a project (latest status per description), sorted by description."),
        ("tracks", "Track markers of a project, oldest first."),
    ):
        name = f"lablog_{kind}"
        tools[name] = {
            "name": name,
            "description": description,
            "inputSchema": {
                "type": "object",
                "properties": {"project": _project_schema(), **_WINDOW_PROPERTIES},
                "required": ["project"],
            },
        }

    tools["lablog_dates"] = {
        "name": "lablog_dates",
        "description": "Dates on which the given projects (default: all) have any record.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projects": {"type": "array", "items": {"type": "string"}},
                **_WINDOW_PROPERTIES,
            },
        },
    }

    tools["lablog_search"] = {
        "name": "lablog_search",
        "description": "Find note lines containing a text.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "Text to look for"},
                "projects": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["text"],
        },
    }

    return tools


def _timestamp(arguments: dict[str, Any], key: str) -> Optional[TimeStamp]:
    value = arguments.get(key)
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise ValidationError(f"invalid {key}: {e}") from e


async def execute_tool(engine: LablogEngine, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Execute a lablog tool and return the result.

    Args:
        engine: LablogEngine instance
        name: Tool name
        arguments: Tool arguments

    Returns:
        Result dict with success status and data or error
    """
    try:
        if name == "lablog_note":
            note = engine.record_note(arguments["project"], arguments["text"], _timestamp(arguments, "timestamp"))
            return {"success": True, "record": note.to_dict(), "message": f"Note added to {note.project}"}

        elif name == "lablog_todo":
            todo = engine.record_todo(arguments["project"], arguments["value"], _timestamp(arguments, "timestamp"))
            return {"success": True, "record": todo.to_dict(), "message": f"Todo added to {todo.project}"}

        elif name == "lablog_done":
            todo = engine.record_done(arguments["project"], arguments["value"], _timestamp(arguments, "timestamp"))
            return {"success": True, "record": todo.to_dict(), "message": f"Todo done in {todo.project}"}

        elif name == "lablog_track":
            track = engine.record_track(
                arguments["project"], arguments.get("value", ""), _timestamp(arguments, "timestamp")
            )
            return {"success": True, "record": track.to_dict(), "message": f"Track added to {track.project}"}

        elif name == "lablog_merge":
            engine.merge(arguments["source"], arguments["destination"])
            return {
                "success": True,
                "message": f"Merged {arguments['source']} into {arguments['destination']}",
            }

        elif name == "lablog_rename":
            engine.rename(arguments["old"], arguments["new"])
            return {"success": True, "message": f"Renamed {arguments['old']} to {arguments['new']}"}

        elif name == "lablog_remove":
            engine.remove(arguments["project"])
            return {"success": True, "message": f"Removed {arguments['project']}"}

        elif name == "lablog_projects":
            projects = engine.projects(non_empty=arguments.get("non_empty", False))
            return {"success": True, "projects": projects, "count": len(projects)}

        elif name in ("lablog_notes", "lablog_todos", "lablog_tracks"):
            query = {
                "lablog_notes": engine.notes,
                "lablog_todos": engine.todos,
                "lablog_tracks": engine.tracks,
            }[name]
            records = query(
                arguments["project"],
                start=_timestamp(arguments, "start"),
                end=_timestamp(arguments, "end"),
            )
            return {
                "success": True,
                "project": arguments["project"],
                "records": [record.to_dict() for record in records],
                "count": len(records),
            }

        elif name == "lablog_dates":
            projects = arguments.get("projects") or engine.projects()
            dates = engine.dates(
                projects,
                start=_timestamp(arguments, "start"),
                end=_timestamp(arguments, "end"),
            )
            return {"success": True, "dates": [day.isoformat() for day in dates], "count": len(dates)}

        elif name == "lablog_search":
            matches = engine.search(arguments["text"], arguments.get("projects"))
            return {"success": True, "matches": matches, "count": sum(len(v) for v in matches.values())}

        else:
            return {
                "success": False,
                "error": f"Unknown tool: {name}",
                "error_type": "unknown_tool",
            }

    except KeyError as e:
        return {
            "success": False,
            "error": f"Missing required argument: {e}",
            "error_type": "validation_error",
        }

    except ValidationError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "validation_error",
        }

    except NotFoundError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "not_found",
            "suggestion": "Use lablog_projects to see available projects",
        }

    except ConflictError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "conflict",
        }

    except StoreError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "store_error",
        }

    except HookError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "hook_error",
            "data_saved": True,
            "suggestion": "The data was written; only the version control commit failed",
        }

    except LablogError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "lablog_error",
        }

    except Exception as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "unexpected_error",
        }
