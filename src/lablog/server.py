"""MCP server for lablog.

Serves the records of one data directory to an MCP client on stdio. Each
tool from :func:`lablog.tools.make_tools` (lablog_note, lablog_todos and
the rest) is listed under its own name, and every call answers with a
single text block holding the tool result as JSON.
"""

from __future__ import annotations

import json
from typing import Any

# MCP imports are optional - only needed when running the server
try:
    from mcp.server import Server  # pragma: no cover
    from mcp.server.stdio import stdio_server  # pragma: no cover
    from mcp.types import Tool, TextContent  # pragma: no cover
    HAS_MCP = True  # pragma: no cover
except ImportError:
    HAS_MCP = False
    Server = None  # type: ignore
    Tool = None  # type: ignore
    TextContent = None  # type: ignore

from .config import LablogConfig
from .engine import LablogEngine
from .tools import execute_tool, make_tools

MISSING_MCP = "MCP package not installed. Install with: pip install lablog[mcp]"


def result_text(result: dict[str, Any]) -> str:
    """JSON text sent back for a tool result; other values are written with str()."""
    return json.dumps(result, indent=2, default=str)


def create_server(config: LablogConfig) -> "Server":
    """Build a server bound to one engine over ``config.data_dir``.

    Raises:
        ImportError: If the mcp package is not installed
    """
    if not HAS_MCP:
        raise ImportError(MISSING_MCP)

    server = Server("lablog")
    engine = LablogEngine(config)
    tool_defs = make_tools(engine)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name=t["name"],
                description=t["description"],
                inputSchema=t["inputSchema"],
            )
            for t in tool_defs.values()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        # Errors come back inside the result, see execute_tool
        result = await execute_tool(engine, name, arguments)
        return [TextContent(type="text", text=result_text(result))]

    return server


async def run_server(config: LablogConfig) -> None:
    """Serve lablog on stdin/stdout until the client disconnects."""
    if not HAS_MCP:
        raise ImportError(MISSING_MCP)

    server = create_server(config)  # pragma: no cover

    async with stdio_server() as (read_stream, write_stream):  # pragma: no cover
        await server.run(  # pragma: no cover
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )
