"""MCP server: stdio-based tool server exposing folder search."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import mcp
from anyio import to_thread
from mcp.server import Server
from mcp.types import TextContent

from daybook import __version__
from daybook.errors import DaybookError
from daybook.search.models import SortOrder

if TYPE_CHECKING:
    from daybook.search.engine import SearchEngine


# --- Tool handler functions (sync, testable without transport) ---


def handle_search(
    engine: SearchEngine,
    *,
    folder_path: str,
    query: str,
    limit: int | None = None,
    order: str = SortOrder.RELEVANCE.value,
) -> dict[str, Any]:
    """Search a journal folder."""
    results = engine.search(folder_path, query, limit=limit, order=SortOrder(order))
    return results.to_dict()


def handle_rebuild_index(engine: SearchEngine, *, folder_path: str) -> dict[str, Any]:
    """Drop and fully rebuild a folder's index."""
    result = engine.rebuild_index(folder_path)
    return {"rebuilt": True, **result.to_dict()}


def handle_index_status(engine: SearchEngine, *, folder_path: str) -> dict[str, Any]:
    """Get index statistics for a folder."""
    return engine.status(folder_path).to_dict()


_TOOLS = [
    mcp.Tool(
        name="search",
        description=(
            "Full-text search across dated journal entries (YYYY-MM-DD.md) in a folder. "
            "Returns matching lines with context snippets and UTF-16 highlight offsets."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "folder_path": {
                    "type": "string",
                    "description": "Absolute path of the journal folder",
                },
                "query": {
                    "type": "string",
                    "description": "Search query (keywords, all must match)",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 0,
                    "description": "Max results (default from config)",
                },
                "order": {
                    "type": "string",
                    "enum": [o.value for o in SortOrder],
                    "default": SortOrder.RELEVANCE.value,
                    "description": "Order by relevance or by entry date (newest first)",
                },
            },
            "required": ["folder_path", "query"],
        },
    ),
    mcp.Tool(
        name="rebuild_index",
        description="Delete and fully rebuild the search index for a journal folder.",
        inputSchema={
            "type": "object",
            "properties": {
                "folder_path": {
                    "type": "string",
                    "description": "Absolute path of the journal folder",
                },
            },
            "required": ["folder_path"],
        },
    ),
    mcp.Tool(
        name="index_status",
        description="File and line counts, generation and last commit time of a folder index.",
        inputSchema={
            "type": "object",
            "properties": {
                "folder_path": {
                    "type": "string",
                    "description": "Absolute path of the journal folder",
                },
            },
            "required": ["folder_path"],
        },
    ),
]


def create_server(engine: SearchEngine) -> Server:
    """Create and configure the MCP server around a shared engine."""
    server = Server(
        name="daybook",
        version=__version__,
        instructions="Daybook: search dated journal folders.",
    )

    @server.list_tools()  # type: ignore[no-untyped-call,untyped-decorator]
    async def _list_tools() -> list[mcp.Tool]:
        return _TOOLS

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def _call_tool(
        name: str,
        arguments: dict[str, Any] | None,
    ) -> list[TextContent]:
        args = arguments or {}
        try:
            # Engine calls block on disk I/O; run them on worker threads.
            result = await to_thread.run_sync(_dispatch_tool, engine, name, args)
        except (DaybookError, LookupError, ValueError) as exc:
            return [TextContent(type="text", text=f"Error: {exc}")]
        return [
            TextContent(
                type="text",
                text=json.dumps(result, ensure_ascii=False, indent=2),
            )
        ]

    return server


def _dispatch_tool(engine: SearchEngine, name: str, args: dict[str, Any]) -> Any:
    """Route tool call to the appropriate handler."""
    if name == "search":
        return handle_search(
            engine,
            folder_path=args["folder_path"],
            query=args["query"],
            limit=args.get("limit"),
            order=args.get("order", SortOrder.RELEVANCE.value),
        )
    if name == "rebuild_index":
        return handle_rebuild_index(engine, folder_path=args["folder_path"])
    if name == "index_status":
        return handle_index_status(engine, folder_path=args["folder_path"])

    msg = f"Unknown tool: {name}"
    raise ValueError(msg)
