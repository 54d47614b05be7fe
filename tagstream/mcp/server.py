"""MCP server implementation for Tagstream."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from rich.console import Console
from rich.logging import RichHandler

from tagstream.core.config import Options
from tagstream.core.exceptions import LanguageMappingError, ParseError
from tagstream.engine import Parser, list_language_mappings

server = Server("tagstream")

_parser: Parser | None = None
_parser_lock = threading.Lock()


def _get_parser() -> Parser:
    """Get the server's parser, starting ctags on first use."""
    global _parser
    with _parser_lock:
        if _parser is None:
            _parser = Parser(Options.from_env())
        return _parser


def _close_parser() -> None:
    global _parser
    with _parser_lock:
        if _parser is not None:
            _parser.close()
            _parser = None


@server.list_tools()  # type: ignore[no-untyped-call, untyped-decorator]
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="tagstream_tags",
            description=(
                "List the symbols (classes, fields, methods, functions, ...) defined in a "
                "source file, with line numbers, signatures and enclosing symbols."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path of the file; also used to detect its language",
                    },
                    "content": {
                        "type": "string",
                        "description": "File content (optional; read from path if omitted)",
                    },
                },
                "required": ["path"],
            },
        ),
        Tool(
            name="tagstream_languages",
            description="List the supported languages and the file patterns mapped to them.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
    ]


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls.

    Handlers block on ctags, so they run in a worker thread.
    """
    try:
        if name == "tagstream_tags":
            result = await asyncio.to_thread(
                _handle_tags, arguments["path"], arguments.get("content")
            )
        elif name == "tagstream_languages":
            result = await asyncio.to_thread(_handle_languages)
        else:
            result = {"error": f"Unknown tool: {name}"}

        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    except (ParseError, LanguageMappingError, OSError) as e:
        return [TextContent(type="text", text=json.dumps({"error": str(e)}))]


def _handle_tags(path: str, content: str | None) -> dict[str, Any]:
    """Handle tagstream_tags tool."""
    data = Path(path).read_bytes() if content is None else content.encode("utf-8")
    try:
        entries = _get_parser().parse(path, data)
    except ParseError as e:
        if e.fatal:
            raise
        return {
            "error": str(e),
            "results": [entry.to_dict() for entry in e.entries],
        }
    return {"results": [entry.to_dict() for entry in entries]}


def _handle_languages() -> dict[str, Any]:
    """Handle tagstream_languages tool."""
    return {"results": list_language_mappings()}


async def serve() -> None:
    """Run the MCP server."""
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        _close_parser()


def run() -> None:
    """Entry point for ``tagstream-mcp``.

    stdout carries the protocol, so logs go to stderr.
    """
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    asyncio.run(serve())
