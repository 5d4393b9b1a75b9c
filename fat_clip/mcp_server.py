#!/usr/bin/env python3
"""Fat Clip MCP Server - clipboard history over stdio."""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent
from mcp.server.models import InitializationOptions
from mcp.server.lowlevel import NotificationOptions

from fat_clip.core.config import load_settings
from fat_clip.core.errors import ClipNotFoundError
from fat_clip.core.search import parse_query
from fat_clip.core.timeline import build_layout
from fat_clip.engine import ClipboardEngine
from fat_clip.models.schemas import CleanupRequest, ClipRecord

logger = logging.getLogger(__name__)

CONTENT_TYPE_SCHEMA = {
    "type": "string",
    "enum": ["all", "Plain", "Rich", "Image", "File"],
    "default": "all",
}


def _clip_json(record: ClipRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json")


class FatClipMCPServer:
    """MCP server exposing the clipboard history."""

    def __init__(self, engine: Optional[ClipboardEngine] = None):
        self.engine = engine or ClipboardEngine()
        self.backend = self.engine.backend

        self.app = Server("fat-clip")
        self._register_handlers()

    def _register_handlers(self):
        """Register MCP protocol handlers."""

        @self.app.list_tools()
        async def list_tools() -> List[Tool]:
            return self.tool_definitions()

        @self.app.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
            return await self.call(name, arguments)

    def tool_definitions(self) -> List[Tool]:
        clip_id = {"type": "string", "description": "Clip identifier"}
        return [
            Tool(
                name="clip_list",
                description="List recent clipboard entries, pinned first",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "limit": {"type": "integer", "default": 10, "minimum": 1, "maximum": 100},
                        "content_type": CONTENT_TYPE_SCHEMA,
                    },
                },
            ),
            Tool(
                name="clip_search",
                description="Search history; supports tag:name, #name and type:name tokens",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "Search query"},
                        "limit": {"type": "integer", "default": 10, "minimum": 1, "maximum": 100},
                        "content_type": CONTENT_TYPE_SCHEMA,
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="clip_timeline",
                description="Recent clips grouped by day",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "limit": {"type": "integer", "default": 50, "minimum": 1, "maximum": 500},
                        "mode": {
                            "type": "string",
                            "enum": ["standard", "compact", "off"],
                            "default": "standard",
                        },
                    },
                },
            ),
            Tool(
                name="clip_tags",
                description="All tags, or those matching a prefix",
                inputSchema={
                    "type": "object",
                    "properties": {"prefix": {"type": "string", "default": ""}},
                },
            ),
            Tool(
                name="clip_pin",
                description="Pin or unpin a clip",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "clip_id": clip_id,
                        "pinned": {"type": "boolean", "default": True},
                    },
                    "required": ["clip_id"],
                },
            ),
            Tool(
                name="clip_tag",
                description="Replace the tags of a clip",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "clip_id": clip_id,
                        "tags": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["clip_id", "tags"],
                },
            ),
            Tool(
                name="clip_copy",
                description="Put a clip back on the system clipboard",
                inputSchema={
                    "type": "object",
                    "properties": {"clip_id": clip_id},
                    "required": ["clip_id"],
                },
            ),
            Tool(
                name="clip_remove",
                description="Remove clipboard entry by ID",
                inputSchema={
                    "type": "object",
                    "properties": {"clip_id": clip_id},
                    "required": ["clip_id"],
                },
            ),
            Tool(
                name="clip_cleanup",
                description="Delete unpinned clips by date range, cutoff date or age",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "mode": {"type": "string", "enum": ["range", "before", "older_than"]},
                        "start_date": {"type": "string", "description": "YYYY-MM-DD"},
                        "end_date": {"type": "string", "description": "YYYY-MM-DD"},
                        "before_date": {"type": "string", "description": "YYYY-MM-DD"},
                        "older_than_days": {"type": "integer", "minimum": 1},
                    },
                    "required": ["mode"],
                },
            ),
        ]

    async def call(self, name: str, arguments: Dict[str, Any]) -> List[TextContent]:
        """Handle MCP tool calls with structured output."""
        try:
            result = await self._dispatch_tool_call(name, arguments or {})
            return [
                TextContent(
                    type="text",
                    text=json.dumps(result, indent=2, ensure_ascii=False),
                )
            ]
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            error_result = {"error": str(e), "tool": name, "arguments": arguments}
            return [TextContent(type="text", text=json.dumps(error_result, indent=2, default=str))]

    async def _dispatch_tool_call(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch tool calls to appropriate handlers."""
        handlers = {
            "clip_list": self._handle_clip_list,
            "clip_search": self._handle_clip_search,
            "clip_timeline": self._handle_clip_timeline,
            "clip_tags": self._handle_clip_tags,
            "clip_pin": self._handle_clip_pin,
            "clip_tag": self._handle_clip_tag,
            "clip_copy": self._handle_clip_copy,
            "clip_remove": self._handle_clip_remove,
            "clip_cleanup": self._handle_clip_cleanup,
        }

        handler = handlers.get(name)
        if not handler:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    async def _handle_clip_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        limit = args.get("limit", 10)
        content_type = args.get("content_type", "all")
        clips = await self.backend.get_recent_clips(self.engine.settings.max_history_items)

        facet = parse_query("", content_type).content_type
        if facet is not None:
            clips = [c for c in clips if c.content_type == facet]
        clips = clips[:limit]

        return {"clips": [_clip_json(c) for c in clips], "count": len(clips), "limit": limit}

    async def _handle_clip_search(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = args["query"]
        limit = args.get("limit", 10)
        content_type = args.get("content_type", "all")
        if content_type and content_type.lower() != "all":
            query = f"{query} type:{content_type}"

        results = await self.backend.search_clips(query, limit)
        return {
            "query": args["query"],
            "results": [_clip_json(c) for c in results],
            "count": len(results),
        }

    async def _handle_clip_timeline(self, args: Dict[str, Any]) -> Dict[str, Any]:
        limit = args.get("limit", 50)
        mode = args.get("mode", self.engine.settings.timeline_mode)
        clips = await self.backend.get_recent_clips(limit)

        layout = build_layout(clips, mode)
        return {
            "mode": layout.mode.value,
            "groups": [
                {
                    "day_key": g.day_key,
                    "label": g.label,
                    "clips": [_clip_json(item.record) for item in g.items],
                }
                for g in layout.groups
            ],
            "count": len(clips),
        }

    async def _handle_clip_tags(self, args: Dict[str, Any]) -> Dict[str, Any]:
        prefix = args.get("prefix", "")
        if prefix:
            tags = await self.backend.search_tags(prefix)
        else:
            tags = await self.backend.get_all_tags()
        return {"tags": tags, "count": len(tags)}

    async def _handle_clip_pin(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clip_id = args["clip_id"]
        pinned = bool(args.get("pinned", True))
        await self.backend.toggle_clip_pin(clip_id, pinned)
        await self.engine.main.reload()
        return {"id": clip_id, "pinned": pinned}

    async def _handle_clip_tag(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clip_id = args["clip_id"]
        await self.backend.update_clip_tags(clip_id, list(args.get("tags", [])))
        await self.engine.main.reload()
        record = await self.engine.find_clip(clip_id)
        return {"id": clip_id, "tags": record.tags if record else []}

    async def _handle_clip_copy(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clip_id = args["clip_id"]
        record = await self.engine.find_clip(clip_id)
        if record is None:
            return {"id": clip_id, "status": "not_found"}

        copied = await self.engine.main.copy(record)
        return {"id": clip_id, "status": "copied" if copied else "failed"}

    async def _handle_clip_remove(self, args: Dict[str, Any]) -> Dict[str, Any]:
        clip_id = args["clip_id"]
        try:
            await self.backend.delete_clip(clip_id)
        except ClipNotFoundError:
            return {"id": clip_id, "status": "not_found"}

        await self.engine.main.reload()
        return {"id": clip_id, "status": "removed"}

    async def _handle_clip_cleanup(self, args: Dict[str, Any]) -> Dict[str, Any]:
        request = CleanupRequest.model_validate(args)
        deleted = await self.backend.cleanup_clips(request)
        return {"mode": request.mode, "deleted": deleted}

    async def run(self):
        """Run the MCP server with clipboard capture in the background."""
        await self.engine.start()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.app.run(
                    read_stream,
                    write_stream,
                    InitializationOptions(
                        server_name="fat-clip",
                        server_version="1.0.0",
                        capabilities=self.app.get_capabilities(
                            notification_options=NotificationOptions(),
                            experimental_capabilities={},
                        ),
                    ),
                )
        finally:
            await self.engine.stop()


async def async_main():
    """Main async entry point."""
    settings = load_settings()
    server = FatClipMCPServer(ClipboardEngine(settings=settings))
    await server.run()


def main():
    """Synchronous entry point for console script."""
    settings = load_settings()
    # stdout carries the MCP stream
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Fat Clip MCP Server stopped")
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise


if __name__ == "__main__":
    main()
