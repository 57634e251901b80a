"""
Tool registry and MCP server construction.

A server is a list of ``ToolSpec`` entries: a name, a description, a pydantic
input model and an async handler that returns the text sent back to the
client. ``build_server`` wires them into the low-level ``mcp`` server.
"""

import asyncio
import json
import logging
import sys
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Type

import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConfigurationError, ToolError
from ..utils.logger import get_logger, with_correlation_id


logger = get_logger("pulse_mcp.tooling")


class ToolInput(BaseModel):
    """Base for tool argument models; accepts both field names and aliases"""
    model_config = ConfigDict(populate_by_name=True)


class EmptyInput(ToolInput):
    pass


@dataclass
class ToolSpec:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[Any], Awaitable[str]]
    groups: Tuple[str, ...] = ()
    is_write: bool = False

    @property
    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    def to_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)

    async def invoke(self, arguments: Optional[Dict[str, Any]]) -> str:
        try:
            params = self.input_model.model_validate(arguments or {})
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolError(f"Invalid arguments for {self.name}: {details}") from e
        return await self.handler(params)


class ResourceProvider(Protocol):
    async def list_resources(self) -> List[Resource]: ...

    async def read_resource(self, uri: str) -> Tuple[str, str]:
        """Return (text, mime_type) for a resource URI"""
        ...


def json_text(obj: Any) -> str:
    return json.dumps(obj, indent=2, default=str)


async def dispatch(registry: Dict[str, ToolSpec], name: str,
                   arguments: Optional[Dict[str, Any]]) -> str:
    tool = registry.get(name)
    if tool is None:
        raise ValueError(f"Unknown tool: {name}")
    return await tool.invoke(arguments)


def build_server(name: str, tools: Sequence[ToolSpec],
                 resources: Optional[ResourceProvider] = None) -> Server:
    """Create an MCP server exposing the given tools and optional resources"""

    server = Server(name)
    registry = {tool.name: tool for tool in tools}
    server_logger = get_logger(name)

    @server.list_tools()
    async def handle_list_tools() -> list[Tool]:
        """List available tools"""
        return [tool.to_tool() for tool in tools]

    @server.call_tool()
    async def handle_call_tool(tool_name: str, arguments: dict) -> list[TextContent]:
        """Handle tool calls"""
        with with_correlation_id(server_logger, str(uuid.uuid4())):
            server_logger.info(f"Calling tool {tool_name}")
            try:
                text = await dispatch(registry, tool_name, arguments)
            except ToolError as e:
                server_logger.warning(f"Tool {tool_name} returned an error: {e}")
                raise
            except Exception as e:
                server_logger.error(f"Tool {tool_name} failed: {e}", exc_info=True)
                raise
        return [types.TextContent(type="text", text=text)]

    if resources is not None:
        @server.list_resources()
        async def handle_list_resources() -> list[Resource]:
            """List available resources"""
            return await resources.list_resources()

        @server.read_resource()
        async def handle_read_resource(uri) -> list[ReadResourceContents]:
            """Read a resource by URI"""
            text, mime_type = await resources.read_resource(str(uri))
            return [ReadResourceContents(content=text, mime_type=mime_type)]

    server.tool_registry = registry
    return server


async def run_stdio(server: Server, version: str) -> None:
    """Serve over stdio until the client disconnects"""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name=server.name,
                server_version=version,
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={}
                )
            )
        )


def run_main(main: Callable[[], Awaitable[None]], logger: logging.Logger) -> None:
    """Console-script entry point: run a server coroutine and exit 1 on bad configuration"""
    try:
        asyncio.run(main())
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Server stopped")
