"""
Capability lookup over MCP servers.

Servers are connected lazily on first use and the tool list is cached for the
lifetime of the process. A server that cannot be reached is skipped so the rest
of the registry keeps working.
"""
import asyncio
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger
from mcp import ClientSession
from mcp.client.sse import sse_client

from lesson_tutor.context import ToolDefinition
from lesson_tutor.exceptions import ToolExecutionError, ToolNotFoundError

CLIENT_NAME = "lesson-tutor"


class CapabilityService:
    """Interface for an external registry of callable tools."""

    async def list_tools(self) -> List[ToolDefinition]:
        raise NotImplementedError

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class MCPManager(CapabilityService):
    def __init__(self, servers: List[Dict[str, str]]):
        self.servers = servers
        self._sessions: Dict[str, ClientSession] = {}
        self._tool_map: Dict[str, str] = {}
        self._definitions: List[ToolDefinition] = []
        self._exit_stack = AsyncExitStack()
        self._lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        async with self._lock:
            if self._initialized:
                return
            for server in self.servers:
                name = server["name"]
                try:
                    await self._connect(name, server["sse_url"])
                except Exception as e:
                    logger.error(f"Failed to connect to MCP server {name}: {e}")
            self._initialized = True
            logger.info(
                f"MCP discovery finished: {len(self._definitions)} tools from {len(self._sessions)} servers"
            )

    async def _connect(self, name: str, sse_url: str) -> None:
        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(sse_client(sse_url))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
            listed = await session.list_tools()
        except BaseException:
            await stack.aclose()
            raise
        self._exit_stack.push_async_callback(stack.aclose)

        self._sessions[name] = session
        for tool in listed.tools:
            if tool.name in self._tool_map:
                logger.warning(f"MCP tool '{tool.name}' from {name} shadows one from {self._tool_map[tool.name]}")
                continue
            self._tool_map[tool.name] = name
            self._definitions.append(ToolDefinition(
                name=tool.name,
                description=tool.description or "",
                parameter_schema=tool.inputSchema or {"type": "object", "properties": {}, "required": []},
            ))

    async def list_tools(self) -> List[ToolDefinition]:
        await self.initialize()
        return list(self._definitions)

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> str:
        await self.initialize()
        server_name = self._tool_map.get(name)
        if server_name is None:
            raise ToolNotFoundError(f"Tool {name} not found in any MCP server")
        session: Optional[ClientSession] = self._sessions.get(server_name)
        if session is None:
            raise ToolExecutionError(f"Client for server {server_name} not available")

        result = await session.call_tool(name, dict(arguments))
        texts = [block.text for block in (result.content or []) if getattr(block, "type", None) == "text"]
        if result.isError:
            raise ToolExecutionError(f"Tool execution failed: {' '.join(texts) or 'Unknown error'}")
        if not texts:
            return "No content returned"
        return "\n".join(texts)

    async def aclose(self) -> None:
        await self._exit_stack.aclose()
        self._sessions.clear()
