from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from lesson_tutor.exceptions import ToolExecutionError, ToolNotFoundError
from lesson_tutor.tools.mcp_client import MCPManager

SERVERS = [
    {"name": "lingo", "sse_url": "http://lingo/sse"},
    {"name": "down", "sse_url": "http://down/sse"},
    {"name": "dupe", "sse_url": "http://dupe/sse"},
]
SERVER_TOOLS = {
    "http://lingo/sse": ["translate", "fail"],
    "http://dupe/sse": ["translate"],
}


def _text(text):
    return SimpleNamespace(type="text", text=text)


@asynccontextmanager
async def fake_sse_client(url):
    if url not in SERVER_TOOLS:
        raise ConnectionError(f"cannot reach {url}")
    yield url, None


class FakeSession:
    opened = []

    def __init__(self, read_stream, write_stream):
        self.url = read_stream

    async def __aenter__(self):
        FakeSession.opened.append(self.url)
        return self

    async def __aexit__(self, *exc):
        return False

    async def initialize(self):
        return None

    async def list_tools(self):
        return SimpleNamespace(tools=[
            SimpleNamespace(name=name, description=f"{name} tool", inputSchema={"type": "object", "properties": {}})
            for name in SERVER_TOOLS[self.url]
        ])

    async def call_tool(self, name, arguments):
        if name == "fail":
            return SimpleNamespace(isError=True, content=[_text("bad input")])
        if not arguments:
            return SimpleNamespace(isError=False, content=[])
        return SimpleNamespace(isError=False, content=[_text("hola"), SimpleNamespace(type="image"), _text("amigo")])


@pytest.fixture
def manager():
    FakeSession.opened = []
    with patch("lesson_tutor.tools.mcp_client.sse_client", fake_sse_client), \
            patch("lesson_tutor.tools.mcp_client.ClientSession", FakeSession):
        yield MCPManager(SERVERS)


@pytest.mark.asyncio
async def test_discovery_skips_unreachable_and_duplicate_tools(manager):
    tools = await manager.list_tools()

    assert [t.name for t in tools] == ["translate", "fail"]
    assert tools[0].description == "translate tool"

    await manager.list_tools()
    assert FakeSession.opened == ["http://lingo/sse", "http://dupe/sse"]


@pytest.mark.asyncio
async def test_call_tool_joins_text_blocks(manager):
    assert await manager.call_tool("translate", {"text": "hello friend"}) == "hola\namigo"
    assert await manager.call_tool("translate", {}) == "No content returned"


@pytest.mark.asyncio
async def test_call_tool_errors(manager):
    with pytest.raises(ToolExecutionError, match="bad input"):
        await manager.call_tool("fail", {})
    with pytest.raises(ToolNotFoundError):
        await manager.call_tool("missing", {})
