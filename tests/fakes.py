"""Test doubles for the model provider and the capability service."""
import asyncio
from typing import Any, Dict, List, Optional, Sequence

from lesson_tutor.context import ToolDefinition
from lesson_tutor.core.llm import ModelDelta, ModelReply, PendingToolCall, ToolCallDelta
from lesson_tutor.tools.mcp_client import CapabilityService


class FakeLLM:
    """Scripted model: each call pops the next reply (or raises it if it is an exception)."""

    def __init__(self, replies: Sequence[Any] = (), stream_script: Sequence[Any] = ()):
        self.replies = list(replies)
        self.stream_script = list(stream_script)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def complete(self, model, messages, tools=None):
        self.calls.append({"model": model, "messages": list(messages), "tools": tools})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def stream(self, model, messages, tools=None):
        self.calls.append({"model": model, "messages": list(messages), "tools": tools})
        deltas = self.stream_script.pop(0)
        for delta in deltas:
            if isinstance(delta, Exception):
                raise delta
            yield delta

    async def aclose(self):
        self.closed = True


class FakeCapabilityService(CapabilityService):
    """External tools keyed by name; `delays` holds per-tool latency in seconds."""

    def __init__(
        self,
        tools: Optional[Dict[str, Any]] = None,
        fail_listing: bool = False,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.tools = tools or {}
        self.fail_listing = fail_listing
        self.delays = delays or {}
        self.invocations: List[tuple] = []
        self.completed: List[str] = []

    async def list_tools(self):
        if self.fail_listing:
            raise ConnectionError("capability service unreachable")
        return [ToolDefinition(name=name, description=f"external {name}") for name in self.tools]

    async def call_tool(self, name, arguments):
        self.invocations.append((name, dict(arguments)))
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        self.completed.append(name)
        outcome = self.tools[name]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def tool_reply(*calls: PendingToolCall, content: Optional[str] = None) -> ModelReply:
    return ModelReply(content=content, tool_calls=list(calls))


def text_reply(content: str) -> ModelReply:
    return ModelReply(content=content)


def call(name: str, arguments: Any = None, id: Optional[str] = None) -> PendingToolCall:
    return PendingToolCall(id=id, name=name, arguments=arguments)


def text_deltas(*fragments: str) -> List[ModelDelta]:
    return [ModelDelta(content=f) for f in fragments]


def tool_deltas(index: int, id: str, name: str, *argument_parts: str) -> List[ModelDelta]:
    first = ModelDelta(tool_calls=[ToolCallDelta(index=index, id=id, name=name)])
    rest = [ModelDelta(tool_calls=[ToolCallDelta(index=index, arguments=p)]) for p in argument_parts]
    return [first] + rest


