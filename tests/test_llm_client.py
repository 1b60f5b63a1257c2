from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from lesson_tutor.core.llm import LLMClient
from lesson_tutor.exceptions import ModelProviderError


def _openai_client(create):
    client = MagicMock()
    client.chat.completions.create = create
    return client


def _tool_call(id, name, arguments):
    return SimpleNamespace(id=id, function=SimpleNamespace(name=name, arguments=arguments))


def _completion(content=None, tool_calls=None):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content, tool_calls=tool_calls))])


def _chunk(content=None, tool_calls=None):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content, tool_calls=tool_calls))])


class FakeStream:
    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.close = AsyncMock()

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


@pytest.mark.asyncio
async def test_complete_maps_reply_and_request():
    create = AsyncMock(return_value=_completion("Thinking", [_tool_call("c1", "get_weather", '{"location": "Oslo"}')]))
    llm = LLMClient(max_tokens=512, client=_openai_client(create))
    tools = [{"type": "function", "function": {"name": "get_weather"}}]

    reply = await llm.complete("gpt-4o-mini", [{"role": "user", "content": "hi"}], tools)

    assert reply.content == "Thinking"
    assert reply.tool_calls[0].id == "c1"
    assert reply.tool_calls[0].arguments == '{"location": "Oslo"}'
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["max_tokens"] == 512
    assert kwargs["tools"] == tools
    assert kwargs["tool_choice"] == "auto"
    assert kwargs["stream"] is False


@pytest.mark.asyncio
async def test_complete_without_tools_omits_tool_choice():
    create = AsyncMock(return_value=_completion("Hello"))
    llm = LLMClient(client=_openai_client(create))

    reply = await llm.complete("gpt-4o-mini", [], None)

    assert reply.tool_calls == []
    assert "tools" not in create.call_args.kwargs
    assert "tool_choice" not in create.call_args.kwargs


@pytest.mark.asyncio
async def test_complete_wraps_provider_errors():
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.example.com"))
    llm = LLMClient(client=_openai_client(AsyncMock(side_effect=error)))

    with pytest.raises(ModelProviderError):
        await llm.complete("gpt-4o-mini", [])


@pytest.mark.asyncio
async def test_stream_yields_deltas_and_closes():
    stream = FakeStream([
        _chunk("Hel"),
        SimpleNamespace(choices=[]),
        _chunk("lo", [SimpleNamespace(index=0, id="c1", function=SimpleNamespace(name="web_search", arguments='{"q'))]),
    ])
    llm = LLMClient(client=_openai_client(AsyncMock(return_value=stream)))

    deltas = [d async for d in llm.stream("gpt-4o-mini", [])]

    assert [d.content for d in deltas] == ["Hel", "lo"]
    assert deltas[1].tool_calls[0].name == "web_search"
    assert deltas[1].tool_calls[0].arguments == '{"q'
    stream.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_stream_transport_failure_is_provider_error():
    stream = FakeStream([_chunk("Hel")], error=httpx.RemoteProtocolError("peer closed connection"))
    llm = LLMClient(client=_openai_client(AsyncMock(return_value=stream)))

    received = []
    with pytest.raises(ModelProviderError):
        async for delta in llm.stream("gpt-4o-mini", []):
            received.append(delta.content)

    assert received == ["Hel"]
    stream.close.assert_awaited_once()
