"""
LLM abstraction for the tutor: a thin async wrapper around an OpenAI-compatible
chat-completions endpoint (OpenAI itself or any gateway that speaks its API).

Provider objects never leak past this module. Buffered calls come back as a
ModelReply and streamed calls as ModelDelta fragments, and every provider failure
is re-raised as ModelProviderError. No retries happen here.
"""
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx
import openai
from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from lesson_tutor.config import MAX_TOKENS, OPENAI_API_KEY, OPENAI_BASE_URL
from lesson_tutor.exceptions import ModelProviderError


class PendingToolCall(BaseModel):
    """A tool call requested by the model, arguments still raw."""
    id: Optional[str] = None
    name: str = ""
    arguments: Union[str, Dict[str, Any], None] = None


class ModelReply(BaseModel):
    content: Optional[str] = None
    tool_calls: List[PendingToolCall] = Field(default_factory=list)


class ToolCallDelta(BaseModel):
    index: int = 0
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


class ModelDelta(BaseModel):
    """One streamed fragment: text, partial tool calls, or both."""
    content: Optional[str] = None
    tool_calls: List[ToolCallDelta] = Field(default_factory=list)


class LLMClient:
    """Async chat-completions client used by TurnOrchestrator."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: int = MAX_TOKENS,
        client: AsyncOpenAI | None = None,
    ):
        self.max_tokens = max_tokens
        self._client = client or AsyncOpenAI(
            api_key=api_key or OPENAI_API_KEY,
            base_url=base_url or OPENAI_BASE_URL,
        )

    def _request(self, model: str, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": self.max_tokens,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        return request

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ModelReply:
        try:
            completion = await self._client.chat.completions.create(
                **self._request(model, messages, tools), stream=False
            )
        except openai.OpenAIError as e:
            logger.error(f"Model call failed for {model}: {e}")
            raise ModelProviderError(str(e)) from e

        if not completion.choices:
            return ModelReply()
        message = completion.choices[0].message
        calls = [
            PendingToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments)
            for tc in (message.tool_calls or [])
            if getattr(tc, "function", None) is not None
        ]
        return ModelReply(content=message.content, tool_calls=calls)

    async def stream(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[ModelDelta]:
        try:
            stream = await self._client.chat.completions.create(
                **self._request(model, messages, tools), stream=True
            )
        except openai.OpenAIError as e:
            logger.error(f"Model stream failed for {model}: {e}")
            raise ModelProviderError(str(e)) from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta is None:
                    continue
                yield ModelDelta(
                    content=delta.content,
                    tool_calls=[
                        ToolCallDelta(
                            index=tc.index,
                            id=tc.id,
                            name=tc.function.name if tc.function else None,
                            arguments=tc.function.arguments if tc.function else None,
                        )
                        for tc in (delta.tool_calls or [])
                    ],
                )
        except (openai.OpenAIError, httpx.HTTPError) as e:
            logger.error(f"Model stream for {model} broke off: {e}")
            raise ModelProviderError(str(e)) from e
        finally:
            await stream.close()

    async def aclose(self) -> None:
        await self._client.close()
