"""OpenAI-compatible adapter using the openai SDK with native async streaming.

Serves every provider that speaks the chat-completions protocol
(OpenAI, DeepSeek, Mistral, Groq, Zhipu, xAI) through ``base_url``.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from ai_debate.providers.base import (
    ChatRequest,
    ErrorKind,
    Message,
    ModelAdapter,
    ProviderError,
    StreamChunk,
    ToolCall,
    classify_status,
)

logger = logging.getLogger(__name__)


def _classify(exc: Exception) -> ErrorKind:
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, openai.APIStatusError):
        return classify_status(exc.status_code)
    if isinstance(exc, TimeoutError):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def _to_openai_messages(messages: tuple[Message, ...]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = []
    for m in messages:
        if m.role == "tool":
            converted.append({"role": "tool", "tool_call_id": m.tool_call_id, "content": m.content})
        elif m.role == "assistant" and m.tool_calls:
            converted.append({
                "role": "assistant",
                "content": m.content or None,
                "tool_calls": [
                    {
                        "id": c.id,
                        "type": "function",
                        "function": {"name": c.name, "arguments": c.arguments},
                    }
                    for c in m.tool_calls
                ],
            })
        else:
            converted.append({"role": m.role, "content": m.content})
    return converted


class OpenAIAdapter(ModelAdapter):
    """Chat-completions adapter via the openai SDK."""

    def __init__(
        self,
        identifier: str,
        api_key: str = "",
        base_url: str | None = None,
        stream_usage: bool = True,
    ) -> None:
        super().__init__(identifier, api_key, base_url)
        self._stream_usage = stream_usage
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._require_key(), base_url=self._base_url)
        return self._client

    def _build_kwargs(self, request: ChatRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model_string(),
            "messages": _to_openai_messages(request.messages),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "stream": True,
        }
        if self._stream_usage:
            kwargs["stream_options"] = {"include_usage": True}
        if request.tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in request.tools
            ]
            kwargs["tool_choice"] = request.tool_choice
        return kwargs

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        # index -> [id, name, argument fragments]
        pending_calls: dict[int, list[Any]] = {}
        try:
            response = await client.chat.completions.create(**self._build_kwargs(request))
            async for chunk in response:
                if chunk.usage:
                    yield StreamChunk.tokens(chunk.usage.prompt_tokens, chunk.usage.completion_tokens)
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                # DeepSeek reasoner and similar expose chain-of-thought here
                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield StreamChunk.thought(reasoning)
                if delta.content:
                    yield StreamChunk.content(delta.content)
                for tc in delta.tool_calls or []:
                    entry = pending_calls.setdefault(tc.index, [None, "", []])
                    if tc.id:
                        entry[0] = tc.id
                    if tc.function is not None:
                        if tc.function.name:
                            entry[1] = tc.function.name
                        if tc.function.arguments:
                            entry[2].append(tc.function.arguments)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}", _classify(exc)) from exc

        for index in sorted(pending_calls):
            call_id, call_name, fragments = pending_calls[index]
            if not call_name:
                raise ProviderError(self.name(), "Tool call without a function name", ErrorKind.PROTOCOL)
            yield StreamChunk.call(ToolCall(
                id=call_id or f"call_{index}",
                name=call_name,
                arguments="".join(fragments),
            ))
        logger.debug("%s stream finished (%d tool calls)", self.name(), len(pending_calls))
