"""Anthropic Claude adapter using the anthropic SDK with native async streaming."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import anthropic as anthropic_sdk

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
    if isinstance(exc, (anthropic_sdk.APITimeoutError, anthropic_sdk.APIConnectionError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, anthropic_sdk.APIStatusError):
        return classify_status(exc.status_code)
    if isinstance(exc, TimeoutError):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def _to_anthropic_messages(messages: tuple[Message, ...]) -> list[dict[str, Any]]:
    """Convert conversation messages; consecutive tool results share one user turn."""
    converted: list[dict[str, Any]] = []
    for m in messages:
        if m.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": m.tool_call_id,
                "content": m.content,
                "is_error": m.is_error,
            }
            last = converted[-1] if converted else None
            if last and last["role"] == "user" and isinstance(last["content"], list):
                last["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
        elif m.role == "assistant" and m.tool_calls:
            blocks: list[dict[str, Any]] = []
            if m.content:
                blocks.append({"type": "text", "text": m.content})
            for c in m.tool_calls:
                try:
                    tool_input = json.loads(c.arguments or "{}")
                except json.JSONDecodeError:
                    tool_input = {}
                blocks.append({"type": "tool_use", "id": c.id, "name": c.name, "input": tool_input})
            converted.append({"role": "assistant", "content": blocks})
        else:
            converted.append({"role": m.role, "content": m.content})
    return converted


class AnthropicAdapter(ModelAdapter):
    """Anthropic Claude adapter via anthropic SDK."""

    def __init__(self, identifier: str, api_key: str = "", base_url: str | None = None) -> None:
        super().__init__(identifier, api_key, base_url)
        self._client: anthropic_sdk.AsyncAnthropic | None = None

    def _get_client(self) -> anthropic_sdk.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic_sdk.AsyncAnthropic(api_key=self._require_key(), base_url=self._base_url)
        return self._client

    def _build_kwargs(self, request: ChatRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model_string(),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": _to_anthropic_messages(request.conversation),
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt
        if request.tools:
            kwargs["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in request.tools
            ]
            kwargs["tool_choice"] = {"type": request.tool_choice}
        return kwargs

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        try:
            async with client.messages.stream(**self._build_kwargs(request)) as stream:
                async for event in stream:
                    if event.type != "content_block_delta":
                        continue
                    if event.delta.type == "text_delta":
                        yield StreamChunk.content(event.delta.text)
                    elif event.delta.type == "thinking_delta":
                        yield StreamChunk.thought(event.delta.thinking)
                final = await stream.get_final_message()
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}", _classify(exc)) from exc

        for block in final.content:
            if block.type == "tool_use":
                yield StreamChunk.call(ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input)))

        if final.usage:
            yield StreamChunk.tokens(final.usage.input_tokens, final.usage.output_tokens)
        logger.debug("%s stream finished (stop_reason=%s)", self.name(), final.stop_reason)
