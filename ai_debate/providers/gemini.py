"""Gemini adapter using the google-genai SDK with native async streaming."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

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
    if isinstance(exc, genai_errors.APIError):
        return classify_status(exc.code)
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def _to_gemini_contents(messages: tuple[Message, ...]) -> list[genai_types.Content]:
    contents: list[genai_types.Content] = []
    for m in messages:
        if m.role == "tool":
            part = genai_types.Part.from_function_response(
                name=m.name or "tool",
                response={"error" if m.is_error else "result": m.content},
            )
            contents.append(genai_types.Content(role="user", parts=[part]))
        elif m.role == "assistant":
            parts: list[genai_types.Part] = []
            if m.content:
                parts.append(genai_types.Part(text=m.content))
            for c in m.tool_calls:
                try:
                    args = json.loads(c.arguments or "{}")
                except json.JSONDecodeError:
                    args = {}
                parts.append(genai_types.Part(function_call=genai_types.FunctionCall(name=c.name, args=args)))
            contents.append(genai_types.Content(role="model", parts=parts))
        else:
            contents.append(genai_types.Content(role="user", parts=[genai_types.Part(text=m.content)]))
    return contents


class GeminiAdapter(ModelAdapter):
    """Google Gemini adapter via google-genai SDK."""

    def __init__(self, identifier: str, api_key: str = "", base_url: str | None = None) -> None:
        super().__init__(identifier, api_key, base_url)
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self._require_key())
        return self._client

    def _build_config(self, request: ChatRequest) -> genai_types.GenerateContentConfig:
        kwargs: dict[str, Any] = {
            "max_output_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.system_prompt:
            kwargs["system_instruction"] = request.system_prompt
        if request.tools:
            kwargs["tools"] = [genai_types.Tool(function_declarations=[
                genai_types.FunctionDeclaration(
                    name=t.name,
                    description=t.description,
                    parameters_json_schema=t.parameters,
                )
                for t in request.tools
            ])]
            mode = "NONE" if request.tool_choice == "none" else "AUTO"
            kwargs["tool_config"] = genai_types.ToolConfig(
                function_calling_config=genai_types.FunctionCallingConfig(mode=mode),
            )
        return genai_types.GenerateContentConfig(**kwargs)

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        usage = None
        call_count = 0
        try:
            response = await client.aio.models.generate_content_stream(
                model=self.model_string(),
                contents=_to_gemini_contents(request.conversation),
                config=self._build_config(request),
            )
            async for chunk in response:
                if chunk.usage_metadata:
                    usage = chunk.usage_metadata
                for candidate in chunk.candidates or []:
                    if candidate.content is None:
                        continue
                    for part in candidate.content.parts or []:
                        if part.function_call is not None:
                            call_count += 1
                            fc = part.function_call
                            yield StreamChunk.call(ToolCall(
                                id=fc.id or f"{fc.name}_{call_count}",
                                name=fc.name or "",
                                arguments=json.dumps(dict(fc.args or {})),
                            ))
                        elif part.text:
                            if part.thought:
                                yield StreamChunk.thought(part.text)
                            else:
                                yield StreamChunk.content(part.text)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}", _classify(exc)) from exc

        if usage is not None:
            yield StreamChunk.tokens(usage.prompt_token_count or 0, usage.candidates_token_count or 0)
        logger.debug("%s stream finished (%d tool calls)", self.name(), call_count)
