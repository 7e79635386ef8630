"""Abstract base for all model adapters, plus the request/stream types they share."""

import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ai_debate.models import Usage


class ErrorKind(Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    FATAL = "fatal"
    PROTOCOL = "protocol"


_RETRYABLE = frozenset({ErrorKind.AUTH, ErrorKind.RATE_LIMIT, ErrorKind.TRANSIENT})


class ProviderError(Exception):
    """Raised when an adapter call fails."""

    def __init__(self, provider_name: str, message: str, kind: ErrorKind = ErrorKind.FATAL) -> None:
        self.provider_name = provider_name
        self.kind = kind
        super().__init__(f"[{provider_name}] {message}")

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE


def classify_status(status_code: int | None) -> ErrorKind:
    """Map an HTTP status code to an ErrorKind."""
    if status_code is None:
        return ErrorKind.TRANSIENT
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code in (408, 409) or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str                    # raw JSON text as produced by the model


@dataclass(frozen=True)
class Message:
    role: str                         # "system" | "user" | "assistant" | "tool"
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None           # tool name, for "tool" messages
    is_error: bool = False

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls("system", content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls("user", content)

    @classmethod
    def assistant(cls, content: str, tool_calls: tuple[ToolCall, ...] = ()) -> "Message":
        return cls("assistant", content, tool_calls=tool_calls)

    @classmethod
    def tool(cls, call: ToolCall, content: str, is_error: bool = False) -> "Message":
        return cls("tool", content, tool_call_id=call.id, name=call.name, is_error=is_error)


@dataclass(frozen=True)
class ChatRequest:
    messages: tuple[Message, ...]
    tools: tuple[ToolDefinition, ...] = ()
    tool_choice: str = "auto"         # "auto" | "none"
    temperature: float = 0.7
    max_tokens: int = 2048

    @property
    def system_prompt(self) -> str:
        return "\n\n".join(m.content for m in self.messages if m.role == "system")

    @property
    def conversation(self) -> tuple[Message, ...]:
        return tuple(m for m in self.messages if m.role != "system")


class ChunkKind(Enum):
    TEXT = "text"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    USAGE = "usage"
    SUBSTITUTION = "substitution"     # emitted by FallbackPolicy only


@dataclass(frozen=True)
class StreamChunk:
    kind: ChunkKind
    text: str = ""
    tool_call: ToolCall | None = None
    usage: Usage | None = None
    adapter: str | None = None
    failed: str | None = None

    @classmethod
    def content(cls, text: str) -> "StreamChunk":
        return cls(ChunkKind.TEXT, text=text)

    @classmethod
    def thought(cls, text: str) -> "StreamChunk":
        return cls(ChunkKind.THINKING, text=text)

    @classmethod
    def call(cls, tool_call: ToolCall) -> "StreamChunk":
        return cls(ChunkKind.TOOL_CALL, tool_call=tool_call)

    @classmethod
    def tokens(cls, prompt_tokens: int, completion_tokens: int) -> "StreamChunk":
        return cls(ChunkKind.USAGE, usage=Usage(prompt_tokens or 0, completion_tokens or 0))


@dataclass
class Completion:
    """A fully collected (non-streamed) response; used by health checks."""

    adapter: str
    content: str
    latency_sec: float
    usage: Usage = field(default_factory=Usage)


class ModelAdapter(ABC):
    """Abstract base for all model adapters.

    An adapter is bound to one ``provider/model`` identifier. Implementations
    stream ``StreamChunk`` objects and raise ``ProviderError`` with a
    classified ``ErrorKind`` on failure.
    """

    def __init__(self, identifier: str, api_key: str = "", base_url: str | None = None) -> None:
        self._identifier = identifier
        self._api_key = api_key
        self._base_url = base_url

    def name(self) -> str:
        """Return the full adapter identifier (e.g. 'deepseek/deepseek-chat')."""
        return self._identifier

    def model_string(self) -> str:
        """Return the model part of the identifier."""
        return self._identifier.split("/", 1)[-1]

    def provider(self) -> str:
        return self._identifier.split("/", 1)[0]

    def _require_key(self) -> str:
        if not self._api_key:
            raise ProviderError(self.name(), "Missing API key", ErrorKind.AUTH)
        return self._api_key

    @abstractmethod
    def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a response for the given request.

        Yields TEXT and THINKING chunks in arrival order, TOOL_CALL chunks once
        their arguments are complete, and at most one USAGE chunk.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...

    def invoke(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        return self.stream(replace(request, tools=(), tool_choice="auto"))

    def invoke_with_tools(
        self, request: ChatRequest, tools: tuple[ToolDefinition, ...]
    ) -> AsyncIterator[StreamChunk]:
        return self.stream(replace(request, tools=tools))

    async def complete(self, request: ChatRequest) -> Completion:
        """Collect a full text response from ``invoke``."""
        start = time.monotonic()
        parts: list[str] = []
        usage = Usage()
        async for chunk in self.invoke(request):
            if chunk.kind is ChunkKind.TEXT:
                parts.append(chunk.text)
            elif chunk.kind is ChunkKind.USAGE and chunk.usage:
                usage = usage + chunk.usage
        return Completion(
            adapter=self.name(),
            content="".join(parts),
            latency_sec=time.monotonic() - start,
            usage=usage,
        )
