"""One participant's single Turn: prompt, streamed generation, tool loop, usage."""

import logging
from contextlib import aclosing
from dataclasses import dataclass, field

from ai_debate import events
from ai_debate.errors import SpeakerError, ToolArgumentsError
from ai_debate.fallback import FallbackPolicy
from ai_debate.models import Phase, Role, ToolInvocation, Turn, Usage
from ai_debate.multiplexer import Channel
from ai_debate.prompts import PromptBuilder, estimate_tokens
from ai_debate.providers.base import ChatRequest, ChunkKind, Message, ProviderError, ToolCall
from ai_debate.tools import WEB_SEARCH, ToolBridge, parse_query

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_CALLS = 3


@dataclass
class _Step:
    """What one model invocation produced (reset on substitution)."""

    text: list[str] = field(default_factory=list)
    thinking: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage | None = None

    @property
    def content(self) -> str:
        return "".join(self.text)


class SpeakerSession:
    """Runs one role's contribution to one phase and streams it to a Channel.

    Tool definitions are offered only when a ToolBridge is given, and a Judge
    session never accepts one.
    """

    def __init__(
        self,
        role: Role,
        phase: Phase,
        policy: FallbackPolicy,
        prompts: PromptBuilder,
        tool_bridge: ToolBridge | None = None,
        max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> None:
        if role is Role.JUDGE and tool_bridge is not None:
            raise ValueError("The judge must not be given tools")
        if (role is Role.JUDGE) != (phase is Phase.JUDGEMENT):
            raise ValueError(f"{role.label} does not speak in the {phase.value} phase")
        self.role = role
        self.phase = phase
        self._policy = policy
        self._prompts = prompts
        self._bridge = tool_bridge
        self._max_tool_calls = max(0, max_tool_calls)
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def adapter_name(self) -> str:
        return self._policy.active.name()

    async def run(self, topic: str, transcript: tuple[Turn, ...], channel: Channel) -> Turn:
        """Produce this session's Turn, emitting events on ``channel``.

        Raises:
            SpeakerError: Fallbacks exhausted, a non-retryable backend error,
                or malformed tool-call arguments.
        """
        try:
            return await self._run(topic, transcript, channel)
        except (ProviderError, ToolArgumentsError) as exc:
            logger.error("%s %s failed: %s", self.role.label, self.phase.value, exc)
            raise SpeakerError(self.role, self.phase, self.adapter_name, exc) from exc

    async def _run(self, topic: str, transcript: tuple[Turn, ...], channel: Channel) -> Turn:
        await channel.put(events.phase_start(self.role, self.phase, self.adapter_name))

        tools = self._bridge.definitions() if self._bridge is not None else ()
        messages = list(self._prompts.build(self.role, self.phase, topic, transcript, tools_enabled=bool(tools)))
        invocations: list[ToolInvocation] = []
        content_parts: list[str] = []
        thinking_parts: list[str] = []
        usage = Usage()
        tool_calls_used = 0

        while True:
            budget_left = self._max_tool_calls - tool_calls_used
            request = ChatRequest(
                messages=tuple(messages),
                tools=tools,
                tool_choice="auto" if budget_left > 0 else "none",
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
            step = await self._stream_step(request, channel)
            usage = usage + (step.usage or self._estimate_usage(request, step))
            content_parts.append(step.content)
            thinking_parts.extend(step.thinking)

            if not step.tool_calls:
                break
            if self._bridge is None or budget_left <= 0:
                logger.warning(
                    "%s %s: ignoring %d tool call(s) after tool budget was spent",
                    self.role.label, self.phase.value, len(step.tool_calls),
                )
                break

            messages.append(Message.assistant(step.content, tuple(step.tool_calls)))
            for call in step.tool_calls:
                if tool_calls_used >= self._max_tool_calls:
                    messages.append(Message.tool(call, "Tool call limit reached; answer with what you have.", is_error=True))
                    continue
                tool_calls_used += 1
                messages.append(await self._run_tool(self._bridge, call, channel, invocations))

        await channel.put(events.usage(self.role, self.phase, usage))
        await channel.put(events.phase_done(self.role, self.phase, self.adapter_name))

        turn = Turn(
            role=self.role,
            phase=self.phase,
            model=self.adapter_name,
            content="".join(content_parts).strip(),
            usage=usage,
            tool_invocations=tuple(invocations),
            thinking="".join(thinking_parts),
        )
        logger.info(
            "%s %s done via %s (%d+%d tokens, %d tool calls)",
            self.role.label, self.phase.value, turn.model,
            usage.prompt_tokens, usage.completion_tokens, len(invocations),
        )
        return turn

    async def _stream_step(self, request: ChatRequest, channel: Channel) -> _Step:
        step = _Step()
        async with aclosing(self._policy.execute(request)) as chunks:
            async for chunk in chunks:
                if chunk.kind is ChunkKind.TEXT:
                    step.text.append(chunk.text)
                    await channel.put(events.delta(self.role, self.phase, chunk.text))
                elif chunk.kind is ChunkKind.THINKING:
                    step.thinking.append(chunk.text)
                    await channel.put(events.thinking(self.role, self.phase, chunk.text))
                elif chunk.kind is ChunkKind.TOOL_CALL and chunk.tool_call is not None:
                    step.tool_calls.append(chunk.tool_call)
                elif chunk.kind is ChunkKind.USAGE and chunk.usage is not None:
                    step.usage = chunk.usage if step.usage is None else step.usage + chunk.usage
                elif chunk.kind is ChunkKind.SUBSTITUTION:
                    # Streamed text stays visible; the restart begins from scratch
                    step = _Step()
                    notice = self._prompts.recovery_notice(chunk.failed or "", chunk.adapter or "")
                    if notice:
                        await channel.put(events.delta(self.role, self.phase, notice))
        return step

    async def _run_tool(
        self, bridge: ToolBridge, call: ToolCall, channel: Channel, invocations: list[ToolInvocation]
    ) -> Message:
        # Malformed arguments fail the Turn before any activity is reported
        query = parse_query(call.arguments) if call.name == WEB_SEARCH.name else ""
        await channel.put(events.tool_started(self.role, self.phase, query))
        result = await bridge.invoke(call.name, call.arguments)
        invocations.append(result.invocation)
        await channel.put(events.tool_finished(self.role, self.phase, result.invocation))
        return Message.tool(call, result.content, is_error=result.is_error)

    @staticmethod
    def _estimate_usage(request: ChatRequest, step: _Step) -> Usage:
        prompt = sum(estimate_tokens(m.content) for m in request.messages)
        return Usage(prompt_tokens=prompt, completion_tokens=estimate_tokens(step.content) if step.content else 0)
